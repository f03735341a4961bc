"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from payout_engine.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payout_outcome(
    creator_id: str,
    payout_id: Optional[str],
    success: bool,
    code: Optional[str],
    duration_ms: float,
    step: str = "payout_complete",
) -> None:
    """Log structured payout outcome for analysis"""
    logging.getLogger("payout_engine.payouts").info(
        "Payout completed" if success else "Payout failed",
        extra={
            "creator_id": creator_id,
            "payout_id": payout_id,
            "step": step,
            "outcome": "success" if success else "failure",
            "code": code,
            "duration_ms": round(duration_ms, 2),
        },
    )
