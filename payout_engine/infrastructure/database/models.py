"""SQLAlchemy ORM models for the payout ledger"""

import uuid
from sqlalchemy import CheckConstraint, Column, DateTime, Index, JSON, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from payout_engine.utils.references import utcnow

Base = declarative_base()


class PayoutRecord(Base):
    """One payout attempt and its audit trail"""

    __tablename__ = "wise_payouts"
    __table_args__ = (
        CheckConstraint("amount > 0", name="wise_payouts_amount_positive"),
        CheckConstraint(
            "currency IN ('NGN', 'GHS', 'KES', 'USD', 'EUR', 'GBP')",
            name="wise_payouts_currency_supported",
        ),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'cancelled', 'refunded')",
            name="wise_payouts_status_valid",
        ),
        Index("ix_wise_payouts_recipient_lookup", "creator_id", "recipient_account_number", "currency"),
        Index("ix_wise_payouts_status_created", "status", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(Text, nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(Text, nullable=False)

    # Provider linkage, filled in as the workflow advances
    wise_transfer_id = Column(Text, nullable=True, unique=True)
    wise_recipient_id = Column(Text, nullable=True)
    wise_quote_id = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="pending")

    recipient_account_number = Column(Text, nullable=False)
    recipient_account_name = Column(Text, nullable=False)
    recipient_bank_code = Column(Text, nullable=False)
    recipient_bank_name = Column(Text, nullable=True)

    reference = Column(Text, nullable=False, unique=True)
    customer_transaction_id = Column(Text, nullable=True, unique=True)

    exchange_rate = Column(Numeric(12, 6), nullable=True)
    source_amount = Column(Numeric(12, 2), nullable=True)
    source_currency = Column(Text, nullable=True, default="USD")
    wise_fee = Column(Numeric(10, 2), nullable=True)

    error_message = Column(Text, nullable=True)
    error_code = Column(Text, nullable=True)

    wise_response = Column(JSON, nullable=True)
    status_history = Column("wise_status_history", JSON, nullable=False, default=list)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class Profile(Base):
    """Creator profile (read side only)"""

    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)
    username = Column(Text, nullable=True)
    display_name = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
