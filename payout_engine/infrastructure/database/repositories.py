"""Data access layer for payout records and creator profiles"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_engine.domain.exceptions import DuplicateReferenceError, PayoutNotFoundError, StorageError
from payout_engine.domain.models import Creator, CreatorPayoutStats, PendingSummary, Payout, PayoutStatus
from payout_engine.domain.state_machine import assert_transition
from payout_engine.infrastructure.database.models import PayoutRecord, Profile
from payout_engine.utils.references import utcnow

UNIQUE_VIOLATION_SQLSTATE = "23505"

# Columns the workflow may fill in on update
UPDATABLE_FIELDS = {
    "wise_recipient_id",
    "wise_quote_id",
    "wise_transfer_id",
    "exchange_rate",
    "source_amount",
    "source_currency",
    "wise_fee",
    "wise_response",
    "recipient_bank_name",
}


def _is_unique_violation(error: IntegrityError) -> bool:
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = str(orig).lower()
    return "unique" in message or "duplicate" in message


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_domain(record: PayoutRecord) -> Payout:
    """Snapshot an ORM row as a domain Payout"""
    return Payout(
        id=record.id,
        reference=record.reference,
        creator_id=record.creator_id,
        amount=_decimal(record.amount),
        currency=record.currency,
        status=PayoutStatus(record.status),
        recipient_account_number=record.recipient_account_number,
        recipient_account_name=record.recipient_account_name,
        recipient_bank_code=record.recipient_bank_code,
        recipient_bank_name=record.recipient_bank_name,
        customer_transaction_id=record.customer_transaction_id,
        wise_recipient_id=record.wise_recipient_id,
        wise_quote_id=record.wise_quote_id,
        wise_transfer_id=record.wise_transfer_id,
        exchange_rate=_decimal(record.exchange_rate),
        source_amount=_decimal(record.source_amount),
        source_currency=record.source_currency,
        wise_fee=_decimal(record.wise_fee),
        error_message=record.error_message,
        error_code=record.error_code,
        status_history=list(record.status_history or []),
        metadata=dict(record.metadata_ or {}),
        created_at=record.created_at,
        updated_at=record.updated_at,
        completed_at=record.completed_at,
        failed_at=record.failed_at,
        deleted_at=record.deleted_at,
    )


def _history_entry(status: str, from_status: Optional[str], error_message: Optional[str], at: datetime) -> Dict[str, Any]:
    return {
        "status": status,
        "timestamp": at.isoformat(),
        "from_status": from_status,
        "error_message": error_message,
    }


class PayoutLedger:
    """
    Durable store of payout attempts.

    Each method runs in its own short transaction so that concurrent
    payouts never share a session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_payout(
        self,
        *,
        reference: str,
        customer_transaction_id: Optional[str],
        creator_id: str,
        amount: Decimal,
        currency: str,
        recipient_account_number: str,
        recipient_account_name: str,
        recipient_bank_code: str,
        recipient_bank_name: Optional[str],
        metadata: Dict[str, Any],
    ) -> Payout:
        """
        Insert a new record in `pending`.

        Raises:
            DuplicateReferenceError: If the reference (or idempotency key) exists
            StorageError: On any other database failure
        """
        now = utcnow()
        record = PayoutRecord(
            reference=reference,
            customer_transaction_id=customer_transaction_id,
            creator_id=creator_id,
            amount=amount,
            currency=currency,
            status=PayoutStatus.PENDING.value,
            recipient_account_number=recipient_account_number,
            recipient_account_name=recipient_account_name,
            recipient_bank_code=recipient_bank_code,
            recipient_bank_name=recipient_bank_name,
            status_history=[_history_entry(PayoutStatus.PENDING.value, None, None, now)],
            metadata_=metadata or {},
            created_at=now,
            updated_at=now,
        )
        async with self.session_factory() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if _is_unique_violation(e):
                    raise DuplicateReferenceError(reference) from e
                raise StorageError(f"Failed to create payout record: {e.orig}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(f"Failed to create payout record: {e}") from e
            return to_domain(record)

    async def update_payout(
        self,
        payout_id: uuid.UUID,
        status: PayoutStatus,
        *,
        error_message: Optional[str] = None,
        error_code: Optional[str] = None,
        **fields: Any,
    ) -> Payout:
        """
        Move a record to `status` and fill in provider linkage.

        A status change appends to the status history and stamps
        `completed_at` / `failed_at`. Error fields are only written when the
        new status is `failed`.

        Raises:
            PayoutNotFoundError: If no record has this id
            InvalidTransitionError: If the state machine rejects the change
            StorageError: On database failure
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        new_status = PayoutStatus(status)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await session.get(PayoutRecord, payout_id, with_for_update=True)
                    if record is None:
                        raise PayoutNotFoundError(f"Payout not found: {payout_id}")

                    current = PayoutStatus(record.status)
                    assert_transition(current, new_status)

                    now = utcnow()
                    for key, value in fields.items():
                        setattr(record, key, value)

                    if new_status != current:
                        record.status = new_status.value
                        # Reassign so the JSON column is flagged dirty
                        record.status_history = [
                            *(record.status_history or []),
                            _history_entry(new_status.value, current.value, error_message, now),
                        ]
                        if new_status == PayoutStatus.COMPLETED:
                            record.completed_at = now
                        elif new_status == PayoutStatus.FAILED:
                            record.failed_at = now
                            record.error_message = error_message
                            record.error_code = error_code

                    record.updated_at = now
                return to_domain(record)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update payout {payout_id}: {e}") from e

    async def _one(self, *criteria) -> Optional[Payout]:
        async with self.session_factory() as session:
            record = (await session.execute(select(PayoutRecord).where(*criteria))).scalars().first()
            return to_domain(record) if record else None

    async def get_payout(self, payout_id: uuid.UUID) -> Optional[Payout]:
        """Fetch by id; soft-deleted records are still returned for audit"""
        return await self._one(PayoutRecord.id == payout_id)

    async def get_by_reference(self, reference: str) -> Optional[Payout]:
        return await self._one(PayoutRecord.reference == reference)

    async def get_by_transfer_id(self, transfer_id: str) -> Optional[Payout]:
        return await self._one(PayoutRecord.wise_transfer_id == str(transfer_id))

    async def list_creator_payouts(
        self,
        creator_id: str,
        status: Optional[PayoutStatus] = None,
        currency: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Payout]:
        """Creator payouts, newest first, soft-deleted excluded"""
        query = select(PayoutRecord).where(
            PayoutRecord.creator_id == creator_id,
            PayoutRecord.deleted_at.is_(None),
        )
        if status is not None:
            query = query.where(PayoutRecord.status == PayoutStatus(status).value)
        if currency is not None:
            query = query.where(PayoutRecord.currency == currency)
        if start_date is not None:
            query = query.where(PayoutRecord.created_at >= start_date)
        if end_date is not None:
            query = query.where(PayoutRecord.created_at <= end_date)
        query = query.order_by(PayoutRecord.created_at.desc()).limit(limit).offset(offset)

        async with self.session_factory() as session:
            records = (await session.execute(query)).scalars().all()
            return [to_domain(r) for r in records]

    async def list_by_status(self, status: PayoutStatus, limit: int = 100) -> List[Payout]:
        """Records in `status`, oldest first, soft-deleted excluded"""
        query = (
            select(PayoutRecord)
            .where(PayoutRecord.status == PayoutStatus(status).value, PayoutRecord.deleted_at.is_(None))
            .order_by(PayoutRecord.created_at.asc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            records = (await session.execute(query)).scalars().all()
            return [to_domain(r) for r in records]

    async def list_pending(self, limit: int = 100) -> List[Payout]:
        return await self.list_by_status(PayoutStatus.PENDING, limit=limit)

    async def pending_summary(self) -> List[PendingSummary]:
        """Per-currency count, total and age range of pending payouts"""
        query = (
            select(
                PayoutRecord.currency,
                func.count(PayoutRecord.id),
                func.sum(PayoutRecord.amount),
                func.min(PayoutRecord.created_at),
                func.max(PayoutRecord.created_at),
            )
            .where(PayoutRecord.status == PayoutStatus.PENDING.value, PayoutRecord.deleted_at.is_(None))
            .group_by(PayoutRecord.currency)
            .order_by(PayoutRecord.currency)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()
        return [
            PendingSummary(
                currency=currency,
                pending_count=count,
                total_amount=_decimal(total) or Decimal("0"),
                oldest_pending=oldest,
                newest_pending=newest,
            )
            for currency, count, total, oldest, newest in rows
        ]

    async def creator_stats(self, creator_id: str) -> List[CreatorPayoutStats]:
        """Per-currency payout counts and total paid out for one creator"""

        def count_status(status: PayoutStatus):
            return func.sum(case((PayoutRecord.status == status.value, 1), else_=0))

        query = (
            select(
                PayoutRecord.currency,
                func.count(PayoutRecord.id),
                count_status(PayoutStatus.COMPLETED),
                count_status(PayoutStatus.FAILED),
                count_status(PayoutStatus.PENDING),
                func.sum(case((PayoutRecord.status == PayoutStatus.COMPLETED.value, PayoutRecord.amount), else_=0)),
                func.max(PayoutRecord.completed_at),
            )
            .where(PayoutRecord.creator_id == creator_id, PayoutRecord.deleted_at.is_(None))
            .group_by(PayoutRecord.currency)
            .order_by(PayoutRecord.currency)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()
        return [
            CreatorPayoutStats(
                creator_id=creator_id,
                currency=currency,
                total_payouts=total,
                successful_payouts=int(successful or 0),
                failed_payouts=int(failed or 0),
                pending_payouts=int(pending or 0),
                total_paid_out=_decimal(paid_out) or Decimal("0"),
                last_payout_at=last_payout_at,
            )
            for currency, total, successful, failed, pending, paid_out, last_payout_at in rows
        ]

    async def soft_delete(self, payout_id: uuid.UUID) -> Payout:
        """
        Hide a record from listings; it stays queryable by id.

        Raises:
            PayoutNotFoundError: If no record has this id
        """
        async with self.session_factory() as session:
            async with session.begin():
                record = await session.get(PayoutRecord, payout_id)
                if record is None:
                    raise PayoutNotFoundError(f"Payout not found: {payout_id}")
                if record.deleted_at is None:
                    record.deleted_at = utcnow()
                    record.updated_at = record.deleted_at
            return to_domain(record)

    async def find_recipient_id(self, creator_id: str, account_number: str, currency: str) -> Optional[str]:
        """Provider recipient id from the most recent payout to the same account"""
        query = (
            select(PayoutRecord.wise_recipient_id)
            .where(
                PayoutRecord.creator_id == creator_id,
                PayoutRecord.recipient_account_number == account_number,
                PayoutRecord.currency == currency,
                PayoutRecord.wise_recipient_id.is_not(None),
                PayoutRecord.deleted_at.is_(None),
            )
            .order_by(PayoutRecord.created_at.desc())
            .limit(1)
        )
        try:
            async with self.session_factory() as session:
                return (await session.execute(query)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Recipient lookup failed: {e}") from e


class CreatorRepository:
    """Repository for creator profiles"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_creator(self, creator_id: str) -> Optional[Creator]:
        """
        Raises:
            StorageError: On database failure
        """
        try:
            async with self.session_factory() as session:
                profile = await session.get(Profile, creator_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Creator lookup failed: {e}") from e
        if profile is None:
            return None
        return Creator(id=profile.id, username=profile.username, display_name=profile.display_name)

    async def add_creator(self, creator_id: str, username: Optional[str] = None, display_name: Optional[str] = None) -> Creator:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(Profile(id=creator_id, username=username, display_name=display_name))
        return Creator(id=creator_id, username=username, display_name=display_name)
