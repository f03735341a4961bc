"""Boundaries the payout domain depends on"""

import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from payout_engine.domain.models import Creator, Payout, PayoutStatus, Quote, Transfer


class PayoutProvider(Protocol):
    """Money-transfer provider operations used by the payout workflow"""

    async def create_recipient(
        self,
        currency: str,
        account_holder_name: str,
        recipient_type: str,
        details: Dict[str, Any],
    ) -> str: ...

    async def create_quote(
        self,
        source_currency: str,
        target_currency: str,
        source_amount: Optional[Decimal] = None,
        target_amount: Optional[Decimal] = None,
    ) -> Quote: ...

    async def get_quote(self, quote_id: str) -> Quote: ...

    async def create_transfer(
        self,
        recipient_id: str,
        quote_id: str,
        customer_transaction_id: str,
        reference: str,
    ) -> Transfer: ...

    async def fund_transfer(self, transfer_id: str, funding_source: str = "BALANCE") -> Dict[str, Any]: ...

    async def get_transfer(self, transfer_id: str) -> Transfer: ...

    async def cancel_transfer(self, transfer_id: str) -> Transfer: ...


class PayoutStore(Protocol):
    """Durable payout ledger"""

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
    ) -> Payout: ...

    async def update_payout(
        self,
        payout_id: uuid.UUID,
        status: PayoutStatus,
        *,
        error_message: Optional[str] = None,
        error_code: Optional[str] = None,
        **fields: Any,
    ) -> Payout: ...

    async def get_payout(self, payout_id: uuid.UUID) -> Optional[Payout]: ...

    async def get_by_transfer_id(self, transfer_id: str) -> Optional[Payout]: ...

    async def list_by_status(self, status: PayoutStatus, limit: int = 100) -> List[Payout]: ...

    async def find_recipient_id(self, creator_id: str, account_number: str, currency: str) -> Optional[str]: ...


class CreatorDirectory(Protocol):
    async def get_creator(self, creator_id: str) -> Optional[Creator]: ...
