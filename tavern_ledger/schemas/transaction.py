"""
Pydantic schemas for the payment ledger endpoints.

Amounts are decimals with at most two fractional digits and serialize as
JSON strings ("100.00") so no precision is lost on the wire.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from tavern_ledger.config import settings
from tavern_ledger.models.transaction import TransactionStatus, TransactionType


class TransactionMetadata(BaseModel):
    """Correlation fields a caller may attach to a payment. Unknown keys are dropped."""
    model_config = ConfigDict(extra="ignore")

    quest_name: str | None = Field(None, max_length=200)
    guild_name: str | None = Field(None, max_length=200)
    completion_date: datetime | None = None
    refund_reason: str | None = Field(None, max_length=500)
    original_transaction_id: str | None = Field(None, max_length=64)


class PaymentCreateRequest(BaseModel):
    """Request body for POST /payments. Range checks live in the service."""
    amount: Decimal
    description: str | None = Field(None, max_length=500)
    quest_id: str | None = Field(None, max_length=64)
    metadata: TransactionMetadata | None = None


class RefundRequest(BaseModel):
    """Request body for POST /payments/{transaction_id}/refund."""
    reason: str | None = Field(None, max_length=500)
    amount: Decimal | None = Field(
        None, description="Partial refund amount; omit to refund the full payment"
    )


class LedgerFilters(BaseModel):
    """
    Every option the ledger query understands. Each is optional; the date
    bounds are inclusive and there is no default date range.
    """
    type: TransactionType | None = None
    status: TransactionStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int = Field(settings.LEDGER_DEFAULT_LIMIT, ge=1, le=settings.LEDGER_MAX_LIMIT)
    skip: int = Field(0, ge=0)


class TransactionResponse(BaseModel):
    """Public representation of a ledger transaction."""
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    user_id: uuid.UUID
    quest_id: str | None
    amount: Decimal
    type: TransactionType
    status: TransactionStatus
    description: str
    # Read from the ORM's metadata_ attribute, written out as "metadata"
    metadata: dict | None = Field(
        None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


class LedgerResponse(BaseModel):
    """
    One page of transactions plus the account-wide balance.

    `total` counts every row matching the filters; `balance` ignores the
    filters entirely and always covers all COMPLETED rows of the user.
    """
    transactions: list[TransactionResponse]
    total: int
    balance: Decimal


class TransactionSummaryResponse(BaseModel):
    total_payments: Decimal
    total_refunds: Decimal
    pending_amount: Decimal
    completed_amount: Decimal
