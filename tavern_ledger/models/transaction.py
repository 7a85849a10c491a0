"""
Transaction model — one record per monetary event in a user's ledger.

Every payment, release and refund is its own row. Rows are never deleted,
and apart from a release flipping a PAYMENT to COMPLETED they are never
edited either:

  - A payment is created PENDING.
  - Releasing it marks the payment COMPLETED (stamping completed_at) and
    inserts a separate RELEASE row, already COMPLETED.
  - Refunding a COMPLETED payment inserts a separate REFUND row, already
    COMPLETED. The original payment is left untouched.

Release and refund rows point back at the payment through
metadata["original_transaction_id"].

Key fields:
  - transaction_id: public id, "<PREFIX>-<uuid4>" (TXN, REL, RFD, HLD),
    unique across the whole table, never reused
  - amount_cents: integer cents, never negative; the direction is implied by
    type. Exposed as the Decimal `amount` property. Sums run over the integer
    column so they stay exact on every database, SQLite included
  - type: PAYMENT, REFUND, RELEASE or HOLD (fixed at creation)
  - status: PENDING, ON_HOLD, COMPLETED, FAILED or CANCELLED (the only
    mutable field). FAILED and CANCELLED are set by other systems only.
  - metadata: write-once correlation fields (quest/guild name, completion
    date, refund reason, original transaction id)
"""

import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from tavern_ledger.database import Base, UTCDateTime


class TransactionType(str, enum.Enum):
    """Kind of monetary event. Closed set, immutable after creation."""
    PAYMENT = "PAYMENT"
    REFUND = "REFUND"
    RELEASE = "RELEASE"
    HOLD = "HOLD"


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Prefix on the public transaction_id, so a human can tell kinds apart
TRANSACTION_ID_PREFIXES = {
    TransactionType.PAYMENT: "TXN",
    TransactionType.RELEASE: "REL",
    TransactionType.REFUND: "RFD",
    TransactionType.HOLD: "HLD",
}


def generate_transaction_id(txn_type: TransactionType) -> str:
    """Return a new public id such as "TXN-3f1c...". uuid4 keeps it globally unique."""
    return f"{TRANSACTION_ID_PREFIXES[txn_type]}-{uuid.uuid4()}"


def amount_to_cents(amount: Decimal | str | int) -> int:
    """Decimal amount to integer cents. Anything finer than a cent is an error."""
    cents = Decimal(amount) * 100
    if cents != cents.to_integral_value():
        raise ValueError(f"{amount} has more than two decimal places")
    return int(cents)


def cents_to_amount(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_transactions_non_negative_amount"),
        # Ledger page: one user's rows, newest first
        Index("ix_transactions_user_created", "user_id", "created_at"),
        Index("ix_transactions_status_type", "status", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    transaction_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    # Owner — every query and mutation is scoped to it
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # Opaque correlation id for the quest service
    quest_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    # Integer cents, like every monetary column: no floating point in storage or sums
    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, name="transaction_type"),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus, name="transaction_status"),
        nullable=False,
        default=TransactionStatus.PENDING,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # "metadata" is reserved on declarative classes, hence the trailing underscore
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Set once, when the transaction reaches COMPLETED
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    @property
    def amount(self) -> Decimal:
        return cents_to_amount(self.amount_cents)

    @amount.setter
    def amount(self, value: Decimal) -> None:
        self.amount_cents = amount_to_cents(value)
