"""
Payment service — the ledger engine.

THIS IS THE CORE OF THE PROJECT. It handles:
  - Creating PENDING payments
  - Releasing a payment (PENDING/ON_HOLD -> COMPLETED) plus its RELEASE record
  - Refunding a COMPLETED payment with a new REFUND record
  - The filtered, paginated ledger and the account-wide balance
  - Per-user summary totals

Scoping:
  Every query filters on user_id. Release, refund and lookup match on
  (transaction_id, user_id, type, status) in one WHERE clause, so "does not
  exist", "belongs to someone else", "wrong type" and "wrong status" all
  surface as the same TransactionNotFoundError.

Balance:
  Completed payments are debits and completed refunds are credits:

      balance = -sum(COMPLETED PAYMENT) + sum(COMPLETED REFUND)

  RELEASE and HOLD rows never move the balance. The balance is recomputed
  from the table on every call and ignores any ledger filter.

Concurrency:
  Release flips the status with a conditional UPDATE (compare-and-swap on
  status), so of two concurrent releases of the same payment exactly one
  wins and the other gets TransactionNotFoundError. The status change is
  committed before the RELEASE row is inserted; if that insert fails the
  payment stays COMPLETED with no RELEASE row. That gap is logged, not
  repaired.

  Refunds are checked against the original payment's amount on every call,
  not against what has already been refunded. Repeated full refunds of the
  same payment are therefore accepted.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tavern_ledger.database import as_utc, store_operation
from tavern_ledger.exceptions import StoreError, TransactionNotFoundError, ValidationError
from tavern_ledger.models.transaction import (
    Transaction,
    TransactionStatus,
    TransactionType,
    cents_to_amount,
    generate_transaction_id,
)
from tavern_ledger.schemas.transaction import LedgerFilters, TransactionMetadata

logger = logging.getLogger(__name__)

RELEASABLE_STATUSES = (TransactionStatus.PENDING, TransactionStatus.ON_HOLD)

_CENT = Decimal("0.01")
_MAX_AMOUNT = Decimal("9999999999.99")


def _check_amount(amount: Decimal | None, label: str) -> Decimal:
    """Positive, finite, no finer than one cent, and at most 9 999 999 999.99."""
    if amount is None:
        raise ValidationError(f"{label} is required")
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{label} must be greater than 0")
    if amount > _MAX_AMOUNT:
        raise ValidationError(f"{label} cannot exceed {_MAX_AMOUNT}")
    if amount != amount.quantize(_CENT):
        raise ValidationError(f"{label} cannot have more than 2 decimal places")
    return amount


def _check_text(value: str | None, label: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------

async def create_payment(
    db: AsyncSession,
    user_id: uuid.UUID,
    amount: Decimal,
    description: str | None,
    quest_id: str | None = None,
    metadata: TransactionMetadata | dict | None = None,
) -> Transaction:
    """
    Record a new PENDING payment for a user.

    Args:
        db: Database session.
        user_id: Owner of the payment (the authenticated user).
        amount: Positive amount, at most two decimal places.
        description: Required free text.
        quest_id: Optional correlation id for the quest service.
        metadata: Optional correlation fields (quest/guild name, etc.).

    Returns:
        The persisted Transaction (type PAYMENT, status PENDING).

    Raises:
        ValidationError: Non-positive amount or missing description.
            Nothing is written in that case.
        StoreError: The insert failed.
    """
    amount = _check_amount(amount, "Amount")
    description = _check_text(description, "Description")

    if isinstance(metadata, dict):
        metadata = TransactionMetadata.model_validate(metadata)

    txn = Transaction(
        transaction_id=generate_transaction_id(TransactionType.PAYMENT),
        user_id=user_id,
        quest_id=quest_id,
        amount=amount,
        type=TransactionType.PAYMENT,
        status=TransactionStatus.PENDING,
        description=description,
        metadata_=metadata.model_dump(mode="json", exclude_none=True) if metadata else None,
    )

    with store_operation("create payment"):
        db.add(txn)
        await db.flush()

    logger.info(
        "Payment created: transaction_id=%s user_id=%s amount=%s",
        txn.transaction_id, user_id, amount,
    )
    return txn


async def release_payment(
    db: AsyncSession,
    transaction_id: str,
    user_id: uuid.UUID,
) -> Transaction:
    """
    Complete a PENDING or ON_HOLD payment and record a RELEASE for it.

    Steps:
      1. Conditional UPDATE: status -> COMPLETED and completed_at stamped,
         only if the row still matches (id, owner, PAYMENT, PENDING|ON_HOLD).
         Zero rows updated means nothing to release.
      2. Commit, so the completion stands on its own.
      3. Insert a RELEASE row: same amount and quest_id, COMPLETED, metadata
         copied from the payment plus original_transaction_id.

    Returns:
        The updated original payment (not the RELEASE row).

    Raises:
        TransactionNotFoundError: No releasable payment matches. No write
            happens in that case.
        StoreError: A store call failed. If it was the RELEASE insert, the
            payment is already COMPLETED and stays that way.
    """
    now = datetime.now(timezone.utc)

    with store_operation("release payment"):
        result = await db.execute(
            update(Transaction)
            .where(
                Transaction.transaction_id == transaction_id,
                Transaction.user_id == user_id,
                Transaction.type == TransactionType.PAYMENT,
                Transaction.status.in_(RELEASABLE_STATUSES),
            )
            .values(status=TransactionStatus.COMPLETED, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TransactionNotFoundError(transaction_id, action="released")
        await db.commit()

        payment = (
            await db.execute(
                select(Transaction)
                .where(Transaction.transaction_id == transaction_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()

    logger.info("Payment released: transaction_id=%s user_id=%s", transaction_id, user_id)

    release = Transaction(
        transaction_id=generate_transaction_id(TransactionType.RELEASE),
        user_id=payment.user_id,
        quest_id=payment.quest_id,
        amount=payment.amount,
        type=TransactionType.RELEASE,
        status=TransactionStatus.COMPLETED,
        description=f"Payment released for: {payment.description}",
        metadata_={
            **(payment.metadata_ or {}),
            "original_transaction_id": payment.transaction_id,
        },
        completed_at=now,
    )

    try:
        with store_operation("record payment release"):
            db.add(release)
            await db.flush()
    except StoreError:
        logger.error(
            "Payment %s is COMPLETED but its RELEASE record was not written",
            transaction_id,
        )
        raise

    return payment


async def process_refund(
    db: AsyncSession,
    original_transaction_id: str,
    user_id: uuid.UUID,
    reason: str | None,
    amount: Decimal | None = None,
) -> Transaction:
    """
    Refund all or part of a COMPLETED payment as a new REFUND transaction.

    The refund amount defaults to the payment's full amount. It is compared
    against the payment's amount only; earlier refunds are not subtracted.

    Returns:
        The new REFUND transaction (already COMPLETED).

    Raises:
        ValidationError: Missing reason, non-positive amount, or an amount
            larger than the original payment. Nothing is written.
        TransactionNotFoundError: No COMPLETED payment with this id belongs
            to the user.
        StoreError: A store call failed.
    """
    reason = _check_text(reason, "Refund reason")
    if amount is not None:
        amount = _check_amount(amount, "Refund amount")

    with store_operation("look up payment for refund"):
        original = (
            await db.execute(
                select(Transaction).where(
                    Transaction.transaction_id == original_transaction_id,
                    Transaction.user_id == user_id,
                    Transaction.type == TransactionType.PAYMENT,
                    Transaction.status == TransactionStatus.COMPLETED,
                )
            )
        ).scalar_one_or_none()

    if original is None:
        raise TransactionNotFoundError(original_transaction_id, action="refunded")

    refund_amount = amount if amount is not None else original.amount
    if refund_amount > original.amount:
        raise ValidationError("Refund amount cannot exceed original payment amount")

    refund = Transaction(
        transaction_id=generate_transaction_id(TransactionType.REFUND),
        user_id=user_id,
        quest_id=original.quest_id,
        amount=refund_amount,
        type=TransactionType.REFUND,
        status=TransactionStatus.COMPLETED,
        description=f"Refund for: {original.description}",
        metadata_={
            **(original.metadata_ or {}),
            "refund_reason": reason,
            "original_transaction_id": original.transaction_id,
        },
        completed_at=datetime.now(timezone.utc),
    )

    with store_operation("record refund"):
        db.add(refund)
        await db.flush()

    logger.info(
        "Refund processed: transaction_id=%s original=%s amount=%s",
        refund.transaction_id, original.transaction_id, refund_amount,
    )
    return refund


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_transaction_by_id(
    db: AsyncSession,
    transaction_id: str,
    user_id: uuid.UUID,
) -> Transaction | None:
    """Return the user's transaction with this id, or None."""
    with store_operation("retrieve transaction"):
        result = await db.execute(
            select(Transaction).where(
                Transaction.transaction_id == transaction_id,
                Transaction.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()


async def get_user_ledger(
    db: AsyncSession,
    user_id: uuid.UUID,
    filters: LedgerFilters | None = None,
) -> dict:
    """
    One page of a user's transactions, newest first.

    Args:
        db: Database session.
        user_id: Whose ledger.
        filters: Optional type/status/date range plus limit and skip.

    Returns:
        {"transactions": [...], "total": <rows matching the filters>,
         "balance": <account-wide balance, filters ignored>}
    """
    filters = filters or LedgerFilters()

    conditions = [Transaction.user_id == user_id]
    if filters.type is not None:
        conditions.append(Transaction.type == filters.type)
    if filters.status is not None:
        conditions.append(Transaction.status == filters.status)
    if filters.start_date is not None:
        conditions.append(Transaction.created_at >= as_utc(filters.start_date))
    if filters.end_date is not None:
        conditions.append(Transaction.created_at <= as_utc(filters.end_date))

    with store_operation("retrieve ledger"):
        page = await db.execute(
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(filters.limit)
            .offset(filters.skip)
        )
        transactions = list(page.scalars().all())

        total = (
            await db.execute(
                select(func.count()).select_from(Transaction).where(*conditions)
            )
        ).scalar_one()

    balance = await compute_balance(db, user_id)

    return {"transactions": transactions, "total": total, "balance": balance}


def reduce_balance(totals: Iterable[tuple[TransactionType, int]]) -> Decimal:
    """Fold (type, summed cents) pairs of COMPLETED rows into a balance."""
    balance_cents = 0
    for txn_type, total_cents in totals:
        if txn_type == TransactionType.PAYMENT:
            balance_cents -= total_cents
        elif txn_type == TransactionType.REFUND:
            balance_cents += total_cents
    return cents_to_amount(balance_cents)


async def compute_balance(db: AsyncSession, user_id: uuid.UUID) -> Decimal:
    """Account-wide balance from every COMPLETED transaction of the user."""
    with store_operation("compute balance"):
        result = await db.execute(
            select(Transaction.type, func.sum(Transaction.amount_cents))
            .where(
                Transaction.user_id == user_id,
                Transaction.status == TransactionStatus.COMPLETED,
            )
            .group_by(Transaction.type)
        )
        return reduce_balance(result.all())


def reduce_summary(
    totals: Iterable[tuple[TransactionType, TransactionStatus, int]],
) -> dict[str, Decimal]:
    """
    Fold (type, status, summed cents) groups into the four summary figures.

    total_payments covers PAYMENT rows in every status, so it is always
    pending_amount + completed_amount + whatever sits in ON_HOLD, FAILED
    or CANCELLED.
    """
    summary = {
        "total_payments": 0,
        "total_refunds": 0,
        "pending_amount": 0,
        "completed_amount": 0,
    }
    for txn_type, status, total in totals:
        if txn_type == TransactionType.PAYMENT:
            summary["total_payments"] += total
            if status == TransactionStatus.COMPLETED:
                summary["completed_amount"] += total
            elif status == TransactionStatus.PENDING:
                summary["pending_amount"] += total
        elif txn_type == TransactionType.REFUND:
            summary["total_refunds"] += total
    return {name: cents_to_amount(cents) for name, cents in summary.items()}


async def get_transaction_summary(db: AsyncSession, user_id: uuid.UUID) -> dict[str, Decimal]:
    """Totals over all of a user's transactions, whatever their status."""
    with store_operation("retrieve summary"):
        result = await db.execute(
            select(Transaction.type, Transaction.status, func.sum(Transaction.amount_cents))
            .where(Transaction.user_id == user_id)
            .group_by(Transaction.type, Transaction.status)
        )
        return reduce_summary(result.all())
