"""
Payments router — the ledger's HTTP surface. Every route requires a bearer
token and acts only on the caller's own transactions.

  POST /api/payments                             — Create a PENDING payment
  GET  /api/payments/summary                     — Totals by type/status
  GET  /api/payments/ledger                      — Filtered page + balance
  GET  /api/payments/{transaction_id}            — One transaction
  POST /api/payments/{transaction_id}/release    — Complete a payment
  POST /api/payments/{transaction_id}/refund     — Refund a completed payment

/summary and /ledger are declared before /{transaction_id} so they are
not captured by the path parameter.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tavern_ledger.database import get_db
from tavern_ledger.dependencies import get_current_user
from tavern_ledger.exceptions import TransactionNotFoundError
from tavern_ledger.models.user import User
from tavern_ledger.schemas.common import ApiResponse
from tavern_ledger.schemas.transaction import (
    LedgerFilters,
    LedgerResponse,
    PaymentCreateRequest,
    RefundRequest,
    TransactionResponse,
    TransactionSummaryResponse,
)
from tavern_ledger.services import payment_service

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a payment",
)
async def create_payment(
    request: PaymentCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a new payment. It starts PENDING until released.

    - **amount**: Greater than 0, at most two decimal places
    - **description**: Required
    - **quest_id** / **metadata**: Optional correlation data
    """
    txn = await payment_service.create_payment(
        db=db,
        user_id=user.id,
        amount=request.amount,
        description=request.description,
        quest_id=request.quest_id,
        metadata=request.metadata,
    )
    return ApiResponse(
        message="Payment created successfully",
        data=TransactionResponse.model_validate(txn),
    )


@router.get(
    "/summary",
    response_model=ApiResponse[TransactionSummaryResponse],
    summary="Get payment totals",
)
async def get_summary(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Totals over every transaction the user has, in any status."""
    summary = await payment_service.get_transaction_summary(db=db, user_id=user.id)
    return ApiResponse(data=TransactionSummaryResponse(**summary))


@router.get(
    "/ledger",
    response_model=ApiResponse[LedgerResponse],
    summary="Get the transaction ledger",
)
async def get_ledger(
    filters: Annotated[LedgerFilters, Query()],
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    List the user's transactions, newest first.

    `total` counts every row matching the filters. `balance` is account-wide
    (completed refunds minus completed payments) and does not follow the
    filters.
    """
    ledger = await payment_service.get_user_ledger(db=db, user_id=user.id, filters=filters)
    return ApiResponse(
        data=LedgerResponse(
            transactions=[TransactionResponse.model_validate(t) for t in ledger["transactions"]],
            total=ledger["total"],
            balance=ledger["balance"],
        )
    )


@router.get(
    "/{transaction_id}",
    response_model=ApiResponse[TransactionResponse],
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get one of the user's transactions by its public id."""
    txn = await payment_service.get_transaction_by_id(
        db=db, transaction_id=transaction_id, user_id=user.id
    )
    if txn is None:
        raise TransactionNotFoundError(transaction_id)
    return ApiResponse(data=TransactionResponse.model_validate(txn))


@router.post(
    "/{transaction_id}/release",
    response_model=ApiResponse[TransactionResponse],
    summary="Release a payment",
)
async def release_payment(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Mark a PENDING or ON_HOLD payment COMPLETED and record a RELEASE
    transaction for it. Returns the updated payment.
    """
    txn = await payment_service.release_payment(
        db=db, transaction_id=transaction_id, user_id=user.id
    )
    return ApiResponse(
        message="Payment released successfully",
        data=TransactionResponse.model_validate(txn),
    )


@router.post(
    "/{transaction_id}/refund",
    response_model=ApiResponse[TransactionResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Refund a completed payment",
)
async def process_refund(
    transaction_id: str,
    request: RefundRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Refund a COMPLETED payment in full or in part. Returns the new REFUND
    transaction.

    - **reason**: Required
    - **amount**: Optional; defaults to the full payment amount and may not
      exceed it
    """
    refund = await payment_service.process_refund(
        db=db,
        original_transaction_id=transaction_id,
        user_id=user.id,
        reason=request.reason,
        amount=request.amount,
    )
    return ApiResponse(
        message="Refund processed successfully",
        data=TransactionResponse.model_validate(refund),
    )
