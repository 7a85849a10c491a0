"""
Tests for the ledger query, balance, and summary.

These tests verify:
  - Ledger pages come newest first with total ignoring pagination
  - Type, status, and inclusive date-range filters
  - Balance = -completed payments + completed refunds, whatever the filters
  - Summary totals and their relationship to each other
  - The two end-to-end quest scenarios (full and partial refund)
  - The pure balance/summary reducers
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tavern_ledger.models.transaction import TransactionStatus, TransactionType
from tavern_ledger.services.payment_service import reduce_balance, reduce_summary


BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


async def get_ledger(client, **params) -> dict:
    response = await client.get("/api/payments/ledger", params=params)
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def get_summary(client) -> dict:
    response = await client.get("/api/payments/summary")
    assert response.status_code == 200, response.text
    return {key: Decimal(value) for key, value in response.json()["data"].items()}


async def pay_and_release(client, amount, description="quest gear") -> str:
    created = await client.post("/api/payments", json={"amount": amount, "description": description})
    transaction_id = created.json()["data"]["transaction_id"]
    released = await client.post(f"/api/payments/{transaction_id}/release")
    assert released.status_code == 200
    return transaction_id


class TestLedgerPagination:

    async def test_empty_ledger(self, authenticated_client):
        ledger = await get_ledger(authenticated_client)
        assert ledger["transactions"] == []
        assert ledger["total"] == 0
        assert Decimal(ledger["balance"]) == 0

    async def test_default_limit_is_50(self, authenticated_client, user_id, seed_transaction):
        for i in range(55):
            await seed_transaction(user_id, created_at=BASE_TIME + timedelta(minutes=i))

        ledger = await get_ledger(authenticated_client)
        assert len(ledger["transactions"]) == 50
        assert ledger["total"] == 55

    async def test_limit_and_skip(self, authenticated_client, user_id, seed_transaction):
        for i in range(60):
            await seed_transaction(
                user_id, description=f"txn {i}", created_at=BASE_TIME + timedelta(minutes=i)
            )

        ledger = await get_ledger(authenticated_client, limit=20, skip=40)

        assert ledger["total"] == 60
        # Newest first: skipping 40 of 60 leaves the 20 oldest, still descending
        assert [t["description"] for t in ledger["transactions"]] == [
            f"txn {i}" for i in range(19, -1, -1)
        ]

    async def test_limit_out_of_range_rejected(self, authenticated_client):
        response = await authenticated_client.get("/api/payments/ledger", params={"limit": 0})
        assert response.status_code == 422
        response = await authenticated_client.get("/api/payments/ledger", params={"limit": 201})
        assert response.status_code == 422
        response = await authenticated_client.get("/api/payments/ledger", params={"skip": -1})
        assert response.status_code == 422

    async def test_equal_timestamps_page_without_gaps(
        self, authenticated_client, user_id, seed_transaction
    ):
        for i in range(30):
            await seed_transaction(user_id, description=f"tied {i}", created_at=BASE_TIME)

        seen = []
        for skip in (0, 10, 20):
            page = await get_ledger(authenticated_client, limit=10, skip=skip)
            seen.extend(t["transaction_id"] for t in page["transactions"])

        assert len(seen) == 30
        assert len(set(seen)) == 30

    async def test_only_own_transactions(
        self, authenticated_client, other_user_headers, seed_transaction, user_id
    ):
        await seed_transaction(user_id)
        response = await authenticated_client.get("/api/payments/ledger", headers=other_user_headers)
        assert response.json()["data"]["total"] == 0


class TestLedgerFilters:

    async def test_filter_by_type_and_status(self, authenticated_client, user_id, seed_transaction):
        await seed_transaction(user_id, status=TransactionStatus.PENDING)
        await seed_transaction(user_id, status=TransactionStatus.COMPLETED)
        await seed_transaction(
            user_id, txn_type=TransactionType.REFUND, status=TransactionStatus.COMPLETED
        )

        payments = await get_ledger(authenticated_client, type="PAYMENT")
        assert payments["total"] == 2
        assert {t["type"] for t in payments["transactions"]} == {"PAYMENT"}

        completed_payments = await get_ledger(
            authenticated_client, type="PAYMENT", status="COMPLETED"
        )
        assert completed_payments["total"] == 1

    async def test_unknown_type_rejected(self, authenticated_client):
        response = await authenticated_client.get("/api/payments/ledger", params={"type": "GIFT"})
        assert response.status_code == 422

    async def test_date_range_is_inclusive(self, authenticated_client, user_id, seed_transaction):
        for day in range(5):
            await seed_transaction(
                user_id, description=f"day {day}", created_at=BASE_TIME + timedelta(days=day)
            )

        ledger = await get_ledger(
            authenticated_client,
            start_date=(BASE_TIME + timedelta(days=1)).isoformat(),
            end_date=(BASE_TIME + timedelta(days=3)).isoformat(),
        )
        assert ledger["total"] == 3
        assert [t["description"] for t in ledger["transactions"]] == ["day 3", "day 2", "day 1"]

    async def test_start_date_only(self, authenticated_client, user_id, seed_transaction):
        for day in range(3):
            await seed_transaction(user_id, created_at=BASE_TIME + timedelta(days=day))

        ledger = await get_ledger(
            authenticated_client, start_date=(BASE_TIME + timedelta(days=2)).isoformat()
        )
        assert ledger["total"] == 1

    async def test_naive_bounds_are_utc(self, authenticated_client, user_id, seed_transaction):
        # BASE_TIME is 12:00 UTC
        await seed_transaction(user_id, created_at=BASE_TIME)

        ledger = await get_ledger(authenticated_client, end_date="2026-03-01T12:00:00")
        assert ledger["total"] == 1
        ledger = await get_ledger(authenticated_client, start_date="2026-03-01T12:00:00")
        assert ledger["total"] == 1
        ledger = await get_ledger(authenticated_client, end_date="2026-03-01T11:59:59")
        assert ledger["total"] == 0

    async def test_offset_bounds_are_converted(self, authenticated_client, user_id, seed_transaction):
        await seed_transaction(user_id, created_at=BASE_TIME)

        # 14:00+02:00 is exactly 12:00Z, so the inclusive bound still matches
        ledger = await get_ledger(authenticated_client, start_date="2026-03-01T14:00:00+02:00")
        assert ledger["total"] == 1
        ledger = await get_ledger(authenticated_client, start_date="2026-03-01T14:00:01+02:00")
        assert ledger["total"] == 0
        ledger = await get_ledger(authenticated_client, end_date="2026-03-01T13:59:59+02:00")
        assert ledger["total"] == 0


class TestBalance:

    async def test_balance_ignores_filters(self, authenticated_client):
        first = await pay_and_release(authenticated_client, 100)
        await pay_and_release(authenticated_client, 40)
        await authenticated_client.post(
            f"/api/payments/{first}/refund", json={"reason": "returned", "amount": 30}
        )
        # Pending payments never touch the balance
        await authenticated_client.post("/api/payments", json={"amount": 999, "description": "x"})

        expected = Decimal("-100") - Decimal("40") + Decimal("30")
        for params in ({}, {"type": "REFUND"}, {"status": "PENDING"}, {"limit": 1, "skip": 3}):
            ledger = await get_ledger(authenticated_client, **params)
            assert Decimal(ledger["balance"]) == expected

    async def test_release_and_hold_rows_do_not_move_balance(
        self, authenticated_client, user_id, seed_transaction
    ):
        await seed_transaction(
            user_id, amount="70", txn_type=TransactionType.HOLD, status=TransactionStatus.COMPLETED
        )
        await seed_transaction(
            user_id, amount="70", txn_type=TransactionType.RELEASE,
            status=TransactionStatus.COMPLETED,
        )
        ledger = await get_ledger(authenticated_client)
        assert Decimal(ledger["balance"]) == 0

    async def test_failed_and_cancelled_payments_do_not_move_balance(
        self, authenticated_client, user_id, seed_transaction
    ):
        await seed_transaction(user_id, amount="10", status=TransactionStatus.FAILED)
        await seed_transaction(user_id, amount="20", status=TransactionStatus.CANCELLED)
        await seed_transaction(user_id, amount="5", status=TransactionStatus.COMPLETED)

        ledger = await get_ledger(authenticated_client)
        assert Decimal(ledger["balance"]) == Decimal("-5")


class TestSummary:

    async def test_summary_totals(self, authenticated_client, user_id, seed_transaction):
        await seed_transaction(user_id, amount="10", status=TransactionStatus.PENDING)
        await seed_transaction(user_id, amount="20", status=TransactionStatus.COMPLETED)
        await seed_transaction(user_id, amount="4", status=TransactionStatus.ON_HOLD)
        await seed_transaction(user_id, amount="2", status=TransactionStatus.FAILED)
        await seed_transaction(user_id, amount="1", status=TransactionStatus.CANCELLED)
        await seed_transaction(
            user_id, amount="8", txn_type=TransactionType.REFUND,
            status=TransactionStatus.COMPLETED,
        )

        summary = await get_summary(authenticated_client)

        assert summary == {
            "total_payments": Decimal("37"),
            "total_refunds": Decimal("8"),
            "pending_amount": Decimal("10"),
            "completed_amount": Decimal("20"),
        }
        # Payments outside PENDING/COMPLETED still count toward the total
        assert summary["total_payments"] == (
            summary["pending_amount"] + summary["completed_amount"] + Decimal("7")
        )

    async def test_summary_never_decreases(self, authenticated_client):
        previous = await get_summary(authenticated_client)
        transaction_id = await pay_and_release(authenticated_client, 15)
        await authenticated_client.post("/api/payments", json={"amount": 5, "description": "y"})
        await authenticated_client.post(
            f"/api/payments/{transaction_id}/refund", json={"reason": "broken"}
        )

        current = await get_summary(authenticated_client)
        assert current["total_payments"] >= previous["total_payments"]
        assert current["total_refunds"] >= previous["total_refunds"]
        assert current["total_payments"] == Decimal("20")


class TestEndToEnd:

    async def test_pay_release_full_refund(self, authenticated_client):
        created = await authenticated_client.post(
            "/api/payments", json={"amount": 100, "description": "sword"}
        )
        payment = created.json()["data"]
        assert payment["status"] == "PENDING"

        released = await authenticated_client.post(
            f"/api/payments/{payment['transaction_id']}/release"
        )
        assert released.json()["data"]["status"] == "COMPLETED"
        releases = (await get_ledger(authenticated_client, type="RELEASE"))["transactions"]
        assert [Decimal(r["amount"]) for r in releases] == [Decimal("100")]

        refund = await authenticated_client.post(
            f"/api/payments/{payment['transaction_id']}/refund", json={"reason": "no longer needed"}
        )
        assert Decimal(refund.json()["data"]["amount"]) == Decimal("100")

        ledger = await get_ledger(authenticated_client)
        assert ledger["total"] == 3
        assert Decimal(ledger["balance"]) == 0

    async def test_pay_release_partial_refund(self, authenticated_client):
        transaction_id = await pay_and_release(authenticated_client, 50)
        await authenticated_client.post(
            f"/api/payments/{transaction_id}/refund", json={"reason": "damaged", "amount": 20}
        )

        ledger = await get_ledger(authenticated_client)
        assert Decimal(ledger["balance"]) == Decimal("-30")

        summary = await get_summary(authenticated_client)
        assert summary["completed_amount"] == Decimal("50")
        assert summary["total_refunds"] == Decimal("20")


class TestReducers:
    """The reducers take summed integer cents and hand back Decimal amounts."""

    def test_reduce_balance(self):
        totals = [
            (TransactionType.PAYMENT, 12050),
            (TransactionType.REFUND, 2025),
            (TransactionType.RELEASE, 12050),
            (TransactionType.HOLD, 900),
        ]
        assert reduce_balance(totals) == Decimal("-100.25")

    def test_reduce_balance_empty(self):
        assert reduce_balance([]) == Decimal("0")

    def test_reduce_summary(self):
        totals = [
            (TransactionType.PAYMENT, TransactionStatus.PENDING, 1000),
            (TransactionType.PAYMENT, TransactionStatus.COMPLETED, 3000),
            (TransactionType.PAYMENT, TransactionStatus.ON_HOLD, 500),
            (TransactionType.REFUND, TransactionStatus.COMPLETED, 1200),
            (TransactionType.RELEASE, TransactionStatus.COMPLETED, 3000),
        ]
        assert reduce_summary(totals) == {
            "total_payments": Decimal("45"),
            "total_refunds": Decimal("12"),
            "pending_amount": Decimal("10"),
            "completed_amount": Decimal("30"),
        }
