#!/usr/bin/env python3
"""
Demo seed script — populates the ledger with sample quest payments.

!! NOT FOR PRODUCTION !!
This script creates adventurers with known passwords and fake payment
history. It is intended ONLY for local demos and frontend development.

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Reset the database and re-seed:
    python demo/seed.py --reset

    # Custom server URL:
    python demo/seed.py --base-url http://localhost:9000

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┐
    │ Email                        │ Password          │
    ├──────────────────────────────┼───────────────────┤
    │ aria@tavern.example          │ AriaDemo123!      │
    │ brom@tavern.example          │ BromDemo123!      │
    │ cyra@tavern.example          │ CyraDemo123!      │
    └──────────────────────────────┴───────────────────┘
"""

import argparse
import asyncio
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx

BASE_URL = "http://localhost:8000"

# ---------------------------------------------------------------------------
# Demo adventurers
# ---------------------------------------------------------------------------

ADVENTURERS = [
    {"email": "aria@tavern.example", "password": "AriaDemo123!",
     "display_name": "Aria", "guild": "Iron Wolves", "payments": 12},
    {"email": "brom@tavern.example", "password": "BromDemo123!",
     "display_name": "Brom", "guild": "Silver Lanterns", "payments": 8},
    {"email": "cyra@tavern.example", "password": "CyraDemo123!",
     "display_name": "Cyra", "guild": "Iron Wolves", "payments": 5},
]

QUESTS = [
    "Goblin Cave", "Haunted Mill", "Dragon's Foothills", "Sunken Crypt",
    "Bandit Road", "Wyvern Nest", "Frozen Pass",
]

PURCHASES = [
    "Sword of Dawn", "Healing potions", "Rope and lantern", "Chainmail repair",
    "Guild dues", "Map of the marches", "Rations for the road", "Warhorse stabling",
]

REFUND_REASONS = ["Quest cancelled", "Item arrived damaged", "Charged twice"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def gold(amount: str | Decimal) -> str:
    return f"{Decimal(amount):,.2f} gp"


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup(client: httpx.AsyncClient, adventurer: dict) -> str:
    """Sign up an adventurer, return JWT token."""
    resp = await client.post(f"{BASE_URL}/api/auth/signup", json={
        "email": adventurer["email"],
        "password": adventurer["password"],
        "display_name": adventurer["display_name"],
    })
    resp.raise_for_status()
    return resp.json()["data"]["token"]


async def create_payment(client: httpx.AsyncClient, token: str, guild: str) -> dict:
    quest = random.choice(QUESTS)
    amount = Decimal(random.randint(5_00, 400_00)) / 100
    resp = await client.post(
        f"{BASE_URL}/api/payments",
        json={
            "amount": str(amount),
            "description": random.choice(PURCHASES),
            "quest_id": quest.lower().replace(" ", "-").replace("'", ""),
            "metadata": {"quest_name": quest, "guild_name": guild},
        },
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()["data"]


async def release(client: httpx.AsyncClient, token: str, transaction_id: str) -> dict:
    resp = await client.post(
        f"{BASE_URL}/api/payments/{transaction_id}/release",
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()["data"]


async def refund(client: httpx.AsyncClient, token: str, payment: dict) -> dict:
    body = {"reason": random.choice(REFUND_REASONS)}
    if random.random() < 0.5:
        # Partial refund: half the payment, rounded down to the copper
        body["amount"] = str((Decimal(payment["amount"]) / 2).quantize(Decimal("0.01"), "ROUND_DOWN"))
    resp = await client.post(
        f"{BASE_URL}/api/payments/{payment['transaction_id']}/refund",
        json=body,
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()["data"]


async def get_ledger(client: httpx.AsyncClient, token: str) -> dict:
    resp = await client.get(
        f"{BASE_URL}/api/payments/ledger",
        params={"limit": 200},
        headers=auth_header(token),
    )
    resp.raise_for_status()
    return resp.json()["data"]


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed_history(client: httpx.AsyncClient, token: str, adventurer: dict) -> None:
    """
    Create a spread of payments: most released, a few refunded, some left
    PENDING so the summary has something in every bucket.
    """
    for _ in range(adventurer["payments"]):
        payment = await create_payment(client, token, adventurer["guild"])
        roll = random.random()
        if roll < 0.25:
            continue  # stays PENDING
        released = await release(client, token, payment["transaction_id"])
        if roll > 0.85:
            await refund(client, token, released)


async def backdate_transactions(days: int) -> int:
    """
    Spread every transaction's created_at over the last `days` days,
    directly in the DB, so date-range filters have something to find.

    Returns the number of rows touched.
    """
    from sqlalchemy import select, update
    from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
    from tavern_ledger.config import settings
    from tavern_ledger.models.transaction import Transaction

    engine = create_async_engine(settings.DATABASE_URL)
    session_factory = async_sessionmaker(engine, class_=AsyncSession)

    now = datetime.now(timezone.utc)

    async with session_factory() as session:
        ids = (await session.execute(select(Transaction.id))).scalars().all()
        for txn_id in ids:
            ts = now - timedelta(
                days=random.randint(0, days),
                hours=random.randint(0, 23),
                minutes=random.randint(0, 59),
            )
            await session.execute(
                update(Transaction)
                .where(Transaction.id == txn_id)
                .values(created_at=ts, updated_at=ts)
            )
        await session.commit()

    await engine.dispose()
    return len(ids)


async def seed(base_url: str) -> None:
    global BASE_URL
    BASE_URL = base_url

    print("\n========================================")
    print("  DEMO SEED — NOT FOR PRODUCTION")
    print("========================================\n")

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            health = await client.get(f"{BASE_URL}/health")
            health.raise_for_status()
        except (httpx.ConnectError, httpx.HTTPStatusError):
            print(f"  ERROR: Cannot connect to {BASE_URL}")
            print("  Start the server first: uvicorn tavern_ledger.main:app --reload\n")
            sys.exit(1)

        for adventurer in ADVENTURERS:
            print(f"\nCreating {adventurer['display_name']} of the {adventurer['guild']}...")
            token = await signup(client, adventurer)
            log(f"Login: {adventurer['email']} / {adventurer['password']}")

            await seed_history(client, token, adventurer)
            ledger = await get_ledger(client, token)
            log(f"{ledger['total']} transactions. Balance: {gold(ledger['balance'])}")

    print("\nBackdating transactions across 60 days...")
    touched = await backdate_transactions(days=60)
    log(f"{touched} transactions backdated")

    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password'}")
    print(f"  {'─' * 30} {'─' * 20}")
    for a in ADVENTURERS:
        print(f"  {a['email']:<30s} {a['password']}")
    print()


def reset_database() -> None:
    """Delete the SQLite database file so the server recreates it on restart."""
    db_path = os.path.join(os.path.dirname(__file__), "..", "data", "ledger.db")
    db_path = os.path.normpath(db_path)

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}")
        print("  Restart the server to recreate empty tables.\n")
    else:
        print(f"\n  No database found at {db_path}\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates sample adventurers and quest payments for demos.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the database file and exit (restart server to recreate)",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
        return

    await seed(args.base_url)


if __name__ == "__main__":
    asyncio.run(main())
