"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from tavern_ledger.models directly
"""

from tavern_ledger.models.user import User  # noqa: F401
from tavern_ledger.models.transaction import (  # noqa: F401
    Transaction,
    TransactionStatus,
    TransactionType,
)
