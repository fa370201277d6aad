"""
tests/unit/conftest.py — Shared setup for DB-free unit tests.

Some unit tests build ORM objects (SharedExpense, ExpenseSplit) without a
database. The relationships between models are declared by class name, so
every model module must be imported before the first mapper is configured.
"""

from groupledger.app.models import (  # noqa: F401
    expense_split,
    group,
    group_balance,
    membership,
    settlement,
    shared_expense,
    user,
)
