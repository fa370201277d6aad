"""
services/unit_of_work.py — Atomic commit/rollback boundary.

Every mutating ledger operation (shared expense creation, settlement
execution, lazy balance initialisation) runs inside exactly one
unit_of_work block:

    with unit_of_work(db.session):
        result = expense_service.create_shared_expense(..., session=db.session)

Services only flush. The block commits when the body returns and rolls back
when it raises, then re-raises, so no partial ledger state is ever visible
to another request. Nothing is retried here; retries belong to the caller.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("Unit of work rolled back", exc_info=True)
        raise
