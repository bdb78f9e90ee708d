"""Per-account usage balance (seconds of AI usage).

Every mutation is a single conditional UPDATE so that concurrent ticks and
grants on the same account serialize on the row inside the database. The
session passed in is the only storage handle; nothing here keeps state.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.credit_balance import MAX_UNITS, CreditBalance
from app.models.credit_grant import CreditGrant

logger = logging.getLogger(__name__)


class LedgerError(RuntimeError):
    retryable = False


class BalanceNotFoundError(LedgerError):
    def __init__(self, account_id: str) -> None:
        super().__init__(f"No credit balance for account {account_id}")
        self.account_id = account_id


class InvalidAmountError(LedgerError):
    def __init__(self, amount: object, reason: str | None = None) -> None:
        super().__init__(reason or f"Grant amount must be an integer between 0 and {MAX_UNITS}, got {amount!r}")
        self.amount = amount


class StorageError(LedgerError):
    retryable = True


class LedgerConflictError(LedgerError):
    """Reserved for multi-writer detection; not raised by the current backend."""

    retryable = True


@contextmanager
def _storage_guard(db: Session, op: str, account_id: str) -> Iterator[None]:
    try:
        yield
    except LedgerError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("credits.%s.storage_error account_id=%s", op, account_id)
        raise StorageError(f"Credit storage unavailable during {op}") from exc


def _read_remaining(db: Session, account_id: str) -> int | None:
    return db.execute(
        select(CreditBalance.remaining_units).where(CreditBalance.account_id == account_id)
    ).scalar_one_or_none()


def _add_units(db: Session, account_id: str, amount: int) -> bool:
    """Add to an existing balance. Returns False when no row exists.

    A row whose new total would pass MAX_UNITS is left unchanged and raises.
    """
    result = db.execute(
        update(CreditBalance)
        .where(
            CreditBalance.account_id == account_id,
            CreditBalance.remaining_units <= MAX_UNITS - amount,
        )
        .values(remaining_units=CreditBalance.remaining_units + amount)
        .execution_options(synchronize_session=False)
    )
    changed = int(result.rowcount or 0)
    if changed > 1:
        raise StorageError(f"Grant matched {changed} balance rows")
    if changed == 1:
        return True
    remaining = _read_remaining(db, account_id)
    if remaining is None:
        return False
    raise InvalidAmountError(
        amount,
        f"Grant of {amount} would raise the balance of {remaining} above {MAX_UNITS}",
    )


def get_balance(db: Session, account_id: str) -> int:
    with _storage_guard(db, "get_balance", account_id):
        remaining = _read_remaining(db, account_id)
    if remaining is None:
        raise BalanceNotFoundError(account_id)
    return int(remaining)


def open_balance(db: Session, account_id: str) -> None:
    """Stage a zero balance for a new account inside the caller's transaction.

    An existing balance is left untouched. The caller commits.
    """
    with _storage_guard(db, "open_balance", account_id):
        if _read_remaining(db, account_id) is None:
            db.add(CreditBalance(account_id=account_id, remaining_units=0))
            db.flush()


def grant(db: Session, account_id: str, amount: int, *, source: str | None = None) -> int:
    """Add ``amount`` units, creating the balance if the account has none.

    Not idempotent: repeating a call adds again. Returns the new balance.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or not 0 <= amount <= MAX_UNITS:
        raise InvalidAmountError(amount)

    with _storage_guard(db, "grant", account_id):
        if not _add_units(db, account_id, amount):
            db.add(CreditBalance(account_id=account_id, remaining_units=amount))
            try:
                db.flush()
            except IntegrityError:
                # Another grant created the row first; add on top of it instead.
                db.rollback()
                if not _add_units(db, account_id, amount):
                    raise StorageError("Credit balance missing after concurrent create")
        if amount:
            db.add(CreditGrant(account_id=account_id, amount=amount, source=source))
        remaining = int(_read_remaining(db, account_id) or 0)
        db.commit()

    logger.info("credits.grant account_id=%s amount=%s remaining=%s source=%s", account_id, amount, remaining, source)
    return remaining


def tick(db: Session, account_id: str) -> bool:
    """Consume one unit. Returns True (exhausted) when the balance is already 0."""
    with _storage_guard(db, "tick", account_id):
        result = db.execute(
            update(CreditBalance)
            .where(CreditBalance.account_id == account_id, CreditBalance.remaining_units > 0)
            .values(remaining_units=CreditBalance.remaining_units - 1)
            .execution_options(synchronize_session=False)
        )
        changed = int(result.rowcount or 0)
        if changed > 1:
            raise StorageError(f"Tick matched {changed} balance rows")
        if changed == 1:
            db.commit()
            logger.debug("credits.tick account_id=%s exhausted=False", account_id)
            return False

        remaining = _read_remaining(db, account_id)
        db.commit()

    if remaining is None:
        raise BalanceNotFoundError(account_id)
    logger.info("credits.tick account_id=%s exhausted=True remaining=%s", account_id, remaining)
    return True
