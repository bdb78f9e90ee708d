from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.account import Account, AccountStatus
from app.models.credit_balance import CreditBalance
from app.services.credit_ledger import StorageError, open_balance

logger = logging.getLogger(__name__)


class AccountNotFoundError(LookupError):
    def __init__(self, account_id: str) -> None:
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id


def get_account(db: Session, account_id: str) -> Account | None:
    try:
        return db.query(Account).filter(Account.id == account_id).first()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("accounts.get.storage_error account_id=%s", account_id)
        raise StorageError("Account storage unavailable") from exc


def register_account(
    db: Session,
    *,
    account_id: str,
    email: str,
    name: str | None = None,
    phone: str | None = None,
    country: str | None = None,
    status: AccountStatus = AccountStatus.PENDING,
    role: str = "user",
) -> Account:
    """Create the local profile and its zero balance in one transaction.

    Registering an id that already exists returns the stored account unchanged.
    """
    existing = get_account(db, account_id)
    if existing is not None:
        return existing

    account = Account(
        id=account_id,
        email=email,
        name=name,
        phone=phone,
        country=country,
        status=status,
        role=role,
    )
    try:
        db.add(account)
        db.flush()
        open_balance(db, account_id)
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_account(db, account_id)
        if existing is None:
            raise StorageError("Account insert conflicted but no row exists")
        return existing
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("accounts.register.storage_error account_id=%s", account_id)
        raise StorageError("Account storage unavailable") from exc

    db.refresh(account)
    logger.info("accounts.registered account_id=%s status=%s role=%s", account_id, account.status.value, role)
    return account


def set_account_status(db: Session, account_id: str, status: AccountStatus) -> Account:
    account = get_account(db, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    previous = account.status
    account.status = status
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("accounts.status.storage_error account_id=%s", account_id)
        raise StorageError("Account storage unavailable") from exc
    db.refresh(account)
    logger.info("accounts.status account_id=%s from=%s to=%s", account_id, previous.value if previous else None, status.value)
    return account


def list_accounts_with_credits(db: Session, *, limit: int = 50, offset: int = 0) -> list[tuple[Account, int]]:
    try:
        rows = (
            db.query(Account, CreditBalance.remaining_units)
            .outerjoin(CreditBalance, CreditBalance.account_id == Account.id)
            .order_by(Account.created_at.desc(), Account.id.asc())
            .offset(offset)
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("accounts.list.storage_error")
        raise StorageError("Account storage unavailable") from exc
    return [(account, int(remaining or 0)) for account, remaining in rows]
