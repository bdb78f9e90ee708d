from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.clients import get_identity_client
from app.core.database import get_db
from app.core.security import (
    CurrentUser,
    get_current_user,
    is_admin_email,
    is_plausible_email,
    normalize_email,
    provision_admin_account,
)
from app.models.account import Account, AccountStatus
from app.schemas.account import AccountOut
from app.services import credit_ledger
from app.services.accounts import get_account, register_account
from app.services.identity import IdentityProviderError, SupabaseAuthClient

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_PASSWORD_LENGTH = 6


class SignupRequest(BaseModel):
    email: str
    password: str
    name: str | None = None
    phone: str | None = None
    country: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    token: str
    user: AccountOut


def _account_out(db: Session, account: Account) -> AccountOut:
    try:
        credits = credit_ledger.get_balance(db, account.id)
    except credit_ledger.BalanceNotFoundError:
        credits = 0
    out = AccountOut.model_validate(account)
    out.credits = credits
    return out


@router.post("/signup")
def signup(
    body: SignupRequest,
    db: Session = Depends(get_db),
    identity: SupabaseAuthClient = Depends(get_identity_client),
) -> dict:
    email = normalize_email(body.email)
    if not is_plausible_email(email):
        raise HTTPException(status_code=400, detail="Invalid email")
    if len(body.password or "") < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password too short")

    try:
        user = identity.sign_up(
            email,
            body.password,
            metadata={"name": body.name, "phone": body.phone, "country": body.country},
        )
    except IdentityProviderError as exc:
        if exc.is_rejection:
            raise HTTPException(status_code=400, detail=str(exc))
        raise HTTPException(status_code=502, detail="Identity provider unavailable")

    register_account(
        db,
        account_id=user.id,
        email=user.email or email,
        name=(body.name or "").strip() or None,
        phone=(body.phone or "").strip() or None,
        country=(body.country or "").strip() or None,
    )
    logger.info("auth.signup account_id=%s", user.id)
    return {"message": "Account created. Pending admin approval."}


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    db: Session = Depends(get_db),
    identity: SupabaseAuthClient = Depends(get_identity_client),
) -> LoginResponse:
    email = normalize_email(body.email)
    try:
        session = identity.sign_in_with_password(email, body.password)
    except IdentityProviderError as exc:
        if exc.is_rejection:
            raise HTTPException(status_code=400, detail="Invalid login")
        raise HTTPException(status_code=502, detail="Identity provider unavailable")

    account = get_account(db, session.user.id)
    if account is None:
        account_email = session.user.email or email
        if is_admin_email(account_email):
            account = provision_admin_account(db, account_id=session.user.id, email=account_email)
        else:
            # Signup reached the identity provider but never stored the local profile.
            account = register_account(db, account_id=session.user.id, email=account_email)
            logger.warning("auth.login_profile_recovered account_id=%s", account.id)
    if (account.role or "").lower() != "admin":
        if account.status == AccountStatus.PENDING:
            raise HTTPException(status_code=403, detail="Pending approval")
        if account.status == AccountStatus.BLOCKED:
            raise HTTPException(status_code=403, detail="Blocked by admin")

    logger.info("auth.login account_id=%s", account.id)
    return LoginResponse(token=session.access_token, user=_account_out(db, account))


@router.get("/me", response_model=AccountOut)
def me(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)) -> AccountOut:
    account = get_account(db, current_user.id)
    if account is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    return _account_out(db, account)
