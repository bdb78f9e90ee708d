from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.settings import settings
from app.models.account import Account, AccountStatus
from app.services.accounts import get_account, register_account
from app.services.credit_ledger import StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str
    status: AccountStatus

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"


def normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def is_admin_email(email: str) -> bool:
    normalized = normalize_email(email)
    if not normalized:
        return False
    return normalized in (settings.admin_emails or set())


def _email_domain(email: str) -> str:
    e = normalize_email(email)
    at = e.rfind("@")
    if at <= 0:
        return ""
    return e[at + 1 :].strip()


def is_plausible_email(email: str) -> bool:
    domain = _email_domain(email)
    return bool(domain) and "." in domain and " " not in normalize_email(email)


def _require_supabase_config() -> str:
    if not settings.supabase_url:
        raise HTTPException(status_code=500, detail="SUPABASE_URL is not configured")
    return settings.supabase_url


@lru_cache(maxsize=4)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


def _decode_supabase_jwt(token: str) -> dict[str, Any]:
    audience = settings.supabase_jwt_audience or "authenticated"
    supabase_url = (settings.supabase_url or "").strip().rstrip("/")
    issuer = settings.supabase_jwt_issuer or (f"{supabase_url}/auth/v1" if supabase_url else None)

    if settings.supabase_jwt_secret:
        key: Any = settings.supabase_jwt_secret
        algorithms = ["HS256"]
    else:
        supabase_url = _require_supabase_config().rstrip("/")
        algorithms = ["ES256", "RS256"]
        key = None

    try:
        if key is None:
            key = _jwks_client(f"{supabase_url}/auth/v1/.well-known/jwks.json").get_signing_key_from_jwt(token).key
        payload = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "sub"]},
        )
        return dict(payload)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")


def _decide_role(*, email_is_admin: bool, claim_is_admin: bool, db_role: str | None) -> tuple[str, str]:
    dbr = str(db_role or "").strip().lower()
    if dbr == "admin":
        return ("admin", "db_profile")
    if email_is_admin:
        return ("admin", "admin_emails")
    if claim_is_admin:
        return ("admin", "jwt_claim")
    if dbr:
        return (dbr, "db_profile")
    return ("user", "default")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def _claim_is_admin(claims: dict[str, Any]) -> bool:
    app_meta = claims.get("app_metadata") or {}
    if not isinstance(app_meta, dict):
        app_meta = {}
    return str(app_meta.get("role") or "").strip().lower() == "admin"


def provision_admin_account(db: Session, *, account_id: str, email: str) -> Account:
    """Admins come from ADMIN_EMAILS and skip the approval queue."""
    return register_account(
        db,
        account_id=account_id,
        email=email,
        name="Admin User",
        status=AccountStatus.ACTIVE,
        role="admin",
    )


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    token = _get_bearer_token(request)

    claims = _decode_supabase_jwt(token)
    user_id = str(claims.get("sub") or "").strip()
    email = normalize_email(claims.get("email") or "")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    email_is_admin = is_admin_email(email)
    claim_is_admin = _claim_is_admin(claims)

    account = get_account(db, user_id)
    if account is None:
        if not (email_is_admin or claim_is_admin):
            raise HTTPException(status_code=403, detail="User profile not found")
        account = provision_admin_account(db, account_id=user_id, email=email)

    role, reason = _decide_role(
        email_is_admin=email_is_admin,
        claim_is_admin=claim_is_admin,
        db_role=account.role,
    )
    if role != (account.role or "").strip().lower():
        account.role = role
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("auth.role_sync.storage_error account_id=%s", account.id)
            raise StorageError("Account storage unavailable") from exc
        logger.info("auth.role_sync account_id=%s role=%s reason=%s", account.id, role, reason)

    return CurrentUser(id=account.id, email=account.email or email, role=role, status=account.status)


def require_active_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.is_admin:
        return user
    if user.status == AccountStatus.PENDING:
        raise HTTPException(status_code=403, detail="Pending approval")
    if user.status == AccountStatus.BLOCKED:
        raise HTTPException(status_code=403, detail="Blocked by admin")
    return user


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def ensure_can_access_account(user: CurrentUser, account_id: str) -> None:
    if user.is_admin or user.id == account_id:
        return
    raise HTTPException(status_code=403, detail="Not allowed to access this account")
