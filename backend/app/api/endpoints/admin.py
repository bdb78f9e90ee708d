from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import CurrentUser, require_admin
from app.models.account import AccountStatus
from app.schemas.account import AccountIdRequest, AdminAccountOut
from app.services import credit_ledger
from app.services.accounts import AccountNotFoundError, list_accounts_with_credits, set_account_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


class AddCreditsRequest(AccountIdRequest):
    seconds: int = Field(strict=True)


class AdminUsersResponse(BaseModel):
    users: list[AdminAccountOut]


def _transition(db: Session, admin: CurrentUser, user_id: str, status: AccountStatus) -> None:
    try:
        set_account_status(db, user_id.strip(), status)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("admin.status admin=%s account_id=%s status=%s", admin.email, user_id, status.value)


@router.get("/users", response_model=AdminUsersResponse)
def admin_list_users(limit: int = 50, offset: int = 0, db: Session = Depends(get_db)) -> AdminUsersResponse:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    users: list[AdminAccountOut] = []
    for account, remaining in list_accounts_with_credits(db, limit=limit, offset=offset):
        out = AdminAccountOut.model_validate(
            {
                "id": account.id,
                "email": account.email,
                "name": account.name,
                "phone": account.phone,
                "country": account.country,
                "status": account.status,
                "role": account.role,
                "created_at": account.created_at,
                "credits": {"remaining_seconds": remaining},
            }
        )
        users.append(out)
    return AdminUsersResponse(users=users)


@router.post("/approve")
def admin_approve(
    body: AccountIdRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    _transition(db, admin, body.user_id, AccountStatus.ACTIVE)
    return {"message": "Approved"}


@router.post("/block")
def admin_block(
    body: AccountIdRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    _transition(db, admin, body.user_id, AccountStatus.BLOCKED)
    return {"message": "Blocked"}


@router.post("/add-credits")
def admin_add_credits(
    body: AddCreditsRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    remaining = credit_ledger.grant(db, body.user_id.strip(), body.seconds, source=f"admin:{admin.email}")
    return {"message": "Credits added", "remaining": remaining}
