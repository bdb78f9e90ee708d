from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import CurrentUser, ensure_can_access_account, get_current_user, require_active_user
from app.schemas.account import AccountIdRequest
from app.services import credit_ledger

router = APIRouter()


class CreditsResponse(BaseModel):
    remaining: int


class TickResponse(BaseModel):
    exhausted: bool


@router.get("/credits/{account_id}", response_model=CreditsResponse)
def read_credits(
    account_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> CreditsResponse:
    ensure_can_access_account(current_user, account_id)
    return CreditsResponse(remaining=credit_ledger.get_balance(db, account_id))


@router.post("/tick", response_model=TickResponse)
def tick_credit(
    body: AccountIdRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_active_user),
) -> TickResponse:
    ensure_can_access_account(current_user, body.user_id)
    return TickResponse(exhausted=credit_ledger.tick(db, body.user_id))
