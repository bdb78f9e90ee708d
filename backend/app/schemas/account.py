from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.account import AccountStatus


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    status: AccountStatus
    role: Optional[str] = None
    credits: int = 0


class AdminAccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    status: AccountStatus
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    credits: dict[str, int]


class AccountIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
