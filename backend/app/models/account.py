import enum

from sqlalchemy import Column, DateTime, Enum, String
from sqlalchemy.sql import func

from app.core.database import Base


class AccountStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, index=True)
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    country = Column(String, nullable=True)
    role = Column(String, default="user")
    status = Column(
        Enum(AccountStatus, name="accountstatus", values_callable=lambda e: [m.value for m in e]),
        default=AccountStatus.PENDING,
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
