from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, String
from sqlalchemy.sql import func

from app.core.database import Base

# Largest value a signed 64-bit BIGINT column holds.
MAX_UNITS = 2**63 - 1


class CreditBalance(Base):
    __tablename__ = "credit_balances"
    __table_args__ = (CheckConstraint("remaining_units >= 0", name="ck_credit_balances_remaining_nonnegative"),)

    account_id = Column(String, primary_key=True, index=True)
    remaining_units = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
