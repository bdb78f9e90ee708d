"""credit units bigint

Revision ID: 0002_credit_units_bigint
Revises: 0001_init
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_credit_units_bigint"
down_revision = "0001_init"
branch_labels = None
depends_on = None


_COLUMNS = (("credit_balances", "remaining_units"), ("credit_grants", "amount"))


def upgrade() -> None:
    # SQLite stores every INTEGER/BIGINT column as a 64-bit integer already.
    if op.get_bind().dialect.name == "sqlite":
        return
    for table, column in _COLUMNS:
        op.alter_column(table, column, existing_type=sa.Integer(), type_=sa.BigInteger(), existing_nullable=False)


def downgrade() -> None:
    if op.get_bind().dialect.name == "sqlite":
        return
    for table, column in _COLUMNS:
        op.alter_column(table, column, existing_type=sa.BigInteger(), type_=sa.Integer(), existing_nullable=False)
