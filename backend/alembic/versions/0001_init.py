"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    if "accounts" not in existing_tables:
        op.create_table(
            "accounts",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("name", sa.String(), nullable=True),
            sa.Column("phone", sa.String(), nullable=True),
            sa.Column("country", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            sa.Column(
                "status",
                sa.Enum("PENDING", "ACTIVE", "BLOCKED", name="accountstatus"),
                nullable=False,
                server_default="PENDING",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("accounts")
    if "ix_accounts_id" not in idxs:
        op.create_index("ix_accounts_id", "accounts", ["id"])
    if "ix_accounts_email" not in idxs:
        op.create_index("ix_accounts_email", "accounts", ["email"])
    if "ix_accounts_status" not in idxs:
        op.create_index("ix_accounts_status", "accounts", ["status"])

    if "credit_balances" not in existing_tables:
        op.create_table(
            "credit_balances",
            sa.Column("account_id", sa.String(), primary_key=True),
            sa.Column("remaining_units", sa.BigInteger(), nullable=False, server_default="0"),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.CheckConstraint("remaining_units >= 0", name="ck_credit_balances_remaining_nonnegative"),
        )
    idxs = existing_indexes("credit_balances")
    if "ix_credit_balances_account_id" not in idxs:
        op.create_index("ix_credit_balances_account_id", "credit_balances", ["account_id"])

    if "credit_grants" not in existing_tables:
        op.create_table(
            "credit_grants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("account_id", sa.String(), nullable=False),
            sa.Column("amount", sa.BigInteger(), nullable=False),
            sa.Column("source", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("credit_grants")
    if "ix_credit_grants_id" not in idxs:
        op.create_index("ix_credit_grants_id", "credit_grants", ["id"])
    if "ix_credit_grants_account_id" not in idxs:
        op.create_index("ix_credit_grants_account_id", "credit_grants", ["account_id"])
    if "ix_credit_grants_source" not in idxs:
        op.create_index("ix_credit_grants_source", "credit_grants", ["source"])


def downgrade() -> None:
    op.drop_index("ix_credit_grants_source", table_name="credit_grants")
    op.drop_index("ix_credit_grants_account_id", table_name="credit_grants")
    op.drop_index("ix_credit_grants_id", table_name="credit_grants")
    op.drop_table("credit_grants")

    op.drop_index("ix_credit_balances_account_id", table_name="credit_balances")
    op.drop_table("credit_balances")

    op.drop_index("ix_accounts_status", table_name="accounts")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_index("ix_accounts_id", table_name="accounts")
    op.drop_table("accounts")
    sa.Enum(name="accountstatus").drop(op.get_bind(), checkfirst=True)
