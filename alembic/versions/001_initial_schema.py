"""Initial schema: transactions and their ledger entries

Revision ID: 001
Revises:
Create Date: 2024-01-01

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("card_number", sa.Text, nullable=False),
        sa.Column("expiry_month", sa.Text, nullable=False, server_default=""),
        sa.Column("expiry_year", sa.Text, nullable=False, server_default=""),
        sa.Column("cvv", sa.Text, nullable=False, server_default=""),
        sa.Column("currency", sa.Text, nullable=False),
        sa.Column("current_amount", sa.BigInteger, nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("version", sa.BigInteger, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("transaction_id", sa.String(26), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("entry_type", sa.String(10), nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("transaction_id", "sequence", name="uq_ledger_entries_transaction_sequence"),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_entries_amount_non_negative"),
    )
    op.create_index("ix_ledger_entries_transaction_id", "ledger_entries", ["transaction_id"])


def downgrade() -> None:
    op.drop_table("ledger_entries")
    op.drop_table("transactions")
