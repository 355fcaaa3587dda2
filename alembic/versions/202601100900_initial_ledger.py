"""initial ledger schema

Revision ID: 202601100900
Revises:
Create Date: 2026-01-10 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601100900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "type", sa.Enum("income", "expense", name="entrytype"), nullable=False
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column(
            "method",
            sa.Enum(
                "cash",
                "debit_card",
                "credit_card",
                "transfer",
                "other",
                name="paymentmethod",
            ),
            nullable=False,
        ),
        sa.Column(
            "created_by", sa.String(length=36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_entries_amount_positive"),
    )
    op.create_index("ix_entries_date", "entries", ["date"])
    op.create_index("ix_entries_created_by_date", "entries", ["created_by", "date"])
    op.create_index("ix_entries_method_date", "entries", ["method", "date"])
    op.create_index("ix_entries_type_date", "entries", ["type", "date"])


def downgrade():
    op.drop_index("ix_entries_type_date", table_name="entries")
    op.drop_index("ix_entries_method_date", table_name="entries")
    op.drop_index("ix_entries_created_by_date", table_name="entries")
    op.drop_index("ix_entries_date", table_name="entries")
    op.drop_table("entries")
    op.drop_table("users")
