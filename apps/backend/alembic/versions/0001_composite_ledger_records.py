"""create users, loans, repayments, giftbooks, gift records and given gifts

Revision ID: 0001_composite_ledger
Revises:
Create Date: 2025-11-20 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_composite_ledger"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _attachment() -> list[sa.Column]:
    return [
        sa.Column("attachment_key", sa.String(length=255), nullable=True),
        sa.Column("attachment_name", sa.String(length=255), nullable=True),
        sa.Column("attachment_type", sa.String(length=50), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("username", sa.String(length=100), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "loans",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("direction", sa.Enum("owed", "lent", name="loan_direction"), nullable=False),
        sa.Column("subject_type", sa.Enum("money", "item", name="loan_subject_type"), nullable=False),
        sa.Column("counterparty_name", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("item_name", sa.String(length=255), nullable=True),
        sa.Column("item_quantity", sa.Numeric(15, 3), nullable=True),
        sa.Column("item_unit", sa.String(length=32), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_attachment(),
        *_timestamps(),
        sa.CheckConstraint(
            "(subject_type = 'money' AND item_name IS NULL AND item_quantity IS NULL AND item_unit IS NULL)"
            " OR (subject_type = 'item' AND amount IS NULL)",
            name="ck_loan_inactive_subject_null",
        ),
    )
    op.create_index("ix_loans_user_id", "loans", ["user_id"])
    op.create_index("ix_loans_occurred_at", "loans", ["occurred_at"])

    op.create_table(
        "loan_repayments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("loan_id", sa.String(length=36), sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("repaid_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("repaid_quantity", sa.Numeric(15, 3), nullable=True),
        sa.Column("repaid_at", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_attachment(),
        *_timestamps(),
    )
    op.create_index("ix_loan_repayments_user_id", "loan_repayments", ["user_id"])
    op.create_index("ix_loan_repayments_loan_id", "loan_repayments", ["loan_id"])
    op.create_index("ix_loan_repayments_repaid_at", "loan_repayments", ["repaid_at"])

    op.create_table(
        "giftbooks",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("event_type", sa.String(length=30), nullable=True),
        sa.Column("event_date", sa.Date(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_giftbooks_user_id", "giftbooks", ["user_id"])

    op.create_table(
        "gift_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "giftbook_id", sa.String(length=36), sa.ForeignKey("giftbooks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("group_id", sa.String(length=36), nullable=True),
        sa.Column("direction", sa.Enum("received", "given", name="gift_direction"), nullable=False),
        sa.Column("gift_type", sa.Enum("cash", "item", name="gift_type"), nullable=False),
        sa.Column("counterparty_name", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column("item_name", sa.String(length=255), nullable=True),
        sa.Column("quantity", sa.Numeric(15, 2), nullable=True),
        sa.Column("unit", sa.String(length=32), nullable=True),
        sa.Column("estimated_value", sa.Numeric(15, 2), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gift_date", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_attachment(),
        *_timestamps(),
    )
    op.create_index("ix_gift_records_user_id", "gift_records", ["user_id"])
    op.create_index("ix_gift_records_giftbook_id", "gift_records", ["giftbook_id"])
    op.create_index("ix_gift_records_group_id", "gift_records", ["group_id"])
    op.create_index("ix_gift_records_gift_date", "gift_records", ["gift_date"])
    op.create_index("idx_gift_records_user_group", "gift_records", ["user_id", "group_id"])

    op.create_table(
        "given_gifts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_name", sa.String(length=128), nullable=False),
        sa.Column("gift_date", sa.DateTime(), nullable=False),
        sa.Column("occasion", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cash_amount", sa.Numeric(15, 2), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        *_attachment(),
        *_timestamps(),
    )
    op.create_index("ix_given_gifts_user_id", "given_gifts", ["user_id"])
    op.create_index("ix_given_gifts_gift_date", "given_gifts", ["gift_date"])


def downgrade() -> None:
    op.drop_index("ix_given_gifts_gift_date", table_name="given_gifts")
    op.drop_index("ix_given_gifts_user_id", table_name="given_gifts")
    op.drop_table("given_gifts")
    op.drop_index("idx_gift_records_user_group", table_name="gift_records")
    op.drop_index("ix_gift_records_gift_date", table_name="gift_records")
    op.drop_index("ix_gift_records_group_id", table_name="gift_records")
    op.drop_index("ix_gift_records_giftbook_id", table_name="gift_records")
    op.drop_index("ix_gift_records_user_id", table_name="gift_records")
    op.drop_table("gift_records")
    op.drop_index("ix_giftbooks_user_id", table_name="giftbooks")
    op.drop_table("giftbooks")
    op.drop_index("ix_loan_repayments_repaid_at", table_name="loan_repayments")
    op.drop_index("ix_loan_repayments_loan_id", table_name="loan_repayments")
    op.drop_index("ix_loan_repayments_user_id", table_name="loan_repayments")
    op.drop_table("loan_repayments")
    op.drop_index("ix_loans_occurred_at", table_name="loans")
    op.drop_index("ix_loans_user_id", table_name="loans")
    op.drop_table("loans")
    op.drop_table("users")
