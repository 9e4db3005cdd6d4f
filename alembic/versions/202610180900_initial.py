"""initial schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None

transaction_type = sa.Enum("income", "expense", name="transactiontype")
frequency = sa.Enum("weekly", "monthly", "yearly", name="frequency")
theme_accent = sa.Enum("blue", "emerald", "violet", "rose", name="themeaccent")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36)),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column(
            "color", sa.String(length=7), nullable=False, server_default="#6b7280"
        ),
        sa.Column("icon_name", sa.String(length=50)),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )
    op.create_index("ix_categories_user_type", "categories", ["user_id", "type"])

    op.create_table(
        "recurring_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency_code", sa.String(length=3)),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
        ),
        sa.Column("frequency", frequency, nullable=False),
        sa.Column("last_processed_on", sa.Date()),
        sa.Column("next_due_at", sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_recurring_amount_positive"),
    )
    op.create_index(
        "ix_recurring_items_user_due", "recurring_items", ["user_id", "next_due_at"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("description", sa.String(length=500)),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
        ),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column(
            "origin_obligation_id",
            sa.Integer(),
            sa.ForeignKey("recurring_items.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents > 0", name="ck_transactions_amount_positive"
        ),
    )
    op.create_index(
        "ix_transactions_user_type_date",
        "transactions",
        ["user_id", "type", "occurred_on"],
    )
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category_id", "occurred_on"],
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255)),
        sa.Column(
            "theme_preference", theme_accent, nullable=False, server_default="blue"
        ),
        sa.Column("dark_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column(
            "current_balance_cents",
            sa.BigInteger(),
            nullable=False,
            server_default="0",
        ),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("profiles")
    op.drop_index("ix_transactions_user_category_date", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_recurring_items_user_due", table_name="recurring_items")
    op.drop_table("recurring_items")
    op.drop_index("ix_categories_user_type", table_name="categories")
    op.drop_table("categories")
    transaction_type.drop(op.get_bind(), checkfirst=True)
    frequency.drop(op.get_bind(), checkfirst=True)
    theme_accent.drop(op.get_bind(), checkfirst=True)
