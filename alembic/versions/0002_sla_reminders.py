"""Add per-day SLA reminder ledger for overdue after-sales cases."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0002_sla_reminders"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

sqlite_bigint = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Create reminder ledger keyed by case and reminder day."""

    op.create_table(
        "after_sales_sla_reminders",
        sa.Column("id", sqlite_bigint, primary_key=True, autoincrement=True),
        sa.Column(
            "case_id",
            sa.Uuid(),
            sa.ForeignKey("after_sales_cases.case_id"),
            nullable=False,
        ),
        sa.Column("batch_date", sa.Date(), nullable=False),
        sa.Column("recipient_id", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint(
            "case_id",
            "batch_date",
            name="uq_after_sales_sla_reminders_case_batch_date",
        ),
    )
    op.create_index(
        "ix_after_sales_cases_sla_deadline",
        "after_sales_cases",
        ["sla_deadline"],
        unique=False,
    )


def downgrade() -> None:
    """Drop reminder ledger and SLA deadline index."""

    op.drop_index("ix_after_sales_cases_sla_deadline", table_name="after_sales_cases")
    op.drop_table("after_sales_sla_reminders")
