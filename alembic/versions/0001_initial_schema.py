"""Initial schema for procurement lookups, after-sales cases, logs and audit."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

sqlite_bigint = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("store_id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        _created_at(),
    )

    op.create_table(
        "users",
        sa.Column("user_id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("store_id", sa.Text(), sa.ForeignKey("stores.store_id"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.CheckConstraint(
            "role IN ('admin', 'buyer', 'supplier', 'store')",
            name="ck_users_role",
        ),
    )
    op.create_index(
        "ix_users_role_active_created_at",
        "users",
        ["role", "is_active", "created_at"],
        unique=False,
    )

    op.create_table(
        "orders",
        sa.Column("order_id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("order_no", sa.Text(), nullable=False),
        sa.Column("store_id", sa.Text(), sa.ForeignKey("stores.store_id"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("order_no", name="uq_orders_order_no"),
    )

    op.create_table(
        "requests_for_quote",
        sa.Column("request_id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("request_no", sa.Text(), nullable=False),
        sa.Column("store_id", sa.Text(), sa.ForeignKey("stores.store_id"), nullable=True),
        sa.Column("requester_id", sa.Text(), sa.ForeignKey("users.user_id"), nullable=True),
        _created_at(),
        sa.UniqueConstraint("request_no", name="uq_requests_for_quote_request_no"),
    )

    op.create_table(
        "request_items",
        sa.Column("item_id", sa.Text(), primary_key=True, nullable=False),
        sa.Column(
            "request_id",
            sa.Text(),
            sa.ForeignKey("requests_for_quote.request_id"),
            nullable=False,
        ),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("tracking_no", sa.Text(), nullable=True),
        sa.Column("carrier", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_request_items_tracking_no",
        "request_items",
        ["tracking_no"],
        unique=False,
    )

    op.create_table(
        "order_requests",
        sa.Column("order_id", sa.Text(), sa.ForeignKey("orders.order_id"), primary_key=True),
        sa.Column(
            "request_id",
            sa.Text(),
            sa.ForeignKey("requests_for_quote.request_id"),
            primary_key=True,
        ),
        _created_at(),
    )

    op.create_table(
        "shipments",
        sa.Column("shipment_id", sa.Text(), primary_key=True, nullable=False),
        sa.Column("shipment_no", sa.Text(), nullable=False),
        sa.Column("tracking_no", sa.Text(), nullable=True),
        sa.Column("carrier", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("supplier_id", sa.Text(), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("order_id", sa.Text(), sa.ForeignKey("orders.order_id"), nullable=True),
        sa.Column(
            "request_item_id",
            sa.Text(),
            sa.ForeignKey("request_items.item_id"),
            nullable=True,
        ),
        _created_at(),
        sa.UniqueConstraint("shipment_no", name="uq_shipments_shipment_no"),
        sa.CheckConstraint("source IN ('SUPPLIER', 'ECOMMERCE')", name="ck_shipments_source"),
    )
    op.create_index("ix_shipments_tracking_no", "shipments", ["tracking_no"], unique=False)
    op.create_index(
        "ix_shipments_order_id_created_at",
        "shipments",
        ["order_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "after_sales_cases",
        sa.Column("case_id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("case_number", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("issue_type", sa.Text(), nullable=False),
        sa.Column("priority", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("channel", sa.Text(), nullable=False),
        sa.Column("sla_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("order_id", sa.Text(), sa.ForeignKey("orders.order_id"), nullable=True),
        sa.Column(
            "shipment_id",
            sa.Text(),
            sa.ForeignKey("shipments.shipment_id"),
            nullable=True,
        ),
        sa.Column(
            "replacement_shipment_id",
            sa.Text(),
            sa.ForeignKey("shipments.shipment_id"),
            nullable=True,
        ),
        sa.Column("store_id", sa.Text(), sa.ForeignKey("stores.store_id"), nullable=True),
        sa.Column("supplier_id", sa.Text(), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("customer_id", sa.Text(), nullable=True),
        sa.Column("handler_id", sa.Text(), sa.ForeignKey("users.user_id"), nullable=True),
        sa.Column("claim_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("inventory_disposition", sa.Text(), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("case_number", name="uq_after_sales_cases_case_number"),
        sa.CheckConstraint(
            "status IN ('OPENED', 'EXECUTING', 'INSPECTING', 'RESOLVED', 'CLOSED', 'CANCELLED')",
            name="ck_after_sales_cases_status",
        ),
        sa.CheckConstraint(
            "claim_amount IS NULL OR claim_amount >= 0",
            name="ck_after_sales_cases_claim_amount",
        ),
    )
    op.create_index(
        "ix_after_sales_cases_status",
        "after_sales_cases",
        ["status"],
        unique=False,
    )
    op.create_index(
        "ix_after_sales_cases_supplier_id",
        "after_sales_cases",
        ["supplier_id"],
        unique=False,
    )
    op.create_index(
        "ix_after_sales_cases_store_id",
        "after_sales_cases",
        ["store_id"],
        unique=False,
    )
    op.create_index(
        "ix_after_sales_cases_created_at",
        "after_sales_cases",
        ["created_at"],
        unique=False,
    )

    op.create_table(
        "after_sales_logs",
        sa.Column("id", sqlite_bigint, primary_key=True, autoincrement=True),
        sa.Column(
            "case_id",
            sa.Uuid(),
            sa.ForeignKey("after_sales_cases.case_id"),
            nullable=False,
        ),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_after_sales_logs_case_id_id",
        "after_sales_logs",
        ["case_id", "id"],
        unique=False,
    )

    op.create_table(
        "after_sales_attachments",
        sa.Column("id", sqlite_bigint, primary_key=True, autoincrement=True),
        sa.Column(
            "case_id",
            sa.Uuid(),
            sa.ForeignKey("after_sales_cases.case_id"),
            nullable=False,
        ),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("media_type", sa.Text(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_after_sales_attachments_case_id",
        "after_sales_attachments",
        ["case_id"],
        unique=False,
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sqlite_bigint, primary_key=True, autoincrement=True),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("resource_type", sa.Text(), nullable=False),
        sa.Column("resource_id", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_audit_logs_resource",
        "audit_logs",
        ["resource_type", "resource_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_after_sales_attachments_case_id", table_name="after_sales_attachments")
    op.drop_table("after_sales_attachments")

    op.drop_index("ix_after_sales_logs_case_id_id", table_name="after_sales_logs")
    op.drop_table("after_sales_logs")

    op.drop_index("ix_after_sales_cases_created_at", table_name="after_sales_cases")
    op.drop_index("ix_after_sales_cases_store_id", table_name="after_sales_cases")
    op.drop_index("ix_after_sales_cases_supplier_id", table_name="after_sales_cases")
    op.drop_index("ix_after_sales_cases_status", table_name="after_sales_cases")
    op.drop_table("after_sales_cases")

    op.drop_index("ix_shipments_order_id_created_at", table_name="shipments")
    op.drop_index("ix_shipments_tracking_no", table_name="shipments")
    op.drop_table("shipments")

    op.drop_table("order_requests")

    op.drop_index("ix_request_items_tracking_no", table_name="request_items")
    op.drop_table("request_items")

    op.drop_table("requests_for_quote")
    op.drop_table("orders")

    op.drop_index("ix_users_role_active_created_at", table_name="users")
    op.drop_table("users")

    op.drop_table("stores")
