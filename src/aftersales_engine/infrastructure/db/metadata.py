"""SQLAlchemy metadata definitions for after-sales and procurement tables."""

from __future__ import annotations

import sqlalchemy as sa

metadata = sa.MetaData()
sqlite_bigint = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _created_at() -> sa.Column[object]:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


stores = sa.Table(
    "stores",
    metadata,
    sa.Column("store_id", sa.Text(), primary_key=True, nullable=False),
    sa.Column("name", sa.Text(), nullable=False),
    _created_at(),
)

users = sa.Table(
    "users",
    metadata,
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
sa.Index("ix_users_role_active_created_at", users.c.role, users.c.is_active, users.c.created_at)

orders = sa.Table(
    "orders",
    metadata,
    sa.Column("order_id", sa.Text(), primary_key=True, nullable=False),
    sa.Column("order_no", sa.Text(), nullable=False),
    sa.Column("store_id", sa.Text(), sa.ForeignKey("stores.store_id"), nullable=True),
    _created_at(),
    sa.UniqueConstraint("order_no", name="uq_orders_order_no"),
)

requests_for_quote = sa.Table(
    "requests_for_quote",
    metadata,
    sa.Column("request_id", sa.Text(), primary_key=True, nullable=False),
    sa.Column("request_no", sa.Text(), nullable=False),
    sa.Column("store_id", sa.Text(), sa.ForeignKey("stores.store_id"), nullable=True),
    sa.Column("requester_id", sa.Text(), sa.ForeignKey("users.user_id"), nullable=True),
    _created_at(),
    sa.UniqueConstraint("request_no", name="uq_requests_for_quote_request_no"),
)

request_items = sa.Table(
    "request_items",
    metadata,
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
sa.Index("ix_request_items_tracking_no", request_items.c.tracking_no)

order_requests = sa.Table(
    "order_requests",
    metadata,
    sa.Column("order_id", sa.Text(), sa.ForeignKey("orders.order_id"), primary_key=True),
    sa.Column(
        "request_id",
        sa.Text(),
        sa.ForeignKey("requests_for_quote.request_id"),
        primary_key=True,
    ),
    _created_at(),
)

shipments = sa.Table(
    "shipments",
    metadata,
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
sa.Index("ix_shipments_tracking_no", shipments.c.tracking_no)
sa.Index("ix_shipments_order_id_created_at", shipments.c.order_id, shipments.c.created_at)

after_sales_cases = sa.Table(
    "after_sales_cases",
    metadata,
    sa.Column("case_id", sa.Uuid(), primary_key=True, nullable=False),
    sa.Column("case_number", sa.Text(), nullable=False),
    sa.Column("status", sa.Text(), nullable=False),
    sa.Column("issue_type", sa.Text(), nullable=False),
    sa.Column("priority", sa.Text(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("channel", sa.Text(), nullable=False),
    sa.Column("sla_deadline", sa.DateTime(timezone=True), nullable=False),
    sa.Column("order_id", sa.Text(), sa.ForeignKey("orders.order_id"), nullable=True),
    sa.Column("shipment_id", sa.Text(), sa.ForeignKey("shipments.shipment_id"), nullable=True),
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
sa.Index("ix_after_sales_cases_status", after_sales_cases.c.status)
sa.Index("ix_after_sales_cases_supplier_id", after_sales_cases.c.supplier_id)
sa.Index("ix_after_sales_cases_store_id", after_sales_cases.c.store_id)
sa.Index("ix_after_sales_cases_created_at", after_sales_cases.c.created_at)
sa.Index("ix_after_sales_cases_sla_deadline", after_sales_cases.c.sla_deadline)

after_sales_logs = sa.Table(
    "after_sales_logs",
    metadata,
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
sa.Index("ix_after_sales_logs_case_id_id", after_sales_logs.c.case_id, after_sales_logs.c.id)

after_sales_attachments = sa.Table(
    "after_sales_attachments",
    metadata,
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
sa.Index("ix_after_sales_attachments_case_id", after_sales_attachments.c.case_id)

after_sales_sla_reminders = sa.Table(
    "after_sales_sla_reminders",
    metadata,
    sa.Column("id", sqlite_bigint, primary_key=True, autoincrement=True),
    sa.Column(
        "case_id",
        sa.Uuid(),
        sa.ForeignKey("after_sales_cases.case_id"),
        nullable=False,
    ),
    sa.Column("batch_date", sa.Date(), nullable=False),
    sa.Column("recipient_id", sa.Text(), nullable=False),
    _created_at(),
    sa.UniqueConstraint(
        "case_id",
        "batch_date",
        name="uq_after_sales_sla_reminders_case_batch_date",
    ),
)

audit_logs = sa.Table(
    "audit_logs",
    metadata,
    sa.Column("id", sqlite_bigint, primary_key=True, autoincrement=True),
    sa.Column("action", sa.Text(), nullable=False),
    sa.Column("resource_type", sa.Text(), nullable=False),
    sa.Column("resource_id", sa.Text(), nullable=False),
    sa.Column("actor_id", sa.Text(), nullable=True),
    sa.Column("details", sa.JSON(), nullable=False),
    _created_at(),
)
sa.Index("ix_audit_logs_resource", audit_logs.c.resource_type, audit_logs.c.resource_id)
