"""order saga schema

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from market.config import settings


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _ensure_entity_tables(inspector: sa.Inspector) -> None:
    orders = settings.ORDERS_TABLE
    if not _table_exists(inspector, orders):
        op.create_table(
            orders,
            sa.Column("order_id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("item_ids", sa.JSON(), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            sa.Column("total_amount", sa.Integer(), nullable=False),
            sa.Column("customer_email", sa.String(length=255), nullable=False),
            sa.Column("payment_method", sa.String(length=50), nullable=False),
            sa.Column("payment_id", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )

    payments = settings.PAYMENTS_TABLE
    if not _table_exists(inspector, payments):
        op.create_table(
            payments,
            sa.Column("payment_id", sa.String(length=255), primary_key=True, nullable=False),
            sa.Column("order_id", sa.String(length=36), nullable=False),
            sa.Column("payment_method", sa.String(length=50), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False),
            sa.Column("provider", sa.String(length=100), nullable=True),
            sa.Column("transaction_id", sa.String(length=255), nullable=True),
            sa.Column("receipt_url", sa.String(length=1024), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index(f"ix_{payments}_order_id", payments, ["order_id"], unique=False)

    fulfillments = settings.FULFILLMENT_TABLE
    if not _table_exists(inspector, fulfillments):
        op.create_table(
            fulfillments,
            sa.Column("order_id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("payment_id", sa.String(length=255), nullable=False),
            sa.Column("license_key", sa.String(length=255), nullable=False),
            sa.Column("provider", sa.String(length=100), nullable=True),
            sa.Column("receipt_url", sa.String(length=1024), nullable=True),
            sa.Column("transaction_id", sa.String(length=255), nullable=True),
            sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=False),
        )


def _ensure_bus_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "bus_events"):
        op.create_table(
            "bus_events",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("bus_name", sa.String(length=128), nullable=False),
            sa.Column("source", sa.String(length=128), nullable=False),
            sa.Column("detail_type", sa.String(length=128), nullable=False),
            sa.Column("detail", sa.JSON(), nullable=False),
            sa.Column("fanned_out", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("published_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_bus_events_source", "bus_events", ["source"], unique=False)
        op.create_index("ix_bus_events_detail_type", "bus_events", ["detail_type"], unique=False)
        op.create_index("ix_bus_events_fanned_out", "bus_events", ["fanned_out"], unique=False)

    if not _table_exists(inspector, "bus_deliveries"):
        op.create_table(
            "bus_deliveries",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("event_id", sa.String(length=36), sa.ForeignKey("bus_events.id"), nullable=False),
            sa.Column("subscription", sa.String(length=128), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
            sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("available_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("event_id", "subscription", name="uq_bus_deliveries_event_subscription"),
        )
        op.create_index("ix_bus_deliveries_id", "bus_deliveries", ["id"], unique=False)
        op.create_index("ix_bus_deliveries_event_id", "bus_deliveries", ["event_id"], unique=False)
        op.create_index("ix_bus_deliveries_status", "bus_deliveries", ["status"], unique=False)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    _ensure_entity_tables(inspector)
    inspector = sa.inspect(bind)
    _ensure_bus_tables(inspector)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table_name in (
        "bus_deliveries",
        "bus_events",
        settings.FULFILLMENT_TABLE,
        settings.PAYMENTS_TABLE,
        settings.ORDERS_TABLE,
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
