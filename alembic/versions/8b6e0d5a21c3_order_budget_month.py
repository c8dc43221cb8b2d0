"""Add orders.order_budget_month and backfill it from created_at.

The orders table is replicated from Shopify; the column is only added when
the table is present in the target database.

Revision ID: 8b6e0d5a21c3
Revises: 3f1c2a9b7d40
Create Date: 2025-11-04

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "8b6e0d5a21c3"
down_revision: Union[str, None] = "3f1c2a9b7d40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _is_sqlite() -> bool:
    """Return True when running against SQLite."""
    return op.get_bind().dialect.name == "sqlite"


def _orders_columns():
    inspector = sa.inspect(op.get_bind())
    if "orders" not in inspector.get_table_names():
        return None
    return {c["name"] for c in inspector.get_columns("orders")}


def upgrade() -> None:
    columns = _orders_columns()
    if columns is None:
        return
    if "order_budget_month" not in columns:
        with op.batch_alter_table("orders") as batch_op:
            batch_op.add_column(sa.Column("order_budget_month", sa.Text))
    op.create_index("idx_orders_budget_month", "orders", ["order_budget_month"], if_not_exists=True)

    if _is_sqlite():
        op.execute(
            "UPDATE orders SET order_budget_month = strftime('%m-%Y', created_at) "
            "WHERE order_budget_month IS NULL"
        )
    else:
        op.execute(
            "UPDATE orders SET order_budget_month = to_char(created_at, 'MM-YYYY') "
            "WHERE order_budget_month IS NULL"
        )


def downgrade() -> None:
    columns = _orders_columns()
    if columns is None or "order_budget_month" not in columns:
        return
    op.drop_index("idx_orders_budget_month", table_name="orders", if_exists=True)
    with op.batch_alter_table("orders") as batch_op:
        batch_op.drop_column("order_budget_month")
