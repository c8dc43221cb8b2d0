"""Budgeting schema: category master, budgets, allocations, assignments, census.

Sources:
  - budget_categories.py  (budget_categories_master)
  - budget_tracker.py     (budgets, budget_allocations,
                           budget_location_assignments)
  - location_census.py    (location_census)

Revision ID: 3f1c2a9b7d40
Revises:
Create Date: 2025-11-04

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3f1c2a9b7d40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _auto_pk():
    """Auto-increment PK that renders as AUTOINCREMENT on SQLite and SERIAL on Postgres."""
    return sa.Column("id", sa.Integer, primary_key=True, autoincrement=True)


def _ts_default():
    """CURRENT_TIMESTAMP default usable on both dialects."""
    return sa.text("CURRENT_TIMESTAMP")


def _timestamps():
    return [
        sa.Column("created_at", sa.TIMESTAMP, server_default=_ts_default()),
        sa.Column("updated_at", sa.TIMESTAMP, server_default=_ts_default()),
    ]


# ---------------------------------------------------------------------------
# upgrade
# ---------------------------------------------------------------------------

def upgrade() -> None:
    op.create_table(
        "budget_categories_master",
        _auto_pk(),
        sa.Column("category_name", sa.Text, nullable=False, unique=True),
        sa.Column("category_code", sa.Text),
        sa.Column("parent_category", sa.Text),
        sa.Column("description", sa.Text),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Integer, nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.Column("created_by", sa.Text),
        sa.Column("updated_by", sa.Text),
    )
    op.create_index("idx_bcm_parent", "budget_categories_master", ["parent_category"])
    op.create_index("idx_bcm_active", "budget_categories_master", ["is_active"])
    op.create_index("idx_bcm_sort", "budget_categories_master", ["sort_order"])

    op.create_table(
        "budgets",
        _auto_pk(),
        sa.Column("name", sa.Text, nullable=False, unique=True),
        sa.Column("description", sa.Text),
        sa.Column("total_amount", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("fiscal_year", sa.Integer),
        sa.Column("fiscal_quarter", sa.Integer),
        sa.Column("created_by", sa.Text),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'inactive', 'archived')", name="ck_budgets_status"
        ),
    )
    op.create_index("idx_budgets_status", "budgets", ["status"])

    op.create_table(
        "budget_allocations",
        _auto_pk(),
        sa.Column("budget_id", sa.Integer, sa.ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("budget_categories_master.id"), nullable=False),
        sa.Column("flat_amount", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("ppd_rate", sa.Float),
        sa.Column("spent_amount", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("remaining_amount", sa.Float, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.UniqueConstraint("budget_id", "category_id", name="uq_allocation_budget_category"),
        sa.CheckConstraint("flat_amount >= 0", name="ck_allocation_flat_amount"),
        sa.CheckConstraint("ppd_rate IS NULL OR ppd_rate >= 0", name="ck_allocation_ppd_rate"),
    )
    op.create_index("idx_allocations_budget", "budget_allocations", ["budget_id"])
    op.create_index("idx_allocations_category", "budget_allocations", ["category_id"])

    op.create_table(
        "budget_location_assignments",
        _auto_pk(),
        sa.Column("budget_id", sa.Integer, sa.ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("assigned_by", sa.Text),
        *_timestamps(),
        sa.UniqueConstraint("budget_id", "location_id", "status", name="uq_assignment_budget_location_status"),
        sa.CheckConstraint("status IN ('active', 'inactive')", name="ck_assignment_status"),
    )
    op.create_index("idx_assignments_location", "budget_location_assignments", ["location_id", "status"])

    op.create_table(
        "location_census",
        _auto_pk(),
        sa.Column("location_id", sa.Text, nullable=False),
        sa.Column("census_month", sa.Text, nullable=False),
        sa.Column("census_amount", sa.Float, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("location_id", "census_month", name="uq_census_location_month"),
        sa.CheckConstraint("census_amount >= 0", name="ck_census_amount"),
    )
    op.create_index("idx_census_month", "location_census", ["census_month"])


# ---------------------------------------------------------------------------
# downgrade
# ---------------------------------------------------------------------------

def downgrade() -> None:
    for table in [
        "location_census",
        "budget_location_assignments",
        "budget_allocations",
        "budgets",
        "budget_categories_master",
    ]:
        op.drop_table(table)
