"""
Pytest configuration and shared fixtures for the budget reports tests.
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment variables before importing app modules
os.environ.setdefault("FLASK_SECRET_KEY", "test-secret-key")
os.environ.setdefault("REPORT_BACKUP_ENABLED", "false")

from app import init_all_tables
from db import Database


class Seeder:
    """Inserts replicated Shopify rows and budgeting rows for a test."""

    def __init__(self, db):
        self.db = db

    def _insert(self, table, **values):
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)
        with self.db.connection() as conn:
            cursor = conn.execute(
                f'INSERT INTO {table} ({columns}) VALUES ({placeholders})',
                tuple(values.values())
            )
            return cursor.lastrowid

    def product(self, product_id, title='Product', category=None, product_type=None, vendor='Medline'):
        self._insert('products', id=product_id, title=title, shopify_category=category,
                     product_type=product_type, vendor=vendor, status='active')
        return product_id

    def order(self, order_id, location_id='L1', created_at='2025-01-15 10:00:00',
              customer_id='C1', company_location_id=None, budget_month=None, **extra):
        self._insert('orders', id=order_id, location_id=location_id, created_at=created_at,
                     customer_id=customer_id, company_location_id=company_location_id,
                     order_budget_month=budget_month, order_number=f'#{order_id}', **extra)
        return order_id

    def line(self, line_id, order_id, product_id, quantity, price, variant_id=None, name=None, sku=None,
             vendor='Medline', **extra):
        self._insert('order_lines', id=line_id, order_id=order_id, product_id=product_id,
                     variant_id=variant_id or f'{product_id}-V', name=name or f'Item {product_id}',
                     sku=sku or f'SKU-{product_id}', vendor=vendor, price=price, quantity=quantity, **extra)
        return line_id

    def refund(self, refund_id, order_id, created_at='2025-01-20 09:00:00'):
        self._insert('refunds', id=refund_id, order_id=order_id, created_at=created_at)
        return refund_id

    def refund_line(self, refund_line_id, refund_id, line_id, quantity, subtotal, total_tax=None):
        self._insert('order_line_refunds', id=refund_line_id, refund_id=refund_id,
                     order_line_id=line_id, quantity=quantity, subtotal=subtotal, total_tax=total_tax)
        return refund_line_id

    def category(self, name, sort_order=0):
        return self._insert('budget_categories_master', category_name=name,
                            sort_order=sort_order, is_active=1)

    def budget(self, name, allocations, location_id=None, status='active'):
        """allocations: {category_id: (flat_amount, ppd_rate)}"""
        budget_id = self._insert('budgets', name=name, status=status, total_amount=0)
        total = 0
        for category_id, (flat_amount, ppd_rate) in allocations.items():
            self._insert('budget_allocations', budget_id=budget_id, category_id=category_id,
                         flat_amount=flat_amount, ppd_rate=ppd_rate,
                         spent_amount=0, remaining_amount=flat_amount)
            total += flat_amount
        with self.db.connection() as conn:
            conn.execute('UPDATE budgets SET total_amount = ? WHERE id = ?', (total, budget_id))
        if location_id:
            self.assign(budget_id, location_id)
        return budget_id

    def assign(self, budget_id, location_id, status='active'):
        return self._insert('budget_location_assignments', budget_id=budget_id,
                            location_id=location_id, status=status)

    def census(self, location_id, census_month, census_amount):
        return self._insert('location_census', location_id=location_id,
                            census_month=census_month, census_amount=census_amount)


@pytest.fixture
def db(tmp_path):
    """Database on a fresh SQLite file with every table created."""
    database = Database(sqlite_path=str(tmp_path / 'budget_reports_test.db')).open()
    init_all_tables(database)
    yield database
    database.close()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def wound_care_order(seed):
    """O1 at L1 on 2025-01-15: 10 x $5 of P1 ("Wound Care"), 2 units refunded for $10."""
    seed.product('P1', title='Foam Dressing 4x4', category='Wound Care')
    seed.order('O1', location_id='L1', created_at='2025-01-15 10:00:00')
    seed.line('OL1', 'O1', 'P1', quantity=10, price=5.00)
    seed.refund('R1', 'O1')
    seed.refund_line('RL1', 'R1', 'OL1', quantity=2, subtotal=10.00)
    return 'O1'
