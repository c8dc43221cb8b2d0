"""Tests for net-value extraction (order lines minus refunds)."""

import logging
from decimal import Decimal

import pytest

from errors import QueryError, ValidationError
from net_values import build_product_report, combine_lines, extract_net_values

JAN_2025_L1 = {'locationId': 'L1', 'month': '01', 'year': '2025'}


def _by_product(rows):
    return {r['product_id']: r for r in rows}


# ---------------------------------------------------------------------------
# End-to-end extraction
# ---------------------------------------------------------------------------

class TestExtractNetValues:
    def test_refund_netting(self, db, wound_care_order):
        rows = extract_net_values(db, JAN_2025_L1)
        assert len(rows) == 1
        row = rows[0]
        assert row['category'] == 'Wound Care'
        assert row['gross_quantity'] == 10
        assert row['refunded_quantity'] == 2
        assert row['net_quantity'] == 8
        assert row['gross_value'] == Decimal('50')
        assert row['refunded_value'] == Decimal('10')
        assert row['net_value'] == Decimal('40')
        assert row['avg_unit_price'] == Decimal('5.00')
        assert row['order_count'] == 1
        assert row['orders_with_refunds'] == 1

    def test_net_equals_gross_minus_refunded(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.product('P2', category='Nutrition')
        seed.order('O1')
        seed.order('O2', created_at='2025-01-20 12:00:00')
        seed.line('OL1', 'O1', 'P1', quantity=4, price=2.50)
        seed.line('OL2', 'O1', 'P2', quantity=3, price=12.99)
        seed.line('OL3', 'O2', 'P1', quantity=6, price=2.50)
        seed.refund('R1', 'O2')
        seed.refund_line('RL1', 'R1', 'OL3', quantity=1, subtotal=2.50, total_tax=0.20)

        for row in extract_net_values(db, JAN_2025_L1):
            assert row['net_quantity'] == row['gross_quantity'] - row['refunded_quantity']
            assert row['net_value'] == row['gross_value'] - row['refunded_value']

    def test_lines_grouped_by_product_and_variant(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1')
        seed.order('O2', created_at='2025-01-22 08:00:00')
        seed.line('OL1', 'O1', 'P1', quantity=2, price=5, variant_id='V1')
        seed.line('OL2', 'O2', 'P1', quantity=3, price=5, variant_id='V1')
        seed.line('OL3', 'O2', 'P1', quantity=1, price=7, variant_id='V2')

        rows = {(r['product_id'], r['variant_id']): r for r in extract_net_values(db, JAN_2025_L1)}
        assert rows[('P1', 'V1')]['gross_quantity'] == 5
        assert rows[('P1', 'V1')]['order_count'] == 2
        assert rows[('P1', 'V2')]['gross_value'] == Decimal('7')

    def test_custom_line_items_stay_separate(self, db, seed):
        seed.order('O1')
        seed.line('OL1', 'O1', None, quantity=1, price=5, name='Custom fee', sku='FEE')
        seed.line('OL2', 'O1', None, quantity=1, price=7, name='Shipping surcharge', sku='FEE')
        seed.line('OL3', 'O1', None, quantity=1, price=3, name='Rush fee', sku='FEE')

        rows = extract_net_values(db, JAN_2025_L1)
        assert sorted((r['product_name'], r['net_value']) for r in rows) == [
            ('Custom fee', Decimal('5')),
            ('Rush fee', Decimal('3')),
            ('Shipping surcharge', Decimal('7')),
        ]
        assert {r['category'] for r in rows} == {'Uncategorized'}

    def test_refund_value_includes_tax(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=1, price=100)
        seed.refund('R1', 'O1')
        seed.refund_line('RL1', 'R1', 'OL1', quantity=1, subtotal=100, total_tax=8.25)

        row = extract_net_values(db, JAN_2025_L1)[0]
        assert row['refunded_value'] == Decimal('108.25')
        assert row['net_value'] == Decimal('-8.25')

    def test_multiple_refunds_on_one_line_are_summed(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=10, price=1)
        seed.refund('R1', 'O1')
        seed.refund('R2', 'O1')
        seed.refund_line('RL1', 'R1', 'OL1', quantity=2, subtotal=2)
        seed.refund_line('RL2', 'R2', 'OL1', quantity=3, subtotal=3)

        row = extract_net_values(db, JAN_2025_L1)[0]
        assert row['refunded_quantity'] == 5
        assert row['net_quantity'] == 5

    def test_fully_refunded_product_is_kept(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=3, price=4)
        seed.refund('R1', 'O1')
        seed.refund_line('RL1', 'R1', 'OL1', quantity=3, subtotal=12)

        rows = extract_net_values(db, JAN_2025_L1)
        assert len(rows) == 1
        assert rows[0]['net_quantity'] == 0
        assert rows[0]['net_value'] == Decimal('0')

    def test_over_refund_passes_through_with_warning(self, db, seed, caplog):
        seed.product('P1', category='Wound Care')
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=2, price=5)
        seed.refund('R1', 'O1')
        seed.refund_line('RL1', 'R1', 'OL1', quantity=3, subtotal=15)

        with caplog.at_level(logging.WARNING, logger='net_values'):
            row = extract_net_values(db, JAN_2025_L1)[0]
        assert row['net_quantity'] == -1
        assert any('OL1' in r.getMessage() for r in caplog.records)

    def test_other_locations_and_months_excluded(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1')
        seed.order('O2', location_id='L2')
        seed.order('O3', created_at='2025-02-01 00:00:00')
        seed.order('O4', created_at='2024-12-31 23:59:59')
        for i, order_id in enumerate(['O1', 'O2', 'O3', 'O4']):
            seed.line(f'OL{i}', order_id, 'P1', quantity=1, price=1)

        rows = extract_net_values(db, JAN_2025_L1)
        assert rows[0]['gross_quantity'] == 1
        assert rows[0]['order_ids'] == {'O1'}

    def test_uncategorized_product(self, db, seed):
        seed.product('P1', category=None)
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=1, price=3)
        assert extract_net_values(db, JAN_2025_L1)[0]['category'] == 'Uncategorized'

    def test_category_names_decoded(self, db, seed):
        seed.product('P1', category='Wound &amp; Care')
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=1, price=3)
        row = extract_net_values(db, JAN_2025_L1)[0]
        assert row['category'] == 'Wound & Care'
        assert row['raw_category'] == 'Wound &amp; Care'

    def test_product_type_taxonomy(self, db, seed):
        seed.product('P1', category='Wound Care', product_type='Dressings')
        seed.order('O1')
        seed.line('OL1', 'O1', 'P1', quantity=1, price=3)
        row = extract_net_values(db, JAN_2025_L1, category_field='product_type')[0]
        assert row['category'] == 'Dressings'

    def test_unknown_category_field_rejected(self, db):
        with pytest.raises(ValidationError):
            extract_net_values(db, JAN_2025_L1, category_field='title; --')

    def test_empty_filters_are_valid(self, db):
        assert extract_net_values(db, {}) == []


# ---------------------------------------------------------------------------
# Budget-month attribution
# ---------------------------------------------------------------------------

class TestBudgetMonthFilter:
    def test_tag_overrides_created_month(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1', created_at='2025-01-31 22:00:00', budget_month='02-2025')
        seed.order('O2', created_at='2025-02-10 09:00:00')
        seed.order('O3', created_at='2025-02-11 09:00:00', budget_month='03-2025')
        seed.line('OL1', 'O1', 'P1', quantity=1, price=1)
        seed.line('OL2', 'O2', 'P1', quantity=2, price=1)
        seed.line('OL3', 'O3', 'P1', quantity=4, price=1)

        rows = extract_net_values(db, {'locationId': 'L1', 'budgetMonth': '02-2025'})
        assert rows[0]['order_ids'] == {'O1', 'O2'}
        assert rows[0]['gross_quantity'] == 3

    def test_refunds_follow_the_order_month(self, db, seed):
        seed.product('P1', category='Wound Care')
        seed.order('O1', created_at='2025-01-31 22:00:00', budget_month='02-2025')
        seed.line('OL1', 'O1', 'P1', quantity=5, price=2)
        seed.refund('R1', 'O1', created_at='2025-03-05 10:00:00')
        seed.refund_line('RL1', 'R1', 'OL1', quantity=1, subtotal=2)

        row = extract_net_values(db, {'locationId': 'L1', 'budgetMonth': '2-2025'})[0]
        assert row['refunded_quantity'] == 1
        assert row['net_value'] == Decimal('8')


# ---------------------------------------------------------------------------
# Pieces
# ---------------------------------------------------------------------------

class TestCombineLines:
    def test_missing_refund_counts_as_zero(self):
        lines = [{'order_line_id': 'OL1', 'order_id': 'O1', 'product_id': 'P1', 'variant_id': 'V',
                  'line_name': 'Gauze', 'quantity': 3, 'price': '1.10', 'category': 'Wound Care'}]
        row = combine_lines(lines, {})[0]
        assert row['refunded_quantity'] == 0
        assert row['net_value'] == Decimal('3.30')

    def test_non_numeric_values_coerced_to_zero(self):
        lines = [{'order_line_id': 'OL1', 'order_id': 'O1', 'product_id': 'P1', 'variant_id': 'V',
                  'line_name': 'Gauze', 'quantity': None, 'price': 'n/a', 'category': None}]
        row = combine_lines(lines, {})[0]
        assert row['gross_quantity'] == 0
        assert row['gross_value'] == Decimal('0')

    def test_lines_without_product_kept_apart(self):
        lines = [
            {'order_line_id': f'OL{i}', 'order_id': 'O1', 'product_id': None, 'variant_id': None,
             'line_name': name, 'sku': None, 'quantity': 1, 'price': price, 'category': None}
            for i, (name, price) in enumerate([('Custom fee', 5), ('Shipping surcharge', 7), ('Rush fee', 3)])
        ]
        rows = combine_lines(lines, {})
        assert [(r['product_name'], r['net_value']) for r in rows] == [
            ('Shipping surcharge', Decimal('7')),
            ('Custom fee', Decimal('5')),
            ('Rush fee', Decimal('3')),
        ]

    def test_same_custom_item_grouped(self):
        lines = [
            {'order_line_id': f'OL{i}', 'order_id': order_id, 'product_id': None, 'variant_id': None,
             'line_name': 'Rush fee', 'sku': None, 'quantity': 1, 'price': 3, 'category': None}
            for i, order_id in enumerate(['O1', 'O2'])
        ]
        row, = combine_lines(lines, {})
        assert row['gross_quantity'] == 2
        assert row['order_count'] == 2


class TestStoreFailures:
    def test_query_failure_wrapped(self, db):
        with db.connection() as conn:
            conn.execute('DROP TABLE order_line_refunds')
        with pytest.raises(QueryError, match='Query failed'):
            extract_net_values(db, JAN_2025_L1)


class TestProductReport:
    def test_summary(self, db, wound_care_order, seed):
        seed.product('P2', category='Nutrition')
        seed.order('O2', created_at='2025-01-16 10:00:00')
        seed.line('OL2', 'O2', 'P2', quantity=1, price=20)

        report = build_product_report(db, JAN_2025_L1)
        assert report['totalOrders'] == 2
        assert report['ordersWithRefunds'] == 1
        assert report['totalProducts'] == 2
        assert report['grossValue'] == 70.0
        assert report['refundedValue'] == 10.0
        assert report['totalValue'] == 60.0
        assert report['refundRate'] == 50.0
        assert report['products'][0]['product_id'] == 'P1'
        assert 'order_ids' not in report['products'][0]
