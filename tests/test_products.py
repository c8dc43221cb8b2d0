"""Tests for the read-only product views."""

import pytest

from errors import ValidationError
from products import count_products, get_product_inventory_stats, list_products, search_products


@pytest.fixture
def catalog(seed):
    seed._insert('products', id='P1', title='Foam Dressing 4x4', vendor='Medline',
                 product_type='Wound Care', inventory_quantity=40, status='active')
    seed._insert('products', id='P2', title='Briefs 100% Cotton', vendor='Medline',
                 product_type='Incontinence', inventory_quantity=0, status='active')
    seed._insert('products', id='P3', title='Alginate Dressing', vendor='McKesson',
                 product_type='Wound Care', inventory_quantity=10, status='draft')
    return seed


class TestListProducts:
    def test_ordered_by_title(self, db, catalog):
        assert [p['id'] for p in list_products(db)] == ['P3', 'P2', 'P1']

    def test_exact_filters(self, db, catalog):
        assert [p['id'] for p in list_products(db, {'vendor': 'Medline'})] == ['P2', 'P1']
        assert [p['id'] for p in list_products(db, {'productType': 'Wound Care', 'status': 'active'})] == ['P1']
        assert [p['id'] for p in list_products(db, {'productId': 'P3'})] == ['P3']

    def test_title_substring(self, db, catalog):
        assert [p['id'] for p in list_products(db, {'title': 'dressing'})] == ['P3', 'P1']

    def test_title_wildcards_are_literal(self, db, catalog):
        assert [p['id'] for p in list_products(db, {'title': '100%'})] == ['P2']
        assert list_products(db, {'title': '_'}) == []

    def test_count(self, db, catalog):
        assert count_products(db) == 3
        assert count_products(db, {'vendor': 'McKesson'}) == 1


class TestSearchProducts:
    def test_pagination(self, db, catalog):
        result = search_products(db, {}, page=1, limit=2)
        assert [p['id'] for p in result['products']] == ['P3', 'P2']
        assert result['pagination'] == {'page': 1, 'limit': 2, 'total': 3, 'total_pages': 2}

    def test_bad_page_rejected(self, db):
        with pytest.raises(ValidationError):
            search_products(db, {}, page='first')


class TestInventoryStats:
    def test_all_products(self, db, catalog):
        assert get_product_inventory_stats(db) == {
            'total_products': 3,
            'in_stock_products': 2,
            'out_of_stock_products': 1,
            'total_inventory': 50,
            'average_inventory': 16.67,
            'max_inventory': 40,
            'min_inventory': 0,
            'unique_vendors': 2,
            'unique_product_types': 2,
        }

    def test_single_product(self, db, catalog):
        stats = get_product_inventory_stats(db, 'P3')
        assert stats['total_products'] == 1
        assert stats['total_inventory'] == 10
        assert stats['in_stock_products'] == 1

    def test_no_products(self, db):
        stats = get_product_inventory_stats(db)
        assert stats['total_products'] == 0
        assert stats['total_inventory'] == 0
        assert stats['max_inventory'] is None
        assert stats['average_inventory'] == 0.0
