"""Tests for the budget category master list."""

import pytest

from budget_categories import (
    DEFAULT_CATEGORIES, SYNC_SORT_ORDER, SYNC_USER, category_options, create_category,
    deactivate_category, get_category_by_name, list_categories, resolve_category,
    seed_default_categories, sync_from_products, update_category,
)
from errors import NotFoundError, ValidationError


class TestSeedDefaults:
    def test_seeded_on_init(self, db):
        assert list_categories(db, limit=100)['pagination']['total'] == len(DEFAULT_CATEGORIES)

    def test_seed_skips_populated_table(self, db):
        assert seed_default_categories(db) == 0

    def test_parent_derived(self, db):
        assert get_category_by_name(db, 'Gen Nsg>Wound Care')['parent_category'] == 'Gen Nsg'


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestListCategories:
    def test_pagination(self, db):
        page = list_categories(db, page=2, limit=5)
        assert len(page['data']) == 5
        assert page['pagination'] == {
            'page': 2, 'limit': 5, 'total': len(DEFAULT_CATEGORIES),
            'total_pages': (len(DEFAULT_CATEGORIES) + 4) // 5,
        }

    def test_search(self, db):
        names = [c['category_name'] for c in list_categories(db, search='Housekeeping')['data']]
        assert names == ['Housekeeping>Cleaning Supplies', 'Housekeeping>Supplies']

    def test_search_wildcards_are_literal(self, db):
        create_category(db, {'category_name': 'Laundry>100% Cotton Towels'})
        names = [c['category_name'] for c in list_categories(db, search='100%')['data']]
        assert names == ['Laundry>100% Cotton Towels']
        assert list_categories(db, search='_')['data'] == []

    def test_sort_column_whitelisted(self, db):
        result = list_categories(db, sort_by='id; DROP TABLE budgets', limit=100)
        names = [c['category_name'] for c in result['data']]
        assert names == sorted(names)

    def test_sort_desc(self, db):
        result = list_categories(db, sort_by='sort_order', sort_order='desc', limit=1)
        assert result['data'][0]['category_name'] == 'Therapy>Therapy Supplies'

    def test_bad_page_rejected(self, db):
        with pytest.raises(ValidationError):
            list_categories(db, page='first')

    def test_inactive_hidden_by_default(self, db):
        category = get_category_by_name(db, 'Laundry>Linens')
        deactivate_category(db, category['id'])
        total = len(DEFAULT_CATEGORIES)
        assert list_categories(db, limit=100)['pagination']['total'] == total - 1
        assert list_categories(db, limit=100, active_only=False)['pagination']['total'] == total

    def test_options_ordered_by_sort_order(self, db):
        options = category_options(db)
        assert options[0] == {
            'id': get_category_by_name(db, 'Gen Nsg>Medical Supplies')['id'],
            'name': 'Gen Nsg>Medical Supplies',
            'parent': 'Gen Nsg',
        }


class TestResolveCategory:
    def test_by_id_and_name(self, db):
        category = get_category_by_name(db, 'Dietary>Supplements')
        assert resolve_category(db, category['id'])['id'] == category['id']
        assert resolve_category(db, str(category['id']))['id'] == category['id']
        assert resolve_category(db, 'Dietary&gt;Supplements')['id'] == category['id']

    def test_unknown(self, db):
        with pytest.raises(NotFoundError):
            resolve_category(db, 'Nope')


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

class TestCreateCategory:
    def test_create_generates_code(self, db):
        category = create_category(db, {'category_name': 'Activities>Craft Supplies'}, user='tester')
        assert category['category_code'] == 'ACTCRA'
        assert category['parent_category'] == 'Activities'
        assert category['is_active'] is True
        assert category['created_by'] == 'tester'

    def test_create_decodes_name(self, db):
        category = create_category(db, {'name': 'Rehab &amp; Therapy'})
        assert category['category_name'] == 'Rehab & Therapy'

    def test_name_required(self, db):
        with pytest.raises(ValidationError):
            create_category(db, {'category_name': '   '})

    def test_duplicate_active_rejected(self, db):
        with pytest.raises(ValidationError, match='already exists'):
            create_category(db, {'category_name': 'Gen Nsg>Wound Care'})

    def test_recreate_reactivates(self, db):
        original = get_category_by_name(db, 'Laundry>Linens')
        deactivate_category(db, original['id'])
        category = create_category(db, {'category_name': 'Laundry>Linens', 'description': 'Towels'})
        assert category['id'] == original['id']
        assert category['is_active'] is True
        assert category['description'] == 'Towels'


class TestUpdateCategory:
    def test_partial_update(self, db):
        category = get_category_by_name(db, 'Laundry>Linens')
        updated = update_category(db, category['id'], {'description': 'Sheets', 'sort_order': '5'}, user='tester')
        assert updated['description'] == 'Sheets'
        assert updated['sort_order'] == 5
        assert updated['updated_by'] == 'tester'
        assert updated['category_name'] == 'Laundry>Linens'

    def test_rename_updates_parent(self, db):
        category = get_category_by_name(db, 'Laundry>Linens')
        updated = update_category(db, category['id'], {'category_name': 'Linen Service>Linens'})
        assert updated['parent_category'] == 'Linen Service'

    def test_rename_to_taken_name(self, db):
        category = get_category_by_name(db, 'Laundry>Linens')
        with pytest.raises(ValidationError):
            update_category(db, category['id'], {'category_name': 'Gen Nsg>Wound Care'})

    def test_unknown(self, db):
        with pytest.raises(NotFoundError):
            update_category(db, 999, {'description': 'x'})


class TestDeactivateCategory:
    def test_refused_while_allocated_in_active_budget(self, db, seed):
        category = get_category_by_name(db, 'Gen Nsg>Wound Care')
        seed.budget('L1 Supplies', {category['id']: (100, None)})
        with pytest.raises(ValidationError, match='active budget'):
            deactivate_category(db, category['id'])

    def test_allowed_when_budget_archived(self, db, seed):
        category = get_category_by_name(db, 'Gen Nsg>Wound Care')
        seed.budget('Old Supplies', {category['id']: (100, None)}, status='archived')
        assert deactivate_category(db, category['id']) is True
        assert get_category_by_name(db, 'Gen Nsg>Wound Care')['is_active'] is False

    def test_unknown(self, db):
        with pytest.raises(NotFoundError):
            deactivate_category(db, 999)


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

class TestSyncFromProducts:
    def test_inserts_new_and_updates_existing(self, db, seed):
        seed.product('P1', category='Gen Nsg>Wound Care')
        seed.product('P2', category='Respiratory&gt;Oxygen Supplies')
        seed.product('P3', category='Respiratory>Oxygen Supplies')
        seed.product('P4', category='')
        seed.product('P5', category=None)

        assert sync_from_products(db) == {'inserted': 1, 'updated': 1, 'total': 2}

        synced = get_category_by_name(db, 'Respiratory>Oxygen Supplies')
        assert synced['created_by'] == SYNC_USER
        assert synced['sort_order'] == SYNC_SORT_ORDER
        assert synced['category_code'] == 'RESOXY'
        assert synced['parent_category'] == 'Respiratory'
        assert get_category_by_name(db, 'Gen Nsg>Wound Care')['updated_by'] == SYNC_USER

    def test_reactivates_inactive(self, db, seed):
        category = get_category_by_name(db, 'Laundry>Linens')
        deactivate_category(db, category['id'])
        seed.product('P1', category='Laundry>Linens')
        sync_from_products(db)
        assert get_category_by_name(db, 'Laundry>Linens')['is_active'] is True

    def test_idempotent(self, db, seed):
        seed.product('P1', category='Respiratory>Oxygen Supplies')
        sync_from_products(db)
        assert sync_from_products(db) == {'inserted': 0, 'updated': 1, 'total': 1}
