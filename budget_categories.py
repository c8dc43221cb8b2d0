"""
Budget category master list.

Every budget allocation references a row in ``budget_categories_master`` by
numeric id. Names follow a ``Parent>Child`` convention and are stored decoded.
Categories are soft-deleted (``is_active = 0``) so historic budgets keep
their references.
"""

import logging
from datetime import datetime

from categories import category_code, decode_category_name, parent_category
from errors import NotFoundError, ValidationError
from query_builder import LIKE_ESCAPE, like_pattern, page_window, pagination

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SORTABLE_COLUMNS = ['category_name', 'category_code', 'parent_category', 'sort_order', 'created_at', 'updated_at']
SYNC_USER = 'shopify_category_sync'
SYNC_SORT_ORDER = 9999

# (name, code, description, sort_order)
DEFAULT_CATEGORIES = [
    ('Gen Nsg>Medical Supplies', 'GN001', 'General nursing medical supplies', 10),
    ('Gen Nsg>Incontinent Supplies', 'GN002', 'Incontinence and hygiene supplies', 20),
    ('Gen Nsg>Wound Care', 'GN003', 'Wound care and dressing supplies', 30),
    ('Gen Nsg>Personal Care', 'GN004', 'Personal care items for patients', 40),
    ('Gen Nsg>Nutrition', 'GN005', 'Nutritional supplements and feeding supplies', 50),
    ('Gen Nsg>Minor Equip', 'GN007', 'Small equipment for nursing', 70),
    ('Gen Nsg>Urology & Ostomy', 'GN009', 'Urology and ostomy care supplies', 90),
    ('Capital>Fixed Equip', 'CAP001', 'Fixed capital equipment', 200),
    ('Capital>Major Moveable Equip', 'CAP002', 'Major moveable capital equipment', 210),
    ('Housekeeping>Supplies', 'HK002', 'General housekeeping supplies', 310),
    ('Housekeeping>Cleaning Supplies', 'HK003', 'Cleaning chemicals and supplies', 320),
    ('Maintenance>Supplies', 'MNT001', 'General maintenance supplies', 400),
    ('Admin & Gen>Office Supplies', 'ADM001', 'General office supplies', 500),
    ('Dietary>Supplements', 'DT002', 'Nutritional supplements', 610),
    ('Food Service>Kitchen Supplies', 'FS002', 'Kitchen supplies and utensils', 640),
    ('Laundry>Linens', 'LND001', 'Bed linens and towels', 700),
    ('Therapy>Therapy Supplies', 'THR002', 'General therapy supplies', 810),
]

# ---------------------------------------------------------------------------
# Table Initialization
# ---------------------------------------------------------------------------

def init_budget_category_tables(db):
    """Create the category master table if it does not exist."""
    with db.connection() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS budget_categories_master (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category_name TEXT NOT NULL UNIQUE,
                category_code TEXT,
                parent_category TEXT,
                description TEXT,
                sort_order INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                created_by TEXT,
                updated_by TEXT
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_bcm_parent ON budget_categories_master(parent_category)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_bcm_active ON budget_categories_master(is_active)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_bcm_sort ON budget_categories_master(sort_order)')
    logger.info("Budget category tables initialized")


def seed_default_categories(db):
    """Insert the default category list into an empty master table. Returns rows inserted."""
    with db.connection() as conn:
        row = conn.execute('SELECT COUNT(*) AS n FROM budget_categories_master').fetchone()
        if row['n']:
            return 0
        now = _now()
        for name, code, description, sort_order in DEFAULT_CATEGORIES:
            conn.execute('''
                INSERT INTO budget_categories_master
                    (category_name, category_code, parent_category, description,
                     sort_order, is_active, created_at, updated_at, created_by)
                VALUES (?, ?, ?, ?, ?, 1, ?, ?, 'system')
            ''', (name, code, parent_category(name), description, sort_order, now, now))
    logger.info("Seeded %s default budget categories", len(DEFAULT_CATEGORIES))
    return len(DEFAULT_CATEGORIES)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now():
    return datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S')


def _row_to_dict(row):
    if row is None:
        return None
    result = dict(row)
    result['is_active'] = bool(result.get('is_active'))
    return result


def _clean_name(value):
    name = decode_category_name(value or '').strip()
    if not name:
        raise ValidationError("Category name is required")
    return name


def _as_int(value, name, default):
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")

# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_categories(db, page=1, limit=20, search='', sort_by='category_name',
                    sort_order='ASC', active_only=True):
    """Paginated, searchable category list.

    Returns:
        dict: {data: [...], pagination: {page, limit, total, total_pages}}
    """
    page, limit, offset = page_window(page, limit)
    if sort_by not in SORTABLE_COLUMNS:
        sort_by = 'category_name'
    sort_order = 'DESC' if str(sort_order).upper() == 'DESC' else 'ASC'

    conditions = []
    params = []
    if active_only:
        conditions.append('is_active = 1')
    if search:
        conditions.append(
            f"(category_name LIKE ? ESCAPE '{LIKE_ESCAPE}' OR category_code LIKE ? ESCAPE '{LIKE_ESCAPE}' "
            f"OR description LIKE ? ESCAPE '{LIKE_ESCAPE}')"
        )
        pattern = like_pattern(search)
        params.extend([pattern, pattern, pattern])
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

    total = db.fetch_one(f'SELECT COUNT(*) AS n FROM budget_categories_master {where}', params)['n']
    rows = db.fetch_all(
        f'SELECT * FROM budget_categories_master {where} '
        f'ORDER BY {sort_by} {sort_order}, id ASC LIMIT ? OFFSET ?',
        params + [limit, offset]
    )
    return {'data': [_row_to_dict(r) for r in rows], 'pagination': pagination(page, limit, total)}


def get_category(db, category_id):
    row = db.fetch_one('SELECT * FROM budget_categories_master WHERE id = ?', (category_id,))
    return _row_to_dict(row)


def get_category_by_name(db, name):
    row = db.fetch_one(
        'SELECT * FROM budget_categories_master WHERE category_name = ?',
        (decode_category_name(name).strip(),)
    )
    return _row_to_dict(row)


def resolve_category(db, key):
    """Look up a category by numeric id or by (decoded) name.

    Raises:
        NotFoundError: no such category.
    """
    row = None
    if isinstance(key, int) or (isinstance(key, str) and key.strip().isdigit()):
        row = get_category(db, int(key))
    if row is None and key is not None:
        row = get_category_by_name(db, str(key))
    if row is None:
        raise NotFoundError(f"Budget category '{key}' not found")
    return row


def category_options(db):
    """Active categories as {id, name, parent} for form selects."""
    rows = db.fetch_all('''
        SELECT id, category_name, parent_category
        FROM budget_categories_master
        WHERE is_active = 1
        ORDER BY sort_order, category_name
    ''')
    return [{'id': r['id'], 'name': r['category_name'], 'parent': r['parent_category']} for r in rows]

# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def create_category(db, data, user='admin'):
    """Create a master category. Returns the new row."""
    name = _clean_name(data.get('category_name') or data.get('name'))
    code = (data.get('category_code') or category_code(name)) or None
    sort_order = _as_int(data.get('sort_order'), 'sort_order', 0)
    now = _now()

    with db.connection() as conn:
        existing = conn.execute(
            'SELECT id, is_active FROM budget_categories_master WHERE category_name = ?',
            (name,)
        ).fetchone()
        if existing and existing['is_active']:
            raise ValidationError(f"Category '{name}' already exists")
        if existing:
            # Reactivate a soft-deleted category rather than duplicating the name
            conn.execute('''
                UPDATE budget_categories_master
                SET is_active = 1, category_code = ?, description = ?, sort_order = ?,
                    parent_category = ?, updated_at = ?, updated_by = ?
                WHERE id = ?
            ''', (code, data.get('description'), sort_order, parent_category(name),
                  now, user, existing['id']))
            category_id = existing['id']
        else:
            cursor = conn.execute('''
                INSERT INTO budget_categories_master
                    (category_name, category_code, parent_category, description,
                     sort_order, is_active, created_at, updated_at, created_by, updated_by)
                VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
            ''', (name, code, parent_category(name), data.get('description'),
                  sort_order, now, now, user, user))
            category_id = cursor.lastrowid

    logger.info("Budget category saved: id=%s name=%s", category_id, name)
    return get_category(db, category_id)


def update_category(db, category_id, data, user='admin'):
    """Partial update. Returns the updated row.

    Raises:
        NotFoundError: unknown id.
        ValidationError: the new name is taken by another category.
    """
    fields = []
    params = []

    if 'category_name' in data or 'name' in data:
        name = _clean_name(data.get('category_name') or data.get('name'))
        fields.extend(['category_name = ?', 'parent_category = ?'])
        params.extend([name, parent_category(name)])
    if 'category_code' in data:
        fields.append('category_code = ?')
        params.append(data['category_code'] or None)
    if 'description' in data:
        fields.append('description = ?')
        params.append(data['description'])
    if 'sort_order' in data:
        fields.append('sort_order = ?')
        params.append(_as_int(data['sort_order'], 'sort_order', 0))
    if 'is_active' in data:
        fields.append('is_active = ?')
        params.append(1 if data['is_active'] else 0)

    if get_category(db, category_id) is None:
        raise NotFoundError(f"Budget category {category_id} not found")
    if not fields:
        return get_category(db, category_id)

    fields.extend(['updated_at = ?', 'updated_by = ?'])
    params.extend([_now(), user, category_id])

    try:
        with db.connection() as conn:
            conn.execute(
                f"UPDATE budget_categories_master SET {', '.join(fields)} WHERE id = ?",
                params
            )
    except db.integrity_error as e:
        raise ValidationError(f"Category name already in use: {e}") from e

    logger.info("Budget category updated: id=%s", category_id)
    return get_category(db, category_id)


def deactivate_category(db, category_id, user='admin'):
    """Soft delete. Refused while an active budget still allocates the category."""
    with db.connection() as conn:
        row = conn.execute(
            'SELECT id FROM budget_categories_master WHERE id = ?', (category_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Budget category {category_id} not found")
        in_use = conn.execute('''
            SELECT COUNT(*) AS n
            FROM budget_allocations ba
            JOIN budgets b ON b.id = ba.budget_id
            WHERE ba.category_id = ? AND b.status = 'active'
        ''', (category_id,)).fetchone()
        if in_use['n']:
            raise ValidationError(
                f"Category {category_id} is allocated in {in_use['n']} active budget(s)"
            )
        conn.execute('''
            UPDATE budget_categories_master
            SET is_active = 0, updated_at = ?, updated_by = ?
            WHERE id = ?
        ''', (_now(), user, category_id))
    logger.info("Budget category deactivated: id=%s", category_id)
    return True

# ---------------------------------------------------------------------------
# Sync from product categories
# ---------------------------------------------------------------------------

def sync_from_products(db):
    """Add every distinct product ``shopify_category`` to the master list.

    New names are inserted with a generated code and a trailing sort order;
    existing names get their description refreshed (and are reactivated).

    Returns:
        dict: {inserted, updated, total}
    """
    rows = db.fetch_all('''
        SELECT DISTINCT shopify_category
        FROM products
        WHERE shopify_category IS NOT NULL AND shopify_category <> ''
    ''')
    names = sorted({decode_category_name(r['shopify_category']).strip() for r in rows} - {''})

    inserted = updated = 0
    now = _now()
    with db.connection() as conn:
        for name in names:
            description = f'Synced from Shopify product category: {name}'
            existing = conn.execute(
                'SELECT id FROM budget_categories_master WHERE category_name = ?', (name,)
            ).fetchone()
            if existing:
                conn.execute('''
                    UPDATE budget_categories_master
                    SET description = ?, is_active = 1, updated_at = ?, updated_by = ?
                    WHERE id = ?
                ''', (description, now, SYNC_USER, existing['id']))
                updated += 1
            else:
                conn.execute('''
                    INSERT INTO budget_categories_master
                        (category_name, category_code, parent_category, description,
                         sort_order, is_active, created_at, updated_at, created_by, updated_by)
                    VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
                ''', (name, category_code(name) or None, parent_category(name), description,
                      SYNC_SORT_ORDER, now, now, SYNC_USER, SYNC_USER))
                inserted += 1

    logger.info("Category sync: %s inserted, %s updated from %s product categories",
                inserted, updated, len(names))
    return {'inserted': inserted, 'updated': updated, 'total': len(names)}
