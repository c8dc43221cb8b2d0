"""
Budget management for the budget reports service.

Handles budgets, their per-category allocations and the assignment of budgets
to store locations. Supports both SQLite and PostgreSQL via the shared
db.py layer.

Each allocation carries two separately validated amounts:

  flat_amount  dollar budget used when the location has no census for the month
  ppd_rate     per-day rate multiplied by census and days in month when it does

``budgets.total_amount`` and ``budget_allocations.remaining_amount`` are
derived and recomputed inside every write transaction.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from amounts import money
from budget_categories import resolve_category
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALID_STATUSES = ['draft', 'active', 'inactive', 'archived']
DEFAULT_STATUS = 'active'

# ---------------------------------------------------------------------------
# Table Initialization
# ---------------------------------------------------------------------------

def init_budget_tables(db):
    """Create all budget-related tables if they do not exist."""
    with db.connection() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS budgets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                description TEXT,
                total_amount REAL NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'active',
                fiscal_year INTEGER,
                fiscal_quarter INTEGER,
                created_by TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS budget_allocations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                budget_id INTEGER NOT NULL REFERENCES budgets(id) ON DELETE CASCADE,
                category_id INTEGER NOT NULL REFERENCES budget_categories_master(id),
                flat_amount REAL NOT NULL DEFAULT 0,
                ppd_rate REAL,
                spent_amount REAL NOT NULL DEFAULT 0,
                remaining_amount REAL NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (budget_id, category_id)
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS budget_location_assignments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                budget_id INTEGER NOT NULL REFERENCES budgets(id) ON DELETE CASCADE,
                location_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                assigned_by TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (budget_id, location_id, status)
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_budgets_status ON budgets(status)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_allocations_budget ON budget_allocations(budget_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_allocations_category ON budget_allocations(category_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_assignments_location ON budget_location_assignments(location_id, status)')

    logger.info("Budget tables initialized")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now():
    """Return current timestamp as ISO string."""
    return datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S')


def _validate_status(status, valid=VALID_STATUSES):
    value = str(status or '').strip().lower()
    if value not in valid:
        raise ValidationError(f"Invalid status '{status}'. Must be one of: {', '.join(valid)}")
    return value


def _amount(value, field, required=True):
    """Parse a non-negative amount. None is allowed only when not required."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got '{value}'")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must be zero or greater")
    return amount


def _optional_int(data, key):
    value = data.get(key)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")


def _require_budget(conn, budget_id):
    row = conn.execute('SELECT * FROM budgets WHERE id = ?', (budget_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Budget {budget_id} not found")
    return row


def _recompute_totals(conn, budget_id):
    """Refresh derived columns from the allocation rows."""
    conn.execute('''
        UPDATE budget_allocations
        SET remaining_amount = flat_amount - spent_amount
        WHERE budget_id = ?
    ''', (budget_id,))
    conn.execute('''
        UPDATE budgets
        SET total_amount = (
            SELECT COALESCE(SUM(flat_amount), 0) FROM budget_allocations WHERE budget_id = ?
        )
        WHERE id = ?
    ''', (budget_id, budget_id))

# ---------------------------------------------------------------------------
# Allocation validation
# ---------------------------------------------------------------------------

def _allocation_items(allocations):
    """Yield (category_key, value) pairs from either accepted shape.

    Accepted shapes:
        {"Gen Nsg>Wound Care": 100, "12": {"flat_amount": 50, "ppd_rate": 0.75}}
        [{"category_id": 12, "flat_amount": 50, "ppd_rate": 0.75}, ...]
    """
    if isinstance(allocations, dict):
        for key, value in allocations.items():
            yield key, value
    elif isinstance(allocations, (list, tuple)):
        for item in allocations:
            if not isinstance(item, dict):
                raise ValidationError("Each allocation must be an object")
            key = item.get('category_id')
            if key in (None, ''):
                key = item.get('category_name') or item.get('category')
            yield key, item
    else:
        raise ValidationError("allocations must be an object or a list")


def validate_allocations(db, allocations):
    """Resolve category references to master ids and validate every amount.

    Returns:
        list[dict]: [{category_id, category_name, flat_amount, ppd_rate, spent_amount}]

    Raises:
        ValidationError: empty input, unknown or inactive category, duplicate
                         category, or a missing/negative/non-numeric amount.
    """
    normalized = []
    seen = set()
    for key, value in _allocation_items(allocations):
        if key in (None, ''):
            raise ValidationError("Allocation is missing its category")
        try:
            category = resolve_category(db, key)
        except NotFoundError as e:
            raise ValidationError(str(e)) from e
        if not category['is_active']:
            raise ValidationError(f"Budget category '{category['category_name']}' is inactive")
        if category['id'] in seen:
            raise ValidationError(f"Budget category '{category['category_name']}' is allocated twice")
        seen.add(category['id'])

        label = category['category_name']
        if isinstance(value, dict):
            flat_amount = _amount(value.get('flat_amount', value.get('amount')), f"{label} flat_amount")
            ppd_rate = _amount(value.get('ppd_rate'), f"{label} ppd_rate", required=False)
            spent_amount = _amount(value.get('spent_amount', 0), f"{label} spent_amount")
        else:
            flat_amount = _amount(value, f"{label} amount")
            ppd_rate = None
            spent_amount = Decimal('0')

        normalized.append({
            'category_id': category['id'],
            'category_name': label,
            'flat_amount': money(flat_amount),
            'ppd_rate': ppd_rate,
            'spent_amount': money(spent_amount),
        })

    if not normalized:
        raise ValidationError("At least one category allocation is required")
    return normalized


def _insert_allocations(conn, budget_id, allocations):
    now = _now()
    for alloc in allocations:
        conn.execute('''
            INSERT INTO budget_allocations
                (budget_id, category_id, flat_amount, ppd_rate, spent_amount,
                 remaining_amount, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            budget_id,
            alloc['category_id'],
            float(alloc['flat_amount']),
            float(alloc['ppd_rate']) if alloc['ppd_rate'] is not None else None,
            float(alloc['spent_amount']),
            float(alloc['flat_amount'] - alloc['spent_amount']),
            now,
            now,
        ))

# ---------------------------------------------------------------------------
# Budget CRUD
# ---------------------------------------------------------------------------

def create_budget(db, data, user='admin'):
    """Create a budget with its allocations in one transaction. Returns the new budget ID.

    Args:
        data: dict with keys: name (required), description, status,
              fiscal_year, fiscal_quarter, allocations (required).
    """
    name = str(data.get('name') or '').strip()
    if not name:
        raise ValidationError("Budget name is required")
    status = _validate_status(data.get('status') or DEFAULT_STATUS)
    allocations = validate_allocations(db, data.get('allocations') or data.get('categories') or {})
    fiscal_year = _optional_int(data, 'fiscal_year')
    fiscal_quarter = _optional_int(data, 'fiscal_quarter')
    now = _now()

    try:
        with db.connection() as conn:
            cursor = conn.execute('''
                INSERT INTO budgets
                    (name, description, total_amount, status, fiscal_year,
                     fiscal_quarter, created_by, created_at, updated_at)
                VALUES (?, ?, 0, ?, ?, ?, ?, ?, ?)
            ''', (name, data.get('description'), status, fiscal_year, fiscal_quarter,
                  user, now, now))
            budget_id = cursor.lastrowid
            _insert_allocations(conn, budget_id, allocations)
            _recompute_totals(conn, budget_id)
    except db.integrity_error as e:
        raise ValidationError(f"A budget named '{name}' already exists") from e

    logger.info("Budget created: id=%s name=%s categories=%s", budget_id, name, len(allocations))
    return budget_id


def update_budget(db, budget_id, data):
    """Update budget fields; ``allocations`` when present replaces the whole set.

    Returns:
        dict: the updated budget.
    """
    fields = []
    params = []

    if 'name' in data:
        name = str(data['name'] or '').strip()
        if not name:
            raise ValidationError("Budget name cannot be blank")
        fields.append('name = ?')
        params.append(name)
    if 'description' in data:
        fields.append('description = ?')
        params.append(data['description'])
    if 'status' in data:
        fields.append('status = ?')
        params.append(_validate_status(data['status']))
    if 'fiscal_year' in data:
        fields.append('fiscal_year = ?')
        params.append(_optional_int(data, 'fiscal_year'))
    if 'fiscal_quarter' in data:
        fields.append('fiscal_quarter = ?')
        params.append(_optional_int(data, 'fiscal_quarter'))

    allocations = None
    if 'allocations' in data:
        allocations = validate_allocations(db, data['allocations'])

    fields.append('updated_at = ?')
    params.append(_now())
    params.append(budget_id)

    try:
        with db.connection() as conn:
            _require_budget(conn, budget_id)
            conn.execute(f"UPDATE budgets SET {', '.join(fields)} WHERE id = ?", params)
            if allocations is not None:
                conn.execute('DELETE FROM budget_allocations WHERE budget_id = ?', (budget_id,))
                _insert_allocations(conn, budget_id, allocations)
            _recompute_totals(conn, budget_id)
    except db.integrity_error as e:
        raise ValidationError(f"Budget name already in use: {e}") from e

    logger.info("Budget updated: id=%s", budget_id)
    return get_budget(db, budget_id)


def set_budget_status(db, budget_id, status):
    """Direct status write; any status may follow any other."""
    return update_budget(db, budget_id, {'status': status})


def delete_budget(db, budget_id):
    """Delete a budget, its allocations and its assignments. Returns True if deleted."""
    with db.connection() as conn:
        # Children first for SQLite without foreign key enforcement
        conn.execute('DELETE FROM budget_allocations WHERE budget_id = ?', (budget_id,))
        conn.execute('DELETE FROM budget_location_assignments WHERE budget_id = ?', (budget_id,))
        cursor = conn.execute('DELETE FROM budgets WHERE id = ?', (budget_id,))
        deleted = cursor.rowcount > 0

    if deleted:
        logger.info("Budget deleted: id=%s", budget_id)
    return deleted


def get_budget(db, budget_id):
    """A single budget with its allocations, or None."""
    budget = db.fetch_one('SELECT * FROM budgets WHERE id = ?', (budget_id,))
    if budget is None:
        return None
    budget['allocations'] = db.fetch_all('''
        SELECT ba.id, ba.category_id, bcm.category_name, bcm.parent_category,
               ba.flat_amount, ba.ppd_rate, ba.spent_amount, ba.remaining_amount
        FROM budget_allocations ba
        JOIN budget_categories_master bcm ON bcm.id = ba.category_id
        WHERE ba.budget_id = ?
        ORDER BY bcm.sort_order, bcm.category_name
    ''', (budget_id,))
    return budget


def list_budgets(db, status=None):
    """All budgets with allocation counts and spend totals, newest first."""
    query = '''
        SELECT b.*,
               COUNT(ba.id) AS category_count,
               COALESCE(SUM(ba.spent_amount), 0) AS total_spent,
               COALESCE(SUM(ba.remaining_amount), 0) AS total_remaining
        FROM budgets b
        LEFT JOIN budget_allocations ba ON ba.budget_id = b.id
    '''
    params = []
    if status:
        query += ' WHERE b.status = ?'
        params.append(_validate_status(status))
    query += ' GROUP BY b.id ORDER BY b.created_at DESC, b.id DESC'
    return db.fetch_all(query, params)


def get_budget_stats(db):
    """Counts and totals across every budget."""
    stats = db.fetch_one('''
        SELECT COUNT(*) AS total_budgets,
               COALESCE(SUM(total_amount), 0) AS total_allocated,
               COALESCE(AVG(total_amount), 0) AS average_budget,
               SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) AS active_budgets,
               SUM(CASE WHEN status = 'draft' THEN 1 ELSE 0 END) AS draft_budgets,
               SUM(CASE WHEN status = 'inactive' THEN 1 ELSE 0 END) AS inactive_budgets,
               SUM(CASE WHEN status = 'archived' THEN 1 ELSE 0 END) AS archived_budgets
        FROM budgets
    ''')
    spend = db.fetch_one('''
        SELECT COALESCE(SUM(spent_amount), 0) AS total_spent,
               COALESCE(SUM(remaining_amount), 0) AS total_remaining
        FROM budget_allocations
    ''')
    result = {k: (v or 0) for k, v in stats.items()}
    result.update(spend)
    for key in ('total_allocated', 'average_budget', 'total_spent', 'total_remaining'):
        result[key] = round(float(result[key]), 2)
    return result

# ---------------------------------------------------------------------------
# Location assignments
# ---------------------------------------------------------------------------

_ASSIGNMENT_SELECT = '''
    SELECT bla.id, bla.budget_id, bla.location_id, bla.status, bla.assigned_by,
           bla.created_at, bla.updated_at,
           b.name AS budget_name, b.total_amount, b.status AS budget_status
    FROM budget_location_assignments bla
    JOIN budgets b ON b.id = bla.budget_id
'''


def assign_budget_to_location(db, budget_id, location_id, assigned_by='admin'):
    """Assign a budget to a location, reactivating a previous assignment if one exists.

    Raises:
        NotFoundError: unknown budget.
        ValidationError: blank location or an active assignment already exists.
    """
    location_id = str(location_id or '').strip()
    if not location_id:
        raise ValidationError("location_id is required")
    now = _now()

    with db.connection() as conn:
        _require_budget(conn, budget_id)
        rows = conn.execute('''
            SELECT id, status FROM budget_location_assignments
            WHERE budget_id = ? AND location_id = ?
        ''', (budget_id, location_id)).fetchall()
        by_status = {r['status']: r['id'] for r in rows}
        if 'active' in by_status:
            raise ValidationError(f"Budget {budget_id} is already assigned to location {location_id}")
        if 'inactive' in by_status:
            assignment_id = by_status['inactive']
            conn.execute('''
                UPDATE budget_location_assignments
                SET status = 'active', assigned_by = ?, updated_at = ?
                WHERE id = ?
            ''', (assigned_by, now, assignment_id))
        else:
            cursor = conn.execute('''
                INSERT INTO budget_location_assignments
                    (budget_id, location_id, status, assigned_by, created_at, updated_at)
                VALUES (?, ?, 'active', ?, ?, ?)
            ''', (budget_id, location_id, assigned_by, now, now))
            assignment_id = cursor.lastrowid

    logger.info("Budget %s assigned to location %s (assignment %s)", budget_id, location_id, assignment_id)
    return db.fetch_one(_ASSIGNMENT_SELECT + ' WHERE bla.id = ?', (assignment_id,))


def remove_assignment(db, assignment_id):
    """Deactivate an assignment. Returns True if an active assignment was changed."""
    with db.connection() as conn:
        row = conn.execute('''
            SELECT budget_id, location_id FROM budget_location_assignments
            WHERE id = ? AND status = 'active'
        ''', (assignment_id,)).fetchone()
        if row is None:
            return False
        # Only one inactive row per (budget, location) may exist
        conn.execute('''
            DELETE FROM budget_location_assignments
            WHERE budget_id = ? AND location_id = ? AND status = 'inactive'
        ''', (row['budget_id'], row['location_id']))
        conn.execute('''
            UPDATE budget_location_assignments
            SET status = 'inactive', updated_at = ?
            WHERE id = ?
        ''', (_now(), assignment_id))

    logger.info("Budget assignment %s deactivated", assignment_id)
    return True


def get_assignments_by_location(db, location_id):
    return db.fetch_all(
        _ASSIGNMENT_SELECT + " WHERE bla.location_id = ? AND bla.status = 'active' ORDER BY b.name",
        (str(location_id),)
    )


def get_assignments_by_budget(db, budget_id):
    return db.fetch_all(
        _ASSIGNMENT_SELECT + " WHERE bla.budget_id = ? AND bla.status = 'active' ORDER BY bla.location_id",
        (budget_id,)
    )


def get_all_assignments(db):
    return db.fetch_all(
        _ASSIGNMENT_SELECT + " WHERE bla.status = 'active' ORDER BY bla.location_id, b.name"
    )
