"""
Monthly census per location.

A census row holds a location's average daily count (residents, patients)
for one ``MM-YYYY`` month. When a row exists for the month being reported,
the location's budget is computed per diem from it (see budget_resolver).
"""

import logging
from datetime import datetime

from amounts import to_decimal
from errors import ValidationError
from periods import format_budget_month, normalize_budget_month, parse_budget_month

logger = logging.getLogger(__name__)


def init_census_tables(db):
    """Create the location census table if it does not exist."""
    with db.connection() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS location_census (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                location_id TEXT NOT NULL,
                census_month TEXT NOT NULL,
                census_amount REAL NOT NULL CHECK (census_amount >= 0),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (location_id, census_month)
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_census_month ON location_census(census_month)')
    logger.info("Location census tables initialized")


def _now():
    return datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S')


def _with_month_parts(row):
    if row is None:
        return None
    month, year = parse_budget_month(row['census_month'])
    row['month_number'] = month
    row['year_number'] = year
    return row


def _census_amount(value):
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"census_amount must be a number, got '{value}'")
    if amount != amount or amount < 0:
        raise ValidationError("census_amount must be zero or greater")
    return amount


def upsert_census(db, location_id, census_month, census_amount):
    """Insert or update the census for (location, month). Returns the stored row."""
    location_id = str(location_id or '').strip()
    if not location_id:
        raise ValidationError("location_id is required")
    census_month = normalize_budget_month(census_month)
    amount = _census_amount(census_amount)
    now = _now()

    with db.connection() as conn:
        existing = conn.execute(
            'SELECT id FROM location_census WHERE location_id = ? AND census_month = ?',
            (location_id, census_month)
        ).fetchone()
        if existing:
            conn.execute(
                'UPDATE location_census SET census_amount = ?, updated_at = ? WHERE id = ?',
                (amount, now, existing['id'])
            )
            action = 'updated'
        else:
            conn.execute('''
                INSERT INTO location_census
                    (location_id, census_month, census_amount, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            ''', (location_id, census_month, amount, now, now))
            action = 'created'

    logger.info("Census %s: location=%s month=%s amount=%s", action, location_id, census_month, amount)
    return get_census(db, location_id, census_month)


def get_census(db, location_id, census_month):
    """The census row for (location, month), or None."""
    row = db.fetch_one(
        'SELECT * FROM location_census WHERE location_id = ? AND census_month = ?',
        (str(location_id), normalize_budget_month(census_month))
    )
    return _with_month_parts(row)


def get_census_amount(db, location_id, census_month):
    """Census amount as Decimal, or None when no row exists."""
    row = get_census(db, location_id, census_month)
    return to_decimal(row['census_amount']) if row else None


def list_census(db, location_id=None, month=None, year=None):
    """Census rows, newest month first.

    ``month`` needs ``year``; ``year`` alone matches all twelve months.
    """
    conditions = []
    params = []
    if location_id:
        conditions.append('location_id = ?')
        params.append(str(location_id))
    if month and year:
        conditions.append('census_month = ?')
        params.append(format_budget_month(month, year))
    elif year:
        conditions.append('census_month LIKE ?')
        params.append(f'%-{int(year):04d}')
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

    rows = db.fetch_all(f'SELECT * FROM location_census {where}', params)
    rows = [_with_month_parts(r) for r in rows]
    rows.sort(key=lambda r: (r['year_number'], r['month_number']), reverse=True)
    return rows


def delete_census(db, location_id, census_month):
    """Delete a census row. Returns True if one was deleted."""
    with db.connection() as conn:
        cursor = conn.execute(
            'DELETE FROM location_census WHERE location_id = ? AND census_month = ?',
            (str(location_id), normalize_budget_month(census_month))
        )
        deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Census deleted: location=%s month=%s", location_id, census_month)
    return deleted


def get_census_locations(db):
    """Locations a census can be recorded for, with a display name."""
    rows = db.fetch_all('SELECT id, name FROM company_locations ORDER BY name, id')
    return [{'id': r['id'], 'name': r['name'] or f"Location {r['id']}"} for r in rows]
