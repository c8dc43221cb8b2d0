"""
Read-only order views.

Order search uses the report filters (customer, location, period) plus the
order id, number and status filters. A single order can be fetched with its
line items and line-item stats.
"""

import logging

from amounts import as_float, to_quantity
from query_builder import FILTER_COLUMNS, SEARCH_FILTER_COLUMNS, order_search_filters, page_window, pagination

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# Request keys the order search accepts
SEARCH_KEYS = tuple(FILTER_COLUMNS) + tuple(SEARCH_FILTER_COLUMNS) + ('budgetMonth', 'month', 'year')

ORDER_FIELDS = (
    'id', 'order_number', 'customer_id', 'location_id', 'company_location_id',
    'created_at', 'updated_at', 'financial_status', 'fulfillment_status',
    'total_price', 'currency', 'order_budget_month',
)
_ORDER_SELECT = ', '.join(f'o.{field}' for field in ORDER_FIELDS)

LINE_FLAGS = ('taxable', 'requires_shipping', 'gift_card')


def _order_output(row):
    row['total_price'] = as_float(row['total_price'])
    return row


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def list_orders(db, filters=None, limit=DEFAULT_LIMIT, offset=0):
    """Orders matching ``filters``, newest first."""
    where, params = order_search_filters(filters).render()
    rows = db.fetch_all(
        f'SELECT {_ORDER_SELECT} FROM orders o {where} '
        f'ORDER BY o.created_at DESC, o.id LIMIT ? OFFSET ?',
        params + [limit, offset]
    )
    return [_order_output(r) for r in rows]


def count_orders(db, filters=None):
    where, params = order_search_filters(filters).render()
    return db.fetch_one(f'SELECT COUNT(*) AS n FROM orders o {where}', params)['n']


def search_orders(db, filters=None, page=1, limit=DEFAULT_LIMIT):
    """One page of matching orders.

    Returns:
        dict: {orders: [...], pagination: {page, limit, total, total_pages}}
    """
    page, limit, offset = page_window(page, limit, default_limit=DEFAULT_LIMIT)
    total = count_orders(db, filters)
    orders = list_orders(db, filters, limit, offset)
    logger.debug("Order search %s matched %s orders", filters, total)
    return {'orders': orders, 'pagination': pagination(page, limit, total)}


def get_order(db, order_id):
    row = db.fetch_one(f'SELECT {_ORDER_SELECT} FROM orders o WHERE o.id = ?', (order_id,))
    return _order_output(row) if row else None


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------

def get_order_line_items(db, order_id):
    rows = db.fetch_all('''
        SELECT id, product_id, variant_id, name, sku, vendor, price, quantity,
               taxable, requires_shipping, gift_card
        FROM order_lines
        WHERE order_id = ?
        ORDER BY id
    ''', (order_id,))
    for row in rows:
        row['price'] = as_float(row['price'])
        row['quantity'] = to_quantity(row['quantity'])
        for flag in LINE_FLAGS:
            row[flag] = bool(row[flag])
    return rows


def get_order_line_item_stats(db, order_id):
    """Counts and totals over an order's line items.

    ``total_line_items_price`` is the sum of price x quantity before refunds.
    """
    row = db.fetch_one('''
        SELECT COUNT(*) AS total_line_items,
               SUM(quantity) AS total_quantity,
               SUM(price * quantity) AS total_line_items_price,
               SUM(CASE WHEN gift_card = 1 THEN 1 ELSE 0 END) AS gift_card_items,
               SUM(CASE WHEN requires_shipping = 1 THEN 1 ELSE 0 END) AS shipping_required_items,
               SUM(CASE WHEN taxable = 1 THEN 1 ELSE 0 END) AS taxable_items,
               COUNT(DISTINCT vendor) AS unique_vendors,
               COUNT(DISTINCT product_id) AS unique_products
        FROM order_lines
        WHERE order_id = ?
    ''', (order_id,))
    stats = {key: to_quantity(value) for key, value in row.items()}
    stats['total_line_items_price'] = as_float(row['total_line_items_price'])
    return stats


def get_order_with_line_items(db, order_id):
    """The order with ``line_items`` and ``line_item_stats``, or None if unknown."""
    order = get_order(db, order_id)
    if order is None:
        return None
    order['line_items'] = get_order_line_items(db, order_id)
    order['line_item_stats'] = get_order_line_item_stats(db, order_id)
    return order
