"""Read-only product views: filtered product search and inventory stats."""

import logging

from amounts import as_float, to_quantity
from query_builder import LIKE_ESCAPE, like_pattern, page_window, pagination

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# Maps request filter keys to products columns (exact match)
FILTER_COLUMNS = {
    'productId': 'id',
    'vendor': 'vendor',
    'productType': 'product_type',
    'status': 'status',
}

# Request keys the product search accepts; ``title`` is a substring match
SEARCH_KEYS = tuple(FILTER_COLUMNS) + ('title',)


def _product_where(filters):
    filters = filters or {}
    conditions = []
    params = []
    for key, column in FILTER_COLUMNS.items():
        value = str(filters.get(key) or '').strip()
        if value:
            conditions.append(f'{column} = ?')
            params.append(value)
    title = str(filters.get('title') or '').strip()
    if title:
        conditions.append(f"title LIKE ? ESCAPE '{LIKE_ESCAPE}'")
        params.append(like_pattern(title))
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ''
    return where, params


def list_products(db, filters=None, limit=DEFAULT_LIMIT, offset=0):
    where, params = _product_where(filters)
    return db.fetch_all(
        f'SELECT id, title, product_type, vendor, shopify_category, inventory_quantity, status '
        f'FROM products {where} ORDER BY title, id LIMIT ? OFFSET ?',
        params + [limit, offset]
    )


def count_products(db, filters=None):
    where, params = _product_where(filters)
    return db.fetch_one(f'SELECT COUNT(*) AS n FROM products {where}', params)['n']


def search_products(db, filters=None, page=1, limit=DEFAULT_LIMIT):
    """One page of matching products.

    Returns:
        dict: {products: [...], pagination: {page, limit, total, total_pages}}
    """
    page, limit, offset = page_window(page, limit, default_limit=DEFAULT_LIMIT)
    total = count_products(db, filters)
    return {'products': list_products(db, filters, limit, offset), 'pagination': pagination(page, limit, total)}


def get_product_inventory_stats(db, product_id=None):
    """Inventory totals across all products, or for one product.

    A product is in stock when its inventory quantity is above zero.
    ``max_inventory`` and ``min_inventory`` are None when nothing matches.
    """
    where = 'WHERE id = ?' if product_id else ''
    params = (product_id,) if product_id else ()
    row = db.fetch_one(f'''
        SELECT COUNT(*) AS total_products,
               SUM(CASE WHEN inventory_quantity > 0 THEN 1 ELSE 0 END) AS in_stock_products,
               SUM(CASE WHEN COALESCE(inventory_quantity, 0) <= 0 THEN 1 ELSE 0 END) AS out_of_stock_products,
               SUM(inventory_quantity) AS total_inventory,
               AVG(inventory_quantity) AS average_inventory,
               MAX(inventory_quantity) AS max_inventory,
               MIN(inventory_quantity) AS min_inventory,
               COUNT(DISTINCT vendor) AS unique_vendors,
               COUNT(DISTINCT product_type) AS unique_product_types
        FROM products {where}
    ''', params)
    return {
        'total_products': to_quantity(row['total_products']),
        'in_stock_products': to_quantity(row['in_stock_products']),
        'out_of_stock_products': to_quantity(row['out_of_stock_products']),
        'total_inventory': to_quantity(row['total_inventory']),
        'average_inventory': as_float(row['average_inventory']),
        'max_inventory': None if row['max_inventory'] is None else to_quantity(row['max_inventory']),
        'min_inventory': None if row['min_inventory'] is None else to_quantity(row['min_inventory']),
        'unique_vendors': to_quantity(row['unique_vendors']),
        'unique_product_types': to_quantity(row['unique_product_types']),
    }
