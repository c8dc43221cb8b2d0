"""
Replicated Shopify tables.

Orders, order lines, refunds, refund lines and products are written by the
store sync, not by this service. The DDL here mirrors the replicated schema so
development databases and tests have the same shape to read from.
"""

import logging

logger = logging.getLogger(__name__)

# (table, column, type) added to the replicated schema after its first version
ADDED_COLUMNS = [
    ('orders', 'order_budget_month', 'TEXT'),
    ('order_lines', 'taxable', 'INTEGER DEFAULT 1'),
    ('order_lines', 'requires_shipping', 'INTEGER DEFAULT 1'),
    ('order_lines', 'gift_card', 'INTEGER DEFAULT 0'),
]


def init_warehouse_tables(db):
    """Create the replicated order/product tables if they do not exist."""
    with db.connection() as conn:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS orders (
                id TEXT PRIMARY KEY,
                customer_id TEXT,
                location_id TEXT,
                company_location_id TEXT,
                order_number TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP,
                financial_status TEXT,
                fulfillment_status TEXT,
                total_price REAL DEFAULT 0,
                currency TEXT DEFAULT 'USD',
                order_budget_month TEXT,
                shipping_address_company TEXT,
                shipping_address_city TEXT,
                shipping_address_province TEXT
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS order_lines (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL REFERENCES orders(id),
                product_id TEXT,
                variant_id TEXT,
                name TEXT,
                sku TEXT,
                vendor TEXT,
                price REAL DEFAULT 0,
                quantity INTEGER DEFAULT 0,
                taxable INTEGER DEFAULT 1,
                requires_shipping INTEGER DEFAULT 1,
                gift_card INTEGER DEFAULT 0
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS refunds (
                id TEXT PRIMARY KEY,
                order_id TEXT NOT NULL REFERENCES orders(id),
                created_at TIMESTAMP
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS order_line_refunds (
                id TEXT PRIMARY KEY,
                refund_id TEXT NOT NULL REFERENCES refunds(id),
                order_line_id TEXT NOT NULL REFERENCES order_lines(id),
                quantity INTEGER DEFAULT 0,
                subtotal REAL DEFAULT 0,
                total_tax REAL
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS products (
                id TEXT PRIMARY KEY,
                title TEXT,
                product_type TEXT,
                vendor TEXT,
                shopify_category TEXT,
                inventory_quantity INTEGER DEFAULT 0,
                status TEXT
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS company_locations (
                id TEXT PRIMARY KEY,
                name TEXT
            )
        ''')

        # Replicas created before these columns existed
        for table, column, col_type in ADDED_COLUMNS:
            db.add_column(conn, table, column, col_type)

        conn.execute('CREATE INDEX IF NOT EXISTS idx_orders_location ON orders(location_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_orders_company_location ON orders(company_location_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_orders_budget_month ON orders(order_budget_month)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_order_lines_order ON order_lines(order_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_refunds_order ON refunds(order_id)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_line_refunds_line ON order_line_refunds(order_line_id)')

    logger.info("Warehouse tables initialized")


def get_available_locations(db):
    """Company locations that appear on orders, with a display name.

    The display name prefers the shipping company, then city/province.
    """
    rows = db.fetch_all('''
        SELECT o.company_location_id AS location_id,
               MAX(cl.name) AS location_name,
               MAX(o.shipping_address_company) AS company,
               MAX(o.shipping_address_city) AS city,
               MAX(o.shipping_address_province) AS province,
               COUNT(DISTINCT o.id) AS order_count
        FROM orders o
        LEFT JOIN company_locations cl ON cl.id = o.company_location_id
        WHERE o.company_location_id IS NOT NULL AND o.company_location_id <> ''
        GROUP BY o.company_location_id
        ORDER BY order_count DESC, o.company_location_id
    ''')
    locations = []
    for row in rows:
        place = ', '.join(p for p in (row['city'], row['province']) if p)
        row['display_name'] = (row['location_name'] or row['company'] or place
                               or f"Location {row['location_id']}")
        locations.append(row)
    return locations
