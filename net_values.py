"""
Net-value extraction: order lines minus refunds, per product.

Two independent reads run in parallel against the store:

  1. order lines for orders matching the filters, with the product's category
  2. refund lines whose refund's order matches the same filters, summed per
     order line

Refund totals are left-joined onto the lines in memory and the result is
grouped by (product_id, variant_id). Net figures are always derived from the
summed gross and refunded figures, so ``net = gross - refunded`` holds for
every row.

Fully refunded products stay in the output with zero (or, for over-refunded
lines, negative) net figures.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from amounts import ZERO, as_float, money, percent, to_decimal, to_quantity
from categories import category_key
from errors import ValidationError
from query_builder import order_filters
from tracing import Trace

logger = logging.getLogger(__name__)

CATEGORY_FIELDS = ('shopify_category', 'product_type')
DEFAULT_CATEGORY_FIELD = 'shopify_category'


def _category_column(category_field):
    if category_field not in CATEGORY_FIELDS:
        raise ValidationError(
            f"category_field must be one of {', '.join(CATEGORY_FIELDS)}, got '{category_field}'"
        )
    return f'p.{category_field}'


# ---------------------------------------------------------------------------
# Store reads
# ---------------------------------------------------------------------------

def fetch_order_lines(db, filters, category_field=DEFAULT_CATEGORY_FIELD):
    """Order lines of matching orders, one row per line."""
    where, params = order_filters(filters).render()
    sql = f'''
        SELECT ol.id AS order_line_id,
               ol.order_id,
               ol.product_id,
               ol.variant_id,
               ol.name AS line_name,
               ol.sku,
               ol.vendor,
               ol.price,
               ol.quantity,
               p.title AS product_title,
               {_category_column(category_field)} AS category
        FROM order_lines ol
        JOIN orders o ON o.id = ol.order_id
        LEFT JOIN products p ON p.id = ol.product_id
        {where}
    '''
    return db.fetch_all(sql, params)


def fetch_refund_totals(db, filters):
    """Refunded quantity and value (subtotal + tax) keyed by order line id."""
    where, params = order_filters(filters).render()
    sql = f'''
        SELECT olr.order_line_id,
               SUM(COALESCE(olr.quantity, 0)) AS refunded_quantity,
               SUM(COALESCE(olr.subtotal, 0) + COALESCE(olr.total_tax, 0)) AS refunded_value
        FROM order_line_refunds olr
        JOIN refunds r ON r.id = olr.refund_id
        JOIN orders o ON o.id = r.order_id
        {where}
        GROUP BY olr.order_line_id
    '''
    return {row['order_line_id']: row for row in db.fetch_all(sql, params)}


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def _new_product_row(line):
    raw_category = line.get('category')
    return {
        'product_id': line.get('product_id'),
        'variant_id': line.get('variant_id'),
        'product_name': line.get('line_name') or line.get('product_title') or 'Unknown product',
        'sku': line.get('sku'),
        'vendor': line.get('vendor'),
        'category': category_key(raw_category),
        'raw_category': raw_category,
        'gross_quantity': 0,
        'gross_value': ZERO,
        'refunded_quantity': 0,
        'refunded_value': ZERO,
        'order_ids': set(),
        'refunded_order_ids': set(),
    }


def _line_key(line):
    """Grouping key: product + variant, or the line's own identity for custom items."""
    if line.get('product_id') is not None:
        return line['product_id'], line.get('variant_id')
    return None, line.get('variant_id'), line.get('line_name'), line.get('sku'), line.get('vendor')


def combine_lines(lines, refund_totals):
    """Left-join refund totals onto order lines and group by product + variant.

    Lines without a product (custom items, fees) are grouped by name, sku and
    vendor so unrelated items never share a row.
    """
    products = {}
    for line in lines:
        key = _line_key(line)
        row = products.get(key)
        if row is None:
            row = products[key] = _new_product_row(line)

        quantity = to_quantity(line.get('quantity'))
        refund = refund_totals.get(line['order_line_id'])
        refunded_quantity = to_quantity(refund['refunded_quantity']) if refund else 0
        refunded_value = to_decimal(refund['refunded_value']) if refund else ZERO

        if refunded_quantity > quantity:
            logger.warning("Order line %s refunds %s of %s units (order %s)",
                           line['order_line_id'], refunded_quantity, quantity, line['order_id'])

        row['gross_quantity'] += quantity
        row['gross_value'] += to_decimal(line.get('price')) * quantity
        row['refunded_quantity'] += refunded_quantity
        row['refunded_value'] += refunded_value
        row['order_ids'].add(line['order_id'])
        if refunded_quantity or refunded_value:
            row['refunded_order_ids'].add(line['order_id'])

    result = []
    for row in products.values():
        row['net_quantity'] = row['gross_quantity'] - row['refunded_quantity']
        row['net_value'] = row['gross_value'] - row['refunded_value']
        row['avg_unit_price'] = (money(row['gross_value'] / row['gross_quantity'])
                                 if row['gross_quantity'] else ZERO)
        row['order_count'] = len(row['order_ids'])
        row['orders_with_refunds'] = len(row['refunded_order_ids'])
        result.append(row)

    result.sort(key=lambda r: (-r['net_value'], r['product_name']))
    return result


def extract_net_values(db, filters, category_field=DEFAULT_CATEGORY_FIELD):
    """Per-product gross, refunded and net figures for orders matching ``filters``.

    Args:
        db: open Database.
        filters: dict with customerId / locationId / companyLocationId and
                 either budgetMonth or month + year. Empty filters match every order.
        category_field: 'shopify_category' or 'product_type'.

    Returns:
        list[dict]: one row per (product_id, variant_id), money as Decimal.

    Raises:
        QueryError: either read failed.
    """
    _category_column(category_field)
    with ThreadPoolExecutor(max_workers=2) as executor:
        lines_future = executor.submit(fetch_order_lines, db, filters, category_field)
        refunds_future = executor.submit(fetch_refund_totals, db, filters)
        lines = lines_future.result()
        refund_totals = refunds_future.result()

    return combine_lines(lines, refund_totals)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def summarize_product_rows(rows):
    """Order counts and gross/refunded/net totals across product rows."""
    order_ids = set()
    refunded_order_ids = set()
    gross = refunded = net = ZERO
    for row in rows:
        order_ids |= row.get('order_ids', set())
        refunded_order_ids |= row.get('refunded_order_ids', set())
        gross += to_decimal(row.get('gross_value'))
        refunded += to_decimal(row.get('refunded_value'))
        net += to_decimal(row.get('net_value'))
    return {
        'totalOrders': len(order_ids),
        'ordersWithRefunds': len(refunded_order_ids),
        'grossValue': as_float(gross),
        'refundedValue': as_float(refunded),
        'totalValue': as_float(net),
        'refundRate': percent(len(refunded_order_ids), len(order_ids)),
    }


def product_row_output(row):
    """JSON-safe copy of a product row."""
    return {
        'product_id': row['product_id'],
        'variant_id': row['variant_id'],
        'product_name': row['product_name'],
        'sku': row['sku'],
        'vendor': row['vendor'],
        'category': row['category'],
        'gross_quantity': row['gross_quantity'],
        'gross_value': as_float(row['gross_value']),
        'refunded_quantity': row['refunded_quantity'],
        'refunded_value': as_float(row['refunded_value']),
        'net_quantity': row['net_quantity'],
        'net_value': as_float(row['net_value']),
        'avg_unit_price': as_float(row['avg_unit_price']),
        'order_count': row['order_count'],
        'orders_with_refunds': row['orders_with_refunds'],
    }


def build_product_report(db, filters, category_field=DEFAULT_CATEGORY_FIELD):
    """Product-level net report for the filters."""
    trace = Trace('product_report', filters)
    trace.set('category_field', category_field)
    rows = extract_net_values(db, filters, category_field)
    trace.step("extract", product_rows=len(rows))

    report = {'products': [product_row_output(r) for r in rows]}
    report.update(summarize_product_rows(rows))
    report['totalProducts'] = len(rows)
    trace.step("summary", total_orders=report['totalOrders'])
    trace.finish(products=len(rows))
    return report
