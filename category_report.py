"""
Category report: net spend per category against the location's budget.

Product rows from the net-value extractor are grouped by their (already
decoded) category. Every budgeted category without activity is then merged
in with zero actuals, so under-spend stays visible. Buckets are ordered by net
value, largest first, with ties broken by name.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from amounts import ZERO, as_float, percent, to_decimal, to_quantity
from budget_resolver import BudgetMap, resolve_budget_map
from categories import UNCATEGORIZED
from net_values import (
    DEFAULT_CATEGORY_FIELD, extract_net_values, product_row_output, summarize_product_rows,
)
from periods import format_budget_month, normalize_budget_month
from tracing import Trace

logger = logging.getLogger(__name__)


def _new_bucket(name, entry=None):
    return {
        'category_name': name,
        'category_id': entry.category_id if entry else None,
        'products': [],
        'total_quantity': 0,
        'total_value': ZERO,
        'gross_quantity': 0,
        'gross_value': ZERO,
        'refunded_quantity': 0,
        'refunded_value': ZERO,
        'budget': entry.amount if entry else ZERO,
        'has_budget': entry is not None,
    }


def aggregate_categories(rows, budget_map=None):
    """Group product rows into category buckets and merge in budget-only categories.

    Args:
        rows: product rows from net_values.extract_net_values.
        budget_map: BudgetMap for the report's location, or None.

    Returns:
        list[dict]: buckets with Decimal money, sorted by total_value desc.
    """
    budget_map = budget_map or BudgetMap(location_id=None)
    buckets = {}
    matched_ids = set()

    for row in rows:
        name = row.get('category') or UNCATEGORIZED
        bucket = buckets.get(name)
        if bucket is None:
            entry = budget_map.entry_for(name)
            bucket = buckets[name] = _new_bucket(name, entry)
            if entry is not None:
                matched_ids.add(entry.category_id)

        bucket['products'].append(row)
        bucket['total_quantity'] += to_quantity(row.get('net_quantity'))
        bucket['total_value'] += to_decimal(row.get('net_value'))
        bucket['gross_quantity'] += to_quantity(row.get('gross_quantity'))
        bucket['gross_value'] += to_decimal(row.get('gross_value'))
        bucket['refunded_quantity'] += to_quantity(row.get('refunded_quantity'))
        bucket['refunded_value'] += to_decimal(row.get('refunded_value'))

    for entry in budget_map:
        if entry.category_id in matched_ids or entry.name in buckets:
            continue
        buckets[entry.name] = _new_bucket(entry.name, entry)
        matched_ids.add(entry.category_id)

    result = list(buckets.values())
    for bucket in result:
        bucket['variance'] = bucket['budget'] - bucket['total_value']
        bucket['percent_used'] = percent(bucket['total_value'], bucket['budget'])
    result.sort(key=lambda b: (-b['total_value'], b['category_name']))
    return result


def category_bucket_output(bucket):
    """JSON-safe copy of a bucket."""
    return {
        'category_name': bucket['category_name'],
        'category_id': bucket['category_id'],
        'products': [product_row_output(p) for p in bucket['products']],
        'total_quantity': bucket['total_quantity'],
        'total_value': as_float(bucket['total_value']),
        'gross_quantity': bucket['gross_quantity'],
        'gross_value': as_float(bucket['gross_value']),
        'refunded_quantity': bucket['refunded_quantity'],
        'refunded_value': as_float(bucket['refunded_value']),
        'budget': as_float(bucket['budget']),
        'has_budget': bucket['has_budget'],
        'variance': as_float(bucket['variance']),
        'percent_used': bucket['percent_used'],
    }


def report_location(filters):
    """Location whose budget applies: locationId, else companyLocationId."""
    filters = filters or {}
    return filters.get('locationId') or filters.get('companyLocationId') or None


def report_budget_month(filters):
    """``MM-YYYY`` the report covers, from budgetMonth or month + year."""
    filters = filters or {}
    if filters.get('budgetMonth'):
        return normalize_budget_month(filters['budgetMonth'])
    if filters.get('month') and filters.get('year'):
        return format_budget_month(filters['month'], filters['year'])
    return None


def build_category_report(db, filters, category_field=DEFAULT_CATEGORY_FIELD):
    """Net spend per category vs budget for the filters.

    The extractor reads and the budget resolution run in parallel; budgets are
    only resolved when the filters name a location.

    Returns:
        dict: {categories, totalOrders, ordersWithRefunds, totalCategories,
               grossValue, refundedValue, totalValue, refundRate,
               totalBudget, budgetMonth, budgetMode, locationId}
    """
    trace = Trace('category_report', filters)
    trace.set('category_field', category_field)
    location_id = report_location(filters)
    budget_month = report_budget_month(filters)

    with ThreadPoolExecutor(max_workers=2) as executor:
        rows_future = executor.submit(extract_net_values, db, filters, category_field)
        budget_future = None
        if location_id:
            budget_future = executor.submit(resolve_budget_map, db, location_id, budget_month)
        rows = rows_future.result()
        budget_map = budget_future.result() if budget_future else BudgetMap(location_id=None)
    trace.step("extract", product_rows=len(rows))
    trace.step("resolve_budget", mode=budget_map.mode, budget_categories=len(budget_map))

    buckets = aggregate_categories(rows, budget_map)
    trace.step("aggregate", categories=len(buckets))

    report = {'categories': [category_bucket_output(b) for b in buckets]}
    report.update(summarize_product_rows(rows))
    report.update({
        'totalCategories': len(buckets),
        'totalBudget': as_float(budget_map.total),
        'budgetMonth': budget_month,
        'budgetMode': budget_map.mode,
        'locationId': location_id,
    })
    trace.step("summary", total_orders=report['totalOrders'], total_value=report['totalValue'])
    trace.finish(categories=len(buckets), budget_mode=budget_map.mode)
    return report
