"""
Parameterised WHERE-clause construction for order queries.

Filters are typed predicate objects rendered to SQL text with ``?``
placeholders plus a parameter list. Column names come from a fixed
whitelist and values are always bound, never interpolated.

Also home to the LIKE-pattern and paging helpers shared by the list views.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from errors import ValidationError
from periods import format_budget_month, month_bounds, normalize_budget_month, parse_budget_month

# Columns a predicate may reference, with or without the ``o.`` orders alias
ORDER_COLUMNS = frozenset({
    'id', 'customer_id', 'location_id', 'company_location_id',
    'created_at', 'order_budget_month', 'order_number',
    'financial_status', 'fulfillment_status',
})

# Maps request filter keys to orders columns
FILTER_COLUMNS = {
    'customerId': 'customer_id',
    'locationId': 'location_id',
    'companyLocationId': 'company_location_id',
}

# Extra keys accepted by the order search view
SEARCH_FILTER_COLUMNS = {
    'orderId': 'id',
    'orderNumber': 'order_number',
    'financialStatus': 'financial_status',
    'fulfillmentStatus': 'fulfillment_status',
}

LIKE_ESCAPE = '\\'
MAX_PAGE_SIZE = 200


def _column(name, alias=None):
    if name not in ORDER_COLUMNS:
        raise ValidationError(f"Column '{name}' cannot be filtered on")
    return f'{alias}.{name}' if alias else name


@dataclass(frozen=True)
class Equals:
    column: str
    value: Any

    def render(self, alias=None) -> Tuple[str, List[Any]]:
        return f'{_column(self.column, alias)} = ?', [self.value]


@dataclass(frozen=True)
class InRange:
    """Half-open range ``start <= column < end``."""
    column: str
    start: Any
    end: Any

    def render(self, alias=None) -> Tuple[str, List[Any]]:
        col = _column(self.column, alias)
        return f'{col} >= ? AND {col} < ?', [self.start, self.end]


@dataclass(frozen=True)
class BudgetMonthMatch:
    """Orders tagged with ``budget_month``, or untagged orders created in that month."""
    budget_month: str
    month_column: str = 'order_budget_month'
    created_column: str = 'created_at'

    def render(self, alias=None) -> Tuple[str, List[Any]]:
        month, year = parse_budget_month(self.budget_month)
        start, end = month_bounds(month, year)
        tag = _column(self.month_column, alias)
        created = _column(self.created_column, alias)
        sql = f'({tag} = ? OR ({tag} IS NULL AND {created} >= ? AND {created} < ?))'
        return sql, [format_budget_month(month, year), start, end]


class WhereClause:
    """Accumulates predicates joined with AND."""

    def __init__(self, alias=None):
        self.alias = alias
        self.predicates = []

    def add(self, predicate):
        self.predicates.append(predicate)
        return self

    def __len__(self):
        return len(self.predicates)

    def render(self) -> Tuple[str, List[Any]]:
        if not self.predicates:
            return '', []
        parts = []
        params = []
        for predicate in self.predicates:
            sql, values = predicate.render(self.alias)
            parts.append(sql)
            params.extend(values)
        return 'WHERE ' + ' AND '.join(parts), params


def _present(value):
    return value is not None and str(value).strip() != ''


def order_filters(filters: Optional[Dict[str, Any]], alias: str = 'o') -> WhereClause:
    """Build the order predicate set for a report filter dict.

    Recognised keys: ``customerId``, ``locationId``, ``companyLocationId``,
    and either ``budgetMonth`` (``MM-YYYY``) or ``month`` + ``year``.
    ``budgetMonth`` wins when both time filters are supplied.
    """
    filters = filters or {}
    where = WhereClause(alias)

    for key, column in FILTER_COLUMNS.items():
        if _present(filters.get(key)):
            where.add(Equals(column, str(filters[key]).strip()))

    if _present(filters.get('budgetMonth')):
        where.add(BudgetMonthMatch(normalize_budget_month(filters['budgetMonth'])))
    elif _present(filters.get('month')) and _present(filters.get('year')):
        start, end = month_bounds(int(filters['month']), int(filters['year']))
        where.add(InRange('created_at', start, end))

    return where


def order_search_filters(filters: Optional[Dict[str, Any]], alias: str = 'o') -> WhereClause:
    """``order_filters`` plus the order search keys (orderId, orderNumber, statuses)."""
    filters = filters or {}
    where = order_filters(filters, alias)
    for key, column in SEARCH_FILTER_COLUMNS.items():
        if _present(filters.get(key)):
            where.add(Equals(column, str(filters[key]).strip()))
    return where


def like_pattern(text):
    """``%text%`` with LIKE wildcards in ``text`` escaped; pair with ``ESCAPE '\\'``."""
    escaped = (str(text)
               .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
               .replace('%', LIKE_ESCAPE + '%')
               .replace('_', LIKE_ESCAPE + '_'))
    return f'%{escaped}%'


def _page_arg(value, name, default):
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def page_window(page, limit, default_limit=20, max_limit=MAX_PAGE_SIZE):
    """Clamp request paging arguments to ``(page, limit, offset)``.

    Page starts at 1; limit is kept within ``1..max_limit``.

    Raises:
        ValidationError: page or limit is not an integer.
    """
    page = max(_page_arg(page, 'page', 1), 1)
    limit = min(max(_page_arg(limit, 'limit', default_limit), 1), max_limit)
    return page, limit, (page - 1) * limit


def pagination(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'total_pages': (total + limit - 1) // limit,
    }
