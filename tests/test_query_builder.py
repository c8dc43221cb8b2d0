"""Tests for parameterised WHERE-clause construction."""

import pytest

from errors import ValidationError
from query_builder import (
    BudgetMonthMatch, Equals, InRange, WhereClause, like_pattern, order_filters, order_search_filters,
    page_window, pagination,
)


class TestPredicates:
    def test_equals_binds_value(self):
        assert Equals('location_id', 'L1').render('o') == ('o.location_id = ?', ['L1'])

    def test_range_is_half_open(self):
        sql, params = InRange('created_at', 'a', 'b').render()
        assert sql == 'created_at >= ? AND created_at < ?'
        assert params == ['a', 'b']

    def test_budget_month_falls_back_to_created_at(self):
        sql, params = BudgetMonthMatch('1-2025').render('o')
        assert sql == ('(o.order_budget_month = ? OR (o.order_budget_month IS NULL '
                       'AND o.created_at >= ? AND o.created_at < ?))')
        assert params == ['01-2025', '2025-01-01 00:00:00', '2025-02-01 00:00:00']

    def test_unknown_column_rejected(self):
        with pytest.raises(ValidationError):
            Equals('location_id; DROP TABLE orders', 'x').render()


class TestWhereClause:
    def test_empty_renders_nothing(self):
        assert WhereClause('o').render() == ('', [])

    def test_predicates_joined_with_and(self):
        where = WhereClause('o').add(Equals('location_id', 'L1')).add(Equals('customer_id', 'C1'))
        assert where.render() == ('WHERE o.location_id = ? AND o.customer_id = ?', ['L1', 'C1'])

    def test_values_never_interpolated(self):
        hostile = "L1' OR '1'='1"
        sql, params = WhereClause('o').add(Equals('location_id', hostile)).render()
        assert hostile not in sql
        assert params == [hostile]


class TestOrderFilters:
    def test_month_and_year(self):
        sql, params = order_filters({'locationId': 'L1', 'month': '01', 'year': '2025'}).render()
        assert sql == 'WHERE o.location_id = ? AND o.created_at >= ? AND o.created_at < ?'
        assert params == ['L1', '2025-01-01 00:00:00', '2025-02-01 00:00:00']

    def test_budget_month_wins_over_month_year(self):
        where = order_filters({'customerId': 'C1', 'budgetMonth': '02-2025', 'month': '01', 'year': '2025'})
        assert isinstance(where.predicates[-1], BudgetMonthMatch)
        assert len(where) == 2

    def test_blank_values_ignored(self):
        assert len(order_filters({'locationId': '', 'customerId': None})) == 0

    def test_company_location(self):
        sql, params = order_filters({'companyLocationId': 'CL9'}).render()
        assert sql == 'WHERE o.company_location_id = ?'
        assert params == ['CL9']

    def test_bad_month_rejected(self):
        with pytest.raises(ValidationError):
            order_filters({'locationId': 'L1', 'month': '13', 'year': '2025'})


class TestLikePattern:
    def test_wraps_text(self):
        assert like_pattern('Linens') == '%Linens%'

    def test_wildcards_escaped(self):
        assert like_pattern('100%_off') == '%100\\%\\_off%'

    def test_escape_char_doubled(self):
        assert like_pattern('a\\b') == '%a\\\\b%'


class TestOrderSearchFilters:
    def test_adds_search_keys(self):
        sql, params = order_search_filters({'locationId': 'L1', 'orderNumber': '#1001',
                                            'financialStatus': 'paid'}).render()
        assert sql == 'WHERE o.location_id = ? AND o.order_number = ? AND o.financial_status = ?'
        assert params == ['L1', '#1001', 'paid']

    def test_empty(self):
        assert order_search_filters(None).render() == ('', [])


class TestPageWindow:
    def test_defaults(self):
        assert page_window(None, None) == (1, 20, 0)

    def test_clamped(self):
        assert page_window('0', '1000') == (1, 200, 0)
        assert page_window(3, 10, default_limit=100) == (3, 10, 20)

    def test_non_integer(self):
        with pytest.raises(ValidationError, match='limit must be an integer'):
            page_window(1, 'many')

    def test_pagination_block(self):
        assert pagination(2, 10, 21) == {'page': 2, 'limit': 10, 'total': 21, 'total_pages': 3}
