"""
API routes for the budget reports service.

Handlers stay thin: parse arguments, call the module function, return JSON.
Errors map to status codes in ``_error_response``.
"""

from datetime import date

from flask import Blueprint, current_app, jsonify, request

from budget_categories import (
    category_options, create_category, deactivate_category, get_category,
    list_categories, sync_from_products, update_category,
)
from budget_resolver import resolve_budget_map
from budget_tracker import (
    assign_budget_to_location, create_budget, delete_budget, get_all_assignments,
    get_assignments_by_budget, get_assignments_by_location, get_budget, get_budget_stats,
    list_budgets, remove_assignment, update_budget,
)
from category_report import build_category_report, report_budget_month, report_location
from errors import NotFoundError, QueryError, ValidationError
from location_census import delete_census, get_census_locations, list_census, upsert_census
from logging_config import logger
from net_values import DEFAULT_CATEGORY_FIELD, build_product_report
from order_webhooks import apply_order_budget_month
from orders import SEARCH_KEYS as ORDER_SEARCH_KEYS, get_order_with_line_items, search_orders
from periods import current_month_and_year, format_budget_month, parse_budget_month
from products import SEARCH_KEYS as PRODUCT_SEARCH_KEYS, get_product_inventory_stats, search_products
from report_backups import snapshot_report
from warehouse import get_available_locations

reports_bp = Blueprint('reports_bp', __name__)


# ====================================================================
# Helpers
# ====================================================================

def _db():
    return current_app.extensions['database']


def _config():
    return current_app.config['APP_CONFIG']


def _json_body():
    return request.get_json(force=True, silent=True) or {}


def _user():
    return request.headers.get('X-User') or 'admin'


def _error_response(e, action):
    """Map an exception raised while handling ``action`` to a JSON error response."""
    if isinstance(e, NotFoundError):
        return jsonify({'error': str(e)}), 404
    if isinstance(e, ValueError):
        return jsonify({'error': str(e)}), 400
    if isinstance(e, QueryError):
        logger.error("Query failed while fetching %s: %s", action, e)
        body = {'error': f'Failed to fetch {action}'}
        if _config().DEBUG:
            body['details'] = str(e)
        return jsonify(body), 500
    logger.error("Error handling %s: %s", action, e, exc_info=True)
    return jsonify({'error': str(e)}), 500


def _check_report_year(year):
    min_year = _config().MIN_REPORT_YEAR
    max_year = date.today().year + 1
    if not min_year <= year <= max_year:
        raise ValidationError(f"Invalid year. Must be between {min_year} and {max_year}")


def _report_filters(args):
    """Validate report query parameters into a filter dict.

    At least one of customerId, locationId, companyLocationId is required.
    budgetMonth takes precedence over month/year, which default to the
    current month.
    """
    filters = {
        'customerId': (args.get('customerId') or '').strip() or None,
        'locationId': (args.get('locationId') or '').strip() or None,
        'companyLocationId': (args.get('companyLocationId') or '').strip() or None,
    }
    if not any(filters.values()):
        raise ValidationError("At least one of customerId, locationId or companyLocationId is required")

    if args.get('budgetMonth'):
        month, year = parse_budget_month(args['budgetMonth'])
        _check_report_year(year)
        filters['budgetMonth'] = format_budget_month(month, year)
        return filters

    current_month, current_year = current_month_and_year()
    try:
        month = int(args.get('month') or current_month)
        year = int(args.get('year') or current_year)
    except ValueError:
        raise ValidationError("month and year must be numbers")
    if not 1 <= month <= 12:
        raise ValidationError("Invalid month. Must be between 1 and 12")
    _check_report_year(year)
    filters['month'] = f'{month:02d}'
    filters['year'] = str(year)
    return filters


def _category_field():
    return request.args.get('category_field') or DEFAULT_CATEGORY_FIELD


def _search_filters(args, keys):
    """Non-blank search arguments among ``keys``, stripped."""
    return {key: args[key].strip() for key in keys if (args.get(key) or '').strip()}


def _order_search_filters(args):
    """Order search filters; a period, when given, is validated like a report period."""
    filters = _search_filters(args, ORDER_SEARCH_KEYS)
    if 'budgetMonth' in filters:
        month, year = parse_budget_month(filters['budgetMonth'])
        _check_report_year(year)
        filters['budgetMonth'] = format_budget_month(month, year)
    elif 'month' in filters or 'year' in filters:
        try:
            month = int(filters.get('month', ''))
            year = int(filters.get('year', ''))
        except ValueError:
            raise ValidationError("month and year must both be given as numbers")
        if not 1 <= month <= 12:
            raise ValidationError("Invalid month. Must be between 1 and 12")
        _check_report_year(year)
    return filters


# ====================================================================
# Reports
# ====================================================================

@reports_bp.route('/api/monthly-orders-by-category', methods=['GET'])
def monthly_orders_by_category():
    try:
        filters = _report_filters(request.args)
        report = build_category_report(_db(), filters, _category_field())
    except Exception as e:
        return _error_response(e, 'monthly orders by category')

    snapshot_report(_config(), report_location(filters), report_budget_month(filters), report)
    return jsonify({'success': True, 'filters': filters, **report})


@reports_bp.route('/api/monthly-orders', methods=['GET'])
def monthly_orders():
    try:
        filters = _report_filters(request.args)
        report = build_product_report(_db(), filters, _category_field())
        return jsonify({'success': True, 'filters': filters, **report})
    except Exception as e:
        return _error_response(e, 'monthly orders')


@reports_bp.route('/api/budget-map', methods=['GET'])
def budget_map():
    location_id = request.args.get('locationId')
    try:
        if not location_id:
            raise ValidationError("locationId is required")
        resolved = resolve_budget_map(_db(), location_id, request.args.get('budgetMonth'))
        return jsonify({
            'locationId': resolved.location_id,
            'budgetMonth': resolved.budget_month,
            'mode': resolved.mode,
            'censusAmount': float(resolved.census_amount) if resolved.census_amount is not None else None,
            'daysInMonth': resolved.days_in_month,
            'budgets': {name: float(amount) for name, amount in resolved.as_name_map().items()},
            'total': float(resolved.total),
        })
    except Exception as e:
        return _error_response(e, 'budget map')


@reports_bp.route('/api/locations', methods=['GET'])
def locations():
    try:
        return jsonify(get_available_locations(_db()))
    except Exception as e:
        return _error_response(e, 'locations')


# ====================================================================
# Orders and products
# ====================================================================

@reports_bp.route('/api/orders', methods=['GET'])
def get_orders():
    try:
        filters = _order_search_filters(request.args)
        result = search_orders(_db(), filters, page=request.args.get('page', 1),
                               limit=request.args.get('limit'))
        return jsonify({'filters': filters, **result})
    except Exception as e:
        return _error_response(e, 'orders')


@reports_bp.route('/api/orders/<order_id>', methods=['GET'])
def get_order_detail(order_id):
    try:
        order = get_order_with_line_items(_db(), order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return jsonify(order)
    except Exception as e:
        return _error_response(e, f'order {order_id}')


@reports_bp.route('/api/products', methods=['GET'])
def get_products():
    try:
        filters = _search_filters(request.args, PRODUCT_SEARCH_KEYS)
        result = search_products(_db(), filters, page=request.args.get('page', 1),
                                 limit=request.args.get('limit'))
        result['stats'] = get_product_inventory_stats(_db(), filters.get('productId'))
        return jsonify({'filters': filters, **result})
    except Exception as e:
        return _error_response(e, 'products')


# ====================================================================
# Budgets
# ====================================================================

@reports_bp.route('/api/budgets', methods=['GET'])
def get_budgets():
    try:
        return jsonify(list_budgets(_db(), status=request.args.get('status')))
    except Exception as e:
        return _error_response(e, 'budgets')


@reports_bp.route('/api/budgets', methods=['POST'])
def post_budget():
    try:
        budget_id = create_budget(_db(), _json_body(), user=_user())
        return jsonify(get_budget(_db(), budget_id)), 201
    except Exception as e:
        return _error_response(e, 'budget create')


@reports_bp.route('/api/budgets/stats', methods=['GET'])
def budget_stats():
    try:
        return jsonify(get_budget_stats(_db()))
    except Exception as e:
        return _error_response(e, 'budget stats')


@reports_bp.route('/api/budgets/<int:budget_id>', methods=['GET'])
def get_budget_detail(budget_id):
    try:
        budget = get_budget(_db(), budget_id)
        if budget is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        return jsonify(budget)
    except Exception as e:
        return _error_response(e, f'budget {budget_id}')


@reports_bp.route('/api/budgets/<int:budget_id>', methods=['PUT'])
def put_budget(budget_id):
    try:
        return jsonify(update_budget(_db(), budget_id, _json_body()))
    except Exception as e:
        return _error_response(e, f'budget {budget_id} update')


@reports_bp.route('/api/budgets/<int:budget_id>', methods=['DELETE'])
def remove_budget(budget_id):
    try:
        if not delete_budget(_db(), budget_id):
            raise NotFoundError(f"Budget {budget_id} not found")
        return jsonify({'success': True})
    except Exception as e:
        return _error_response(e, f'budget {budget_id} delete')


# ====================================================================
# Budget categories
# ====================================================================

@reports_bp.route('/api/budget-categories', methods=['GET'])
def get_budget_categories():
    args = request.args
    try:
        return jsonify(list_categories(
            _db(),
            page=args.get('page', 1),
            limit=args.get('limit', 20),
            search=args.get('search', ''),
            sort_by=args.get('sortBy', 'category_name'),
            sort_order=args.get('sortOrder', 'ASC'),
            active_only=args.get('includeInactive', 'false').lower() != 'true',
        ))
    except Exception as e:
        return _error_response(e, 'budget categories')


@reports_bp.route('/api/budget-categories', methods=['POST'])
def post_budget_category():
    try:
        return jsonify(create_category(_db(), _json_body(), user=_user())), 201
    except Exception as e:
        return _error_response(e, 'budget category create')


@reports_bp.route('/api/budget-categories/options', methods=['GET'])
def get_budget_category_options():
    try:
        return jsonify(category_options(_db()))
    except Exception as e:
        return _error_response(e, 'budget category options')


@reports_bp.route('/api/budget-categories/sync', methods=['POST'])
def post_budget_category_sync():
    try:
        return jsonify(sync_from_products(_db()))
    except Exception as e:
        return _error_response(e, 'budget category sync')


@reports_bp.route('/api/budget-categories/<int:category_id>', methods=['GET'])
def get_budget_category(category_id):
    try:
        category = get_category(_db(), category_id)
        if category is None:
            raise NotFoundError(f"Budget category {category_id} not found")
        return jsonify(category)
    except Exception as e:
        return _error_response(e, f'budget category {category_id}')


@reports_bp.route('/api/budget-categories/<int:category_id>', methods=['PUT'])
def put_budget_category(category_id):
    try:
        return jsonify(update_category(_db(), category_id, _json_body(), user=_user()))
    except Exception as e:
        return _error_response(e, f'budget category {category_id} update')


@reports_bp.route('/api/budget-categories/<int:category_id>', methods=['DELETE'])
def delete_budget_category(category_id):
    try:
        deactivate_category(_db(), category_id, user=_user())
        return jsonify({'success': True})
    except Exception as e:
        return _error_response(e, f'budget category {category_id} delete')


# ====================================================================
# Budget location assignments
# ====================================================================

@reports_bp.route('/api/budget-assignments', methods=['GET'])
def get_budget_assignments():
    try:
        if request.args.get('locationId'):
            return jsonify(get_assignments_by_location(_db(), request.args['locationId']))
        if request.args.get('budgetId'):
            return jsonify(get_assignments_by_budget(_db(), request.args.get('budgetId', type=int)))
        return jsonify(get_all_assignments(_db()))
    except Exception as e:
        return _error_response(e, 'budget assignments')


@reports_bp.route('/api/budget-assignments', methods=['POST'])
def post_budget_assignment():
    data = _json_body()
    try:
        if data.get('budget_id') in (None, ''):
            raise ValidationError("budget_id is required")
        assignment = assign_budget_to_location(
            _db(), int(data['budget_id']), data.get('location_id'), assigned_by=_user()
        )
        return jsonify(assignment), 201
    except Exception as e:
        return _error_response(e, 'budget assignment')


@reports_bp.route('/api/budget-assignments/<int:assignment_id>', methods=['DELETE'])
def delete_budget_assignment(assignment_id):
    try:
        if not remove_assignment(_db(), assignment_id):
            raise NotFoundError(f"Active assignment {assignment_id} not found")
        return jsonify({'success': True})
    except Exception as e:
        return _error_response(e, f'budget assignment {assignment_id}')


# ====================================================================
# Location census
# ====================================================================

@reports_bp.route('/api/location-census', methods=['GET'])
def get_location_census():
    args = request.args
    try:
        return jsonify({
            'census': list_census(_db(), location_id=args.get('locationId'),
                                  month=args.get('month', type=int), year=args.get('year', type=int)),
            'locations': get_census_locations(_db()),
        })
    except Exception as e:
        return _error_response(e, 'location census')


@reports_bp.route('/api/location-census', methods=['POST'])
def post_location_census():
    data = _json_body()
    try:
        row = upsert_census(_db(), data.get('location_id'), data.get('census_month'),
                            data.get('census_amount'))
        return jsonify(row), 201
    except Exception as e:
        return _error_response(e, 'location census save')


@reports_bp.route('/api/location-census/<location_id>/<census_month>', methods=['DELETE'])
def delete_location_census(location_id, census_month):
    try:
        if not delete_census(_db(), location_id, census_month):
            raise NotFoundError(f"No census for location {location_id} in {census_month}")
        return jsonify({'success': True})
    except Exception as e:
        return _error_response(e, 'location census delete')


# ====================================================================
# Webhooks
# ====================================================================

@reports_bp.route('/api/webhook', methods=['POST'])
def order_webhook():
    try:
        result = apply_order_budget_month(_db(), _json_body())
        return jsonify({'success': True, 'result': result})
    except Exception as e:
        return _error_response(e, 'webhook')
