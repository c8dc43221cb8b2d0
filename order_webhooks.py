"""
Order budget-month tagging.

Shopify order webhooks may carry an ``order_budget_month`` note attribute set
at checkout. The tag (or, without one, the created-at month) is written to
``orders.order_budget_month``; once set it decides which budget month the
order's spend counts against.
"""

import logging
from datetime import datetime

from errors import ValidationError
from periods import budget_month_from_timestamp, normalize_budget_month

logger = logging.getLogger(__name__)

BUDGET_MONTH_ATTRIBUTE = 'order_budget_month'


def extract_budget_month(payload):
    """Budget month for an order payload, or None.

    The ``order_budget_month`` note attribute wins; otherwise the month is
    derived from ``created_at``.
    """
    for attr in payload.get('note_attributes') or []:
        if isinstance(attr, dict) and attr.get('name') == BUDGET_MONTH_ATTRIBUTE and attr.get('value'):
            try:
                return normalize_budget_month(attr['value'])
            except ValidationError:
                logger.warning("Ignoring malformed %s '%s' on order %s",
                               BUDGET_MONTH_ATTRIBUTE, attr['value'], payload.get('id'))
                break

    created_at = payload.get('created_at')
    if created_at:
        return budget_month_from_timestamp(created_at)
    return None


def apply_order_budget_month(db, payload):
    """Write the budget month for the webhook's order.

    Returns:
        dict: {orderId, orderNumber, orderBudgetMonth, action} where action is
              'updated', 'not_found' or 'skipped' (no month could be determined).
    """
    if not isinstance(payload, dict) or payload.get('id') in (None, ''):
        raise ValidationError("Webhook payload must include the order id")
    order_id = str(payload['id'])
    budget_month = extract_budget_month(payload)
    result = {
        'orderId': order_id,
        'orderNumber': payload.get('order_number'),
        'orderBudgetMonth': budget_month,
    }

    with db.connection() as conn:
        existing = conn.execute('SELECT id FROM orders WHERE id = ?', (order_id,)).fetchone()
        if existing is None:
            logger.warning("Webhook for unknown order %s, no update made", order_id)
            result['action'] = 'not_found'
            return result
        if budget_month is None:
            result['action'] = 'skipped'
            return result
        conn.execute(
            'UPDATE orders SET order_budget_month = ?, updated_at = ? WHERE id = ?',
            (budget_month, datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S'), order_id)
        )

    logger.info("Order %s budget month set to %s", order_id, budget_month)
    result['action'] = 'updated'
    return result


def backfill_order_budget_months(db, batch_size=500):
    """Tag every untagged order with its created-at month. Returns the number tagged."""
    updated = 0
    last_id = ''
    while True:
        rows = db.fetch_all('''
            SELECT id, created_at FROM orders
            WHERE order_budget_month IS NULL AND id > ?
            ORDER BY id
            LIMIT ?
        ''', (last_id, batch_size))
        if not rows:
            break
        with db.connection() as conn:
            for row in rows:
                try:
                    budget_month = budget_month_from_timestamp(row['created_at'])
                except ValidationError:
                    logger.warning("Order %s has unparseable created_at '%s'", row['id'], row['created_at'])
                    continue
                conn.execute(
                    'UPDATE orders SET order_budget_month = ? WHERE id = ?',
                    (budget_month, row['id'])
                )
                updated += 1
        last_id = rows[-1]['id']
        logger.info("Backfilled budget month on %s orders so far", updated)
    return updated
