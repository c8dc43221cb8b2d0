"""Tag every order without an order_budget_month with its created-at month."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from db import Database
from order_webhooks import backfill_order_budget_months


def main():
    db = Database.from_config(Config).open()
    try:
        print("BACKFILLING ORDER BUDGET MONTHS\n")
        print("=" * 80)
        updated = backfill_order_budget_months(db)
        print(f"\nTagged {updated} orders")
    finally:
        db.close()


if __name__ == '__main__':
    main()
