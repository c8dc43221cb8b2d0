"""Copy distinct product shopify_category values into the budget category master list."""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from budget_categories import init_budget_category_tables, sync_from_products
from config import Config
from db import Database


def main():
    db = Database.from_config(Config).open()
    try:
        init_budget_category_tables(db)
        print("SYNCING SHOPIFY CATEGORIES TO BUDGET MASTER\n")
        print("=" * 80)
        result = sync_from_products(db)
        print(f"Product categories found: {result['total']}")
        print(f"Inserted: {result['inserted']}")
        print(f"Updated:  {result['updated']}")
    finally:
        db.close()


if __name__ == '__main__':
    main()
