"""
Flask application factory for the budget reports service.

The Database is constructed and opened here, shared through
``app.extensions['database']`` and closed when the process exits.
"""

import atexit

from flask import Flask

from config import Config
from db import Database
from logging_config import logger
from routes import reports_bp


def init_all_tables(db):
    """Create every table the service reads or writes."""
    from warehouse import init_warehouse_tables
    from budget_categories import init_budget_category_tables, seed_default_categories
    from budget_tracker import init_budget_tables
    from location_census import init_census_tables

    init_warehouse_tables(db)
    init_budget_category_tables(db)
    init_budget_tables(db)
    init_census_tables(db)
    seed_default_categories(db)


def create_app(config=Config, database=None):
    app = Flask(__name__)
    app.secret_key = config.FLASK_SECRET_KEY
    app.config['APP_CONFIG'] = config
    app.config['DEBUG'] = config.DEBUG

    db = database or Database.from_config(config)
    db.open()
    init_all_tables(db)
    app.extensions['database'] = db
    if database is None:
        atexit.register(db.close)

    app.register_blueprint(reports_bp)

    @app.route('/health')
    def health():
        return {'status': 'ok', 'database': 'postgresql' if db.is_postgres else 'sqlite'}

    logger.info("Budget reports app created (database: %s)", 'postgresql' if db.is_postgres else 'sqlite')
    return app


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=Config.PORT, debug=Config.DEBUG)
