import logging
import os

from flask import Flask, jsonify, request
from flask_apscheduler import APScheduler
from flask_cors import CORS
from flask_migrate import Migrate, upgrade

import dashboard
from config import Config
from logging_setup import setup_logging
from models import db
from pdf_builder import money
from viewmodels import dialog_kind, dialog_record

logger = logging.getLogger(__name__)

migrate = Migrate()
scheduler = APScheduler()


def _init_database(app):
    # Apply migrations when the project ships them, otherwise create tables directly
    migration_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations')
    if os.path.exists(migration_dir) and not app.config.get('TESTING'):
        try:
            upgrade(directory=migration_dir)
            logger.info("Database migrated successfully.")
            return
        except Exception as e:
            logger.error("Migration failed: %s. Falling back to db.create_all().", e)
    db.create_all()


def _start_scheduler(app):
    if scheduler.running:
        return
    scheduler.init_app(app)
    scheduler.add_job(id='dashboard_refresh', func=dashboard.refresh, args=[app],
                      trigger='interval', seconds=app.config['DASHBOARD_REFRESH_SECONDS'])
    scheduler.start()
    logger.info("Dashboard refresh every %ss", app.config['DASHBOARD_REFRESH_SECONDS'])


def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        app.config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{os.path.join(app.instance_path, 'crm.db')}"

    if not app.config.get('TESTING'):
        setup_logging(app.config.get('LOG_DIR') or os.path.join(app.instance_path, 'logs'),
                      app.config['LOG_LEVEL'])

    db.init_app(app)
    migrate.init_app(app, db)
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    dashboard.init_app(app)

    app.jinja_env.filters['money'] = lambda value: money(value or 0, app.config['CURRENCY_SYMBOL'])
    app.jinja_env.globals['dialog_kind'] = dialog_kind
    app.jinja_env.globals['dialog_record'] = dialog_record

    from api import bp as api_bp
    from views import bp as pages_bp
    app.register_blueprint(api_bp)
    app.register_blueprint(pages_bp)

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Not Found'}), 404
        return e

    with app.app_context():
        _init_database(app)

    if not app.config.get('TESTING') and app.config.get('SCHEDULER_ENABLED', True):
        _start_scheduler(app)

    return app


if __name__ == '__main__':
    create_app().run(debug=False, port=5000)
