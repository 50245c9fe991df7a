import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from werkzeug.exceptions import HTTPException

import db
from config import Config
from errors import ApiError
from routes.members import members_bp
from routes.payments import payments_bp
from routes.activities import activities_bp
from routes.activity_types import activity_types_bp
from routes.um_units import um_units_bp
from routes.whatsapp_groups import whatsapp_groups_bp, member_groups_bp
from routes.admin_users import admin_users_bp
from routes.audit_logs import audit_logs_bp
from routes.value_lists import value_lists_bp
from routes.userauth import userauth_bp
from routes.setup import setup_bp


class AppJSONProvider(DefaultJSONProvider):
    """Numeric columns come back as Decimal, keep them numbers in JSON"""

    sort_keys = False

    @staticmethod
    def default(obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        return DefaultJSONProvider.default(obj)


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        app.logger.exception('Unhandled error')
        return jsonify({'error': 'Internal server error'}), 500


def create_app(config=None):
    settings = Config()

    app = Flask(__name__)
    app.json = AppJSONProvider(app)
    app.config.update(settings.as_flask_config())
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    # Register blueprints
    app.register_blueprint(userauth_bp)
    app.register_blueprint(setup_bp)
    app.register_blueprint(members_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(activities_bp)
    app.register_blueprint(activity_types_bp)
    app.register_blueprint(um_units_bp)
    app.register_blueprint(whatsapp_groups_bp)
    app.register_blueprint(member_groups_bp)
    app.register_blueprint(admin_users_bp)
    app.register_blueprint(audit_logs_bp)
    app.register_blueprint(value_lists_bp)

    register_error_handlers(app)

    @app.route('/')
    def home():
        return jsonify({'name': 'membership-manager', 'health': '/api/health'})

    if app.config.get('LOCAL_DB_URL'):
        with app.app_context():
            try:
                db.init_db(app.config['LOCAL_DB_URL'])
            except Exception as e:
                # reported by /api/health
                app.logger.error('Database initialization failed: %s', e)
    else:
        app.logger.warning('LOCAL_DB_URL is not set; open /api/health for details')

    return app


app = create_app()

from waitress import serve

if __name__ == '__main__':
    port = Config().PORT
    serve(app, host="0.0.0.0", port=port)
