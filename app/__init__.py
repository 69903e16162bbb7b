"""
Referral Rewards Ledger
Flask application factory
"""
import os
import logging
from flask import Flask, jsonify
from flask_cors import CORS

from .extensions import db, migrate, enable_sqlite_savepoints
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        enable_sqlite_savepoints(db.engine)

    # Storefront origins only
    CORS(
        app,
        origins=app.config.get('CORS_ORIGINS', []),
        supports_credentials=True,
        methods=['GET', 'POST', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Background scheduler for queued side effects and the ledger audit
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'OK', 'message': 'Server is running'}

    @app.route('/')
    def index():
        return 'Referral Program API is up and running!'

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.referrals import referrals_bp
    from .api.reviews import reviews_bp
    from .webhooks.shopify import webhooks_bp

    # Referral program routes
    app.register_blueprint(referrals_bp, url_prefix='/api/referral')

    # Judge.me review proxy
    app.register_blueprint(reviews_bp, url_prefix='/api')

    # Webhook routes
    app.register_blueprint(webhooks_bp, url_prefix='/api/shopify')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import bad_request, internal_error, not_found, rewards_error_response
    from .utils.exceptions import RewardsError

    @app.errorhandler(RewardsError)
    def handle_rewards_error(error):
        if error.status_code >= 500:
            db.session.rollback()
        return rewards_error_response(error)

    @app.errorhandler(400)
    def handle_bad_request(error):
        return bad_request('Bad request')

    @app.errorhandler(404)
    def handle_not_found(error):
        return not_found()

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        return internal_error()
