"""
QR Loyalty service
Flask application factory
"""
import os
import re
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
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

    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # One cache per app, handed to services explicitly
    from .utils.cache import build_cache
    build_cache(app)

    # CORS for the embedded Shopify admin
    cors_origins = [
        'http://localhost:5173',
        'http://127.0.0.1:5173',
        'https://admin.shopify.com',
        re.compile(r'https://.*\.myshopify\.com'),
    ]
    CORS(
        app,
        resources={r'/api/*': {'origins': cors_origins}},
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-Shop-Domain'],
    )

    register_blueprints(app)

    from .commands import init_app as init_commands
    init_commands(app)

    register_error_handlers(app)

    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'qrloyalty'}

    logger.info(f'QR loyalty app created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register all blueprints."""
    from .api.scan import scan_bp
    from .api.points import points_bp
    from .api.rewards import rewards_bp
    from .api.loyalty import loyalty_bp

    # Public scan endpoint (printed on QR codes)
    app.register_blueprint(scan_bp, url_prefix='/scan')

    # Merchant admin API
    app.register_blueprint(points_bp, url_prefix='/api/points')
    app.register_blueprint(rewards_bp, url_prefix='/api/rewards')
    app.register_blueprint(loyalty_bp, url_prefix='/api/loyalty')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import error_response, exception_response, internal_error, ErrorCode
    from .utils.exceptions import QRLoyaltyError

    @app.errorhandler(QRLoyaltyError)
    def loyalty_error(error):
        return exception_response(error)

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(str(error), ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Not found', ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def server_error(error):
        db.session.rollback()
        return internal_error('Internal server error')
