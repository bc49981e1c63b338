"""
Flask Application Factory

This module creates and configures the Flask application that hosts the
catalog sync engine.
"""
import time
from flask import Flask, g, request, jsonify
from flask_cors import CORS

from .config import Config, get_config
from .extensions import db, migrate
from .api import sync_bp
from .services.runtime import get_sync_runtime, init_sync_runtime
from .services.sync.enumeration import RunMode
from .services.sync.exceptions import SyncFailureError
from .utils.logger import setup_logger, get_logger


def create_app(config_class=None, catalog_client=None):
    """Create and configure Flask application.

    Args:
        config_class: Configuration class to use. If None, auto-detect from environment.
        catalog_client: Catalog client to use instead of CATALOG_CLIENT_FACTORY.

    Returns:
        Configured Flask application instance
    """
    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Ensure data directories exist
    Config.init_paths()

    # Initialize logging
    setup_logger(
        log_level=app.config.get('LOG_LEVEL', 'INFO'),
        log_file=app.config.get('LOG_FILE')
    )

    logger = get_logger('app')

    # Initialize CORS
    cors_config = config_class.get_cors_config()
    CORS(app, resources={r"/api/*": cors_config})

    # Initialize database
    db.init_app(app)

    # Initialize Flask-Migrate
    migrate.init_app(app, db)

    # Job queue, task manager, token cache and the sync pipeline
    init_sync_runtime(app, catalog_client=catalog_client)

    app.register_blueprint(sync_bp, url_prefix='/api')

    _register_error_handlers(app)
    _register_request_hooks(app)
    _register_health_check(app)

    db_uri = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    logger.info(f"Application initialized, database: {db_uri}")

    return app


def start_configured_full_run(app) -> bool:
    """Start the full run named by FULL_RUN, if any.

    Returns:
        True if a run was started
    """
    logger = get_logger('app')
    mode_name = app.config.get('FULL_RUN')
    if not mode_name:
        return False

    mode = RunMode.parse(mode_name)
    with app.app_context():
        try:
            started = get_sync_runtime(app).service.perform_sync(mode)
        except SyncFailureError as e:
            logger.error(f"Startup full run ({mode.value}) not started: {e}")
            return False

    if started:
        logger.info(f"Startup full run started, mode: {mode.value}")
    return started


def _register_error_handlers(app):
    """Register global error handlers."""
    from .utils.responses import ApiResponse

    @app.errorhandler(400)
    def bad_request(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Bad request'
        return ApiResponse.error(msg, 400, 'BAD_REQUEST')

    @app.errorhandler(404)
    def not_found(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Resource not found'
        return ApiResponse.not_found(msg)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return ApiResponse.error('Method not allowed', 405, 'METHOD_NOT_ALLOWED')

    @app.errorhandler(500)
    def internal_error(error):
        logger = get_logger('error')
        logger.exception(error)
        return ApiResponse.server_error('Internal server error')


def _register_request_hooks(app):
    """Register request timing hooks."""

    @app.before_request
    def before_request():
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        if hasattr(g, 'start_time'):
            duration = (time.time() - g.start_time) * 1000
            if duration > 1000:  # Log slow requests
                logger = get_logger('slow_request')
                logger.warning(f"Slow request: {request.method} {request.path} took {duration:.2f}ms")
        return response


def _register_health_check(app):
    """Register health check endpoint."""

    @app.route('/api/health')
    def health_check():
        """Health check endpoint for container orchestration."""
        return jsonify({
            'status': 'healthy',
            'service': 'catalog-mirror'
        })
