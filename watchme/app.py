# Load the TMDb key before watchme.metadata reads it from the environment
import watchme.secret_helper as secret_helper
secret_helper.inject_tmdb_key()

# Initialize structured logging early
from watchme.logging_config import get_logger, configure_structlog
configure_structlog()

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from watchme.logging_middleware import init_logging_middleware
from watchme.models import db
from watchme.notifications import ReleaseNotifier
from watchme.posters import PosterCache
from watchme.routes.api import bp as api_bp
import os

# Configure structured logger for app
logger = get_logger(__name__)

# Get the project root directory (parent of watchme package)
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def create_app(test_config=None):
    """
    Build the WatchMe Flask app.

    `test_config` overrides the environment-derived settings; tests use
    it to point at an in-memory database and keep the scheduler stopped.
    """
    app = Flask(__name__)

    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.getenv(
        'WATCHME_DATABASE_URL', 'sqlite:///' + os.path.join(BASE_DIR, 'watchme.db')
    )
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['NOTIFICATIONS_ENABLED'] = _env_flag('WATCHME_NOTIFICATIONS_ENABLED')
    app.config['POSTER_CACHE_DIR'] = os.getenv('POSTER_CACHE_DIR')
    if test_config:
        app.config.update(test_config)

    init_logging_middleware(app)

    db.init_app(app)
    app.register_blueprint(api_bp, url_prefix="/api")

    app.extensions['poster_cache'] = PosterCache(cache_dir=app.config['POSTER_CACHE_DIR'])

    init_db(app)

    notifier = ReleaseNotifier()
    notifier.init_app(app, start=app.config['NOTIFICATIONS_ENABLED'])
    if app.config['NOTIFICATIONS_ENABLED']:
        notifier.reschedule_all()

    @app.route('/health')
    def health():
        """Health check endpoint for deployment monitoring."""
        return jsonify({"status": "healthy", "service": "watchme"}), 200

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        # Unknown routes and wrong methods answer in JSON like the rest of the API
        return jsonify({"status": "error", "error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        logger.error("unhandled_exception", error=str(e), exc_info=True)
        return jsonify({"status": "error", "error": "An internal error occurred."}), 500

    logger.info(
        "app_created",
        database=app.config['SQLALCHEMY_DATABASE_URI'].split('://')[0],
        notifications=app.config['NOTIFICATIONS_ENABLED'],
    )
    return app


def init_db(app):
    """Initialize database tables."""
    with app.app_context():
        db.create_all()
    logger.info("database_initialized", message="Database tables initialized successfully")
