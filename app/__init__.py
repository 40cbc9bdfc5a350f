from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from app.logging_config import configure_logging, get_logger
from app.models import db

logger = get_logger(__name__)


def create_app(config_class=None):
    # Import config after dotenv is loaded
    from app.config import get_config
    from app.db_config import configure_database

    # Get the appropriate config class based on environment
    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(log_level=app.config.get("LOG_LEVEL", "INFO"), log_file=app.config.get("LOG_FILE"))

    # Configure database separately
    configure_database(app)

    # Log the environment being used
    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    db.init_app(app)

    # Register blueprints
    from app.planning import planning_bp
    app.register_blueprint(planning_bp)

    with app.app_context():
        # Only create tables if they don't exist
        db.create_all()

        if app.config.get("SEED_TEMPLATES"):
            from app.seed import seed_default_templates
            try:
                seed_default_templates()
            except Exception as e:
                logger.error("Failed to seed default templates", error=str(e))

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "environment": config_class.ENV}), 200

    # Global error handler so every failure is returned as JSON
    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle all exceptions and return a JSON error body"""
        if isinstance(e, HTTPException):
            status_code = e.code
        else:
            logger.error("Unhandled exception", error=str(e), exc_info=True)
            status_code = 500

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    return app
