"""
Flask Application Factory for Finance Assist

Creates and configures the Flask application: logging, CORS, the assist
service, routes, error handlers and request hooks.
"""

import logging
import sys
import time
from typing import Optional

from flask import Flask, g, jsonify, request
from flask_cors import CORS
import structlog

from .models import ErrorResponse, HealthResponse
from .routes import assist_bp, init_routes
from .. import __version__
from ..rag_engine import AssistService, build_assist_service
from ..rag_engine.config import Config, get_config
from ..utils.helpers import format_processing_time

logger = structlog.get_logger(__name__)

# Global application state
app_start_time = time.time()


def configure_logging(level: str = "INFO"):
    """Configure structured JSON logging on top of the standard library."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_app(testing: bool = False,
               assist_service: Optional[AssistService] = None,
               config: Optional[Config] = None) -> Flask:
    """
    Create and configure Flask application.

    Args:
        testing: Whether to configure for testing
        assist_service: Pre-built service to serve; built from config when omitted
            outside of testing
        config: Settings to use (defaults to the global configuration)

    Returns:
        Configured Flask application
    """
    config = config or get_config()
    configure_logging(config.assist.log_level)

    app = Flask(__name__)
    configure_app(app, config, testing)

    CORS(app,
         methods=["GET", "POST", "OPTIONS"],
         allow_headers=["Content-Type"],
         expose_headers=["error", "X-Error-Kind"],
         supports_credentials=False)

    # Build the assist service (skip in testing mode to avoid API calls)
    if assist_service is None and not testing:
        logger.info("Initializing assist service...")
        assist_service = build_assist_service(config)

    app.extensions["assist_service"] = assist_service
    init_routes(assist_service, precise_errors=config.assist.precise_error_status)
    app.register_blueprint(assist_bp)

    register_error_handlers(app)
    register_hooks(app)
    register_system_routes(app)

    logger.info("Flask application created successfully",
                testing=testing,
                assist_service_available=assist_service is not None,
                precise_error_status=config.assist.precise_error_status)

    return app


def configure_app(app: Flask, config: Config, testing: bool = False):
    """Configure Flask application settings."""

    if testing:
        app.config.update({
            'TESTING': True,
            'SECRET_KEY': 'test-secret-key',
            'DEBUG': False,
        })
    else:
        app.config.update({
            'SECRET_KEY': config.flask.secret_key,
            'DEBUG': config.flask.debug,
            'MAX_CONTENT_LENGTH': 1024 * 1024,  # URL lists only
        })


def _error_body(error: str, error_type: str, message: str) -> dict:
    return ErrorResponse(
        error=error,
        error_type=error_type,
        message=message,
        timestamp=int(time.time()),
    ).model_dump()


def register_error_handlers(app: Flask):
    """Register global error handlers."""

    @app.errorhandler(400)
    def bad_request(error):
        """Handle 400 errors."""
        return jsonify(_error_body("Bad Request", "bad_request", "The request was invalid or malformed.")), 400

    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify(_error_body("Not Found", "not_found", "The requested resource was not found.")), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        """Handle 405 errors."""
        return jsonify(_error_body("Method Not Allowed", "method_not_allowed",
                                   "The method is not allowed for the requested URL.")), 405

    @app.errorhandler(413)
    def request_too_large(error):
        """Handle request too large errors."""
        return jsonify(_error_body("Request Too Large", "request_too_large",
                                   "The request payload is too large.")), 413

    @app.errorhandler(500)
    def internal_server_error(error):
        """Handle 500 errors."""
        logger.error("Internal server error occurred", error=str(error))
        return jsonify(_error_body("Internal Server Error", "internal_server_error",
                                   "An unexpected error occurred. Please try again later.")), 500


def register_hooks(app: Flask):
    """Register application hooks for request logging."""

    @app.before_request
    def before_request():
        """Log incoming requests."""
        g.request_start = time.time()
        logger.info("Request started",
                    method=request.method,
                    path=request.path,
                    remote_addr=request.remote_addr,
                    user_agent=request.headers.get('User-Agent', 'Unknown')[:100])

    @app.after_request
    def after_request(response):
        """Log completed requests."""
        elapsed = time.time() - g.get("request_start", time.time())
        logger.info("Request completed",
                    method=request.method,
                    path=request.path,
                    status_code=response.status_code,
                    content_length=response.content_length,
                    duration=format_processing_time(elapsed))
        return response


def register_system_routes(app: Flask):
    """Register root and health endpoints."""

    @app.route('/')
    def root():
        """Root endpoint with basic service information."""
        return jsonify({
            "service": "Finance Assist",
            "version": __version__,
            "status": "running",
            "uptime": round(time.time() - app_start_time, 2),
            "endpoints": {
                "health": "/health",
                "ingest": "/finance/assist/save",
                "search": "/finance/assist/search"
            }
        })

    @app.route('/health')
    def health():
        """Health check with vector store status."""
        components = {"api": "healthy", "assist_service": "not_initialized", "vector_store": "unknown"}
        vector_count = None

        service = app.extensions.get("assist_service")
        if service is not None:
            components["assist_service"] = "healthy"
            try:
                vector_count = service.get_stats()["vector_store"]["total_vectors"]
                components["vector_store"] = "healthy"
            except Exception as e:
                logger.warning("Health check component failed", component="vector_store", error=str(e))
                components["vector_store"] = "error"

        healthy = all(status == "healthy" for status in components.values())
        body = HealthResponse(
            status="healthy" if healthy else "degraded",
            timestamp=int(time.time()),
            version=__version__,
            uptime=round(time.time() - app_start_time, 2),
            components=components,
            vector_count=vector_count,
        )
        return jsonify(body.model_dump()), 200 if healthy else 503


def main():
    """Run the application with the built-in server."""
    config = get_config()
    app = create_app(testing=False, config=config)

    logger.info("Starting Finance Assist API server",
                host=config.flask.host,
                port=config.flask.port,
                debug=config.flask.debug)

    app.run(
        host=config.flask.host,
        port=config.flask.port,
        debug=config.flask.debug,
        threaded=True
    )


if __name__ == '__main__':
    main()
