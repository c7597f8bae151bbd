# app.py
"""
Flask Application Factory for the Recruiter Outreach Service

This application factory wires:
- JWT-authenticated REST blueprints (auth, config, recruiters, emails)
- SQLAlchemy persistence and the selectable recruiter store backend
- The outreach dispatcher with its per-account rate gate
- Uniform JSON error handling and logging
- Security headers, CORS and request rate limiting
"""

import os
import logging
import logging.handlers
import traceback
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from flask import Flask, request, jsonify, g
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.exceptions import HTTPException

from config import CONFIG_BY_NAME
from core.database import create_database_engine, create_session_factory
from core.errors import AppError
from core.security_manager import init_security_manager
from core.template_engine import OutreachTemplateEngine
from services.accounts import AccountService
from services.body_generator import ChatCompletionBodyGenerator
from services.dispatch import OutreachDispatcher
from services.stores import SqlConfigurationStore, build_recruiter_store
from api.auth import auth_bp
from api.configuration import configuration_bp
from api.recruiters import recruiters_bp
from api.emails import emails_bp
from middleware.security import limiter, security_headers

LOG_FORMAT = '%(asctime)s %(name)-20s %(levelname)-8s %(message)s'


def setup_logging(app: Flask) -> None:
    """
    Configure root logging once per process

    Stream output always; a rotating file when LOG_FILE is set.
    """
    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    root = logging.getLogger()
    root.setLevel(log_level)

    if not any(getattr(h, '_outreach_handler', False) for h in root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler._outreach_handler = True
        root.addHandler(stream_handler)

        log_file = app.config.get('LOG_FILE')
        if log_file:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5
            )
            file_handler.setFormatter(formatter)
            file_handler._outreach_handler = True
            root.addHandler(file_handler)

    # Flask's own handler would print every record twice
    app.logger.handlers.clear()
    app.logger.propagate = True

    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)


def configure_database(app: Flask):
    """Create the engine and session factory; tables are created on start"""
    engine = create_database_engine(
        app.config['DATABASE_URL'],
        pool_size=app.config.get('DB_POOL_SIZE', 10),
        max_overflow=app.config.get('DB_MAX_OVERFLOW', 20),
        echo=bool(app.config.get('SQL_ECHO', False)),
        slow_query_threshold=app.config.get('SLOW_QUERY_THRESHOLD', 1.0),
    )
    app.db_engine = engine
    app.session_factory = create_session_factory(engine)
    return app.session_factory


def configure_security(app: Flask) -> None:
    """Security manager, request rate limiting and CORS"""
    init_security_manager(app)
    limiter.init_app(app)

    CORS(app,
         resources={r"/api/*": {"origins": app.config.get('CORS_ORIGINS', [])}},
         supports_credentials=True,
         allow_headers=['Content-Type', 'Authorization'])

    app.logger.info("Security features configured")


def configure_services(app: Flask, session_factory) -> None:
    """Stores, account service and the outreach dispatcher"""
    app.recruiter_store = build_recruiter_store(app.config, session_factory)
    app.configuration_store = SqlConfigurationStore(session_factory, app.security_manager)
    app.account_service = AccountService(session_factory, app.security_manager)

    body_generator = None
    if app.config.get('AI_API_URL'):
        body_generator = ChatCompletionBodyGenerator(
            api_url=app.config['AI_API_URL'],
            model=app.config['AI_MODEL'],
            temperature=app.config.get('AI_TEMPERATURE', 0.7),
            timeout=app.config.get('AI_TIMEOUT', 30.0),
        )

    app.dispatcher = OutreachDispatcher(
        recruiters=app.recruiter_store,
        configurations=app.configuration_store,
        template_engine=OutreachTemplateEngine(app.config.get('OUTREACH_TEMPLATE_DIR')),
        body_generator=body_generator,
        smtp_timeout=app.config.get('SMTP_TIMEOUT', 60.0),
    )


def register_blueprints(app: Flask) -> None:
    """
    Register all application blueprints with proper URL prefixes
    """
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(configuration_bp, url_prefix='/api/config')
    app.register_blueprint(recruiters_bp, url_prefix='/api/recruiters')
    app.register_blueprint(emails_bp, url_prefix='/api/emails')

    app.logger.info("Application blueprints registered")


def configure_error_handlers(app: Flask) -> None:
    """
    Map every error to {success: false, status, message, errors?}

    Stack traces are included outside production.
    """
    include_stack = app.config.get('ENV_NAME') != 'production'

    def error_response(body, status_code, error=None):
        if include_stack and error is not None:
            body['stack'] = ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        return jsonify(body), status_code

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__} on {request.method} {request.path}: {error.message}")
        else:
            app.logger.warning(f"{type(error).__name__} on {request.method} {request.path}: {error.message}")
        return error_response(error.to_dict(), error.status_code, error)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        if error.code == 429:
            app.logger.warning(f"Rate limit exceeded for {request.remote_addr}")
        body = {
            'success': False,
            'status': 'fail' if error.code < 500 else 'error',
            'message': error.description or error.name,
        }
        return jsonify(body), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle unexpected exceptions"""
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        body = {
            'success': False,
            'status': 'error',
            'message': 'Internal server error',
        }
        return error_response(body, 500, error)


def configure_health_checks(app: Flask) -> None:
    @app.route('/health')
    def health_check():
        """Basic health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })


def configure_request_middleware(app: Flask) -> None:
    """
    Configure request/response middleware for security and monitoring
    """
    @app.before_request
    def before_request():
        g.start_time = datetime.now(timezone.utc)

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (datetime.now(timezone.utc) - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def create_app(config_name: Optional[str] = None,
               overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: 'development', 'testing' or 'production'
            (defaults to FLASK_ENV, then 'production')
        overrides: Config values applied after the environment class

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    app.config.from_object(CONFIG_BY_NAME.get(config_name, CONFIG_BY_NAME['production']))
    if overrides:
        app.config.update(overrides)

    if app.config.get('PROXY_FIX'):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    setup_logging(app)
    app.logger.info(f"Starting outreach service in {config_name} mode")

    session_factory = configure_database(app)
    configure_security(app)
    configure_services(app, session_factory)
    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app)
    configure_request_middleware(app)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    # Development server
    app = create_app('development')
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
