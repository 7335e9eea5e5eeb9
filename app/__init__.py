"""QuoteLedger Flask Application Factory"""
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from config.database import db, migrate
from config.config import Config
from app.utils.exceptions import QuotationError, SequenceBusyError
from app.utils.helpers import error_response
from app.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)

jwt = JWTManager()


def register_error_handlers(app):
    @app.errorhandler(QuotationError)
    def handle_quotation_error(error):
        response, status = error_response(
            error.message, errors=error.details or None,
            status_code=error.status_code, code=error.code
        )
        if isinstance(error, SequenceBusyError):
            response.headers['Retry-After'] = '1'
        return response, status

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return error_response(error.description, status_code=error.code,
                              code=error.name.lower().replace(' ', '_'))

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception('Unhandled error: %s', error)
        return error_response('Internal server error', status_code=500, code='server_error')


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # CORS with security settings
    CORS(app, resources={
        r"/api/*": {
            "origins": app.config.get('CORS_ORIGINS', ['http://localhost:3000']),
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # Security headers
    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        return response

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({'success': False, 'error': 'Token has expired', 'code': 'unauthorized'}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({'success': False, 'error': 'Invalid token', 'code': 'unauthorized'}), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({'success': False, 'error': 'Authorization token required', 'code': 'unauthorized'}), 401

    register_error_handlers(app)

    # Import models for migrations
    with app.app_context():
        from app import models  # noqa: F401

    # Register blueprints
    from app.routes.auth import auth_bp
    from app.routes.quotation import quotation_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(quotation_bp, url_prefix='/api/quotations')

    # Health check endpoint
    @app.route('/api/health')
    def health_check():
        return jsonify({'status': 'healthy', 'app': 'QuoteLedger'})

    return app
