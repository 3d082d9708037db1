"""
Error taxonomy and centralized error handling
Converts service exceptions, HTTP errors and unexpected failures into JSON responses
"""

import logging
import traceback
from flask import request, jsonify
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

# Configure logging
logger = logging.getLogger(__name__)


class HelpWiseError(Exception):
    """Base class for errors that map onto an HTTP status"""
    status_code = 500
    default_message = 'An unexpected error occurred'

    def __init__(self, message=None, errors=None, detail=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors
        self.detail = detail

    def to_dict(self):
        payload = {'success': False, 'message': self.message}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ValidationError(HelpWiseError):
    """Missing or malformed input; carries field-level messages"""
    status_code = 400
    default_message = 'Invalid input'


class Unauthorized(HelpWiseError):
    status_code = 401
    default_message = 'Authentication required'


class Forbidden(HelpWiseError):
    status_code = 403
    default_message = 'Access denied'


class NotFound(HelpWiseError):
    status_code = 404
    default_message = 'Not found'


class Conflict(HelpWiseError):
    """A state precondition does not hold (e.g. editing a non-pending bid)"""
    status_code = 400
    default_message = 'Operation not allowed in the current state'


class UpstreamError(HelpWiseError):
    """An AI or payment provider call failed"""
    status_code = 500
    default_message = 'An upstream service failed'

    def __init__(self, message=None, status_code=None, detail=None):
        super().__init__(message, detail=detail)
        if status_code:
            self.status_code = status_code


class ErrorHandler:
    """Centralized error handling class"""

    @staticmethod
    def handle_database_error(error, context="Database operation"):
        """Handle database-related errors"""
        if isinstance(error, IntegrityError):
            logger.warning(f"{context} - Integrity constraint violation: {str(error)}")
            return "Data integrity error. Please check your input and try again."
        elif isinstance(error, OperationalError):
            logger.error(f"{context} - Database connection error: {str(error)}")
            return "Database connection error. Please try again in a moment."
        logger.error(f"{context} - Database error: {str(error)}")
        return "Database error occurred. Please try again."

    @staticmethod
    def handle_generic_error(error, context="Operation"):
        """Handle generic errors"""
        logger.error(f"{context} - Generic error: {str(error)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return "An unexpected error occurred. Please try again."


def _rollback():
    try:
        from models import db
        db.session.rollback()
    except Exception as db_error:
        logger.error(f"Database rollback failed: {str(db_error)}")


def register_error_handlers(app):
    @app.errorhandler(HelpWiseError)
    def handle_helpwise_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__} on {request.method} {request.path}: {error.message}")
        else:
            logger.info(f"{type(error).__name__} on {request.method} {request.path}: {error.message}")
        payload = error.to_dict()
        # Provider messages are only echoed outside production
        if error.detail and app.config.get('ENV') != 'production':
            payload['error'] = error.detail
        return jsonify(payload), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'success': False, 'message': error.description}), error.code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_exception(error):
        _rollback()
        message = ErrorHandler.handle_database_error(error, f"{request.method} {request.path}")
        return jsonify({'success': False, 'message': message}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        message = ErrorHandler.handle_generic_error(error, f"Unhandled exception on {request.method} {request.path}")
        _rollback()
        return jsonify({'success': False, 'message': message}), 500
