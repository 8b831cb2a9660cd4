"""Domain error taxonomy and the JSON error handlers that expose it."""
from flask import jsonify
from werkzeug.exceptions import HTTPException


class DomainError(Exception):
    kind = 'error'
    status_code = 400
    default_message = 'Request failed'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'kind': self.kind, 'message': self.message}


class ValidationError(DomainError):
    kind = 'validation_error'
    status_code = 400
    default_message = 'Invalid input'

    def __init__(self, message=None, fields=None):
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self):
        payload = super().to_dict()
        if self.fields:
            payload['fields'] = self.fields
        return payload


class AuthenticationError(DomainError):
    kind = 'authentication_error'
    status_code = 401
    default_message = 'Authentication required'


class Forbidden(DomainError):
    kind = 'forbidden'
    status_code = 403
    default_message = 'Not authorized'


class NotFound(DomainError):
    kind = 'not_found'
    status_code = 404
    default_message = 'Not found'


class InvalidState(DomainError):
    kind = 'invalid_state'
    status_code = 409
    default_message = 'Operation not allowed in the current state'


class ListingUnavailable(InvalidState):
    status_code = 400
    default_message = 'Food item not available'


class Conflict(DomainError):
    kind = 'conflict'
    status_code = 409
    default_message = 'The resource was taken by a concurrent request'


class RateLimited(DomainError):
    kind = 'rate_limited'
    status_code = 429
    default_message = 'Too many requests, please try again later'


class Unavailable(DomainError):
    kind = 'unavailable'
    status_code = 503
    default_message = 'Service temporarily unavailable, please retry'


def error_response(error):
    return jsonify({'success': False, 'error': error.to_dict()}), error.status_code


def register_error_handlers(app):
    @app.errorhandler(DomainError)
    def handle_domain_error(error):
        return error_response(error)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        payload = {'kind': (error.name or 'error').lower().replace(' ', '_'),
                   'message': error.description}
        return jsonify({'success': False, 'error': payload}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        app.logger.exception('Unhandled error: %s', error)
        payload = {'kind': 'internal_error', 'message': 'Internal server error'}
        return jsonify({'success': False, 'error': payload}), 500
