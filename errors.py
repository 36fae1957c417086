# errors.py
"""Typed errors raised by the billing services.

Each error carries an HTTP ``status_code`` and a machine-readable ``code`` so
the Flask error handler can render it without inspecting the message.
"""


class BillingError(Exception):
    status_code = 500
    code = 'billing_error'

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'success': False, 'error': self.message, 'code': self.code}


class ValidationError(BillingError):
    """Missing or malformed input, rejected before any write."""

    status_code = 400
    code = 'validation_error'


class AuthenticationError(BillingError):
    status_code = 401
    code = 'authentication_error'


class NotFoundError(BillingError):
    status_code = 404
    code = 'not_found'


class StateConflictError(BillingError):
    """The record is not in the state the operation requires."""

    status_code = 409
    code = 'state_conflict'
