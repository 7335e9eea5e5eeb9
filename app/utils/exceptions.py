"""Service-layer exceptions for QuoteLedger.

Services raise these; the app-level error handlers turn them into the standard
``error_response`` JSON with a machine-readable ``code``. Nothing here should
carry raw database messages to the client.

Usage:
    from app.utils.exceptions import ConflictError, NotFoundError

    raise NotFoundError('Quotation', quotation_id)
    raise ConflictError('Only expired quotations can be re-issued', code='not_expired')
"""


class QuotationError(Exception):
    """Base class; ``status_code`` and ``code`` drive the HTTP mapping."""

    status_code = 500
    code = 'server_error'

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}


class ValidationError(QuotationError):
    """Input is missing or malformed. Raised before anything is written."""

    status_code = 400
    code = 'validation_error'


class ForbiddenError(QuotationError):
    """Actor is not allowed to touch this quotation."""

    status_code = 403
    code = 'forbidden'

    def __init__(self, message='You do not have permission to access this quotation', code=None):
        super().__init__(message, code=code)


class NotFoundError(QuotationError):
    """Missing or soft-deleted record.

    Args:
        resource: Human-readable entity name (e.g. "Quotation").
        resource_id: The id that was looked up.
    """

    status_code = 404
    code = 'not_found'

    def __init__(self, resource, resource_id=None):
        self.resource = resource
        self.resource_id = resource_id
        msg = f'{resource} not found'
        if resource_id is not None:
            msg = f'{resource} {resource_id} not found'
        super().__init__(msg)


class ConflictError(QuotationError):
    """The requested transition is not legal for the quotation's current state."""

    status_code = 409
    code = 'conflict'


class SequenceBusyError(QuotationError):
    """Timed out waiting for the sequence counter lock. Safe to retry."""

    status_code = 503
    code = 'sequence_busy'

    def __init__(self, message='Quotation numbering is busy, please retry'):
        super().__init__(message)
