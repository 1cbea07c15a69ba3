"""Custom exceptions for the POS transaction engine."""


class PosError(Exception):
    """Base exception for all engine rejections."""
    code = 'POS_ERROR'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None, code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload
        if code:
            self.code = code

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['status'] = 'error'
        return rv


class ValidationError(PosError):
    """Raised when caller input breaks a business rule (cart left unchanged)."""
    code = 'VALIDATION'

    def __init__(self, message, payload=None, code=None):
        super().__init__(message, 400, payload, code)


class ResolutionError(PosError):
    """Raised when a lot, serial or FEFO pick cannot be resolved."""
    code = 'RESOLUTION'

    def __init__(self, message, payload=None, code=None):
        super().__init__(message, 409, payload, code)


class AuthorizationError(PosError):
    """Raised when a privileged action fails secondary verification."""
    code = 'AUTHORIZATION'

    def __init__(self, message="PIN verification failed", payload=None):
        super().__init__(message, 403, payload)


class CollaboratorError(PosError):
    """Raised when an external collaborator rejects a request that cannot degrade."""
    code = 'COLLABORATOR'

    def __init__(self, message, payload=None):
        super().__init__(message, 502, payload)


class NotFoundError(PosError):
    """Raised when a cart session is not found."""
    code = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)
