"""Error taxonomy shared by the marketplace managers and the API.

Every error carries a short ``kind`` used in API responses, the HTTP status the
API answers with, and optional field-level ``details``.
"""
from typing import Any, Dict, List, Optional

class MarketError(Exception):
    """Base class for caller-visible marketplace errors."""
    kind = 'error'
    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured body returned to API callers."""
        body = {'kind': self.kind, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body

class ValidationError(MarketError):
    """Raised when input is malformed or violates pricing/schedule rules."""
    kind = 'validation'
    status_code = 400

class NotFoundError(MarketError):
    """Raised when a referenced listing or offer does not exist."""
    kind = 'not_found'
    status_code = 404

class ForbiddenError(MarketError):
    """Raised when the caller is not the seller or bidder of a record."""
    kind = 'forbidden'
    status_code = 403

class ConflictError(MarketError):
    """Raised when an active listing or offer already exists."""
    kind = 'conflict'
    status_code = 409

class InvalidStateError(MarketError):
    """Raised when a record is not in the status an operation requires."""
    kind = 'invalid_state'
    status_code = 409

class WindowError(MarketError):
    """Raised when an operation falls outside the auction's time window."""
    kind = 'window'
    status_code = 400

__all__ = [
    'MarketError',
    'ValidationError',
    'NotFoundError',
    'ForbiddenError',
    'ConflictError',
    'InvalidStateError',
    'WindowError'
]
