from __future__ import annotations
"""Domain error taxonomy.

Services raise these; the application factory renders them with the same
``{"error": {...}}`` shape used for Werkzeug HTTP exceptions, so route handlers
never translate errors by hand.
"""
from typing import Dict, List, Optional


class ComplaintDeskError(Exception):
    status_code = 500
    title = 'Internal Server Error'
    default_detail = 'Operation failed, please try again'

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_payload(self) -> Dict:
        return {
            'error': {
                'status': self.status_code,
                'title': self.title,
                'detail': self.detail,
            }
        }


class ValidationError(ComplaintDeskError):
    """Malformed input; carries a field-level error list."""
    status_code = 400
    title = 'Validation Error'
    default_detail = 'Validation failed'

    def __init__(self, errors: List[Dict[str, str]], detail: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(detail)

    @classmethod
    def single(cls, field: str, message: str) -> 'ValidationError':
        return cls([{'field': field, 'message': message}], detail=message)

    def to_payload(self) -> Dict:
        payload = super().to_payload()
        payload['error']['errors'] = self.errors
        return payload


class LimitExceededError(ComplaintDeskError):
    status_code = 400
    title = 'Limit Exceeded'
    default_detail = 'Limit exceeded'


class ForbiddenError(ComplaintDeskError):
    status_code = 403
    title = 'Forbidden'
    default_detail = 'You are not allowed to perform this action'


class NotFoundError(ComplaintDeskError):
    status_code = 404
    title = 'Not Found'
    default_detail = 'Resource not found'


class ConflictError(ComplaintDeskError):
    status_code = 409
    title = 'Conflict'
    default_detail = 'Complaint was modified concurrently, please retry'


class StorageError(ComplaintDeskError):
    """File storage failure. Detail is logged, never sent to the client."""

    def __init__(self, detail: Optional[str] = None):
        super().__init__(None)
        self.internal_detail = detail


__all__ = [
    'ComplaintDeskError', 'ValidationError', 'LimitExceededError', 'ForbiddenError',
    'NotFoundError', 'ConflictError', 'StorageError',
]
