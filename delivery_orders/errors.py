from __future__ import annotations


class OrderingError(Exception):
    kind = 'ordering_error'

    def __init__(self, message: str, *, entity_id: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id

    def as_dict(self) -> dict:
        return {'kind': self.kind, 'detail': self.message, 'entity_id': self.entity_id}


class InvalidState(OrderingError):
    kind = 'invalid_state'


class PermissionDenied(OrderingError, PermissionError):
    kind = 'permission_denied'


class ValidationError(OrderingError, ValueError):
    kind = 'validation_error'


class NotFound(OrderingError, LookupError):
    kind = 'not_found'


class InsufficientResource(OrderingError):
    kind = 'insufficient_resource'
