"""
Typed errors raised by aggregates, events and the dispatcher.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base error for the procurement domain."""

    default_code = "DOMAIN_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(self.message)


class ValidationError(DomainError, ValueError):
    """Malformed constructor input (status tag, identity, item fields)."""

    default_code = "VALIDATION_ERROR"


class ItemConstraintError(ValidationError):
    """Item set or item bounds violated."""

    default_code = "ITEM_CONSTRAINT"


class InvalidTransitionError(DomainError):
    """Status change or status-guarded operation not allowed."""

    default_code = "INVALID_STATE"

    def __init__(self, message: str, current: str | None = None, target: str | None = None):
        super().__init__(message)
        self.current = current
        self.target = target


class SerializationError(DomainError):
    """Event payload could not be encoded or reconstructed."""

    default_code = "SERIALIZATION_ERROR"


class DispatchError(DomainError):
    """A synchronous listener raised while handling an event."""

    default_code = "DISPATCH_ERROR"

    def __init__(self, message: str, listener: str, event_id: str, result=None):
        super().__init__(message)
        self.listener = listener
        self.event_id = event_id
        self.result = result

    @property
    def original(self) -> BaseException | None:
        return self.__cause__


class NotFoundError(DomainError):
    """Aggregate missing from its repository."""

    default_code = "NOT_FOUND"
