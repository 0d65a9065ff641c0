"""Error kinds raised while converging a seed against the remote API.

Every error that aborts a category is a SeedError subclass carrying an
ErrorKind, so the orchestrator can persist the structured kind next to the
message. Callers use ``retryable`` to tell transient remote failures from
configuration mistakes that will not resolve on requeue.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Structured error kinds recorded in seed status."""

    NOT_FOUND = "not_found"
    AMBIGUOUS_MATCH = "ambiguous_match"
    VALIDATION = "validation"
    REMOTE_API = "remote_api"
    UNEXPECTED = "unexpected"

    @property
    def retryable(self) -> bool:
        """Whether a requeue may resolve this kind of failure."""
        return self in (ErrorKind.REMOTE_API, ErrorKind.UNEXPECTED)


class SeedError(Exception):
    """Base class for entity-level reconciliation failures."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class NotFoundError(SeedError):
    """A lookup expected to resolve to exactly one entity found none."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity_type: str, key: str) -> None:
        self.entity_type = entity_type
        self.key = key
        super().__init__(f"could not find {entity_type}: {key}")


class AmbiguousMatchError(SeedError):
    """A lookup expected to resolve to exactly one entity found several."""

    kind = ErrorKind.AMBIGUOUS_MATCH

    def __init__(self, entity_type: str, key: str, count: int) -> None:
        self.entity_type = entity_type
        self.key = key
        self.count = count
        super().__init__(f"ambiguous {entity_type} '{key}': {count} remote matches")


class ValidationError(SeedError):
    """Malformed seed content detected while reconciling (e.g. bad reference)."""

    kind = ErrorKind.VALIDATION


class RemoteAPIError(SeedError):
    """Transport, authentication or remote-side failure."""

    kind = ErrorKind.REMOTE_API

    def __init__(self, operation: str, entity_type: str, message: str) -> None:
        self.operation = operation
        self.entity_type = entity_type
        super().__init__(f"{operation} {entity_type} failed: {message}")
