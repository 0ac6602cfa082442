"""
Error taxonomy for multi-entity operations.

Every error carries a stable machine-readable ``kind`` plus a human-readable
message. The request layer maps kinds to HTTP statuses (see ``meetfood.main``).

Kinds:
- not_found: entity or membership absent
- already_exists: duplicate membership, user name or email
- invariant_violation: counter would go negative, required asset missing
- partial_failure: some but not all required steps of a saga were applied
- upstream_failure: asset store / identity directory / document store failed
- unauthorized: actor does not own the resource being mutated
"""
from typing import Any, Dict, List, Optional


class ConsistencyError(Exception):
    """Base class for errors surfaced by the consistency engine."""

    kind = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "detail": self.message}
        payload.update(self.details)
        return payload


class NotFound(ConsistencyError):
    kind = "not_found"


class NotMember(NotFound):
    """Video post is not in the user's membership list."""


class AlreadyExists(ConsistencyError):
    kind = "already_exists"


class AlreadyMember(AlreadyExists):
    """Video post is already in the user's membership list."""


class InvariantViolation(ConsistencyError):
    kind = "invariant_violation"


class Unauthorized(ConsistencyError):
    kind = "unauthorized"


class UpstreamFailure(ConsistencyError):
    """
    A collaborator call failed.

    ``applied`` is False when nothing was changed by the operation, so it is
    safe to retry from scratch.
    """

    kind = "upstream_failure"

    def __init__(
        self,
        message: str,
        service: str,
        applied: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"service": service, "applied": applied}
        merged.update(details or {})
        super().__init__(message, merged)
        self.service = service
        self.applied = applied


class PartialFailure(ConsistencyError):
    """
    A multi-step operation stopped after applying some of its steps.

    Unsafe to blindly retry from scratch; ``completed_steps`` tells an
    operator (or a saga resume) where to pick up.
    """

    kind = "partial_failure"

    def __init__(
        self,
        message: str,
        operation: str,
        completed_steps: List[str],
        failed_step: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged: Dict[str, Any] = {
            "operation": operation,
            "completed_steps": list(completed_steps),
            "failed_step": failed_step,
        }
        merged.update(details or {})
        super().__init__(message, merged)
        self.operation = operation
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step


class AssetStoreError(Exception):
    """Raised by asset store backends when a put/get/delete fails."""


class IdentityDirectoryError(Exception):
    """Raised by the identity directory when a provider call fails."""


class AuthError(Exception):
    """Identity token could not be validated."""
