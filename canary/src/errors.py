from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    API = "api"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    NOT_READY = "not_ready"
    STUCK = "stuck"
    CONFIGURATION = "configuration"


class WorkloadError(RuntimeError):
    """Base error raised by every workload controller operation.

    Carries the operation, object name and namespace so the reconciliation
    loop can report which object failed, plus a ``kind`` and ``retryable``
    flag so callers branch on the error class instead of its message.
    The underlying cause (usually an ``ApiException``) is chained through
    ``__cause__``.
    """

    kind: ErrorKind = ErrorKind.API
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.name = name
        self.namespace = namespace


class ApiCallError(WorkloadError):
    """A Kubernetes API call failed for a reason not classified more precisely."""

    def __init__(self, message: str, *, status: int | None = None, **context: str | None) -> None:
        super().__init__(message, **context)
        self.status = status


class NotFoundError(ApiCallError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(ApiCallError):
    """The object changed between read and write (HTTP 409).

    Never retried internally; the caller's next reconciliation re-reads the
    object and tries again.
    """

    kind = ErrorKind.CONFLICT


class RolloutNotReadyError(WorkloadError):
    """The workload rollout has not converged.

    ``retryable`` is False when the rollout is stuck past its progress
    deadline and the caller must stop waiting.
    """

    def __init__(self, message: str, *, retryable: bool, **context: str | None) -> None:
        super().__init__(message, **context)
        self.retryable = retryable
        self.kind = ErrorKind.NOT_READY if retryable else ErrorKind.STUCK


class ConfigurationError(WorkloadError):
    """The target manifest cannot be managed as a canary until it is fixed."""

    kind = ErrorKind.CONFIGURATION
    retryable = False
