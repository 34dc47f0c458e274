# src/flowbridge/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the core.

- ValidationError: rejected locally, never reaches the network.
- NotFound: a task id that TaskStore does not hold (controllers treat it as a no-op).
- SyncFailure: the remote store refused or could not be reached; local state is untouched.
"""


class FlowBridgeError(Exception):
    """Base class for all errors raised by the core."""


class ValidationError(FlowBridgeError, ValueError):
    pass


class InvalidArgument(ValidationError):
    """Out-of-range step index and similar addressing mistakes."""


class NotFound(FlowBridgeError, LookupError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class SyncFailure(FlowBridgeError, RuntimeError):
    def __init__(self, operation: str, message: str, *, status_code: int | None = None) -> None:
        detail = f"{operation} failed: {message}"
        if status_code is not None:
            detail = f"{operation} failed (HTTP {status_code}): {message}"
        super().__init__(detail)
        self.operation = operation
        self.status_code = status_code
