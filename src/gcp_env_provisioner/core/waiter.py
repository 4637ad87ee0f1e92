"""Polling for Google Cloud long-running operations."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class OperationError(RuntimeError):
    """A long-running operation finished with an error."""

    def __init__(self, operation: str, error: Any) -> None:
        super().__init__(f"Operation {operation} failed: {_error_message(error)}")
        self.operation = operation
        self.error = error


class OperationTimeoutError(OperationError):
    """A long-running operation did not finish within the timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        RuntimeError.__init__(self, f"Operation {operation} did not finish within {timeout:g}s")
        self.operation = operation
        self.error = None


def _error_message(error: Any) -> str:
    # Compute/SQL report {"errors": [{"message": ...}]}, the others a google.rpc.Status.
    if isinstance(error, dict):
        if error.get("errors"):
            return "; ".join(str(e.get("message", e)) for e in error["errors"])
        if "message" in error:
            return str(error["message"])
    return str(error)


def is_done(operation: dict[str, Any]) -> bool:
    """Return True for a finished operation in any of the Google API dialects."""
    return operation.get("done") is True or operation.get("status") == "DONE"


def wait_for_operation(
    poll: Callable[[], dict[str, Any]],
    *,
    operation: dict[str, Any],
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """Poll *poll* until the operation is done and return the final operation.

    Raises:
        OperationError: The operation finished with an ``error`` payload.
        OperationTimeoutError: The operation was still running after *timeout* seconds.
    """
    name = str(operation.get("name", "<unnamed>"))
    deadline = clock() + timeout
    op = operation
    while not is_done(op):
        if clock() >= deadline:
            raise OperationTimeoutError(name, timeout)
        logger.debug("Waiting for operation %s", name)
        sleep(interval)
        op = poll()

    error = op.get("error")
    if error:
        raise OperationError(name, error)
    return op
