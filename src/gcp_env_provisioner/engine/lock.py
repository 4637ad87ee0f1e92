"""Exclusive lock on an environment's state file."""

from __future__ import annotations

import contextlib
import fcntl
import logging
from typing import TYPE_CHECKING

from gcp_env_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)


def lock_path_for(state_path: Path) -> Path:
    return state_path.with_name(state_path.name + ".lock")


@contextlib.contextmanager
def state_lock(state_path: Path, *, wait: bool = True) -> Iterator[Path]:
    """Hold ``flock`` on ``<state>.lock`` for the duration of the block.

    With ``wait=False`` a lock held by another run raises `StateLockError`
    instead of blocking.
    """
    lock_path = lock_path_for(state_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a", encoding="utf-8") as handle:
        mode = fcntl.LOCK_EX if wait else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(handle.fileno(), mode)
        except OSError as exc:
            raise StateLockError(f"{lock_path} is held by another run ({exc})") from exc
        logger.debug("Locked %s", lock_path)
        try:
            yield lock_path
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
