"""
Working directory allocation. Two active runs never share a directory.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterator, Set

from controller.src.errors import WorkspaceBusy

logger = logging.getLogger(__name__)

_claimed_lock = threading.Lock()
_claimed: Set[str] = set()

def create_workspace(root: str, run_id: str) -> str:
    """Create a fresh directory for a run. Fails if the directory exists."""
    path = os.path.abspath(os.path.join(root, run_id))
    os.makedirs(root, exist_ok=True)
    try:
        os.mkdir(path)
    except FileExistsError:
        raise WorkspaceBusy(f"Workspace already exists: {path}")
    logger.info(f"Created workspace {path}")
    return path

def claim_workspace(path: str) -> str:
    """Mark a directory as owned by an active run in this process."""
    path = os.path.realpath(path)
    with _claimed_lock:
        if path in _claimed:
            raise WorkspaceBusy(f"Working directory is in use by another run: {path}")
        _claimed.add(path)
    return path

def release_workspace(path: str):
    with _claimed_lock:
        _claimed.discard(os.path.realpath(path))

@contextmanager
def claimed(path: str) -> Iterator[str]:
    """Hold a directory for the duration of a run. It is never cleaned up."""
    real = claim_workspace(path)
    try:
        yield real
    finally:
        release_workspace(real)
