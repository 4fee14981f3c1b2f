"""
Execution lock.

At most one process may execute a plan per operation scope. The lock is an
OS advisory lock (flock) on a named file: the kernel drops it when the holder
exits for any reason, so a crashed run never leaves a stale lock behind.
"""

import fcntl
import hashlib
import logging
import os
import re
from pathlib import Path
from typing import Optional

from kit_porter.exceptions import LockHeldError

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = 'global'


def lock_name_for_scope(scope: str) -> str:
    """Build a filesystem-safe lock file name for a scope (project dir or 'global')."""
    if scope == GLOBAL_SCOPE:
        return 'global.lock'
    slug = re.sub(r'[^A-Za-z0-9_.-]+', '-', Path(scope).name).strip('-') or 'project'
    digest = hashlib.sha256(str(Path(scope).resolve()).encode('utf-8')).hexdigest()[:12]
    return f"{slug}-{digest}.lock"


class ExecutionLock:
    """Non-blocking, file-based advisory lock for one operation scope.

    Use as a context manager; acquiring a held lock raises LockHeldError
    immediately instead of waiting.
    """

    def __init__(self, lock_dir: Path, scope: str = GLOBAL_SCOPE):
        self.scope = scope
        self.lock_path = Path(lock_dir) / lock_name_for_scope(scope)
        self._fd: Optional[int] = None

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def _read_holder_pid(self) -> Optional[int]:
        try:
            content = self.lock_path.read_text().strip()
        except OSError:
            return None
        return int(content) if content.isdigit() else None

    def acquire(self):
        """Take the lock or raise LockHeldError."""
        if self._fd is not None:
            raise RuntimeError(f"Lock already acquired by this process: {self.lock_path}")

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise LockHeldError(self.scope, str(self.lock_path), self._read_holder_pid()) from None
        except OSError:
            os.close(fd)
            raise

        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode('ascii'))
        self._fd = fd
        logger.debug("Acquired execution lock %s", self.lock_path)

    def release(self):
        """Release the lock; safe to call when not held."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.ftruncate(fd, 0)
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("Released execution lock %s", self.lock_path)

    def __enter__(self) -> 'ExecutionLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
