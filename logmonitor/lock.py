"""Single-instance lock recording the owning process.

The lock record is written to a temporary file and hard-linked into place,
so the lock file is never visible empty or half-written. A lock whose owner
is no longer alive is considered stale and reclaimed; an unreadable lock is
only treated as stale once it is older than a short grace period.
The liveness check is injectable so the reclaim logic can be tested
without real processes.
"""

import json
import logging
import os
import tempfile
import time

import psutil

from logmonitor.errors import AlreadyRunning

logger = logging.getLogger(__name__)

STALE_GRACE = 5.0


class InstanceLock:
    def __init__(self, path: str, owner_id: int | None = None, is_alive=None,
                 stale_grace: float = STALE_GRACE):
        self._path = path
        self._owner_id = owner_id if owner_id is not None else os.getpid()
        self._is_alive = is_alive or psutil.pid_exists
        self._stale_grace = stale_grace
        self._held = False

    @property
    def path(self) -> str:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def read_owner(self) -> int | None:
        """Return the owner recorded in the lock file, or None."""
        return _read_owner_at(self._path)

    def acquire(self) -> None:
        """Take the lock, raising AlreadyRunning if a live owner holds it."""
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        for _ in range(3):
            if self._publish():
                self._held = True
                logger.debug("Acquired lock %s (PID: %d)", self._path, self._owner_id)
                return

            owner = self.read_owner()
            if owner is None:
                age = self._age()
                if age is None:
                    continue
                if age < self._stale_grace:
                    raise AlreadyRunning(-1, self._path)
            elif owner != self._owner_id and self._is_alive(owner):
                raise AlreadyRunning(owner, self._path)
            logger.warning("Stale lock file found (PID: %s). Removing...", owner)
            self._discard_stale(owner)

        owner = self.read_owner()
        raise AlreadyRunning(owner if owner is not None else -1, self._path)

    def _publish(self) -> bool:
        """Create the lock file with its full record; False if it already exists."""
        fd, tmp = tempfile.mkstemp(dir=os.path.dirname(self._path) or ".", prefix=".lock-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump({"pid": self._owner_id, "started_at": time.time()}, f)
            try:
                os.link(tmp, self._path)
            except FileExistsError:
                return False
            return True
        finally:
            os.unlink(tmp)

    def _age(self) -> float | None:
        try:
            return time.time() - os.stat(self._path).st_mtime
        except FileNotFoundError:
            return None

    def _discard_stale(self, owner: int | None) -> None:
        # Restored if what was moved aside is not the lock judged stale.
        aside = f"{self._path}.{self._owner_id}.stale"
        try:
            os.rename(self._path, aside)
        except FileNotFoundError:
            return
        try:
            if _read_owner_at(aside) != owner:
                try:
                    os.link(aside, self._path)
                except FileExistsError:
                    pass
        finally:
            os.unlink(aside)

    def release(self) -> None:
        """Remove the lock file if this instance owns it."""
        if not self._held:
            return
        self._held = False
        if self.read_owner() != self._owner_id:
            logger.warning("Lock %s is no longer ours, leaving it in place", self._path)
            return
        try:
            os.unlink(self._path)
        except FileNotFoundError:
            pass
        logger.debug("Released lock %s", self._path)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def _read_owner_at(path: str) -> int | None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return int(data["pid"])
    except FileNotFoundError:
        return None
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Unreadable lock file %s: %s", path, e)
        return None
