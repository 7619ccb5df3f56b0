"""Persists per-target monitor state.

State is a small JSON document replaced atomically (tmp + os.replace) so a
crash never leaves a half-written record. A malformed file is treated as
lost state and reset to zero values.
"""

import hashlib
import json
import logging
import math
import os
import tempfile
from dataclasses import asdict, dataclass

from logmonitor.errors import StateCorrupt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorState:
    last_check_time: float = 0.0
    last_alert_time: float = 0.0
    last_offset: int = 0

    @classmethod
    def from_dict(cls, d: dict) -> "MonitorState":
        try:
            state = cls(
                last_check_time=float(d["last_check_time"]),
                last_alert_time=float(d["last_alert_time"]),
                last_offset=int(d["last_offset"]),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise StateCorrupt(f"Invalid state record: {e}") from e
        if not (math.isfinite(state.last_check_time) and math.isfinite(state.last_alert_time)):
            raise StateCorrupt("Non-finite timestamp in state record")
        if state.last_offset < 0:
            raise StateCorrupt(f"Negative offset: {state.last_offset}")
        return state


class StateStore:
    def __init__(self, path: str):
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> MonitorState:
        """Read the persisted state, raising StateCorrupt if it is malformed."""
        if not os.path.exists(self._path):
            return MonitorState()
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            raise StateCorrupt(f"{self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StateCorrupt(f"{self._path}: expected a JSON object")
        return MonitorState.from_dict(data)

    def load(self) -> MonitorState:
        """Like read(), but recovers from a corrupt file with zero values."""
        try:
            return self.read()
        except StateCorrupt as e:
            logger.warning("State file corrupt, reinitialising: %s", e)
            return MonitorState()

    def save(self, state: MonitorState) -> None:
        directory = os.path.dirname(self._path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(asdict(state), f)
            os.replace(tmp, self._path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


def state_path_for(state_dir: str, target: str) -> str:
    """Return the state file path used for a monitored *target*."""
    abs_target = os.path.abspath(target)
    digest = hashlib.sha1(abs_target.encode("utf-8")).hexdigest()[:12]
    return os.path.join(state_dir, f"{os.path.basename(abs_target)}.{digest}.state.json")
