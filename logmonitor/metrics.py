"""Alerting counters kept per monitored file and persisted as JSON.

Counters accumulate across runs: a Metrics bound to a file resumes from the
last saved snapshot, so repeated ``--once`` invocations from cron add up and
``--stats`` can report lifetime totals.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def _clean_counters(data) -> dict[str, int]:
    if not isinstance(data, dict):
        return {}
    return {str(k): v for k, v in data.items() if isinstance(v, int) and not isinstance(v, bool)}


def read_metrics(path: str) -> dict:
    """Load a saved snapshot; an absent or unreadable file gives an empty dict."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    except (ValueError, OSError) as e:
        logger.warning("Ignoring unreadable metrics file %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


class Metrics:
    def __init__(self, path: str | None = None, resume: bool = True):
        self._path = path
        self._totals: dict[str, int] = {}
        self._targets: dict[str, dict[str, int]] = {}
        self._lock = threading.Lock()
        if path and resume:
            saved = read_metrics(path)
            self._totals = _clean_counters(saved.get("totals"))
            targets = saved.get("targets")
            if isinstance(targets, dict):
                self._targets = {str(t): _clean_counters(c) for t, c in targets.items()}

    def increment(self, name: str, amount: int = 1, target: str | None = None) -> None:
        with self._lock:
            self._totals[name] = self._totals.get(name, 0) + amount
            if target is not None:
                counters = self._targets.setdefault(target, {})
                counters[name] = counters.get(name, 0) + amount

    def get(self, name: str, target: str | None = None) -> int:
        with self._lock:
            if target is None:
                return self._totals.get(name, 0)
            return self._targets.get(target, {}).get(name, 0)

    def for_target(self, target: str) -> dict[str, int]:
        with self._lock:
            return dict(self._targets.get(target, {}))

    def snapshot(self) -> dict:
        with self._lock:
            totals = dict(self._totals)
            targets = {t: dict(c) for t, c in self._targets.items()}
        return {
            "totals": totals,
            "targets": targets,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    def save(self) -> None:
        """Write the snapshot to disk; a no-op when no path is configured."""
        if not self._path:
            return
        directory = os.path.dirname(self._path) or "."
        os.makedirs(directory, exist_ok=True)
        data = self.snapshot()
        fd, tmp = tempfile.mkstemp(dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self._path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
