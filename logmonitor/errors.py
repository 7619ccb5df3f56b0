"""Exception types raised by the log monitor."""


class MonitorError(Exception):
    """Base class for log monitor errors."""


class SourceUnavailable(MonitorError):
    """Raised when the monitored log file is missing or unreadable."""

    def __init__(self, path: str, reason: str = "not found"):
        super().__init__(f"Log file unavailable: {path} ({reason})")
        self.path = path
        self.reason = reason


class NotificationFailed(MonitorError):
    """Raised when an alert could not be delivered."""


class AlreadyRunning(MonitorError):
    """Raised when another live instance holds the lock."""

    def __init__(self, owner: int, lock_path: str):
        super().__init__(f"Another instance is already running (PID: {owner})")
        self.owner = owner
        self.lock_path = lock_path


class StateCorrupt(MonitorError):
    """Raised when a persisted state file cannot be parsed."""


class ConfigError(MonitorError):
    """Raised when the configuration is invalid."""
