"""Configuration loading from defaults, a YAML file, env vars and CLI args.

Precedence (lowest to highest): dataclass defaults, YAML file, environment
variables, command-line options. The resulting Config is frozen and passed
explicitly to every component.
"""

import os
import re
import logging
import socket
from dataclasses import dataclass, fields

import yaml

from logmonitor.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".logmonitor.yml")

NOTIFIERS = ("smtp", "webhook", "file", "log")

_EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _parse_list(value) -> tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return tuple(v.strip() for v in str(value).split(",") if v.strip())


@dataclass(frozen=True)
class Config:
    log_file: str = "/var/log/apache2/access.log"
    error_pattern: str = r'HTTP/[0-9.]*"? 5[0-9][0-9]'
    alert_email: str = "admin@example.com"
    from_email: str = f"logmonitor@{socket.gethostname()}"
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = False
    webhook_url: str = ""
    notifiers: tuple[str, ...] = ("smtp", "file")
    async_alerts: bool = False
    alert_dir: str = "/tmp"
    check_interval: int = 60
    alert_threshold: int = 5
    # Reported only; errors are counted per poll cycle.
    time_window: int = 300
    alert_cooldown: int = 1800
    max_read_bytes: int = 1_000_000
    state_dir: str = "/tmp/logmonitor"
    lock_file: str = "/tmp/logmonitor/logmonitor.lock"
    metrics_file: str = "/tmp/logmonitor/metrics.json"
    enable_syslog: bool = True
    debug: bool = False
    config_file: str = DEFAULT_CONFIG_PATH


_ENV_VARS = {
    "log_file": "LOG_FILE",
    "error_pattern": "ERROR_PATTERN",
    "alert_email": "ALERT_EMAIL",
    "from_email": "FROM_EMAIL",
    "smtp_host": "SMTP_SERVER",
    "smtp_port": "SMTP_PORT",
    "smtp_username": "SMTP_USERNAME",
    "smtp_password": "SMTP_PASSWORD",
    "smtp_use_tls": "SMTP_USE_TLS",
    "webhook_url": "WEBHOOK_URL",
    "notifiers": "NOTIFIERS",
    "async_alerts": "ASYNC_ALERTS",
    "alert_dir": "ALERT_DIR",
    "check_interval": "CHECK_INTERVAL",
    "alert_threshold": "ALERT_THRESHOLD",
    "time_window": "TIME_WINDOW",
    "alert_cooldown": "ALERT_COOLDOWN",
    "max_read_bytes": "MAX_LOG_SIZE",
    "state_dir": "STATE_DIR",
    "lock_file": "LOCK_FILE",
    "metrics_file": "METRICS_FILE",
    "enable_syslog": "ENABLE_SYSLOG",
    "debug": "DEBUG_MODE",
}

# CLI dest -> Config field
_CLI_ARGS = {
    "log": "log_file",
    "email": "alert_email",
    "threshold": "alert_threshold",
    "interval": "check_interval",
    "cooldown": "alert_cooldown",
    "pattern": "error_pattern",
    "state_dir": "state_dir",
    "lock_file": "lock_file",
}

_FIELD_TYPES = {f.name: f.type for f in fields(Config)}


def _coerce(name: str, value):
    kind = _FIELD_TYPES[name]
    if kind in (int, "int"):
        if isinstance(value, bool):
            raise ConfigError(f"{name}: expected an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{name}: expected an integer, got {value!r}") from None
    if kind in (bool, "bool"):
        return _parse_bool(value)
    if name == "notifiers":
        return _parse_list(value)
    return str(value)


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns an empty dict if it is missing."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Configuration file %s not found. Using defaults.", path)
        return {}
    except yaml.YAMLError as e:
        logger.warning("Invalid YAML in %s, using defaults: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Configuration file %s is not a mapping, ignoring it", path)
        return {}
    logger.info("Loading configuration from %s", path)
    return data


def load_config(cli_args=None, yaml_data: dict | None = None,
                env: dict | None = None) -> Config:
    """Build Config from YAML data, env vars and parsed CLI args."""
    env = os.environ if env is None else env
    kwargs: dict = {}

    for key, value in (yaml_data or {}).items():
        if key not in _FIELD_TYPES or key == "config_file":
            logger.warning("Ignoring unknown configuration key: %s", key)
            continue
        if value is not None:
            kwargs[key] = _coerce(key, value)

    for name, var in _ENV_VARS.items():
        if var in env and env[var] != "":
            kwargs[name] = _coerce(name, env[var])

    if cli_args is not None:
        for dest, name in _CLI_ARGS.items():
            value = getattr(cli_args, dest, None)
            if value is not None:
                kwargs[name] = _coerce(name, value)
        if getattr(cli_args, "verbose", False):
            kwargs["debug"] = True
        if getattr(cli_args, "config", None):
            kwargs["config_file"] = cli_args.config

    return Config(**kwargs)


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile the error pattern, raising ConfigError when it is not a valid regex."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid error_pattern {pattern!r}: {e}") from None


def validate_config(config: Config) -> list[str]:
    """Return a list of human-readable problems; empty when valid."""
    errors = []

    log_dir = os.path.dirname(config.log_file) or "."
    if not os.path.isfile(config.log_file) and not os.path.isdir(log_dir):
        errors.append(f"Log file or directory does not exist: {config.log_file}")

    if "smtp" in config.notifiers and not _EMAIL_RE.match(config.alert_email):
        errors.append(f"Invalid email address: {config.alert_email}")

    if "webhook" in config.notifiers and not config.webhook_url:
        errors.append("webhook notifier enabled but webhook_url is empty")

    unknown = [n for n in config.notifiers if n not in NOTIFIERS]
    if unknown:
        errors.append(f"Unknown notifier(s): {', '.join(unknown)}")

    if config.check_interval < 1:
        errors.append("check_interval must be at least 1 second")
    if config.alert_threshold < 1:
        errors.append("alert_threshold must be at least 1")
    if config.alert_cooldown < 0:
        errors.append("alert_cooldown must not be negative")
    if config.max_read_bytes < 0:
        errors.append("max_read_bytes must not be negative")

    try:
        compile_pattern(config.error_pattern)
    except ConfigError as e:
        errors.append(str(e))

    return errors


DEFAULT_CONFIG_TEMPLATE = """\
# Log Monitor configuration file

# Log file to monitor (simple globs such as /var/log/app/*.log are allowed)
log_file: /var/log/apache2/access.log
# log_file: /var/log/nginx/access.log
# log_file: /var/log/httpd/access_log

# Error pattern (regex)
error_pattern: 'HTTP/[0-9.]*"? 5[0-9][0-9]'

# Alert delivery, tried in order until one succeeds: smtp, webhook, file, log
notifiers: [smtp, file]
async_alerts: false    # Deliver alerts on a background thread
alert_email: admin@example.com
smtp_host: localhost
smtp_port: 25
# webhook_url: https://hooks.example.com/logmonitor
alert_dir: /tmp

# Monitoring settings
check_interval: 60      # Check every N seconds
alert_threshold: 5      # Alert after N errors in one check
time_window: 300        # Informational only
alert_cooldown: 1800    # Cooldown between alerts (seconds)
max_read_bytes: 1000000 # Bytes read per check; the rest waits for the next one

# Runtime files
state_dir: /tmp/logmonitor
lock_file: /tmp/logmonitor/logmonitor.lock

# Features
enable_syslog: true
debug: false
"""


def write_default_config(path: str) -> None:
    """Write the commented default YAML configuration to *path*."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG_TEMPLATE)
    logger.info("Created default configuration at %s", path)
