"""Command-line interface for the log monitor."""

import argparse
import logging
import logging.handlers
import os
import signal
import sys
from datetime import datetime

import psutil

from logmonitor.config import (
    DEFAULT_CONFIG_PATH,
    Config,
    load_config,
    load_yaml_config,
    validate_config,
    write_default_config,
)
from logmonitor.errors import AlreadyRunning, ConfigError, NotificationFailed
from logmonitor.lock import InstanceLock
from logmonitor.metrics import Metrics
from logmonitor.monitor import LogMonitor
from logmonitor.notifier import BackgroundSender, build_sender
from logmonitor.scheduler import PollScheduler

logger = logging.getLogger("logmonitor")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logmonitor",
        description="Watch a log file for error bursts and send rate-limited alerts.",
    )
    parser.add_argument("-c", "--config", default=None,
                        help=f"YAML configuration file (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("-l", "--log", default=None, help="Log file or glob to monitor")
    parser.add_argument("-e", "--email", default=None, help="Send alerts to this email")
    parser.add_argument("-t", "--threshold", type=int, default=None,
                        help="Alert after NUM errors in one check (default: 5)")
    parser.add_argument("-i", "--interval", type=int, default=None,
                        help="Check every SEC seconds (default: 60)")
    parser.add_argument("--cooldown", type=int, default=None,
                        help="Seconds between alerts (default: 1800)")
    parser.add_argument("--pattern", default=None, help="Error pattern (regex)")
    parser.add_argument("--state-dir", default=None, help="Directory for state files")
    parser.add_argument("--lock-file", default=None, help="Single-instance lock file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")

    group = parser.add_mutually_exclusive_group()
    group.add_argument("--once", action="store_true", help="Run a single check and exit")
    group.add_argument("-s", "--stats", action="store_true",
                       help="Display statistics and exit")
    group.add_argument("--test-alert", action="store_true", help="Send a test alert")
    group.add_argument("--init-config", action="store_true",
                       help="Create the default configuration file")
    group.add_argument("--check-config", action="store_true",
                       help="Validate the configuration and exit")
    group.add_argument("--stop", action="store_true", help="Stop the running monitor")
    return parser


def setup_logging(config: Config) -> None:
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    if config.enable_syslog and os.path.exists("/dev/log"):
        handler = logging.handlers.SysLogHandler(address="/dev/log")
        handler.setFormatter(logging.Formatter("logmonitor: %(levelname)s: %(message)s"))
        logging.getLogger().addHandler(handler)


def _format_epoch(ts: float) -> str:
    if not ts:
        return "never"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def print_stats(config: Config, monitor: LogMonitor) -> None:
    print("")
    print("=" * 48)
    print("        Log Monitor Statistics")
    print("=" * 48)
    rows = monitor.snapshot()
    if not rows:
        print(f"Log File:          {config.log_file} (no matching files)")
    for path, state, phase in rows:
        print(f"Log File:          {path}")
        print(f"Last Check:        {_format_epoch(state.last_check_time)}")
        print(f"Last Alert:        {_format_epoch(state.last_alert_time)}")
        print(f"Last Position:     {state.last_offset} bytes")
        print(f"Alert State:       {phase.value}")
        print("-" * 48)
    print(f"Alert Threshold:   {config.alert_threshold} errors")
    print(f"Check Interval:    {config.check_interval} seconds")
    print(f"Alert Cooldown:    {config.alert_cooldown} seconds")
    print(f"Time Window:       {config.time_window} seconds (per-check counting)")
    totals = monitor.metrics.snapshot()["totals"]
    if totals:
        print("-" * 48)
        print(f"Checks Run:        {totals.get('polls', 0)}")
        print(f"Errors Matched:    {totals.get('errors_matched', 0)}")
        print(f"Alerts Sent:       {totals.get('alerts_sent', 0)}")
        print(f"Alerts Suppressed: {totals.get('alerts_suppressed', 0)}")
        print(f"Delivery Failures: {totals.get('notification_failures', 0)}")
        print(f"Rotations:         {totals.get('rotations', 0)}")
    print("=" * 48)
    print("")


def stop_running(config: Config) -> int:
    lock = InstanceLock(config.lock_file)
    pid = lock.read_owner()
    if pid is None:
        logger.warning("No lock file found. Monitor may not be running")
        return 0
    if not psutil.pid_exists(pid):
        logger.warning("No running monitor found, removing stale lock")
        try:
            os.unlink(config.lock_file)
        except FileNotFoundError:
            pass
        return 0
    logger.info("Stopping monitor (PID: %d)", pid)
    try:
        psutil.Process(pid).terminate()
    except psutil.NoSuchProcess:
        logger.warning("Monitor (PID: %d) exited before it could be stopped", pid)
    except psutil.AccessDenied:
        logger.error("Not permitted to stop PID %d", pid)
        return 1
    return 0


def _validate(config: Config) -> bool:
    errors = validate_config(config)
    for err in errors:
        logger.error("%s", err)
    if errors:
        logger.error("Configuration validation failed with %d error(s)", len(errors))
        return False
    logger.info("Configuration validated successfully")
    return True


def close_sender(sender) -> None:
    if isinstance(sender, BackgroundSender):
        sender.shutdown(wait=True)


def run_forever(config: Config, monitor: LogMonitor, lock: InstanceLock) -> int:
    scheduler = PollScheduler(monitor.run_cycle, config.check_interval)

    def _signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        scheduler.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    logger.info("Starting log monitor...")
    logger.info("Monitoring: %s", config.log_file)
    logger.info("Alert email: %s", config.alert_email)
    logger.info("Check interval: %ds", config.check_interval)
    logger.info("Alert threshold: %d errors, cooldown %ds",
                config.alert_threshold, config.alert_cooldown)
    try:
        scheduler.run_forever()
    finally:
        close_sender(monitor.sender)
        lock.release()
        logger.info("Log monitor stopped")
    return 0


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config_path = args.config or os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)

    if args.init_config:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)
        write_default_config(config_path)
        return 0

    try:
        config = load_config(args, load_yaml_config(config_path), os.environ)
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stderr)
        logger.error("Invalid configuration: %s", e)
        return 1
    setup_logging(config)

    if args.stop:
        return stop_running(config)

    if args.check_config:
        return 0 if _validate(config) else 1

    try:
        monitor = LogMonitor(config, build_sender(config),
                             metrics=Metrics(config.metrics_file))
    except ConfigError as e:
        logger.error("%s", e)
        return 1

    if args.stats:
        print_stats(config, monitor)
        return 0

    if args.test_alert:
        logger.info("Sending test alert...")
        try:
            monitor.send_test_alert()
        except NotificationFailed as e:
            logger.error("Test alert failed: %s", e)
            return 1
        finally:
            close_sender(monitor.sender)
        return 0

    if not _validate(config):
        return 1

    lock = InstanceLock(config.lock_file)
    try:
        lock.acquire()
    except AlreadyRunning as e:
        logger.error("%s", e)
        return 1

    if args.once:
        try:
            monitor.run_cycle()
        finally:
            close_sender(monitor.sender)
            lock.release()
        return 0

    return run_forever(config, monitor, lock)


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
