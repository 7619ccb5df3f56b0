"""Alert delivery.

The monitor only depends on the NotificationSender protocol. The concrete
senders and the fallback chain reproduce the usual delivery options: SMTP
email, a JSON webhook, a file on disk, or the application log.
"""

import html
import logging
import os
import smtplib
import socket
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

import requests

from logmonitor.config import Config
from logmonitor.detector import AlertPayload
from logmonitor.errors import NotificationFailed

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    def send(self, payload: AlertPayload) -> None: ...


def _format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def alert_subject(hostname: str) -> str:
    return f"[ALERT] HTTP 500 Errors Detected on {hostname}"


def render_details(payload: AlertPayload) -> str:
    """Each matched line followed by its parsed request summary."""
    blocks = []
    for event in payload.events:
        blocks.append(f"{event.raw}\n  {event.summary()}")
    return "\n".join(blocks)


def render_text(payload: AlertPayload, hostname: str, threshold: int) -> str:
    return (
        f"HTTP 500 Error Alert\n\n"
        f"Hostname:    {hostname}\n"
        f"Timestamp:   {_format_time(payload.timestamp)}\n"
        f"Error Count: {payload.count} errors detected\n"
        f"Log File:    {payload.source_path}\n"
        f"Threshold:   {threshold} errors\n\n"
        f"Error Details:\n{render_details(payload)}\n"
    )


def render_html(payload: AlertPayload, hostname: str, threshold: int,
                config_file: str = "") -> str:
    details = html.escape(render_details(payload))
    return f"""<!DOCTYPE html>
<html>
<head>
<style>
  body {{ font-family: Arial, sans-serif; margin: 20px; background-color: #f5f5f5; }}
  .container {{ background-color: white; padding: 20px; border-radius: 5px; }}
  .header {{ background-color: #d32f2f; color: white; padding: 15px; border-radius: 5px; }}
  .alert-box {{ background-color: #fff3cd; border-left: 4px solid #ffc107; padding: 15px; margin: 15px 0; }}
  .error-details {{ background-color: #f8f9fa; padding: 15px; font-family: monospace; font-size: 12px; white-space: pre-wrap; }}
  .footer {{ margin-top: 20px; border-top: 1px solid #ddd; color: #666; font-size: 12px; }}
</style>
</head>
<body>
<div class="container">
  <div class="header"><h2>HTTP 500 Error Alert</h2></div>
  <div class="alert-box">
    <strong>Alert Details:</strong>
    <ul>
      <li><strong>Hostname:</strong> {html.escape(hostname)}</li>
      <li><strong>Timestamp:</strong> {_format_time(payload.timestamp)}</li>
      <li><strong>Error Count:</strong> {payload.count} errors detected</li>
      <li><strong>Log File:</strong> {html.escape(payload.source_path)}</li>
      <li><strong>Threshold:</strong> {threshold} errors</li>
    </ul>
  </div>
  <h3>Error Details:</h3>
  <div class="error-details">{details}</div>
  <div class="footer">
    <p>This is an automated alert from the Log Monitor.</p>
    <p>To stop receiving these alerts, update the configuration at: {html.escape(config_file)}</p>
  </div>
</div>
</body>
</html>
"""


class LogSender:
    def send(self, payload: AlertPayload) -> None:
        logger.warning("[ALERT] %d error(s) in %s", payload.count, payload.source_path)
        for line in payload.sample_lines:
            logger.warning("[ALERT]   %s", line)


class SmtpSender:
    def __init__(self, host: str, port: int, sender: str, recipients: list[str],
                 threshold: int, username: str = "", password: str = "",
                 use_tls: bool = False, config_file: str = "",
                 hostname: str | None = None, timeout: float = 10.0):
        self._host = host
        self._port = port
        self._sender = sender
        self._recipients = recipients
        self._threshold = threshold
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._config_file = config_file
        self._hostname = hostname or socket.gethostname()
        self._timeout = timeout

    def build_message(self, payload: AlertPayload) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = alert_subject(self._hostname)
        msg["From"] = self._sender
        msg["To"] = ", ".join(self._recipients)
        msg.set_content(render_text(payload, self._hostname, self._threshold))
        msg.add_alternative(
            render_html(payload, self._hostname, self._threshold, self._config_file),
            subtype="html",
        )
        return msg

    def send(self, payload: AlertPayload) -> None:
        msg = self.build_message(payload)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username:
                    server.login(self._username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationFailed(f"SMTP delivery to {self._host}:{self._port} failed: {e}") from e
        logger.info("Alert sent via SMTP to %s", ", ".join(self._recipients))


class WebhookSender:
    def __init__(self, url: str, hostname: str | None = None, timeout: float = 10.0):
        self._url = url
        self._hostname = hostname or socket.gethostname()
        self._timeout = timeout

    def build_body(self, payload: AlertPayload) -> dict:
        return {
            "subject": alert_subject(self._hostname),
            "hostname": self._hostname,
            "count": payload.count,
            "timestamp": payload.timestamp,
            "source_path": payload.source_path,
            "sample_lines": list(payload.sample_lines),
        }

    def send(self, payload: AlertPayload) -> None:
        try:
            response = requests.post(self._url, json=self.build_body(payload),
                                     timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationFailed(f"Webhook delivery to {self._url} failed: {e}") from e
        logger.info("Alert sent via webhook %s", self._url)


class FileSender:
    def __init__(self, alert_dir: str, threshold: int, hostname: str | None = None):
        self._alert_dir = alert_dir
        self._threshold = threshold
        self._hostname = hostname or socket.gethostname()

    def send(self, payload: AlertPayload) -> None:
        stamp = datetime.fromtimestamp(payload.timestamp).strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self._alert_dir, f"logmonitor_alert_{stamp}.txt")
        try:
            os.makedirs(self._alert_dir, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(render_text(payload, self._hostname, self._threshold))
        except OSError as e:
            raise NotificationFailed(f"Could not write alert file {path}: {e}") from e
        logger.warning("Alert saved to: %s", path)


class FallbackSender:
    """Tries each sender in order; fails only when every sender fails."""

    def __init__(self, senders: list):
        self._senders = list(senders)

    def send(self, payload: AlertPayload) -> None:
        if not self._senders:
            raise NotificationFailed("No notification senders configured")
        failures = []
        for sender in self._senders:
            try:
                sender.send(payload)
                return
            except NotificationFailed as e:
                logger.error("%s failed: %s", type(sender).__name__, e)
                failures.append(str(e))
        raise NotificationFailed("; ".join(failures))


class BackgroundSender:
    """Dispatches alerts on a worker thread; failures are only logged."""

    def __init__(self, sender):
        self._sender = sender
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alert")

    def send(self, payload: AlertPayload) -> None:
        future = self._executor.submit(self._sender.send, payload)
        future.add_done_callback(self._on_done)

    @staticmethod
    def _on_done(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Background alert delivery failed: %s", exc)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def build_sender(config: Config) -> NotificationSender:
    """Compose the configured senders into a fallback chain.

    With async_alerts the chain runs on a BackgroundSender, which the caller
    must shut down before exiting.
    """
    senders = []
    for name in config.notifiers:
        if name == "smtp":
            senders.append(SmtpSender(
                host=config.smtp_host,
                port=config.smtp_port,
                sender=config.from_email,
                recipients=[config.alert_email],
                threshold=config.alert_threshold,
                username=config.smtp_username,
                password=config.smtp_password,
                use_tls=config.smtp_use_tls,
                config_file=config.config_file,
            ))
        elif name == "webhook":
            senders.append(WebhookSender(config.webhook_url))
        elif name == "file":
            senders.append(FileSender(config.alert_dir, config.alert_threshold))
        elif name == "log":
            senders.append(LogSender())
        else:
            logger.warning("Unknown notifier %r ignored", name)
    sender = senders[0] if len(senders) == 1 else FallbackSender(senders)
    if config.async_alerts:
        return BackgroundSender(sender)
    return sender
