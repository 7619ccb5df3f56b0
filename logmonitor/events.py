"""Extracts request details from matched error lines for alert content."""

import re
from dataclasses import dataclass

# Apache common/combined and Nginx access log formats.
_ACCESS_RE = re.compile(
    r'^(?P<host>\S+) \S+ \S+ '
    r'\[(?P<time>[^\]]+)\] '
    r'"(?P<request>[^"]*)" '
    r'(?P<status>\d{3}|-) '
    r'(?P<size>\d+|-)'
    r'(?: "(?P<referer>[^"]*)" "(?P<user_agent>[^"]*)")?\s*$'
)

_TIME_RE = re.compile(r"\[([^\]]+)\]")
_METHOD_RE = re.compile(r"\b(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\b")
_URL_RE = re.compile(r'"[A-Z]+ (\S+) HTTP')
_STATUS_RE = re.compile(r"HTTP/[0-9.]* (\d{3})")


@dataclass(frozen=True)
class ErrorEvent:
    raw: str
    client: str | None = None
    timestamp: str | None = None
    method: str | None = None
    path: str | None = None
    status: int | None = None

    def summary(self) -> str:
        return (
            f"IP: {self.client or '-'} | Time: {self.timestamp or '-'} | "
            f"Method: {self.method or '-'} | URL: {self.path or '-'} | "
            f"Status: {self.status if self.status is not None else '-'}"
        )


def _parse_access(line: str) -> ErrorEvent | None:
    m = _ACCESS_RE.match(line)
    if not m:
        return None
    parts = m.group("request").split(" ", 2)
    method = parts[0] if len(parts) >= 1 and parts[0] else None
    path = parts[1] if len(parts) >= 2 else None
    status_str = m.group("status")
    return ErrorEvent(
        raw=line,
        client=m.group("host"),
        timestamp=m.group("time"),
        method=method,
        path=path,
        status=int(status_str) if status_str != "-" else None,
    )


def _first(regex: re.Pattern, line: str) -> str | None:
    m = regex.search(line)
    return m.group(1) if m else None


def parse_error_line(line: str) -> ErrorEvent:
    """Parse a matched line; fields that cannot be found are None."""
    event = _parse_access(line)
    if event is not None:
        return event

    tokens = line.split()
    status = _first(_STATUS_RE, line)
    return ErrorEvent(
        raw=line,
        client=tokens[0] if tokens else None,
        timestamp=_first(_TIME_RE, line),
        method=_first(_METHOD_RE, line),
        path=_first(_URL_RE, line),
        status=int(status) if status else None,
    )
