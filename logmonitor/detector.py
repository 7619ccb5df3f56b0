"""Per-cycle error burst detection with an alert cooldown.

Errors are counted only within the lines of the current poll cycle; the
count is compared against the threshold and an alert fires unless one was
already sent within the cooldown window.

States per monitored file:

- IDLE: no alert in the cooldown window. A cycle with at least
  ``threshold`` matches fires an alert (ALERTED) and the file moves
  straight to COOLDOWN.
- COOLDOWN: bursts are still counted and logged but not notified. Once
  ``cooldown`` seconds have passed since the last alert the file is IDLE.
"""

import math
import re
from dataclasses import dataclass, field, replace
from enum import Enum

from logmonitor.events import ErrorEvent, parse_error_line
from logmonitor.state import MonitorState


class MonitorPhase(Enum):
    IDLE = "idle"
    ALERTED = "alerted"
    COOLDOWN = "cooldown"


@dataclass(frozen=True)
class AlertPayload:
    count: int
    sample_lines: list[str] = field(default_factory=list)
    timestamp: float = 0.0
    source_path: str = ""

    @property
    def events(self) -> list[ErrorEvent]:
        return [parse_error_line(line) for line in self.sample_lines]


@dataclass(frozen=True)
class AlertDecision:
    error_count: int
    threshold: int
    time_since_last_alert: float
    cooldown: float

    @property
    def threshold_met(self) -> bool:
        return self.error_count > 0 and self.error_count >= self.threshold

    @property
    def fire(self) -> bool:
        return self.threshold_met and self.time_since_last_alert >= self.cooldown

    @property
    def suppressed(self) -> bool:
        return self.threshold_met and not self.fire


def _compile(pattern) -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(pattern)


def match_lines(lines: list[str], pattern) -> list[str]:
    regex = _compile(pattern)
    return [line for line in lines if regex.search(line)]


def time_since_alert(state: MonitorState, now: float) -> float:
    """Seconds since the last alert; infinite if no alert was ever sent."""
    if not state.last_alert_time:
        return math.inf
    return now - state.last_alert_time


def decide(error_count: int, threshold: int, cooldown: float,
           now: float, state: MonitorState) -> AlertDecision:
    return AlertDecision(
        error_count=error_count,
        threshold=threshold,
        time_since_last_alert=time_since_alert(state, now),
        cooldown=cooldown,
    )


def current_phase(state: MonitorState, now: float, cooldown: float) -> MonitorPhase:
    if time_since_alert(state, now) < cooldown:
        return MonitorPhase.COOLDOWN
    return MonitorPhase.IDLE


def evaluate_cycle(
    new_lines: list[str],
    pattern,
    threshold: int,
    cooldown: float,
    now: float,
    state: MonitorState,
    source_path: str = "",
) -> tuple[MonitorState, AlertPayload | None]:
    """Count matches in *new_lines* and decide whether to alert.

    Returns the updated state (check time always advanced, alert time set
    only when an alert fires) and the alert payload, if any. The offset is
    left untouched; the caller records the reader's new offset.
    """
    matched = match_lines(new_lines, pattern)
    decision = decide(len(matched), threshold, cooldown, now, state)

    if not decision.fire:
        return replace(state, last_check_time=now), None

    payload = AlertPayload(
        count=decision.error_count,
        sample_lines=matched,
        timestamp=now,
        source_path=source_path,
    )
    return replace(state, last_check_time=now, last_alert_time=now), payload
