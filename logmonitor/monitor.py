"""One poll cycle: read new lines, detect a burst, persist state, alert."""

import logging
import time
from dataclasses import dataclass, replace

from logmonitor.config import Config, compile_pattern
from logmonitor.detector import (
    AlertPayload,
    MonitorPhase,
    current_phase,
    decide,
    evaluate_cycle,
    match_lines,
)
from logmonitor.errors import NotificationFailed, SourceUnavailable
from logmonitor.events import parse_error_line
from logmonitor.metrics import Metrics
from logmonitor.offset_tracker import expand_targets, read_new_lines
from logmonitor.state import MonitorState, StateStore, state_path_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    path: str
    state: MonitorState
    lines_read: int = 0
    error_count: int = 0
    rotated: bool = False
    source_unavailable: bool = False
    suppressed: bool = False
    alert: AlertPayload | None = None
    notified: bool = False


class LogMonitor:
    def __init__(self, config: Config, sender, time_func=None,
                 metrics: Metrics | None = None):
        self._config = config
        self._sender = sender
        self._time_func = time_func or time.time
        self._metrics = metrics or Metrics()
        self._pattern = compile_pattern(config.error_pattern)

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def sender(self):
        return self._sender

    def store_for(self, path: str) -> StateStore:
        return StateStore(state_path_for(self._config.state_dir, path))

    def targets(self) -> list[str]:
        return expand_targets(self._config.log_file)

    def run_cycle(self) -> list[CycleResult]:
        """Poll every target once."""
        targets = self.targets()
        if not targets:
            logger.warning("No log files match %s", self._config.log_file)
        results = []
        for path in targets:
            try:
                results.append(self.poll_target(path))
            except OSError:
                logger.exception("Poll of %s failed", path)
        try:
            self._metrics.save()
        except OSError as e:
            logger.warning("Could not save metrics: %s", e)
        return results

    def poll_target(self, path: str) -> CycleResult:
        now = self._time_func()
        store = self.store_for(path)
        state = store.load()
        self._metrics.increment("polls", target=path)

        try:
            read = read_new_lines(path, state.last_offset, self._config.max_read_bytes)
        except SourceUnavailable as e:
            logger.error("%s", e)
            self._metrics.increment("source_unavailable", target=path)
            state = replace(state, last_check_time=now)
            store.save(state)
            return CycleResult(path=path, state=state, source_unavailable=True)

        if read.rotated:
            logger.warning("Log file %s appears to have been rotated. Resetting position.", path)
            self._metrics.increment("rotations", target=path)
        if read.capped:
            logger.info("Read limit of %d bytes reached for %s, continuing next check",
                        self._config.max_read_bytes, path)
        self._metrics.increment("lines_read", len(read.lines), target=path)

        matched = match_lines(read.lines, self._pattern)
        for line in matched:
            logger.warning("Detected error: %s", parse_error_line(line).summary())
        if matched:
            logger.info("Found %d error(s) in this check of %s", len(matched), path)
            self._metrics.increment("errors_matched", len(matched), target=path)
        else:
            logger.debug("No errors found in this check of %s", path)

        decision = decide(len(matched), self._config.alert_threshold,
                          self._config.alert_cooldown, now, state)
        state, payload = evaluate_cycle(
            matched,
            self._pattern,
            self._config.alert_threshold,
            self._config.alert_cooldown,
            now,
            state,
            source_path=path,
        )
        state = replace(state, last_offset=read.new_offset)
        store.save(state)

        if decision.suppressed:
            logger.info("Alert threshold met but in cooldown period (%ds / %ds)",
                        int(decision.time_since_last_alert), self._config.alert_cooldown)
            self._metrics.increment("alerts_suppressed", target=path)

        notified = False
        if payload is not None:
            notified = self._notify(payload)

        return CycleResult(
            path=path,
            state=state,
            lines_read=len(read.lines),
            error_count=len(matched),
            rotated=read.rotated,
            suppressed=decision.suppressed,
            alert=payload,
            notified=notified,
        )

    def _notify(self, payload: AlertPayload) -> bool:
        logger.info("Sending alert for %d error(s) in %s", payload.count, payload.source_path)
        try:
            self._sender.send(payload)
        except NotificationFailed as e:
            logger.error("Alert delivery failed: %s", e)
            self._metrics.increment("notification_failures", target=payload.source_path)
            return False
        self._metrics.increment("alerts_sent", target=payload.source_path)
        return True

    def send_test_alert(self) -> AlertPayload:
        """Send a synthetic alert; NotificationFailed propagates to the caller."""
        now = self._time_func()
        payload = AlertPayload(
            count=1,
            sample_lines=[
                "This is a test alert from Log Monitor. If you receive it, "
                "alert delivery is configured correctly."
            ],
            timestamp=now,
            source_path=self._config.log_file,
        )
        self._sender.send(payload)
        logger.info("Test alert sent")
        return payload

    def snapshot(self) -> list[tuple[str, MonitorState, MonitorPhase]]:
        """Current persisted state and phase of every target."""
        now = self._time_func()
        rows = []
        for path in self.targets():
            state = self.store_for(path).load()
            rows.append((path, state, current_phase(state, now, self._config.alert_cooldown)))
        return rows
