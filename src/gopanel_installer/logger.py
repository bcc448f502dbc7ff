"""
Structured logging for installation runs.

Run and step transitions are written as JSON lines (or plain text) to the
installer log file. Nothing is logged to the terminal: while a run is in
progress only the progress reporter writes there.

Logged events:
- run.started
- run.aborted
- step.started
- step.succeeded
- step.skipped
- step.failed
- run.finished

Usage:
    from gopanel_installer.logger import InstallEventLogger, configure_logging

    configure_logging(config)
    events = InstallEventLogger(run_id="a1b2c3")
    events.log_step_started(step_name="apt-update", position=0, total=14)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from gopanel_installer.config import InstallerConfig

PACKAGE_LOGGER = "gopanel_installer"
EVENTS_LOGGER = "gopanel_installer.events"

_events_logger = logging.getLogger(EVENTS_LOGGER)

# Stay silent until configure_logging() installs a file handler
_package_logger = logging.getLogger(PACKAGE_LOGGER)
_package_logger.addHandler(logging.NullHandler())
_package_logger.propagate = False


class _JsonFormatter(logging.Formatter):
    """Pass event lines through; wrap ordinary records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        if record.name == EVENTS_LOGGER:
            return record.getMessage()
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(config: InstallerConfig) -> Path:
    """
    Route installer logs to ``config.log_file``.

    Replaces handlers installed by an earlier call. Raises OSError when the
    log file cannot be opened.

    Returns:
        Path of the log file
    """
    path = Path(config.log_file)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    if config.log_format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    for old in list(_package_logger.handlers):
        _package_logger.removeHandler(old)
        old.close()
    _package_logger.addHandler(handler)
    _package_logger.setLevel(config.log_level.upper())
    return path


class InstallEventLogger:
    """
    Structured logger for run and step events.

    Each entry carries the run id so several runs appended to the same file
    can be told apart.
    """

    def __init__(self, run_id: str, log_format: str = "json"):
        """
        Initialize event logger.

        Args:
            run_id: Identifier of the current run
            log_format: "json" or "text"
        """
        self.run_id = run_id
        self.log_format = log_format
        self._logger = _events_logger

    def _emit(self, event: str, level: str = "info", step_name: Optional[str] = None, **extra_fields: Any) -> None:
        """
        Emit a structured log entry.

        Args:
            event: Event type (e.g., "step.failed")
            level: Log level (info, warn, error)
            step_name: Step the event belongs to
            **extra_fields: Event-specific fields
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "run_id": self.run_id,
        }
        if step_name:
            entry["step"] = step_name
        entry.update(extra_fields)

        if self.log_format == "json":
            log_line = json.dumps(entry, default=str)
        else:
            details = " ".join(f"{k}={v}" for k, v in entry.items() if k not in ("timestamp", "level", "event", "output"))
            log_line = f"{event} {details}"
            if entry.get("output"):
                log_line += "\n" + str(entry["output"]).rstrip()

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_run_started(self, total_steps: int) -> None:
        self._emit("run.started", total_steps=total_steps)

    def log_run_aborted(self, reason: str) -> None:
        self._emit("run.aborted", level="warn", reason=reason)

    def log_step_started(self, step_name: str, position: int, total: int) -> None:
        self._emit("step.started", step_name=step_name, position=position, total=total)

    def log_step_succeeded(self, step_name: str, duration_s: float, note: str = "") -> None:
        fields: dict = {"duration_s": round(duration_s, 3)}
        if note:
            fields["note"] = note
        self._emit("step.succeeded", step_name=step_name, **fields)

    def log_step_skipped(self, step_name: str, reason: str) -> None:
        self._emit("step.skipped", step_name=step_name, reason=reason)

    def log_step_failed(
        self,
        step_name: str,
        reason: str,
        exit_code: Optional[int] = None,
        output: str = "",
    ) -> None:
        """Log a failed step with its full captured output."""
        self._emit(
            "step.failed",
            level="error",
            step_name=step_name,
            reason=reason,
            exit_code=exit_code,
            output=output,
        )

    def log_run_finished(self, state: str, cursor: int, total: int) -> None:
        level = "info" if state == "succeeded" else "error"
        self._emit("run.finished", level=level, state=state, cursor=cursor, total=total)
