"""
Progress reporting for a provisioning run.

Progress is a function of step position only: the wrapped commands report
no fractional progress, so while step ``i`` of ``N`` is in flight the
reported percentage is ``floor(i / N * 100)`` capped at 99. The value 100
is reserved for the moment the final step's completion is reported, so a
later failure can never follow a "100%" reading.

Ticks only advance a spinner to show liveness.
"""

from __future__ import annotations

import sys
import time
from typing import IO, Optional

import click

from gopanel_installer.models import Run, Step, StepRecord, StepStatus

__all__ = ["progress_percent", "render_bar", "ProgressReporter", "ConsoleProgressReporter"]

SPINNER_FRAMES = "/-\\|"


def progress_percent(position: int, total: int, completed: bool = False) -> int:
    """Percentage for ``position`` finished steps out of ``total``.

    Unless ``completed`` is set the result never exceeds 99.
    """
    if total <= 0:
        return 100 if completed else 0
    position = max(0, min(position, total))
    pct = position * 100 // total
    if not completed:
        pct = min(pct, 99)
    return pct


def render_bar(percent: int, width: int = 20) -> str:
    filled = max(0, min(width, width * percent // 100))
    return "[" + ("#" * filled) + ("-" * (width - filled)) + "]"


class ProgressReporter:
    """Tracks the run position; draws nothing. Subclasses render."""

    def __init__(self) -> None:
        self.step: Optional[Step] = None
        self.position = 0
        self.total = 0
        self.percent = 0
        self.ticks = 0
        self._started = 0.0

    @property
    def elapsed_s(self) -> float:
        return time.monotonic() - self._started if self.step is not None else 0.0

    def begin(self, step: Step, position: int, total: int) -> None:
        self.step = step
        self.position = position
        self.total = total
        self.ticks = 0
        self._started = time.monotonic()
        self.percent = progress_percent(position, total)

    def tick(self) -> None:
        self.ticks += 1

    def end(self, step: Step, record: StepRecord) -> None:
        if record.status in (StepStatus.SUCCEEDED, StepStatus.SKIPPED):
            done = self.position + 1
            self.percent = progress_percent(done, self.total, completed=done >= self.total)
        self.step = None

    def finish(self, run: Run) -> None:
        pass


class ConsoleProgressReporter(ProgressReporter):
    """Renders progress on the operator's terminal with click."""

    def __init__(self, verbose: bool = False, file: Optional[IO[str]] = None) -> None:
        super().__init__()
        self.verbose = verbose
        self.file = file
        stream = file if file is not None else sys.stdout
        self.interactive = bool(getattr(stream, "isatty", lambda: False)())
        self._spinner_drawn = False

    def _echo(self, message: str = "", **style) -> None:
        if style:
            message = click.style(message, **style)
        click.echo(message, file=self.file)

    def begin(self, step: Step, position: int, total: int) -> None:
        super().begin(step, position, total)
        self._echo(
            f"{render_bar(self.percent)} {self.percent:3d}%  [{position + 1}/{total}] {step.description}",
            fg="yellow",
        )

    def tick(self) -> None:
        super().tick()
        if not self.interactive:
            return
        frame = SPINNER_FRAMES[self.ticks % len(SPINNER_FRAMES)]
        click.echo(f"\r  {frame} Working... ({self.elapsed_s:.0f}s)", nl=False, file=self.file)
        self._spinner_drawn = True

    def _clear_spinner(self) -> None:
        if self._spinner_drawn:
            click.echo("\r\033[K", nl=False, file=self.file)
            self._spinner_drawn = False

    def end(self, step: Step, record: StepRecord) -> None:
        self._clear_spinner()
        if record.status == StepStatus.SUCCEEDED:
            self._echo(f"  ✅ {step.description} Done ({record.duration_s:.0f}s).", fg="green")
            if record.note:
                self._echo(f"     {record.note}")
            if record.output.strip() and (self.verbose or step.verbose):
                self._echo(record.output.rstrip(), dim=True)
        elif record.status == StepStatus.SKIPPED:
            self._echo(f"  ✅ {step.skip_message or step.description + ' skipped'}", fg="yellow")
        elif record.status == StepStatus.FAILED:
            self._echo(f"  ❌ {step.description} Failed ({record.duration_s:.0f}s).", fg="red")
        super().end(step, record)

    def finish(self, run: Run) -> None:
        if run.succeeded:
            self._echo(f"{render_bar(self.percent)} {self.percent:3d}%  All steps completed.", fg="green")
