"""
Provisioning orchestrator.

Drives an ordered list of steps one at a time:

    Pending -> Running(0) -> ... -> Succeeded
                  |-> Skipped(i) -> Running(i+1)
                  |-> Failed(i)            (terminal, nothing after i runs)
    Pending -> Aborted                     (operator declined)

Failure is fail-fast with no retry and no rollback: effects of the steps that
already ran stay on the host. A re-run relies on the environment probe to
skip whatever is already in place.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Optional, Sequence

from opentelemetry import trace

from gopanel_installer.errors import InstallerError
from gopanel_installer.logger import InstallEventLogger
from gopanel_installer.models import Run, RunContext, Step, StepRecord, StepStatus
from gopanel_installer.progress import ProgressReporter
from gopanel_installer.runner import ActionRunner

logger = logging.getLogger(__name__)

__all__ = ["Orchestrator"]


class Orchestrator:
    """Runs steps sequentially with progress reporting and fail-fast semantics."""

    def __init__(
        self,
        steps: Sequence[Step],
        runner: ActionRunner,
        reporter: ProgressReporter,
        context: RunContext,
        tick_interval_s: float = 0.1,
        events: Optional[InstallEventLogger] = None,
    ) -> None:
        self.steps = tuple(steps)
        self.runner = runner
        self.reporter = reporter
        self.context = context
        self.tick_interval_s = tick_interval_s
        self.events = events or InstallEventLogger(run_id=uuid.uuid4().hex[:12])
        self.tracer = trace.get_tracer("gopanel_installer.orchestrator")

    def execute(self, confirm: Callable[[], bool]) -> Run:
        """Ask for confirmation, then drive every step to a single terminal outcome."""
        run = Run(steps=self.steps)

        if not confirm():
            run.abort()
            self.events.log_run_aborted(run.outcome.reason)
            return run

        run.start()
        self.events.log_run_started(run.total)

        with self.tracer.start_as_current_span("gopanel.install.run") as span:
            span.set_attribute("install.steps.total", run.total)
            for position, step in enumerate(run.steps):
                record = self._execute_step(run, step, position)
                if record.status == StepStatus.FAILED:
                    run.fail(step.name, record.note or step.failure_message, record.output)
                    break
                run.advance()
            else:
                run.succeed()
            span.set_attribute("install.state", run.state.value)
            span.set_attribute("install.cursor", run.cursor)

        self.reporter.finish(run)
        self.events.log_run_finished(run.state.value, run.cursor, run.total)
        return run

    def _execute_step(self, run: Run, step: Step, position: int) -> StepRecord:
        record = run.records[position]
        record.status = StepStatus.RUNNING
        self.reporter.begin(step, position, run.total)
        self.events.log_step_started(step.name, position, run.total)

        with self.tracer.start_as_current_span(f"gopanel.install.step.{step.name}") as span:
            span.set_attribute("install.step.name", step.name)
            span.set_attribute("install.step.position", position)
            started = time.monotonic()
            try:
                self._perform(step, record)
            except InstallerError as exc:
                # Indeterminate probe facts and failed decisions end the run like a failed command
                record.status = StepStatus.FAILED
                record.note = str(exc)
                logger.error("Step %s failed: %s", step.name, exc)
            except Exception as exc:
                record.status = StepStatus.FAILED
                record.note = f"{step.failure_message} (unexpected error: {exc})"
                logger.exception("Step %s raised an unexpected error", step.name)
            record.duration_s = time.monotonic() - started
            span.set_attribute("install.step.status", record.status.value)
            if record.exit_code is not None:
                span.set_attribute("install.step.exit_code", record.exit_code)

        self._log_record(step, record)
        self.reporter.end(step, record)
        return record

    def _perform(self, step: Step, record: StepRecord) -> None:
        if step.should_skip(self.context.probe):
            record.status = StepStatus.SKIPPED
            record.note = step.skip_message
            return

        if step.decide is not None:
            record.note = step.decide(self.context)

        commands = step.commands(self.context)
        if not commands:
            record.status = StepStatus.SUCCEEDED
            return

        action = self.runner.start(commands)
        while not action.wait(self.tick_interval_s):
            self.reporter.tick()
        result = action.result

        record.exit_code = result.exit_code
        record.output = result.output
        if result.ok:
            record.status = StepStatus.SUCCEEDED
            return

        record.status = StepStatus.FAILED
        if result.timed_out:
            record.note = f"{step.failure_message} (timed out: {result.failed_command})"
        else:
            record.note = f"{step.failure_message} (exit code {result.exit_code}: {result.failed_command})"

    def _log_record(self, step: Step, record: StepRecord) -> None:
        if record.status == StepStatus.SUCCEEDED:
            self.events.log_step_succeeded(step.name, record.duration_s, record.note)
        elif record.status == StepStatus.SKIPPED:
            self.events.log_step_skipped(step.name, record.note)
        elif record.status == StepStatus.FAILED:
            self.events.log_step_failed(
                step.name,
                record.note,
                exit_code=record.exit_code,
                output=record.output,
            )
