"""
Data model for a provisioning run.

A ``Step`` is an immutable description of one unit of work. A ``Run`` walks
an ordered tuple of steps exactly once and ends in a single terminal
``RunOutcome``. Values that one step computes for a later one live on the
``RunContext``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from gopanel_installer.config import InstallerConfig
    from gopanel_installer.probe import EnvironmentProbe


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


class RunState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({RunState.SUCCEEDED, RunState.FAILED, RunState.ABORTED})


@dataclass(frozen=True)
class Command:
    """One shell-level operation, optionally fed text on stdin."""

    script: str
    input: Optional[str] = None

    def __str__(self) -> str:
        return self.script


@dataclass(frozen=True)
class ActionResult:
    exit_code: int
    duration_s: float
    output: str = ""
    failed_command: Optional[str] = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class RunContext:
    """Run-scoped values shared between steps."""

    config: "InstallerConfig"
    probe: "EnvironmentProbe"
    working_dir: Path
    project_source: Optional[Path] = None

    @property
    def extract_dir(self) -> Path:
        return self.working_dir / self.config.extract_dir_name


@dataclass(frozen=True)
class Step:
    """
    A named unit of provisioning work.

    ``action`` returns the commands to run for the current context; ``decide``
    performs an in-process decision and returns a note for the operator.
    ``skip_if`` is evaluated against the environment probe right before the
    step would run.
    """

    name: str
    description: str
    action: Optional[Callable[[RunContext], Sequence[Command]]] = None
    decide: Optional[Callable[[RunContext], str]] = None
    skip_if: Optional[Callable[["EnvironmentProbe"], bool]] = None
    skip_message: str = ""
    failure_message: str = ""
    verbose: bool = False

    def should_skip(self, probe: "EnvironmentProbe") -> bool:
        return bool(self.skip_if and self.skip_if(probe))

    def commands(self, context: RunContext) -> List[Command]:
        if self.action is None:
            return []
        return list(self.action(context))


@dataclass
class StepRecord:
    name: str
    status: StepStatus = StepStatus.PENDING
    exit_code: Optional[int] = None
    duration_s: float = 0.0
    output: str = ""
    note: str = ""


@dataclass(frozen=True)
class RunOutcome:
    state: RunState
    step_name: Optional[str] = None
    reason: str = ""
    output: str = ""


@dataclass
class Run:
    """One end-to-end execution of an ordered step sequence."""

    steps: Tuple[Step, ...]
    cursor: int = 0
    outcome: RunOutcome = field(default_factory=lambda: RunOutcome(RunState.PENDING))
    records: List[StepRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.steps = tuple(self.steps)
        if not self.records:
            self.records = [StepRecord(name=s.name) for s in self.steps]

    @property
    def total(self) -> int:
        return len(self.steps)

    @property
    def state(self) -> RunState:
        return self.outcome.state

    @property
    def is_terminal(self) -> bool:
        return self.outcome.state in TERMINAL_STATES

    @property
    def succeeded(self) -> bool:
        return self.outcome.state == RunState.SUCCEEDED

    @property
    def current_step(self) -> Optional[Step]:
        if self.cursor < self.total:
            return self.steps[self.cursor]
        return None

    def record(self, name: str) -> StepRecord:
        for rec in self.records:
            if rec.name == name:
                return rec
        raise KeyError(name)

    def start(self) -> None:
        self._require(RunState.PENDING)
        self.outcome = RunOutcome(RunState.RUNNING)

    def advance(self) -> None:
        self._require(RunState.RUNNING)
        if self.cursor >= self.total:
            raise RuntimeError("cursor already past the last step")
        self.cursor += 1

    def succeed(self) -> None:
        self._require(RunState.RUNNING)
        if self.cursor != self.total:
            raise RuntimeError(f"cannot succeed with {self.total - self.cursor} step(s) left")
        self.outcome = RunOutcome(RunState.SUCCEEDED)

    def fail(self, step_name: str, reason: str, output: str = "") -> None:
        self._require(RunState.RUNNING)
        self.outcome = RunOutcome(RunState.FAILED, step_name=step_name, reason=reason, output=output)
        for rec in self.records[self.cursor + 1:]:
            rec.status = StepStatus.NOT_ATTEMPTED

    def abort(self, reason: str = "aborted by user") -> None:
        self._require(RunState.PENDING)
        self.outcome = RunOutcome(RunState.ABORTED, reason=reason)
        for rec in self.records:
            rec.status = StepStatus.NOT_ATTEMPTED

    def _require(self, state: RunState) -> None:
        if self.outcome.state != state:
            raise RuntimeError(f"run is {self.outcome.state.value}, expected {state.value}")
