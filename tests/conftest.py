"""
Pytest configuration and fixtures for installer tests.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Dict, Generator, List, Optional, Sequence

import pytest

from gopanel_installer.config import InstallerConfig, reset_config
from gopanel_installer.logger import PACKAGE_LOGGER
from gopanel_installer.models import ActionResult, Command, Run, RunContext, Step, StepRecord
from gopanel_installer.probe import EnvironmentProbe
from gopanel_installer.progress import ProgressReporter
from gopanel_installer.runner import RunningAction


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> Generator[None, None, None]:
    """Drop GOPANEL_* variables and the config singleton around each test."""
    for key in list(os.environ):
        if key.startswith("GOPANEL_"):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path: Path) -> InstallerConfig:
    """Config pointing every host path into tmp_path."""
    return InstallerConfig(
        install_dir=str(tmp_path / "opt" / "gopanel"),
        systemd_dir=str(tmp_path / "systemd"),
        go_root=str(tmp_path / "usr-local"),
        download_dir=str(tmp_path / "downloads"),
        log_file=str(tmp_path / "logs" / "install.log"),
        privilege_mode="none",
        docker_user="deploy",
        tick_interval_s=0.01,
    )


@pytest.fixture
def restore_package_logger() -> Generator[None, None, None]:
    """Undo handler and level changes made by configure_logging()."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    handlers = list(package_logger.handlers)
    level = package_logger.level
    yield
    for handler in list(package_logger.handlers):
        if handler not in handlers:
            package_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in package_logger.handlers:
            package_logger.addHandler(handler)
    package_logger.setLevel(level)


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


# ============================================================================
# Fakes
# ============================================================================


class StubProbe(EnvironmentProbe):
    """Probe with pre-seeded facts; unseeded facts fall back to real checks."""

    DEFAULTS = {
        EnvironmentProbe.DOCKER_PRESENT: False,
        EnvironmentProbe.STAGED_ARCHIVE: None,
        EnvironmentProbe.SERVICE_REGISTERED: False,
        EnvironmentProbe.GO_VERSION: None,
    }

    def __init__(self, config: InstallerConfig, working_dir: Path, **facts):
        super().__init__(config, working_dir, search_path="")
        self._facts.update(self.DEFAULTS)
        self._facts.update(facts)


class FakeActionRunner:
    """Records every command group; fails groups containing a marker."""

    def __init__(
        self,
        fail_on: Optional[Dict[str, int]] = None,
        output: str = "",
        delay_s: float = 0.0,
    ) -> None:
        self.fail_on = dict(fail_on or {})
        self.output = output
        self.delay_s = delay_s
        self.calls: List[List[str]] = []

    def _result_for(self, commands: Sequence[Command]) -> ActionResult:
        for command in commands:
            for marker, exit_code in self.fail_on.items():
                if marker in command.script:
                    return ActionResult(
                        exit_code=exit_code,
                        duration_s=self.delay_s,
                        output=f"{self.output}boom: {command.script}\n",
                        failed_command=command.script,
                    )
        return ActionResult(exit_code=0, duration_s=self.delay_s, output=self.output)

    def start(self, commands: Sequence[Command]) -> RunningAction:
        commands = list(commands)
        self.calls.append([c.script for c in commands])
        result = self._result_for(commands)

        def work() -> ActionResult:
            if self.delay_s:
                time.sleep(self.delay_s)
            return result

        return RunningAction(work).start()

    @property
    def flat_commands(self) -> List[str]:
        return [script for call in self.calls for script in call]


class RecordingReporter(ProgressReporter):
    """Reporter that keeps every event with the percentage at that moment."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[tuple] = []

    def begin(self, step: Step, position: int, total: int) -> None:
        super().begin(step, position, total)
        self.events.append(("begin", step.name, self.percent))

    def tick(self) -> None:
        super().tick()
        self.events.append(("tick", self.step.name if self.step else None, self.percent))

    def end(self, step: Step, record: StepRecord) -> None:
        super().end(step, record)
        self.events.append(("end", step.name, record.status.value, self.percent))

    def finish(self, run: Run) -> None:
        super().finish(run)
        self.events.append(("finish", run.state.value, self.percent))


def command_step(name: str, **kwargs) -> Step:
    """Step whose single command is its own name."""
    return Step(
        name=name,
        description=f"Running {name}",
        action=lambda ctx, _n=name: [Command(_n)],
        failure_message=f"{name} broke",
        **kwargs,
    )


@pytest.fixture
def fake_runner() -> FakeActionRunner:
    return FakeActionRunner()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def probe(config: InstallerConfig, workdir: Path) -> StubProbe:
    return StubProbe(config, workdir)


@pytest.fixture
def context(config: InstallerConfig, probe: StubProbe, workdir: Path) -> RunContext:
    return RunContext(config=config, probe=probe, working_dir=workdir)
