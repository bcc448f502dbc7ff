"""
Action runner - executes one step's commands and captures their output.

Commands of a step run in order under ``bash -o pipefail -c``; the first
non-zero exit stops the group. Standard output and error are captured
together so nothing reaches the terminal while progress is drawn.

``start()`` runs the group on a worker thread and returns a
``RunningAction`` whose ``wait(timeout)`` doubles as the liveness check.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence, Tuple

from gopanel_installer.models import ActionResult, Command

logger = logging.getLogger(__name__)

__all__ = ["ActionRunner", "RunningAction", "TIMEOUT_EXIT_CODE", "LAUNCH_FAILURE_EXIT_CODE"]

# Same codes coreutils `timeout` and the shell use
TIMEOUT_EXIT_CODE = 124
LAUNCH_FAILURE_EXIT_CODE = 127


class RunningAction:
    """Handle on an action executing in the background."""

    def __init__(self, work: Callable[[], ActionResult], name: str = "action") -> None:
        self._done = threading.Event()
        self._result: Optional[ActionResult] = None
        self._error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._work, args=(work,), name=name, daemon=True)

    def start(self) -> "RunningAction":
        self._thread.start()
        return self

    def _work(self, work: Callable[[], ActionResult]) -> None:
        try:
            self._result = work()
        except BaseException as exc:  # re-raised from .result on the driving thread
            self._error = exc
        finally:
            self._done.set()

    def is_running(self) -> bool:
        return not self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds; return True once the action has exited."""
        return self._done.wait(timeout)

    @property
    def result(self) -> ActionResult:
        if not self._done.is_set():
            raise RuntimeError("action is still running")
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError("action finished without a result")
        return self._result


class ActionRunner:
    """Runs command groups as a single fail-fast shell flow."""

    def __init__(
        self,
        shell: str = "/bin/bash",
        timeout_s: Optional[float] = None,
        cwd: Optional[Path] = None,
        env_overrides: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.shell = shell
        self.timeout_s = timeout_s
        self.cwd = cwd
        self.env = {**os.environ, **(env_overrides or {})}

    def start(self, commands: Sequence[Command]) -> RunningAction:
        commands = list(commands)
        return RunningAction(lambda: self.run(commands), name="gopanel-action").start()

    def run(self, commands: Sequence[Command]) -> ActionResult:
        started = time.monotonic()
        chunks = []
        for command in commands:
            logger.debug("Running: %s", command.script)
            exit_code, output, timed_out = self._run_one(command)
            chunks.append(f"$ {command.script}\n{output}")
            if exit_code != 0:
                logger.debug("Command failed with exit code %d: %s", exit_code, command.script)
                return ActionResult(
                    exit_code=exit_code,
                    duration_s=time.monotonic() - started,
                    output="".join(chunks),
                    failed_command=command.script,
                    timed_out=timed_out,
                )
        return ActionResult(
            exit_code=0,
            duration_s=time.monotonic() - started,
            output="".join(chunks),
        )

    def _run_one(self, command: Command) -> Tuple[int, str, bool]:
        """Run one command and return exit code, combined output and timeout flag."""
        try:
            proc = subprocess.Popen(
                [self.shell, "-o", "pipefail", "-c", command.script],
                stdin=subprocess.PIPE if command.input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                # Tool output is not guaranteed to be valid UTF-8
                encoding="utf-8",
                errors="replace",
                cwd=self.cwd,
                env=self.env,
                # A separate process group lets a timeout kill the whole pipeline
                start_new_session=self.timeout_s is not None,
            )
        except OSError as exc:
            return LAUNCH_FAILURE_EXIT_CODE, f"Command execution error: {exc}\n", False

        try:
            output, _ = proc.communicate(input=command.input, timeout=self.timeout_s)
        except subprocess.TimeoutExpired:
            self._kill(proc)
            output, _ = proc.communicate()
            return (
                TIMEOUT_EXIT_CODE,
                f"{output or ''}Command timed out after {self.timeout_s:g}s\n",
                True,
            )
        return proc.returncode, output or "", False

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
