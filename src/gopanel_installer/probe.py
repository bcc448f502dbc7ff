"""
Environment probe - answers idempotency questions about the host.

Facts are computed lazily the first time they are asked for and cached for
the rest of the run. Probing never changes the host. A fact that cannot be
determined raises ``ProbeError`` instead of guessing.

Usage::

    probe = EnvironmentProbe(config, Path.cwd())
    if probe.probe(EnvironmentProbe.DOCKER_PRESENT):
        ...
"""

from __future__ import annotations

import logging
import os
import stat
import subprocess
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from gopanel_installer.config import InstallerConfig
from gopanel_installer.errors import PreconditionError, ProbeError

logger = logging.getLogger(__name__)

__all__ = ["EnvironmentProbe"]

# Seconds allowed for `go version` to answer
GO_VERSION_TIMEOUT_S = 10.0

REQUIRED_COMMANDS = ("apt-get", "systemctl", "tar")


class EnvironmentProbe:
    """Memoized, read-only checks of the host's current state."""

    DOCKER_PRESENT = "docker_present"
    STAGED_ARCHIVE = "staged_archive"
    SERVICE_REGISTERED = "service_registered"
    GO_VERSION = "go_version"

    def __init__(
        self,
        config: InstallerConfig,
        working_dir: Path,
        search_path: Optional[str] = None,
    ) -> None:
        self.config = config
        self.working_dir = Path(working_dir)
        self.search_path = search_path if search_path is not None else os.environ.get("PATH", "")
        self._facts: Dict[str, Any] = {}
        self._checks: Dict[str, Callable[[], Any]] = {
            self.DOCKER_PRESENT: self._check_docker_present,
            self.STAGED_ARCHIVE: self._check_staged_archive,
            self.SERVICE_REGISTERED: self._check_service_registered,
            self.GO_VERSION: self._check_go_version,
        }

    @property
    def facts(self) -> Mapping[str, Any]:
        """Facts computed so far (read-only view)."""
        return MappingProxyType(self._facts)

    def probe(self, fact: str) -> Any:
        if fact in self._facts:
            return self._facts[fact]
        check = self._checks.get(fact)
        if check is None:
            raise ProbeError(fact, "unknown fact")
        value = check()
        logger.debug("Probed %s = %r", fact, value)
        self._facts[fact] = value
        return value

    # Convenience accessors used by skip predicates

    def docker_present(self) -> bool:
        return self.probe(self.DOCKER_PRESENT)

    def staged_archive(self) -> Optional[Path]:
        return self.probe(self.STAGED_ARCHIVE)

    def service_registered(self) -> bool:
        return self.probe(self.SERVICE_REGISTERED)

    def go_version(self) -> Optional[str]:
        return self.probe(self.GO_VERSION)

    def go_version_matches(self) -> bool:
        """True when the configured Go release is already unpacked in go_root."""
        reported = self.go_version()
        if not reported:
            return False
        # `go version` prints e.g. "go version go1.24.5 linux/amd64"
        return f"go{self.config.go_version}" in reported.split()

    def find_executable(self, name: str) -> Optional[Path]:
        """Locate an executable on the search path, failing on unreadable entries."""
        for entry in self.search_path.split(os.pathsep):
            if not entry:
                continue
            candidate = Path(entry) / name
            try:
                st = os.stat(candidate)
            except (FileNotFoundError, NotADirectoryError):
                continue
            except OSError as exc:
                raise ProbeError(f"{name} on PATH", f"{candidate}: {exc.strerror or exc}") from exc
            if stat.S_ISREG(st.st_mode) and os.access(candidate, os.X_OK):
                return candidate
        return None

    def check_preconditions(self) -> None:
        """Raise PreconditionError unless every required host command is available."""
        required: List[str] = list(REQUIRED_COMMANDS)
        if self.config.use_sudo():
            required.append("sudo")
        missing = [name for name in required if self.find_executable(name) is None]
        if missing:
            raise PreconditionError(missing)

    # Individual checks

    def _check_docker_present(self) -> bool:
        return self.find_executable("docker") is not None

    def _check_staged_archive(self) -> Optional[Path]:
        try:
            matches = sorted(p for p in self.working_dir.glob(self.config.archive_pattern) if p.is_file())
        except OSError as exc:
            raise ProbeError(self.STAGED_ARCHIVE, str(exc)) from exc
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "Found %d archives matching %s, using %s",
                len(matches),
                self.config.archive_pattern,
                matches[0].name,
            )
        return matches[0]

    def _check_service_registered(self) -> bool:
        unit = self.config.unit_path
        try:
            os.stat(unit)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ProbeError(self.SERVICE_REGISTERED, f"{unit}: {exc.strerror or exc}") from exc
        return True

    def _check_go_version(self) -> Optional[str]:
        go = self.config.go_bin_dir / "go"
        try:
            result = subprocess.run(
                [str(go), "version"],
                capture_output=True,
                text=True,
                timeout=GO_VERSION_TIMEOUT_S,
            )
        except FileNotFoundError:
            return None
        except subprocess.TimeoutExpired as exc:
            raise ProbeError(self.GO_VERSION, f"{go} version timed out") from exc
        except OSError as exc:
            raise ProbeError(self.GO_VERSION, f"{go}: {exc.strerror or exc}") from exc
        if result.returncode != 0:
            logger.info("%s version exited %d, treating toolchain as absent", go, result.returncode)
            return None
        return result.stdout.strip()
