"""Exceptions raised by the installer."""

from __future__ import annotations

from typing import Iterable


class InstallerError(Exception):
    """Base error for installation failures."""


class PreconditionError(InstallerError):
    """Raised when the host lacks something the run cannot start without."""

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Required commands not found on PATH: {', '.join(self.missing)}")


class ProbeError(InstallerError):
    """Raised when an environment fact cannot be determined."""

    def __init__(self, fact: str, reason: str):
        self.fact = fact
        self.reason = reason
        super().__init__(f"Cannot determine '{fact}': {reason}")
