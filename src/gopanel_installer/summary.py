"""Closing message for a finished run."""

from __future__ import annotations

import logging
import socket
from pathlib import Path
from typing import Callable, List, Optional

import click

from gopanel_installer.config import InstallerConfig
from gopanel_installer.models import Run, RunState, StepStatus

logger = logging.getLogger(__name__)

__all__ = ["detect_host_address", "SummaryPresenter", "LOOPBACK_LABEL"]

LOOPBACK_LABEL = "localhost"

# Destination used only to pick the outbound interface; no packet is sent
_ROUTE_PROBE = ("8.8.8.8", 80)


def _usable(address: Optional[str]) -> bool:
    return bool(address) and not address.startswith("127.") and address != "0.0.0.0"


def detect_host_address() -> str:
    """Best-effort externally reachable IPv4 address of this host."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(_ROUTE_PROBE)
            address = sock.getsockname()[0]
        if _usable(address):
            return address
    except OSError as e:
        logger.debug("Route lookup failed: %s", e)

    try:
        address = socket.gethostbyname(socket.gethostname())
        if _usable(address):
            return address
    except OSError as e:
        logger.debug("Hostname lookup failed: %s", e)

    return LOOPBACK_LABEL


class SummaryPresenter:
    """Renders exactly one of the success, failure or abort summaries."""

    def __init__(
        self,
        config: InstallerConfig,
        address_resolver: Callable[[], str] = detect_host_address,
        log_path: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.address_resolver = address_resolver
        self.log_path = log_path

    def render(self, run: Run) -> List[str]:
        if run.state == RunState.SUCCEEDED:
            return self._render_success(run)
        if run.state == RunState.ABORTED:
            return ["Installation aborted by user. No changes were made."]
        if run.state == RunState.FAILED:
            return self._render_failure(run)
        raise ValueError(f"run has not finished (state: {run.state.value})")

    def present(self, run: Run) -> None:
        color = {
            RunState.SUCCEEDED: "green",
            RunState.FAILED: "red",
            RunState.ABORTED: "yellow",
        }.get(run.state)
        rule = "=" * 31
        click.echo(click.style(rule, fg="blue"))
        for i, line in enumerate(self.render(run)):
            click.echo(click.style(line, fg=color, bold=True) if i == 0 else line)
        click.echo(click.style(rule, fg="blue"))

    def _render_success(self, run: Run) -> List[str]:
        cfg = self.config
        address = self.address_resolver()
        lines = [
            f"✅ Done! {cfg.app_name} is running as {cfg.service_user} from {cfg.install_dir}",
            f"🌐 Access: http://{address}:{cfg.service_port}",
            f"🔍 Check status: sudo systemctl status {cfg.service_name}",
            f"📜 View logs: sudo journalctl -u {cfg.service_name} -f",
        ]
        group_record = next((r for r in run.records if r.name == "docker-group"), None)
        if group_record is not None and group_record.status == StepStatus.SUCCEEDED:
            lines.append("⚡ Note: Log out and back in for the docker group membership to apply")
        return lines

    def _render_failure(self, run: Run) -> List[str]:
        outcome = run.outcome
        step = next((s for s in run.steps if s.name == outcome.step_name), None)
        lines = [f"❌ Installation failed at step '{outcome.step_name}'."]
        if step is not None and step.failure_message:
            lines.append(step.failure_message)
        if outcome.reason and (step is None or outcome.reason != step.failure_message):
            lines.append(f"Reason: {outcome.reason}")
        if outcome.output.strip():
            tail = outcome.output.rstrip().splitlines()[-self.config.failure_output_lines:]
            lines.append(f"Last {len(tail)} line(s) of output:")
            lines.extend(f"  {line}" for line in tail)
        not_attempted = [r.name for r in run.records if r.status == StepStatus.NOT_ATTEMPTED]
        if not_attempted:
            lines.append(f"Not attempted: {', '.join(not_attempted)}")
        if self.log_path is not None:
            lines.append(f"Full log: {self.log_path}")
        lines.append("Steps that already completed were left in place; re-run to resume.")
        return lines
