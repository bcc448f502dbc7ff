"""
GoPanel installer CLI.

Usage::

    sudo gopanel-install            # interactive confirmation
    gopanel-install --yes           # unattended (CI, cloud-init)
    gopanel-install --list-steps

Exit status is 0 when every step succeeded or was skipped and 1 on any
failure, missing precondition or declined confirmation.
"""

from __future__ import annotations

import subprocess
import sys
import uuid
from pathlib import Path
from typing import List, Optional

import click

from gopanel_installer import __version__
from gopanel_installer.config import InstallerConfig, get_config
from gopanel_installer.errors import InstallerError
from gopanel_installer.logger import InstallEventLogger, configure_logging
from gopanel_installer.models import RunContext, Step
from gopanel_installer.orchestrator import Orchestrator
from gopanel_installer.probe import EnvironmentProbe
from gopanel_installer.progress import ConsoleProgressReporter
from gopanel_installer.runner import ActionRunner
from gopanel_installer.steps import build_steps
from gopanel_installer.summary import SummaryPresenter


def _print_banner(config: InstallerConfig, steps: List[Step]) -> None:
    rule = "=" * 31
    click.echo(click.style(rule, fg="blue"))
    click.echo(click.style(f"  🚀 Installing {config.app_name} ({len(steps)} steps)", fg="blue"))
    click.echo(click.style(rule, fg="blue"))
    click.echo(f"  Install directory: {config.install_dir} (existing contents are replaced)")
    click.echo(f"  Service:           {config.service_name}.service")
    click.echo(f"  Go version:        {config.go_version}")
    click.echo()


def _authenticate_sudo() -> bool:
    """Prompt for sudo credentials up front so steps never wait on a password."""
    result = subprocess.run(["sudo", "-v"])
    if result.returncode != 0:
        click.echo(click.style("sudo authentication failed.", fg="red"), err=True)
        return False
    return True


def _confirm(config: InstallerConfig, assume_yes: bool) -> bool:
    if not assume_yes:
        try:
            accepted = click.confirm(
                f"Install {config.app_name} on this host and replace {config.install_dir}?",
                default=False,
            )
        except click.Abort:
            click.echo()
            return False
        if not accepted:
            return False
    if config.use_sudo():
        return _authenticate_sudo()
    return True


@click.command()
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the confirmation prompt")
@click.option("--verbose", "-v", is_flag=True, help="Show captured output of every step")
@click.option("--list-steps", is_flag=True, help="List installation steps and exit")
@click.version_option(version=__version__, prog_name="gopanel-install")
def main(assume_yes: bool, verbose: bool, list_steps: bool) -> None:
    """Install GoPanel, Docker and Go on this host and register the service."""
    config = get_config(verbose=True) if verbose else get_config()
    steps = build_steps(config)

    if list_steps:
        for number, step in enumerate(steps, 1):
            click.echo(f"  {number:>2}  {step.name:<20} - {step.description}")
        return

    log_path: Optional[Path] = None
    try:
        log_path = configure_logging(config)
    except OSError as e:
        click.echo(
            click.style(f"Warning: cannot write log file {config.log_file}: {e}", fg="yellow"),
            err=True,
        )

    working_dir = Path.cwd()
    probe = EnvironmentProbe(config, working_dir)
    try:
        probe.check_preconditions()
    except InstallerError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    _print_banner(config, steps)

    orchestrator = Orchestrator(
        steps,
        runner=ActionRunner(timeout_s=config.step_timeout_s, cwd=working_dir),
        reporter=ConsoleProgressReporter(verbose=config.verbose),
        context=RunContext(config=config, probe=probe, working_dir=working_dir),
        tick_interval_s=config.tick_interval_s,
        events=InstallEventLogger(run_id=uuid.uuid4().hex[:12], log_format=config.log_format),
    )
    run = orchestrator.execute(lambda: _confirm(config, assume_yes))

    SummaryPresenter(config, log_path=log_path).present(run)
    sys.exit(0 if run.succeeded else 1)
