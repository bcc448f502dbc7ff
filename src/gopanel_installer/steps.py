"""
Step catalogue for a GoPanel installation.

Each action receives the run context and returns the shell commands to run;
privileged commands go through ``config.privileged``. Skip predicates only
read the environment probe.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import List

from gopanel_installer.config import InstallerConfig
from gopanel_installer.errors import InstallerError
from gopanel_installer.models import Command, RunContext, Step
from gopanel_installer.probe import EnvironmentProbe
from gopanel_installer.service import ServiceUnit

__all__ = ["build_steps"]

q = shlex.quote


def _service(config: InstallerConfig) -> str:
    return f"{config.service_name}.service"


# Skip predicates


def _docker_present(probe: EnvironmentProbe) -> bool:
    return probe.docker_present()


def _no_docker_user(probe: EnvironmentProbe) -> bool:
    return probe.config.resolve_docker_user() is None


def _go_installed(probe: EnvironmentProbe) -> bool:
    return probe.go_version_matches()


def _no_staged_archive(probe: EnvironmentProbe) -> bool:
    return probe.staged_archive() is None


def _service_not_registered(probe: EnvironmentProbe) -> bool:
    return not probe.service_registered()


# Actions


def _apt_update(ctx: RunContext) -> List[Command]:
    return [Command(ctx.config.privileged("apt-get update"))]


def _base_packages(ctx: RunContext) -> List[Command]:
    packages = " ".join(q(p) for p in ctx.config.apt_packages)
    return [Command(ctx.config.privileged(f"env DEBIAN_FRONTEND=noninteractive apt-get install -y {packages}"))]


def _docker_install(ctx: RunContext) -> List[Command]:
    return [Command(f"curl -fsSL {q(ctx.config.docker_install_url)} | {ctx.config.privileged('sh')}")]


def _docker_group(ctx: RunContext) -> List[Command]:
    user = ctx.config.resolve_docker_user()
    return [Command(ctx.config.privileged(f"usermod -aG docker {q(user)}"))]


def _go_download(ctx: RunContext) -> List[Command]:
    cfg = ctx.config
    return [Command(f"wget -q {q(cfg.go_download_url)} -O {q(str(cfg.go_tarball_path))}")]


def _go_extract(ctx: RunContext) -> List[Command]:
    cfg = ctx.config
    go_dir = Path(cfg.go_root) / "go"
    return [
        Command(cfg.privileged(f"rm -rf {q(str(go_dir))}")),
        Command(cfg.privileged(f"tar -C {q(cfg.go_root)} -xzf {q(str(cfg.go_tarball_path))}")),
    ]


def _go_verify(ctx: RunContext) -> List[Command]:
    return [Command(f"{q(str(ctx.config.go_bin_dir / 'go'))} version")]


def _project_extract(ctx: RunContext) -> List[Command]:
    archive = ctx.probe.staged_archive()
    out = q(str(ctx.extract_dir))
    return [
        Command(f"rm -rf {out}"),
        Command(f"mkdir -p {out}"),
        Command(f"7z x {q(str(archive))} -o{out} -y"),
    ]


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _choose_project_source(ctx: RunContext) -> str:
    archive = ctx.probe.staged_archive()
    if archive is not None:
        source, note = ctx.extract_dir, f"Using files extracted from {archive.name}"
    else:
        source, note = ctx.working_dir, "No archive found - copying from the current directory"

    # The copy step empties install_dir first, which would delete the source
    install_dir = Path(ctx.config.install_dir).resolve()
    if _is_within(source.resolve(), install_dir):
        raise InstallerError(
            f"project source {source} is inside the install directory {install_dir}; "
            "run the installer from another directory"
        )
    ctx.project_source = source
    return note


def _service_stop(ctx: RunContext) -> List[Command]:
    return [Command(ctx.config.privileged(f"systemctl stop {q(_service(ctx.config))}"))]


def _project_copy(ctx: RunContext) -> List[Command]:
    if ctx.project_source is None:
        raise InstallerError("project source directory has not been chosen")
    cfg = ctx.config
    dest = q(cfg.install_dir)
    return [
        Command(cfg.privileged(f"rm -rf {dest}")),
        Command(cfg.privileged(f"mkdir -p {dest}")),
        # "<src>/." copies dotfiles too
        Command(cfg.privileged(f"cp -a {q(str(ctx.project_source) + '/.')} {dest}/")),
        Command(cfg.privileged(f"chown -R {q(cfg.service_user)}:{q(cfg.service_group)} {dest}")),
    ]


def _binary_permissions(ctx: RunContext) -> List[Command]:
    return [Command(ctx.config.privileged(f"chmod +x {q(str(ctx.config.binary_path))}"))]


def _service_unit(ctx: RunContext) -> List[Command]:
    cfg = ctx.config
    unit = ServiceUnit.from_config(cfg)
    return [Command(f"{cfg.privileged('tee ' + q(str(cfg.unit_path)))} > /dev/null", input=unit.render())]


def _service_start(ctx: RunContext) -> List[Command]:
    cfg = ctx.config
    service = q(_service(cfg))
    return [
        Command(cfg.privileged("systemctl daemon-reload")),
        Command(cfg.privileged(f"systemctl enable {service}")),
        Command(cfg.privileged(f"systemctl restart {service}")),
    ]


def build_steps(config: InstallerConfig) -> List[Step]:
    """Ordered steps of a full installation."""
    return [
        Step(
            name="apt-update",
            description="Updating apt packages",
            action=_apt_update,
            failure_message="Could not refresh the apt package index.",
        ),
        Step(
            name="base-packages",
            description="Installing build essentials and tools",
            action=_base_packages,
            failure_message="apt-get could not install the base packages.",
        ),
        Step(
            name="docker-install",
            description="Downloading and installing Docker",
            action=_docker_install,
            skip_if=_docker_present,
            skip_message="Docker is already installed.",
            failure_message="The Docker install script failed.",
        ),
        Step(
            name="docker-group",
            description="Adding user to the docker group",
            action=_docker_group,
            skip_if=_no_docker_user,
            skip_message="No non-root user to add to the docker group.",
            failure_message="Could not add the user to the docker group.",
        ),
        Step(
            name="go-download",
            description=f"Downloading Go {config.go_version}",
            action=_go_download,
            skip_if=_go_installed,
            skip_message=f"Go {config.go_version} is already installed.",
            failure_message=f"Could not download {config.go_download_url}.",
        ),
        Step(
            name="go-extract",
            description=f"Extracting Go to {config.go_root}",
            action=_go_extract,
            skip_if=_go_installed,
            skip_message=f"Go {config.go_version} is already unpacked.",
            failure_message="Could not unpack the Go toolchain.",
        ),
        Step(
            name="go-verify",
            description="Verifying the Go toolchain",
            action=_go_verify,
            failure_message="The installed go binary does not run.",
            verbose=True,
        ),
        Step(
            name="project-extract",
            description="Extracting project archive",
            action=_project_extract,
            skip_if=_no_staged_archive,
            skip_message=f"No {config.archive_pattern} archive staged, nothing to extract.",
            failure_message="7z could not extract the project archive.",
        ),
        Step(
            name="project-source",
            description="Choosing project source directory",
            decide=_choose_project_source,
            failure_message="Could not determine where the project files are.",
        ),
        Step(
            name="service-stop",
            description=f"Stopping the existing {config.service_name} service",
            action=_service_stop,
            skip_if=_service_not_registered,
            skip_message="No existing service registered.",
            failure_message="Could not stop the running service.",
        ),
        Step(
            name="project-copy",
            description=f"Copying project files to {config.install_dir}",
            action=_project_copy,
            failure_message=f"Could not copy the project into {config.install_dir}.",
        ),
        Step(
            name="binary-permissions",
            description="Making binary executable",
            action=_binary_permissions,
            failure_message=f"{config.binary_path} is missing or cannot be made executable.",
        ),
        Step(
            name="service-unit",
            description="Creating systemd service",
            action=_service_unit,
            failure_message=f"Could not write {config.unit_path}.",
        ),
        Step(
            name="service-start",
            description="Reloading systemd and starting the service",
            action=_service_start,
            failure_message="systemd could not enable or start the service.",
        ),
    ]
