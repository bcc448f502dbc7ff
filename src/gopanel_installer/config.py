"""
Centralized configuration for the GoPanel installer.

Uses Pydantic BaseSettings for environment variable integration
and validation. All configurable values should be defined here.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (GOPANEL_*)
3. .env file
4. Default values

Example:
    from gopanel_installer.config import get_config

    config = get_config()
    print(config.install_dir)  # From GOPANEL_INSTALL_DIR or default

    # Override at runtime
    config = get_config(go_version="1.23.4")
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class InstallerConfig(BaseSettings):
    """
    Central configuration for the installer.

    All settings can be overridden via environment variables
    prefixed with GOPANEL_.

    Example:
        export GOPANEL_GO_VERSION=1.24.5
        export GOPANEL_STEP_TIMEOUT_S=900
    """

    model_config = SettingsConfigDict(
        env_prefix="GOPANEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="GoPanel", description="Display name of the application")
    app_description: str = Field(
        default="GoPanel Server",
        description="Description written into the service unit",
    )
    install_dir: str = Field(
        default="/opt/gopanel",
        description="Absolute installation directory (replaced on every run)",
    )
    binary_name: str = Field(default="gopanel", description="Server binary inside install_dir")

    # Service
    service_name: str = Field(default="gopanel", description="systemd unit name without suffix")
    service_user: str = Field(default="root", description="User the service runs as")
    service_group: str = Field(default="root", description="Group the service runs as")
    service_port: int = Field(default=8080, ge=1, le=65535, description="Port the server listens on")
    systemd_dir: str = Field(
        default="/etc/systemd/system",
        description="Directory holding systemd unit files",
    )

    # Packages
    apt_packages: List[str] = Field(
        default_factory=lambda: ["build-essential", "curl", "wget", "git", "p7zip-full"],
        description="OS packages installed with apt-get",
    )
    docker_install_url: str = Field(
        default="https://get.docker.com",
        description="Docker convenience install script",
    )

    # Go toolchain
    go_version: str = Field(default="1.24.5", description="Go release to install")
    go_arch: str = Field(default="linux-amd64", description="Go release platform suffix")
    go_download_base: str = Field(
        default="https://dl.google.com/go",
        description="Base URL of Go release tarballs",
    )
    go_root: str = Field(default="/usr/local", description="Directory the go/ tree is unpacked into")
    download_dir: str = Field(default="/tmp", description="Where downloaded tarballs are stored")

    # Project staging
    archive_pattern: str = Field(
        default="*.7z",
        description="Glob for a staged project archive in the working directory",
    )
    extract_dir_name: str = Field(
        default="gopanel_extracted",
        description="Directory (relative to the working directory) archives are extracted into",
    )

    # Privileges
    docker_user: Optional[str] = Field(
        default=None,
        description="User added to the docker group (defaults to SUDO_USER or USER)",
    )
    privilege_mode: Literal["auto", "sudo", "none"] = Field(
        default="auto",
        description="Prefix privileged commands with sudo (auto: only when not root)",
    )

    # Execution
    tick_interval_s: float = Field(
        default=0.1,
        gt=0,
        description="Cadence of progress liveness ticks",
    )
    step_timeout_s: Optional[float] = Field(
        default=None,
        description="Kill a command after this many seconds (unset: wait forever)",
    )
    failure_output_lines: int = Field(
        default=40,
        ge=1,
        description="Lines of captured output shown when a step fails",
    )
    verbose: bool = Field(default=False, description="Show captured output of every step")

    # Logging
    log_file: str = Field(
        default="~/.gopanel-installer/install.log",
        description="File receiving installer logs",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for the installer",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    @field_validator("install_dir", "systemd_dir", "go_root", "download_dir", "log_file")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in paths."""
        return os.path.expanduser(os.path.expandvars(v))

    @field_validator("step_timeout_s")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Reject non-positive timeouts; leave None as 'no timeout'."""
        if v is not None and v <= 0:
            raise ValueError("step_timeout_s must be positive")
        return v

    @property
    def unit_path(self) -> Path:
        return Path(self.systemd_dir) / f"{self.service_name}.service"

    @property
    def binary_path(self) -> Path:
        return Path(self.install_dir) / self.binary_name

    @property
    def go_bin_dir(self) -> Path:
        return Path(self.go_root) / "go" / "bin"

    @property
    def go_tarball_name(self) -> str:
        return f"go{self.go_version}.{self.go_arch}.tar.gz"

    @property
    def go_download_url(self) -> str:
        return f"{self.go_download_base.rstrip('/')}/{self.go_tarball_name}"

    @property
    def go_tarball_path(self) -> Path:
        return Path(self.download_dir) / self.go_tarball_name

    def use_sudo(self) -> bool:
        """Whether privileged commands need a sudo prefix."""
        if self.privilege_mode == "sudo":
            return True
        if self.privilege_mode == "none":
            return False
        return os.geteuid() != 0

    def privileged(self, command: str) -> str:
        """Prefix a command with sudo when required."""
        return f"sudo {command}" if self.use_sudo() else command

    def resolve_docker_user(self) -> Optional[str]:
        """User to add to the docker group, or None when there is nobody to add."""
        user = self.docker_user or os.environ.get("SUDO_USER") or os.environ.get("USER")
        if not user or user == "root":
            return None
        return user


# Global singleton
_config: Optional[InstallerConfig] = None


def get_config(**overrides) -> InstallerConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        InstallerConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = InstallerConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
