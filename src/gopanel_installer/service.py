"""systemd unit synthesis for the GoPanel service."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from gopanel_installer.config import InstallerConfig

# Runtime service the server needs to be up first
CONTAINER_RUNTIME_UNIT = "docker.service"


class ServiceUnit(BaseModel):
    """Declarative description of the service handed to systemd."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    description: str
    user: str
    group: str
    working_directory: str
    exec_start: str
    path: List[str] = Field(default_factory=list)
    restart: str = "on-failure"
    after: List[str] = Field(default_factory=lambda: ["network.target", CONTAINER_RUNTIME_UNIT])
    requires: List[str] = Field(default_factory=lambda: [CONTAINER_RUNTIME_UNIT])
    wanted_by: str = "multi-user.target"

    @classmethod
    def from_config(cls, config: InstallerConfig) -> "ServiceUnit":
        return cls(
            description=config.app_description,
            user=config.service_user,
            group=config.service_group,
            working_directory=config.install_dir,
            exec_start=str(config.binary_path),
            path=[str(config.go_bin_dir), "/usr/local/bin", "/usr/bin", "/bin"],
        )

    def render(self) -> str:
        lines = [
            "[Unit]",
            f"Description={self.description}",
            f"After={' '.join(self.after)}",
        ]
        if self.requires:
            lines.append(f"Requires={' '.join(self.requires)}")
        lines += [
            "",
            "[Service]",
            f"User={self.user}",
            f"Group={self.group}",
            f"WorkingDirectory={self.working_directory}",
            f"ExecStart={self.exec_start}",
        ]
        if self.path:
            lines.append(f"Environment=PATH={':'.join(self.path)}")
        lines += [
            f"Restart={self.restart}",
            "",
            "[Install]",
            f"WantedBy={self.wanted_by}",
        ]
        return "\n".join(lines) + "\n"
