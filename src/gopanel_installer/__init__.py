"""
GoPanel installer - one-shot host provisioning for the GoPanel server.

Installs OS packages, Docker and the Go toolchain, deploys the GoPanel
application to a fixed directory and registers it as a systemd service.
The run is linear and fail-fast: the first failing step aborts the whole
run and nothing is rolled back.

Example usage:
    from gopanel_installer import get_config, build_steps, Orchestrator

    config = get_config()
    steps = build_steps(config)
    # See gopanel_installer.cli for the full wiring.
"""

__version__ = "0.1.0"
__all__ = [
    "InstallerConfig",
    "get_config",
    "build_steps",
    "Orchestrator",
    "EnvironmentProbe",
    "__version__",
]


# Lazy imports to keep `--version` and `--help` fast
def __getattr__(name: str):
    if name in ("InstallerConfig", "get_config"):
        from gopanel_installer import config
        return getattr(config, name)
    if name == "build_steps":
        from gopanel_installer.steps import build_steps
        return build_steps
    if name == "Orchestrator":
        from gopanel_installer.orchestrator import Orchestrator
        return Orchestrator
    if name == "EnvironmentProbe":
        from gopanel_installer.probe import EnvironmentProbe
        return EnvironmentProbe
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
