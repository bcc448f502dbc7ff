"""Tests for EnvironmentProbe."""

import logging
import os
import stat

import pytest

import gopanel_installer.probe as probe_module
from gopanel_installer.errors import PreconditionError, ProbeError
from gopanel_installer.probe import EnvironmentProbe


def _executable(path, body="#!/bin/sh\nexit 0\n"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def bin_dir(tmp_path):
    path = tmp_path / "bin"
    path.mkdir()
    return path


# ---------------------------------------------------------------------------
# Container runtime on PATH
# ---------------------------------------------------------------------------


class TestDockerPresent:
    def test_found(self, config, workdir, bin_dir):
        _executable(bin_dir / "docker")
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))
        assert probe.docker_present() is True

    def test_absent(self, config, workdir, bin_dir):
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))
        assert probe.docker_present() is False

    def test_non_executable_file_is_not_present(self, config, workdir, bin_dir):
        (bin_dir / "docker").write_text("not a program")
        (bin_dir / "docker").chmod(0o644)
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))
        assert probe.docker_present() is False

    def test_later_path_entries_are_searched(self, config, workdir, tmp_path, bin_dir):
        _executable(bin_dir / "docker")
        search = os.pathsep.join([str(tmp_path / "missing"), "", str(bin_dir)])
        probe = EnvironmentProbe(config, workdir, search_path=search)
        assert probe.docker_present() is True

    def test_permission_error_is_indeterminate(self, config, workdir, bin_dir, monkeypatch):
        real_stat = os.stat

        def guarded_stat(path, *args, **kwargs):
            if str(path).endswith("docker"):
                raise PermissionError(13, "Permission denied")
            return real_stat(path, *args, **kwargs)

        monkeypatch.setattr(probe_module.os, "stat", guarded_stat)
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))

        with pytest.raises(ProbeError, match="Permission denied"):
            probe.docker_present()
        monkeypatch.undo()
        assert EnvironmentProbe.DOCKER_PRESENT not in probe.facts


# ---------------------------------------------------------------------------
# Staged archive
# ---------------------------------------------------------------------------


class TestStagedArchive:
    def test_none_staged(self, config, workdir):
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.staged_archive() is None

    def test_single_archive(self, config, workdir):
        archive = workdir / "app-1.0.7z"
        archive.write_bytes(b"7z")
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.staged_archive() == archive

    def test_multiple_archives_pick_lexicographically_first(self, config, workdir, caplog, monkeypatch):
        # Package loggers do not propagate outside tests
        monkeypatch.setattr(logging.getLogger("gopanel_installer"), "propagate", True)
        for name in ("panel-b.7z", "panel-a.7z", "panel-c.7z"):
            (workdir / name).write_bytes(b"7z")
        probe = EnvironmentProbe(config, workdir, search_path="")

        with caplog.at_level("WARNING", logger="gopanel_installer.probe"):
            assert probe.staged_archive() == workdir / "panel-a.7z"
        assert "Found 3 archives" in caplog.text

    def test_directory_matching_pattern_is_ignored(self, config, workdir):
        (workdir / "looks-like.7z").mkdir()
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.staged_archive() is None

    def test_nested_archives_are_not_considered(self, config, workdir):
        (workdir / "sub").mkdir()
        (workdir / "sub" / "app.7z").write_bytes(b"7z")
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.staged_archive() is None


# ---------------------------------------------------------------------------
# Registered service
# ---------------------------------------------------------------------------


class TestServiceRegistered:
    def test_unit_present(self, config, workdir):
        config.unit_path.parent.mkdir(parents=True)
        config.unit_path.write_text("[Unit]\n")
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.service_registered() is True

    def test_unit_absent(self, config, workdir):
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.service_registered() is False


# ---------------------------------------------------------------------------
# Go toolchain
# ---------------------------------------------------------------------------


class TestGoVersion:
    def test_absent(self, config, workdir):
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.go_version() is None
        assert probe.go_version_matches() is False

    def test_matching_version(self, config, workdir):
        _executable(
            config.go_bin_dir / "go",
            f"#!/bin/sh\necho 'go version go{config.go_version} linux/amd64'\n",
        )
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.go_version() == f"go version go{config.go_version} linux/amd64"
        assert probe.go_version_matches() is True

    def test_other_version_does_not_match(self, config, workdir):
        _executable(config.go_bin_dir / "go", "#!/bin/sh\necho 'go version go1.21.0 linux/amd64'\n")
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.go_version_matches() is False

    def test_prefix_version_does_not_match(self, config, workdir):
        # go1.24.50 must not satisfy a request for go1.24.5
        _executable(
            config.go_bin_dir / "go",
            f"#!/bin/sh\necho 'go version go{config.go_version}0 linux/amd64'\n",
        )
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.go_version_matches() is False

    def test_broken_binary_counts_as_absent(self, config, workdir):
        _executable(config.go_bin_dir / "go", "#!/bin/sh\nexit 3\n")
        probe = EnvironmentProbe(config, workdir, search_path="")
        assert probe.go_version() is None


# ---------------------------------------------------------------------------
# Memoization and preconditions
# ---------------------------------------------------------------------------


class TestMemoization:
    def test_fact_computed_once(self, config, workdir, bin_dir):
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))
        assert probe.docker_present() is False

        _executable(bin_dir / "docker")
        assert probe.docker_present() is False
        assert probe.facts == {EnvironmentProbe.DOCKER_PRESENT: False}

    def test_facts_view_is_read_only(self, config, workdir):
        probe = EnvironmentProbe(config, workdir, search_path="")
        probe.staged_archive()
        with pytest.raises(TypeError):
            probe.facts[EnvironmentProbe.STAGED_ARCHIVE] = "x"

    def test_unknown_fact(self, config, workdir):
        probe = EnvironmentProbe(config, workdir, search_path="")
        with pytest.raises(ProbeError, match="unknown fact"):
            probe.probe("kernel_version")


class TestPreconditions:
    def test_all_commands_present(self, config, workdir, bin_dir):
        for name in ("apt-get", "systemctl", "tar"):
            _executable(bin_dir / name)
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))
        probe.check_preconditions()

    def test_missing_commands_are_listed(self, config, workdir, bin_dir):
        _executable(bin_dir / "tar")
        probe = EnvironmentProbe(config, workdir, search_path=str(bin_dir))

        with pytest.raises(PreconditionError) as excinfo:
            probe.check_preconditions()
        assert excinfo.value.missing == ["apt-get", "systemctl"]

    def test_sudo_required_when_escalating(self, config, workdir, bin_dir):
        for name in ("apt-get", "systemctl", "tar"):
            _executable(bin_dir / name)
        sudo_config = config.model_copy(update={"privilege_mode": "sudo"})
        probe = EnvironmentProbe(sudo_config, workdir, search_path=str(bin_dir))

        with pytest.raises(PreconditionError) as excinfo:
            probe.check_preconditions()
        assert excinfo.value.missing == ["sudo"]
