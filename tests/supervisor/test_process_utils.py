"""
Tests for privileged command construction, one-shot execution and signal delivery.
"""
import sys
import signal
import subprocess
from dataclasses import replace

import pytest

from src.hostsctl.supervisor import process_utils
from src.hostsctl.supervisor.errors import manual_kill_command
from src.hostsctl.supervisor.process_utils import (
    Signaller, build_command, build_env, find_executable, run_to_completion,
)


@pytest.fixture
def as_user(monkeypatch):
    monkeypatch.setattr(process_utils.os, "geteuid", lambda: 1000)


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(process_utils.os, "geteuid", lambda: 0)


class TestBuildCommand:
    """Test build_command()."""

    def test_elevated_command_carries_environment(self, config, as_user):
        cmd = build_command(config, ["/usr/local/bin/k8s-hosts-controller", "--all-namespaces"])
        assert cmd == [
            "sudo", "-n", "KUBECONFIG=/home/dev/.kube/config",
            "/usr/local/bin/k8s-hosts-controller", "--all-namespaces",
        ]

    def test_root_runs_directly(self, config, as_root):
        assert build_command(config, ["k8s-hosts-controller", "--cleanup"]) == ["k8s-hosts-controller", "--cleanup"]

    def test_elevation_disabled(self, config, as_user):
        unelevated = replace(config, use_sudo=False)
        assert build_command(unelevated, ["k8s-hosts-controller"]) == ["k8s-hosts-controller"]

    def test_direct_run_gets_environment_overrides(self, config, as_root):
        assert build_env(config)["KUBECONFIG"] == "/home/dev/.kube/config"


class TestFindExecutable:
    """Test find_executable()."""

    def test_file_path(self, controller_binary):
        assert find_executable(str(controller_binary)) == str(controller_binary)

    def test_name_on_path(self, controller_binary, monkeypatch):
        monkeypatch.setenv("PATH", str(controller_binary.parent))
        assert find_executable("k8s-hosts-controller") == str(controller_binary)

    def test_missing(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path))
        assert find_executable("k8s-hosts-controller") is None


class TestRunToCompletion:
    """Test run_to_completion() with real short-lived commands."""

    def test_logs_output_under_proc_logger(self, config, caplog):
        unelevated = replace(config, use_sudo=False)
        code = "import sys; print('removed 3 entries'); print('warning: stale marker', file=sys.stderr); sys.exit(2)"

        with caplog.at_level("INFO"):
            returncode = run_to_completion(unelevated, [sys.executable, "-c", code], "cleanup")

        assert returncode == 2
        records = [(r.name, r.levelname, r.getMessage()) for r in caplog.records if r.name == "proc.cleanup"]
        assert ("proc.cleanup", "INFO", "removed 3 entries") in records
        assert ("proc.cleanup", "ERROR", "warning: stale marker") in records


class TestSignaller:
    """Test Signaller.send() through the elevated kill path."""

    def test_elevated_kill_command(self, config, as_user, monkeypatch):
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(args, 0, "", "")

        monkeypatch.setattr(process_utils.subprocess, "run", fake_run)

        assert Signaller(config).send([222, 17], signal.SIGTERM)
        assert calls == [["sudo", "-n", "kill", "-s", "TERM", "17", "222"]]

    def test_elevated_kill_retries_survivors(self, config, as_user, monkeypatch):
        """A vanished PID makes kill exit non-zero; the survivors are retried one by one."""
        calls = []

        def fake_run(args, **kwargs):
            calls.append(args)
            return subprocess.CompletedProcess(args, 0 if len(args) == 6 else 1, "", "No such process")

        monkeypatch.setattr(process_utils.subprocess, "run", fake_run)
        monkeypatch.setattr(process_utils, "is_pid_alive", lambda pid: pid == 222)

        assert Signaller(config).send([17, 222], signal.SIGKILL)
        assert calls[-1] == ["sudo", "-n", "kill", "-s", "KILL", "222"]

    def test_elevated_kill_failure(self, config, as_user, monkeypatch):
        monkeypatch.setattr(
            process_utils.subprocess, "run",
            lambda args, **kwargs: subprocess.CompletedProcess(args, 1, "", "sudo: a password is required"),
        )
        monkeypatch.setattr(process_utils, "is_pid_alive", lambda pid: True)

        assert not Signaller(config).send([222], signal.SIGKILL)

    def test_empty_set_is_trivially_delivered(self, config):
        assert Signaller(config).send([], signal.SIGTERM)

    def test_direct_signal_to_missing_pid(self, config):
        assert Signaller(replace(config, use_sudo=False)).send([999999], signal.SIGTERM)


class TestManualKillCommand:
    """Test manual_kill_command()."""

    def test_sorted_pids_with_sudo(self):
        assert manual_kill_command([222, 17]) == "sudo kill -9 17 222"

    def test_without_elevation(self):
        assert manual_kill_command([222], None) == "kill -9 222"
