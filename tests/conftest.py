"""
Shared fixtures for the supervisor tests.

Most tests run the lifecycle against an in-memory process table so that
sessions, signals and time can be driven deterministically. Tests that need the
real OS process table spawn throwaway Python children instead.
"""
import signal
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from src.hostsctl.config import ControllerConfig
from src.hostsctl.supervisor.errors import DeniedError
from src.hostsctl.supervisor.models import Session
from src.hostsctl.supervisor.registry import EMPTY_HANDLE, ProcessHandle
from src.hostsctl.supervisor.supervisor import LifecycleController


class FakeProcess:
    def __init__(self, pid: int, cmdline: List[str], ignores_term: bool = False, survives_kill: bool = False):
        self.pid = pid
        self.cmdline = cmdline
        self.ignores_term = ignores_term
        self.survives_kill = survives_kill
        self.alive = True


class FakeProcessTable:
    """In-memory stand-in for the host's process table, shared by every session of a test."""

    def __init__(self, first_pid: int = 111):
        self.processes: Dict[int, FakeProcess] = {}
        self._next_pid = first_pid

    def spawn(self, cmdline: List[str], pid: int = None, **kwargs) -> int:
        pid = self._next_pid if pid is None else pid
        self._next_pid = max(self._next_pid, pid) + 1
        self.processes[pid] = FakeProcess(pid, list(cmdline), **kwargs)
        return pid

    def is_alive(self, pid: int) -> bool:
        proc = self.processes.get(pid)
        return proc is not None and proc.alive

    def live_pids(self) -> List[int]:
        return [pid for pid, proc in self.processes.items() if proc.alive]


class FakeRegistry:
    def __init__(self, table: FakeProcessTable):
        self.table = table
        self.discover_calls = 0

    def discover(self) -> ProcessHandle:
        self.discover_calls += 1
        return ProcessHandle.of(self.table.live_pids())

    def is_alive(self, handle) -> bool:
        return bool(handle) and any(self.table.is_alive(pid) for pid in handle)

    def alive_pids(self, handle) -> ProcessHandle:
        if not handle:
            return EMPTY_HANDLE
        return ProcessHandle.of(pid for pid in handle if self.table.is_alive(pid))

    def descendants(self, pid: int):
        return frozenset()

    def describe(self, handle) -> Dict[int, List[str]]:
        return {pid: self.table.processes[pid].cmdline for pid in handle if pid in self.table.processes}


class FakeSignaller:
    """Applies signals to the fake table. Signals listed in `failing` are reported as undeliverable."""

    def __init__(self, table: FakeProcessTable):
        self.table = table
        self.sent: List[Tuple[signal.Signals, Tuple[int, ...]]] = []
        self.failing = set()

    def send(self, pids, sig) -> bool:
        pids = tuple(sorted(pids))
        self.sent.append((sig, pids))
        if sig in self.failing:
            return False
        for pid in pids:
            proc = self.table.processes.get(pid)
            if proc is None or not proc.alive:
                continue
            if sig == signal.SIGTERM and not proc.ignores_term:
                proc.alive = False
            elif sig == signal.SIGKILL and not proc.survives_kill:
                proc.alive = False
        return True

    def signals(self, sig) -> List[Tuple[int, ...]]:
        return [pids for sent_sig, pids in self.sent if sent_sig == sig]


class FakePopen:
    def __init__(self, table: FakeProcessTable, pid: int):
        self.table = table
        self.pid = pid

    def poll(self):
        return None if self.table.is_alive(self.pid) else -signal.SIGTERM


class FakeLauncher:
    def __init__(self, table: FakeProcessTable):
        self.table = table
        self.calls: List[List[str]] = []
        self.dies_on_start = False

    def __call__(self, config, argv):
        self.calls.append(list(argv))
        pid = self.table.spawn(argv)
        if self.dies_on_start:
            self.table.processes[pid].alive = False
        return FakePopen(self.table, pid)


class FakeGate:
    def __init__(self):
        self.calls = 0
        self.denied = False

    def ensure(self) -> None:
        self.calls += 1
        if self.denied:
            raise DeniedError("Failed to acquire sudo access")


class FakeClock:
    """Virtual time: sleeping advances the clock instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def monotonic(self) -> float:
        return self.now


@pytest.fixture
def table():
    return FakeProcessTable()


@pytest.fixture
def registry(table):
    return FakeRegistry(table)


@pytest.fixture
def signaller(table):
    return FakeSignaller(table)


@pytest.fixture
def launcher(table):
    return FakeLauncher(table)


@pytest.fixture
def gate():
    return FakeGate()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller_binary(tmp_path) -> Path:
    binary = tmp_path / "bin" / "k8s-hosts-controller"
    binary.parent.mkdir()
    binary.write_text("#!/bin/sh\nexit 0\n")
    binary.chmod(0o755)
    return binary


@pytest.fixture
def config(tmp_path, controller_binary) -> ControllerConfig:
    return ControllerConfig(
        binary=str(controller_binary),
        log_file=tmp_path / "k8s-hosts-controller.log",
        graceful_timeout=5,
        startup_wait=2.0,
        poll_interval=1.0,
        kill_confirm_timeout=1.0,
        use_sudo=True,
        privileged_env={"KUBECONFIG": "/home/dev/.kube/config"},
        lock_enabled=False,
        lock_path=tmp_path / "start.lock",
    )


@pytest.fixture
def make_controller(config, gate, registry, signaller, launcher, clock):
    """Builds a LifecycleController for a new (or given) session over the shared fakes."""
    def _make(session: Session = None, **overrides) -> LifecycleController:
        session = session or Session(config)
        parts = dict(
            gate=gate,
            registry=registry,
            signaller=signaller,
            launcher=launcher,
            sleep=clock.sleep,
            clock=clock.monotonic,
        )
        parts.update(overrides)
        return LifecycleController(session, **parts)
    return _make
