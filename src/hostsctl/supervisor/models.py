from enum import Enum
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from src.hostsctl.config import ControllerConfig
from src.hostsctl.supervisor.registry import EMPTY_HANDLE, ProcessHandle


@dataclass
class Session:
    """
    One supervisor invocation.

    Ownership is held only by the session that launched the instance; a session
    that adopted a pre-existing instance never stops it on exit.
    """
    config: ControllerConfig
    owns_instance: bool = False
    claimed_handle: Optional[ProcessHandle] = None

    def claim(self, handle: ProcessHandle) -> None:
        self.owns_instance = True
        self.claimed_handle = handle

    def release(self) -> None:
        self.owns_instance = False
        self.claimed_handle = None


class StartResult(Enum):
    ALREADY_RUNNING = "already_running"
    STARTED = "started"


class StopResult(Enum):
    NONE_RUNNING = "none_running"
    STOPPED = "stopped"


class RunState(Enum):
    RUNNING = "running"
    NOT_RUNNING = "not_running"


@dataclass(frozen=True)
class StartOutcome:
    result: StartResult
    handle: ProcessHandle

    @property
    def started(self) -> bool:
        return self.result is StartResult.STARTED


@dataclass(frozen=True)
class StopOutcome:
    result: StopResult
    handle: ProcessHandle = EMPTY_HANDLE
    forced: bool = False


@dataclass(frozen=True)
class StatusReport:
    state: RunState
    handle: ProcessHandle = EMPTY_HANDLE
    log_file: Optional[Path] = None

    @property
    def running(self) -> bool:
        return self.state is RunState.RUNNING
