"""Error taxonomy for controller lifecycle actions. Every error is terminal to its action."""
from pathlib import Path
from typing import Iterable, Optional


class SupervisorError(RuntimeError):
    """Base class for all lifecycle failures surfaced to the console."""

    remedy: Optional[str] = None


class DeniedError(SupervisorError):
    """No usable elevated privilege. The requested action is aborted."""


class BinaryNotFoundError(SupervisorError):
    """The configured controller binary is neither a file nor on PATH."""


class StartError(SupervisorError):
    """The launched controller did not survive the startup window."""

    def __init__(self, message: str, log_path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.log_path = log_path
        if log_path is not None:
            self.remedy = f"Check log file: {log_path}"


class StopError(SupervisorError):
    """Graceful and forced termination both failed to make the target set non-alive."""

    def __init__(self, message: str, pids: Iterable[int], sudo_command: Optional[str] = "sudo") -> None:
        self.pids = tuple(sorted(pids))
        self.remedy = manual_kill_command(self.pids, sudo_command)
        super().__init__(f"{message}. Manual cleanup required: {self.remedy}")


class CleanupError(SupervisorError):
    """The one-shot cleanup invocation exited non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode


def manual_kill_command(pids: Iterable[int], sudo_command: Optional[str] = "sudo") -> str:
    """Returns the exact forceful-kill invocation an operator should run."""
    pid_list = " ".join(str(pid) for pid in sorted(pids))
    prefix = f"{sudo_command} " if sudo_command else ""
    return f"{prefix}kill -9 {pid_list}"
