import time
import signal
import logging
from typing import TYPE_CHECKING, Callable

from src.hostsctl.supervisor.errors import StopError
from src.hostsctl.supervisor.registry import ProcessHandle

if TYPE_CHECKING:
    from src.hostsctl.config import ControllerConfig
    from src.hostsctl.supervisor.registry import ProcessRegistry
    from src.hostsctl.supervisor.process_utils import Signaller

log = logging.getLogger(__name__)

# Granularity of the post-SIGKILL confirmation loop.
KILL_CONFIRM_POLL_INTERVAL = 0.1


def _report_manual_cleanup(error: StopError) -> None:
    log.error("=== MANUAL CLEANUP REQUIRED ===")
    log.error(f"Run: {error.remedy}")
    log.error("================================")


def _terminate_processes(handle: ProcessHandle, signaller: "Signaller") -> bool:
    """Sends one SIGTERM to every process of the handle."""
    log.debug(f"Sending SIGTERM to PID(s) {handle}")
    if signaller.send(handle, signal.SIGTERM):
        return True
    log.error(f"Failed to send SIGTERM to process(es): {handle}")
    return False


def _wait_for_exit(
    handle: ProcessHandle,
    registry: "ProcessRegistry",
    max_polls: int,
    poll_interval: float,
    sleep: Callable[[float], None],
) -> int:
    """
    Polls liveness once per interval while ANY process of the handle is alive.

    :return: The number of polling cycles spent waiting.
    """
    polls = 0
    while registry.is_alive(handle) and polls < max_polls:
        sleep(poll_interval)
        polls += 1
    return polls


def _forceful_kill(
    handle: ProcessHandle,
    registry: "ProcessRegistry",
    signaller: "Signaller",
    config: "ControllerConfig",
    sleep: Callable[[float], None],
    clock: Callable[[], float],
) -> None:
    """
    Sends SIGKILL to survivors and confirms ALL of them are gone.

    :raises StopError: If the signal cannot be delivered or a process survives it.
    """
    sudo = config.sudo_command if config.use_sudo else None
    log.warning("Controller did not stop gracefully, forcing...")
    if not signaller.send(handle, signal.SIGKILL):
        error = StopError(f"Failed to force kill process(es): {handle}", handle, sudo)
        _report_manual_cleanup(error)
        raise error

    deadline = clock() + config.kill_confirm_timeout
    while registry.is_alive(handle) and clock() < deadline:
        sleep(KILL_CONFIRM_POLL_INTERVAL)

    survivors = registry.alive_pids(handle)
    if survivors:
        error = StopError(f"Process(es) still alive after SIGKILL: {survivors}", survivors, sudo)
        _report_manual_cleanup(error)
        raise error


def graceful_shutdown_sequence(
    handle: ProcessHandle,
    registry: "ProcessRegistry",
    signaller: "Signaller",
    config: "ControllerConfig",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Runs the full termination sequence for the given handle.

    One SIGTERM per process, then up to `graceful_timeout` liveness polls, then
    SIGKILL for whatever is left. Success is reported only once every PID is
    confirmed non-alive.

    :param handle: The PIDs to stop.
    :return: True if escalation to SIGKILL was needed.
    :raises StopError: If the forced termination fails.
    """
    if _terminate_processes(handle, signaller):
        log.info(f"Waiting {config.graceful_timeout * config.poll_interval:g} seconds until processes are gracefully shutdown")
        polls = _wait_for_exit(handle, registry, config.graceful_timeout, config.poll_interval, sleep)
        log.debug(f"Graceful wait ended after {polls} poll(s)")

    survivors = registry.alive_pids(handle)
    if not survivors:
        return False

    _forceful_kill(survivors, registry, signaller, config, sleep, clock)
    return True
