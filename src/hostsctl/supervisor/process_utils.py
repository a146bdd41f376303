import os
import shutil
import signal
import psutil
import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

if TYPE_CHECKING:
    from src.hostsctl.config import ControllerConfig

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def get_proc_status_string(pid: int) -> str:
    """Gets a string representation of a process status."""
    try:
        if get_process_from_pid(pid).status() == psutil.STATUS_ZOMBIE:
            return "zombie"
        return "running"
    except psutil.NoSuchProcess:
        return "stopped"
    except psutil.Error:
        return "unknown"

def is_pid_alive(pid: int) -> bool:
    """
    A PID is alive when it exists and is not a zombie.

    Processes we may not inspect (e.g. root-owned ones) count as alive.
    """
    return get_proc_status_string(pid) in ("running", "unknown")

def collect_descendants(pid: int) -> Set[int]:
    """Returns the PIDs of all live descendants of a process."""
    try:
        return {child.pid for child in get_process_from_pid(pid).children(recursive=True)}
    except psutil.NoSuchProcess:
        log.debug(f"Process {pid} no longer exists, skipping children retrieval.")
        return set()
    except psutil.Error as e:
        log.debug(f"Could not list children of PID {pid}: {e}")
        return set()


#* --- Privileged Execution ---
def needs_elevation(config: "ControllerConfig") -> bool:
    """True when privileged actions have to go through the elevation command."""
    return config.use_sudo and os.geteuid() != 0

def find_executable(binary: str) -> Optional[str]:
    """Resolves the controller binary as a file path or a name on PATH."""
    if Path(binary).is_file():
        return str(Path(binary))
    return shutil.which(binary)

def build_command(config: "ControllerConfig", argv: List[str]) -> List[str]:
    """
    Returns the full argv for running `argv` with the configured privileges.

    When elevated, the privileged environment is passed as `VAR=value` words on
    the sudo command line because sudo resets the caller's environment.
    """
    if not needs_elevation(config):
        return list(argv)
    env_words = [f"{key}={value}" for key, value in sorted(config.privileged_env.items())]
    return [config.sudo_command, "-n", *env_words, *argv]

def build_env(config: "ControllerConfig") -> Dict[str, str]:
    """Returns the environment for the child process."""
    env = dict(os.environ)
    if not needs_elevation(config):
        env.update(config.privileged_env)
    return env


#* --- Process Creation ---
def launch_detached(config: "ControllerConfig", argv: List[str]) -> subprocess.Popen:
    """
    Launches a long-lived process in its own session with output redirected to the log sink.

    :param config: The resolved controller configuration.
    :param argv: The controller command line, without any elevation prefix.
    :return: The Popen object of the launched (possibly sudo) process.
    """
    args = build_command(config, argv)
    config.log_file.parent.mkdir(parents=True, exist_ok=True)
    log.debug(f"Launching: {' '.join(args)}")
    with config.log_file.open("wb") as log_sink:
        return subprocess.Popen(
            args,
            stdout=log_sink,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=build_env(config),
            start_new_session=True,
        )

def run_to_completion(config: "ControllerConfig", argv: List[str], name: str) -> int:
    """
    Runs a one-shot command synchronously and logs its output under `proc.<name>`.

    :return: The exit status of the command.
    """
    args = build_command(config, argv)
    log.debug(f"Running: {' '.join(args)}")
    result = subprocess.run(args, capture_output=True, text=True, env=build_env(config), check=False)
    proc_logger = logging.getLogger(f"proc.{name}")
    for line in (result.stdout or "").splitlines():
        if line.strip():
            proc_logger.info(line.rstrip())
    for line in (result.stderr or "").splitlines():
        if line.strip():
            proc_logger.error(line.rstrip())
    return result.returncode


#* --- Signals ---
class Signaller:
    """
    Delivers signals to a set of PIDs.

    The controller runs as root, so an unprivileged session has to signal it
    through `sudo -n kill`. A root session (or one with elevation disabled)
    signals directly.
    """

    def __init__(self, config: "ControllerConfig") -> None:
        self.config = config

    def send(self, pids: Iterable[int], sig: signal.Signals) -> bool:
        """
        Sends `sig` to every PID.

        :return: True if the signal reached every PID that still existed.
        """
        pids = sorted(pids)
        if not pids:
            return True
        if needs_elevation(self.config):
            return self._send_elevated(pids, sig)
        return self._send_direct(pids, sig)

    def _send_elevated(self, pids: List[int], sig: signal.Signals) -> bool:
        if self._run_kill(pids, sig):
            return True
        # kill exits non-zero if any PID vanished meanwhile; retry the survivors one by one.
        survivors = [pid for pid in pids if is_pid_alive(pid)]
        return all(self._run_kill([pid], sig) or not is_pid_alive(pid) for pid in survivors)

    def _run_kill(self, pids: List[int], sig: signal.Signals) -> bool:
        args = [self.config.sudo_command, "-n", "kill", "-s", sig.name[3:], *(str(p) for p in pids)]
        try:
            result = subprocess.run(args, capture_output=True, text=True, check=False)
        except OSError as e:
            log.error(f"Could not run '{args[0]}': {e}")
            return False
        if result.returncode != 0:
            log.debug(f"'{' '.join(args)}' exited with {result.returncode}: {result.stderr.strip()}")
        return result.returncode == 0

    def _send_direct(self, pids: List[int], sig: signal.Signals) -> bool:
        delivered = True
        for pid in pids:
            try:
                get_process_from_pid(pid).send_signal(sig)
            except psutil.NoSuchProcess:
                log.debug(f"Process {pid} no longer exists, skipping {sig.name}.")
            except psutil.AccessDenied:
                log.error(f"Permission denied sending {sig.name} to PID {pid}.")
                delivered = False
        return delivered
