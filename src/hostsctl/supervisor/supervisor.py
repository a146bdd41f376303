import time
import logging
import subprocess
from typing import Callable, Dict, List, Optional

from src.hostsctl.config import ControllerConfig
from src.hostsctl.supervisor import shutdown, startup
from src.hostsctl.supervisor.claim import claim_for
from src.hostsctl.supervisor.credentials import CredentialGate
from src.hostsctl.supervisor.errors import StartError
from src.hostsctl.supervisor.models import (
    RunState, Session, StartOutcome, StartResult, StatusReport, StopOutcome, StopResult,
)
from src.hostsctl.supervisor.process_utils import Signaller, launch_detached
from src.hostsctl.supervisor.registry import ProcessHandle, ProcessRegistry

log = logging.getLogger(__name__)


class LifecycleController:
    """
    Start/stop/restart/status for the system-wide controller process.

    Operations compose over a CredentialGate (privilege), a ProcessRegistry
    (discovery and liveness) and a claim (the check-then-act window of start).
    Ownership of a launched instance is recorded on the Session; an instance
    found already running is adopted without ownership.
    """

    def __init__(
        self,
        session: Session,
        gate: Optional[CredentialGate] = None,
        registry: Optional[ProcessRegistry] = None,
        signaller: Optional[Signaller] = None,
        claim=None,
        launcher: Callable[[ControllerConfig, List[str]], subprocess.Popen] = launch_detached,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        config = session.config
        self.session = session
        self.gate = gate or CredentialGate(config)
        self.registry = registry or ProcessRegistry(config.process_name)
        self.signaller = signaller or Signaller(config)
        self.claim = claim or claim_for(config)
        self._launcher = launcher
        self._sleep = sleep
        self._clock = clock
        self._launched: Dict[int, subprocess.Popen] = {}

    @property
    def config(self) -> ControllerConfig:
        return self.session.config

    def _reap(self) -> None:
        """Collects exit statuses of processes this session launched, so they do not linger as zombies."""
        for pid, process in list(self._launched.items()):
            if process.poll() is not None:
                self._launched.pop(pid, None)

    def start(self, config: Optional[ControllerConfig] = None) -> StartOutcome:
        """
        Starts the controller unless an instance is already running.

        :param config: Overrides the session's configuration for this start.
        :return: ALREADY_RUNNING with the adopted handle, or STARTED with the new one.
        :raises DeniedError: If no privilege ticket can be obtained.
        :raises StartError: If the launched process is not alive after the startup delay.
        """
        config = config or self.config
        self.gate.ensure()

        with self.claim.hold():
            existing = self.registry.discover()
            if existing:
                log.info(f"Controller already running (PID: {existing})")
                log.info("Skipping startup, using existing instance")
                startup.warn_on_target_mismatch(self.registry, existing, config)
                return StartOutcome(StartResult.ALREADY_RUNNING, existing)

            process = startup.launch_controller(config, self._launcher)
            self._launched[process.pid] = process
            launched = ProcessHandle.of([process.pid])

            self._sleep(config.startup_wait)
            self._reap()
            if not self.registry.is_alive(launched):
                log.error(f"Controller failed to start (PID: {process.pid})")
                log.error(f"Check log file: {config.log_file}")
                raise StartError(f"Controller failed to start (PID: {process.pid})", config.log_file)

            handle = launched.union(self.registry.descendants(process.pid))
            self.session.claim(handle)

        log.info(f"Controller started successfully (PID: {handle})")
        return StartOutcome(StartResult.STARTED, handle)

    def stop(self, handle: Optional[ProcessHandle] = None) -> StopOutcome:
        """
        Stops the given handle, or every discovered instance when no handle is given.

        :return: NONE_RUNNING if nothing was alive, STOPPED once every PID is confirmed gone.
        :raises DeniedError: If no privilege ticket can be obtained.
        :raises StopError: If even forced termination leaves a process alive.
        """
        self.gate.ensure()

        target = handle if handle is not None else self.registry.discover()
        alive = self.registry.alive_pids(target)
        if not alive:
            log.info("No controller running, nothing to stop")
            self._release_if_claimed(target)
            return StopOutcome(StopResult.NONE_RUNNING, target)

        log.info(f"Stopping controller (PID: {alive})...")
        forced = shutdown.graceful_shutdown_sequence(
            alive, self.registry, self.signaller, self.config, self._sleep, self._clock
        )
        self._reap()
        self._release_if_claimed(alive)
        log.info("Controller stopped")
        return StopOutcome(StopResult.STOPPED, alive, forced)

    def _release_if_claimed(self, stopped: ProcessHandle) -> None:
        claimed = self.session.claimed_handle
        if claimed and claimed.pids & stopped.pids:
            self.session.release()

    def restart(self, config: Optional[ControllerConfig] = None) -> StartOutcome:
        """Stops every running instance, then starts a fresh one. A failed stop aborts the restart."""
        log.info("Restarting controller...")
        self.stop()
        outcome = self.start(config)
        log.info("Controller restarted successfully")
        return outcome

    def status(self) -> StatusReport:
        """Reports whether any controller instance is running. Never touches ownership."""
        handle = self.registry.discover()
        if self.registry.is_alive(handle):
            return StatusReport(RunState.RUNNING, handle, self.config.log_file)
        return StatusReport(RunState.NOT_RUNNING)
