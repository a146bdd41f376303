import time
import logging
from typing import Optional

from src.hostsctl.config import ControllerConfig, resolve_config
from src.hostsctl.supervisor import (
    CleanupInvoker, CredentialGate, LifecycleController, Session, ShutdownCoordinator,
)
from src.hostsctl.supervisor.models import StartOutcome, StatusReport, StopOutcome
from src.hostsctl.supervisor.startup import resolve_binary

logger = logging.getLogger(__name__)

HOLD_POLL_INTERVAL = 2  # seconds between liveness checks while holding


class HostsControllerManager:
    """
    Wires one session's components together.

    The console uses it for one-off actions. Test harnesses and scripts can use
    it as a context manager: entering starts (or adopts) the controller with the
    shutdown coordinator armed, leaving stops it only if this session started it.

        with HostsControllerManager(namespaces="tyk,tyk-dp-1") as manager:
            run_tests()
    """

    def __init__(
        self,
        namespaces: Optional[str] = None,
        config: Optional[ControllerConfig] = None,
        cleanup_on_exit: bool = False,
    ) -> None:
        self.config = config or resolve_config(namespaces)
        self.session = Session(self.config)
        self.gate = CredentialGate(self.config)
        self.controller = LifecycleController(self.session, gate=self.gate)
        self.cleanup_invoker = CleanupInvoker(self.config, self.gate)
        self.coordinator = ShutdownCoordinator(
            self.session, self.controller, self.cleanup_invoker, cleanup_on_exit=cleanup_on_exit
        )

    def check_configuration(self) -> str:
        """
        Validates that the controller binary exists as a file or on PATH.

        :return: The resolved binary path.
        :raises BinaryNotFoundError: If it cannot be found.
        """
        return resolve_binary(self.config)

    def start(self) -> StartOutcome:
        return self.controller.start()

    def stop(self) -> StopOutcome:
        return self.controller.stop()

    def restart(self) -> StartOutcome:
        return self.controller.restart()

    def status(self) -> StatusReport:
        return self.controller.status()

    def cleanup(self) -> None:
        self.cleanup_invoker.invoke()

    def hold(self, poll_interval: float = HOLD_POLL_INTERVAL) -> int:
        """
        Keeps the session in the foreground with the shutdown coordinator armed.

        Returns when the supervised instance goes away on its own; SIGINT and
        SIGTERM end the process through the coordinator instead.

        :return: 1 if the controller exited while held, 0 if nothing was being held.
        """
        self.coordinator.arm()
        handle = self.session.claimed_handle or self.controller.status().handle
        if not handle:
            logger.warning("No controller instance to hold")
            return 0

        role = "owner" if self.session.owns_instance else "observer"
        logger.info(f"Holding controller (PID: {handle}) as {role}. Press Ctrl+C to exit.")
        while self.controller.registry.is_alive(handle):
            time.sleep(poll_interval)
        logger.warning(f"Controller (PID: {handle}) exited while held. Check log file: {self.config.log_file}")
        self.session.release()
        return 1

    def __enter__(self) -> "HostsControllerManager":
        self.coordinator.arm()
        try:
            self.controller.start()
        except Exception:
            self.coordinator.disarm()
            raise
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.coordinator.fire("exit")
        self.coordinator.disarm()
