import sys
import atexit
import signal
import logging
import threading
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Optional

from src.hostsctl.supervisor.errors import SupervisorError

if TYPE_CHECKING:
    from src.hostsctl.supervisor.models import Session
    from src.hostsctl.supervisor.cleanup import CleanupInvoker
    from src.hostsctl.supervisor.supervisor import LifecycleController

log = logging.getLogger(__name__)


class ShutdownState(Enum):
    """Phases of exit-triggered shutdown."""

    IDLE = "idle"      # handlers not installed yet
    ARMED = "armed"
    FIRING = "firing"  # stop sequence in progress
    FIRED = "fired"    # terminal, reached even when the stop attempt fails


class ShutdownCoordinator:
    """
    Runs the stop sequence at most once when the session ends.

    Normal exit, SIGINT and SIGTERM all lead to `fire()`. Only a session that
    owns its instance stops it; a session that adopted a running instance
    leaves it alone. Once firing has started every further trigger is a no-op.
    """

    def __init__(
        self,
        session: "Session",
        controller: "LifecycleController",
        cleanup: Optional["CleanupInvoker"] = None,
        cleanup_on_exit: bool = False,
        signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
        exit_func: Callable[[int], Any] = sys.exit,
    ) -> None:
        self.session = session
        self.controller = controller
        self.cleanup = cleanup
        self.cleanup_on_exit = cleanup_on_exit
        self.signals = tuple(signals)
        self._exit = exit_func

        self.state = ShutdownState.IDLE
        self.reason: Optional[str] = None
        self.succeeded: Optional[bool] = None
        self.stop_invocations = 0
        self._lock = threading.RLock()
        self._original_handlers: Dict[int, Any] = {}

    def arm(self) -> "ShutdownCoordinator":
        """
        Installs the exit and signal handlers.

        Returns self for chaining.
        """
        with self._lock:
            if self.state is not ShutdownState.IDLE:
                return self
            for sig in self.signals:
                try:
                    self._original_handlers[sig] = signal.signal(sig, self._signal_handler)
                except (OSError, ValueError) as e:
                    # Only the main thread may install signal handlers.
                    log.debug(f"Could not register handler for {sig}: {e}")
            atexit.register(self._atexit_handler)
            self.state = ShutdownState.ARMED
        log.debug("Shutdown coordinator armed")
        return self

    def disarm(self) -> None:
        """Restores the original handlers. Does not fire."""
        with self._lock:
            for sig, handler in self._original_handlers.items():
                try:
                    signal.signal(sig, handler)
                except (OSError, ValueError) as e:
                    log.debug(f"Could not restore handler for {sig}: {e}")
            self._original_handlers.clear()
            atexit.unregister(self._atexit_handler)
            if self.state is ShutdownState.ARMED:
                self.state = ShutdownState.IDLE

    def fire(self, reason: str = "exit") -> bool:
        """
        Runs the shutdown sequence if it has not run yet.

        :param reason: What triggered the shutdown (for logging).
        :return: True if this call ran the sequence, False if it was a no-op.
        """
        with self._lock:
            if self.state is not ShutdownState.ARMED:
                log.debug(f"Shutdown already {self.state.value}, ignoring {reason}")
                return False
            self.state = ShutdownState.FIRING
            self.reason = reason

        log.info(f"Cleanup handler called ({reason})")
        self.succeeded = False
        try:
            self.succeeded = self._run_sequence()
        finally:
            with self._lock:
                self.state = ShutdownState.FIRED
        return True

    def _run_sequence(self) -> bool:
        """Returns False if stopping or cleaning up failed."""
        if not (self.session.owns_instance and self.session.claimed_handle):
            log.info("Controller was not started by this session, leaving it running")
            return True

        handle = self.session.claimed_handle
        log.info(f"Stopping controller (PID: {handle})...")
        self.stop_invocations += 1
        try:
            self.controller.stop(handle)
        except SupervisorError as e:
            log.error(f"Failed to stop controller during shutdown: {e}")
            return False
        except Exception as e:
            log.error(f"Unexpected error while stopping controller during shutdown: {e}", exc_info=True)
            return False

        if self.cleanup_on_exit and self.cleanup is not None:
            try:
                self.cleanup.invoke()
            except SupervisorError as e:
                log.error(f"Cleanup during shutdown failed: {e}")
                return False
            except Exception as e:
                log.error(f"Unexpected error during shutdown cleanup: {e}", exc_info=True)
                return False
        return True

    def _signal_handler(self, signum: int, frame) -> None:
        sig_name = signal.Signals(signum).name
        if not self.fire(sig_name):
            # A second signal while the stop sequence runs must not cut it short.
            return
        self._exit(0 if self.succeeded else 1)

    def _atexit_handler(self) -> None:
        self.fire("exit")
