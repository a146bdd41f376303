import sys
import logging
import subprocess
from typing import TYPE_CHECKING, Callable, List

from src.hostsctl.supervisor.errors import DeniedError
from src.hostsctl.supervisor.process_utils import needs_elevation

if TYPE_CHECKING:
    from src.hostsctl.config import ControllerConfig

log = logging.getLogger(__name__)


def _is_interactive() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


class CredentialGate:
    """
    Acquires and re-validates the cached sudo ticket.

    The ticket lives outside this process and has its own TTL, so `ensure()`
    re-checks it before every privileged action instead of remembering a
    previous success. The interactive prompt is attempted at most once per gate.
    """

    def __init__(
        self,
        config: "ControllerConfig",
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        interactive: Callable[[], bool] = _is_interactive,
    ) -> None:
        self.config = config
        self._run = runner
        self._interactive = interactive
        self.prompted = False

    def _sudo(self, *args: str, attach: bool = False) -> bool:
        cmd: List[str] = [self.config.sudo_command, *args]
        try:
            if attach:
                result = self._run(cmd, check=False)
            else:
                result = self._run(cmd, check=False, capture_output=True, stdin=subprocess.DEVNULL)
        except OSError as e:
            log.error(f"Could not run '{self.config.sudo_command}': {e}")
            return False
        return result.returncode == 0

    def has_ticket(self) -> bool:
        """True if a privileged command can run right now without prompting."""
        if not needs_elevation(self.config):
            return True
        return self._sudo("-n", "true")

    def ensure(self) -> None:
        """
        Makes sure a valid privilege ticket exists.

        :raises DeniedError: If elevation cannot be obtained without prompting twice
            or without a terminal to prompt on.
        """
        if self.has_ticket():
            return

        log.info("Sudo access required to modify /etc/hosts")
        if self.prompted:
            raise DeniedError("Sudo ticket expired and the session has already prompted once")
        if not self._interactive():
            raise DeniedError("Failed to acquire sudo access: no cached ticket and no terminal to prompt on")

        self.prompted = True
        if not self._sudo("-v", attach=True):
            raise DeniedError("Failed to acquire sudo access")
        log.info("Sudo access granted")
