import logging
from typing import TYPE_CHECKING, Callable, List

from src.hostsctl.supervisor.errors import CleanupError
from src.hostsctl.supervisor.startup import resolve_binary
from src.hostsctl.supervisor.process_utils import run_to_completion

if TYPE_CHECKING:
    from src.hostsctl.config import ControllerConfig
    from src.hostsctl.supervisor.credentials import CredentialGate

log = logging.getLogger(__name__)


class CleanupInvoker:
    """
    Runs the controller's one-shot `--cleanup` mode, which removes every
    controller-managed entry from /etc/hosts.

    Works whether or not an instance is running; the exit status is surfaced as is.
    """

    def __init__(
        self,
        config: "ControllerConfig",
        gate: "CredentialGate",
        runner: Callable[["ControllerConfig", List[str], str], int] = run_to_completion,
    ) -> None:
        self.config = config
        self.gate = gate
        self._run = runner

    def invoke(self) -> None:
        """
        :raises DeniedError: If no privilege ticket can be obtained.
        :raises CleanupError: If the cleanup command cannot run or exits non-zero.
        """
        self.gate.ensure()
        log.info("Cleaning up /etc/hosts entries...")
        cmd = [resolve_binary(self.config), "--cleanup"]
        try:
            returncode = self._run(self.config, cmd, "cleanup")
        except OSError as e:
            log.error("Failed to cleanup /etc/hosts")
            raise CleanupError(f"Could not run cleanup: {e}")

        if returncode != 0:
            log.error("Failed to cleanup /etc/hosts")
            raise CleanupError(f"Cleanup exited with status {returncode}", returncode)
        log.info("Hosts entries cleaned up")
