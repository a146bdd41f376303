import logging
import subprocess
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from src.hostsctl.config import parse_namespaces
from src.hostsctl.supervisor.errors import BinaryNotFoundError, StartError
from src.hostsctl.supervisor.process_utils import find_executable

if TYPE_CHECKING:
    from src.hostsctl.config import ControllerConfig
    from src.hostsctl.supervisor.registry import ProcessHandle, ProcessRegistry

log = logging.getLogger(__name__)


def resolve_binary(config: "ControllerConfig") -> str:
    """
    Resolves the controller binary before elevating, since sudo uses its own PATH.

    :raises BinaryNotFoundError: If the binary is neither a file nor on PATH.
    """
    resolved = find_executable(config.binary)
    if resolved is None:
        raise BinaryNotFoundError(f"Controller binary not found: {config.binary}")
    return resolved


def controller_command(config: "ControllerConfig") -> List[str]:
    """Returns the controller command line for the configured target set."""
    return [resolve_binary(config), *config.controller_args()]


def launch_controller(
    config: "ControllerConfig",
    launcher: Callable[["ControllerConfig", List[str]], subprocess.Popen],
) -> subprocess.Popen:
    """
    Launches the controller in the background.

    :raises StartError: If the process could not be created at all.
    """
    cmd = controller_command(config)
    log.info("Starting controller in background...")
    log.info(f"  Command: {' '.join(cmd)}")
    log.info(f"  Log file: {config.log_file}")
    try:
        return launcher(config, cmd)
    except OSError as e:
        raise StartError(f"Could not launch controller: {e}", config.log_file)


def _targets_from_cmdline(cmdline: List[str]) -> Optional[Tuple[str, ...]]:
    """Extracts the namespace selection from a controller command line, if present."""
    for i, arg in enumerate(cmdline):
        if arg == "--all-namespaces":
            return ()
        if arg == "--namespaces" and i + 1 < len(cmdline):
            return tuple(sorted(parse_namespaces(cmdline[i + 1])))
        if arg.startswith("--namespaces="):
            return tuple(sorted(parse_namespaces(arg.split("=", 1)[1])))
    return None


def warn_on_target_mismatch(
    registry: "ProcessRegistry", handle: "ProcessHandle", config: "ControllerConfig"
) -> bool:
    """
    Warns when an adopted instance watches a different namespace set than requested.

    The instance is adopted either way.

    :return: True if a mismatch was detected.
    """
    requested = tuple(sorted(config.namespaces))
    running = {
        targets
        for targets in (_targets_from_cmdline(cmd) for cmd in registry.describe(handle).values())
        if targets is not None
    }
    mismatched = [targets for targets in running if targets != requested]
    if not mismatched:
        return False

    def _fmt(targets: Tuple[str, ...]) -> str:
        return ",".join(targets) if targets else "<all namespaces>"

    log.warning(
        f"Running controller watches {' / '.join(_fmt(t) for t in sorted(mismatched))} "
        f"but {_fmt(requested)} was requested. Use 'restart' to apply the new target set."
    )
    return True
