import logging
from typing import Callable, Dict, List, Optional

from src.hostsctl.manager import HostsControllerManager
from src.hostsctl.supervisor.errors import SupervisorError
from src.hostsctl.console.handler import display_status, print_help

log = logging.getLogger(__name__)

ACTIONS = ("start", "stop", "restart", "cleanup", "status")
HOLDABLE_ACTIONS = ("start", "restart")


def _start(manager: HostsControllerManager, hold: bool) -> int:
    manager.start()
    log.info("Controller is ready")
    return manager.hold() if hold else 0


def _restart(manager: HostsControllerManager, hold: bool) -> int:
    manager.restart()
    return manager.hold() if hold else 0


def _stop(manager: HostsControllerManager) -> int:
    manager.stop()
    return 0


def _cleanup(manager: HostsControllerManager) -> int:
    manager.cleanup()
    return 0


def _status(manager: HostsControllerManager) -> int:
    display_status(manager.status())
    return 0


def execute_command(
    command: str,
    args: List[str],
    hold: bool = False,
    cleanup_on_exit: bool = False,
    manager: Optional[HostsControllerManager] = None,
) -> int:
    """
    Executes a single action.

    :param command: The action name (e.g., 'start', 'stop').
    :param args: Positional arguments; the first one is the comma-separated namespace list.
    :param hold: Keep the session in the foreground after start/restart.
    :param cleanup_on_exit: With `hold`, also run cleanup when the session ends.
    :param manager: A pre-built manager, mostly for tests.
    :return int: The process exit code.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    if command not in ACTIONS:
        log.error(f"Unknown action: '{command}'")
        print_help()
        return 1

    if hold and command not in HOLDABLE_ACTIONS:
        log.warning(f"--hold has no effect on '{command}'")

    namespaces = args[0] if args else None
    manager = manager or HostsControllerManager(namespaces=namespaces, cleanup_on_exit=cleanup_on_exit)

    command_map: Dict[str, Callable[[], int]] = {
        "start": lambda: _start(manager, hold),
        "stop": lambda: _stop(manager),
        "restart": lambda: _restart(manager, hold),
        "cleanup": lambda: _cleanup(manager),
        "status": lambda: _status(manager),
    }

    try:
        manager.check_configuration()
        return command_map[command]()
    except SupervisorError as e:
        log.error(str(e))
        if e.remedy and e.remedy not in str(e):
            log.error(e.remedy)
        return 1
