import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.hostsctl.supervisor.models import StatusReport

log = logging.getLogger(__name__)

PROGRAM_NAME = "hosts-controller-manager"


def print_help(program: str = PROGRAM_NAME) -> None:
    """Prints the usage text with examples to stdout."""
    print(f"Usage: {program} [{{start|stop|restart|cleanup|status}}] [namespaces] [options]")
    print("  The action defaults to start.")
    print("")
    print("Options:")
    print("  --verbose           Debug logging with timestamps.")
    print("  --hold              (start/restart) Stay in the foreground; on Ctrl+C or SIGTERM")
    print("                      stop the controller if this session started it.")
    print("  --cleanup-on-exit   (with --hold) Also run the /etc/hosts cleanup on exit.")
    print("")
    print("Examples:")
    print(f"  {program} start tyk,tyk-dp-1,tyk-dp-2")
    print(f"  {program} start")
    print(f"  {program} stop")
    print(f"  {program} restart")
    print(f"  {program} cleanup")
    print(f"  {program} status")


def display_status(report: "StatusReport") -> None:
    """Logs the controller status report."""
    if report.running:
        log.info(f"Controller status: RUNNING (PID: {report.handle})")
        log.info(f"Log file: {report.log_file}")
    else:
        log.info("Controller status: NOT RUNNING")


def toggle_verbose_logging(verbose: bool) -> None:
    """Switches console logging between INFO and DEBUG."""
    from src.log.setup import setup_logging
    setup_logging(logging.DEBUG if verbose else logging.INFO, verbose=verbose)
    log.debug("Verbose logging enabled.")
