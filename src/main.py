import sys
import logging
from typing import List, Optional

import setproctitle

import src.hostsctl.console as console
from src.log.setup import setup_logging
from src.hostsctl.config import effective_settings as config
from src.settings import SESSION_PROCESS_TITLE

log = logging.getLogger("console")

FLAGS = ("--verbose", "--hold", "--cleanup-on-exit")


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the command-line supervisor."""
    argv = list(sys.argv[1:] if argv is None else argv)

    # The very first thing we do is set up logging for the console.
    setup_logging(logging.INFO)

    if argv and argv[0] in ("help", "-h", "--help"):
        console.print_help()
        return 0

    # No action given means start
    command, args = (argv[0].lower(), argv[1:]) if argv else ("start", [])

    # Check for flags anywhere after the action
    flags = {flag: flag in args for flag in FLAGS}
    args = [arg for arg in args if arg not in FLAGS]

    if flags["--verbose"] or config.VERBOSE_LOGGING:
        console.toggle_verbose_logging(True)

    unknown = [arg for arg in args if arg.startswith("-")]
    if unknown or len(args) > 1:
        log.error(f"Unexpected arguments: {' '.join(unknown or args[1:])}")
        console.print_help()
        return 1

    setproctitle.setproctitle(SESSION_PROCESS_TITLE)

    return console.execute_command(
        command,
        args,
        hold=flags["--hold"],
        cleanup_on_exit=flags["--cleanup-on-exit"],
    )


def run() -> None:
    """Console script wrapper that turns the return code into the exit status."""
    sys.exit(main())


if __name__ == "__main__":
    run()
