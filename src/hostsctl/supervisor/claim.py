"""
Claim strategies for the check-then-act window of `start`.

Discovery followed by launch is a race between independent sessions: both can
observe "no instance" and both launch one. A claim is held around that window.
`NullClaim` keeps the race (the historical behaviour); `FileLockClaim` closes it
with an exclusive advisory lock keyed by the controller's identity.
"""
import os
import time
import fcntl
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import Callable, Iterator, Union

from src.hostsctl.supervisor.errors import StartError

log = logging.getLogger(__name__)


class NullClaim:
    """Holds nothing. Two concurrent starts may both launch an instance."""

    @contextmanager
    def hold(self) -> Iterator[None]:
        yield


class FileLockClaim:
    """
    Serialises starts across sessions with `flock` on a shared lock file.

    The lock file may have been created by another user, so it is opened
    read-only; `flock` does not need write access.
    """

    def __init__(
        self,
        lock_path: Path,
        timeout: float = 30.0,
        poll_interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def _open(self) -> int:
        try:
            return os.open(str(self.lock_path), os.O_RDONLY)
        except FileNotFoundError:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            return os.open(str(self.lock_path), os.O_RDONLY | os.O_CREAT, 0o644)

    @contextmanager
    def hold(self) -> Iterator[None]:
        """
        Holds the lock for the duration of the context.

        :raises StartError: If the lock cannot be opened or acquired within the timeout.
        """
        try:
            fd = self._open()
        except OSError as e:
            raise StartError(f"Could not open start lock '{self.lock_path}': {e}")

        deadline = self._clock() + self.timeout
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if self._clock() >= deadline:
                        raise StartError(
                            f"Another session is still starting the controller "
                            f"(lock '{self.lock_path}' held for more than {self.timeout:g}s)"
                        )
                    self._sleep(self.poll_interval)
            log.debug(f"Acquired start lock {self.lock_path}")
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                log.debug(f"Released start lock {self.lock_path}")
        finally:
            os.close(fd)


def claim_for(config) -> Union[NullClaim, FileLockClaim]:
    """Returns the claim strategy selected by the configuration."""
    if not config.lock_enabled:
        return NullClaim()
    return FileLockClaim(config.lock_path, config.lock_timeout, config.lock_poll_interval)
