import os
import psutil
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional

from src.hostsctl.supervisor.process_utils import collect_descendants, get_process_from_pid, is_pid_alive

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessHandle:
    """
    Identifies a running controller instance as a *set* of PIDs.

    Discovery may legitimately return more than one match (the sudo wrapper and
    the controller itself, or a stray instance from an earlier run), so every
    operation on a handle quantifies over all of its PIDs.
    """
    pids: FrozenSet[int] = frozenset()

    @classmethod
    def of(cls, pids: Iterable[int]) -> "ProcessHandle":
        return cls(frozenset(int(pid) for pid in pids))

    def __bool__(self) -> bool:
        return bool(self.pids)

    def __len__(self) -> int:
        return len(self.pids)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self.pids))

    def __str__(self) -> str:
        return " ".join(str(pid) for pid in self)

    def union(self, other: Iterable[int]) -> "ProcessHandle":
        return ProcessHandle(self.pids | frozenset(other))


EMPTY_HANDLE = ProcessHandle()


class ProcessRegistry:
    """
    System-wide discovery of controller processes.

    The OS process table is the only coordination channel shared between
    independent sessions, so discovery is not limited to our own children.
    """

    def __init__(self, process_name: str) -> None:
        """
        :param process_name: The controller binary's basename. A process matches when one of its
            command line arguments has exactly this basename, which covers both
            ``/usr/local/bin/k8s-hosts-controller`` and its ``sudo -n KUBECONFIG=... k8s-hosts-controller``
            wrapper but not ``tail -f /tmp/k8s-hosts-controller.log`` or a shell mentioning the name.
        """
        self.process_name = process_name

    def _matches(self, proc: psutil.Process) -> bool:
        info = proc.info
        cmdline = info.get("cmdline") or []
        if cmdline:
            return any(os.path.basename(arg) == self.process_name for arg in cmdline)
        # Kernel threads and processes we may not inspect only expose their name.
        return info.get("name") == self.process_name

    def discover(self) -> ProcessHandle:
        """
        Finds every process matching the controller's signature.

        :return: A handle with all matching PIDs; empty when nothing matches.
        """
        own_pid = os.getpid()
        matches = set()
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            try:
                if proc.info["pid"] != own_pid and self._matches(proc):
                    matches.add(proc.info["pid"])
            except (psutil.NoSuchProcess, psutil.ZombieProcess):
                continue
        handle = ProcessHandle.of(pid for pid in matches if is_pid_alive(pid))
        log.debug(f"Discovery for '{self.process_name}' found: [{handle}]")
        return handle

    def is_alive(self, handle: Optional[ProcessHandle]) -> bool:
        """True if ANY PID of the handle is still alive."""
        return bool(handle) and any(is_pid_alive(pid) for pid in handle)

    def alive_pids(self, handle: Optional[ProcessHandle]) -> ProcessHandle:
        """Returns the subset of the handle's PIDs that are still alive."""
        if not handle:
            return EMPTY_HANDLE
        return ProcessHandle.of(pid for pid in handle if is_pid_alive(pid))

    def descendants(self, pid: int) -> FrozenSet[int]:
        """Returns the live descendants of a launched process (e.g. the controller under its sudo wrapper)."""
        return frozenset(child for child in collect_descendants(pid) if is_pid_alive(child))

    def describe(self, handle: ProcessHandle) -> Dict[int, List[str]]:
        """Returns the command line of each PID in the handle that can still be read."""
        described: Dict[int, List[str]] = {}
        for pid in handle:
            try:
                described[pid] = get_process_from_pid(pid).cmdline()
            except psutil.Error:
                continue
        return described
