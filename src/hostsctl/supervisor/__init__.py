"""
The Supervisor package.
Manages the lifecycle of the system-wide hosts controller process.

This package contains the LifecycleController and its collaborators, which
together handle privilege acquisition, process discovery, starting, stopping,
exit-triggered shutdown, and the one-shot cleanup of controller side effects.
"""
from .errors import (
    BinaryNotFoundError, CleanupError, DeniedError, StartError, StopError, SupervisorError,
)
from .registry import ProcessHandle, ProcessRegistry
from .credentials import CredentialGate
from .claim import FileLockClaim, NullClaim
from .models import Session, StartResult, StopResult, RunState
from .supervisor import LifecycleController
from .coordinator import ShutdownCoordinator, ShutdownState
from .cleanup import CleanupInvoker

__all__ = [
    "BinaryNotFoundError", "CleanupError", "DeniedError", "StartError", "StopError", "SupervisorError",
    "ProcessHandle", "ProcessRegistry", "CredentialGate", "FileLockClaim", "NullClaim",
    "Session", "StartResult", "StopResult", "RunState", "LifecycleController",
    "ShutdownCoordinator", "ShutdownState", "CleanupInvoker",
]
