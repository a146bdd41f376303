"""
This module contains the configuration settings for the hosts controller manager.
It defines the controller binary, its log sink, privilege escalation, shutdown
timings and logging options. Every value can be overridden from the environment
or from a `.env` file in the working directory.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=False)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


def _env_list(name: str) -> tuple:
    return tuple(item.strip() for item in os.getenv(name, "").split(",") if item.strip())


#* --- Core Paths ---
HOME_DIR = pathlib.Path.home()
CONFIG_DIR = HOME_DIR / ".config" / "hosts-controller-manager"
OVERRIDES_JSON_PATH = pathlib.Path(os.getenv("HCM_OVERRIDES_PATH", str(CONFIG_DIR / "overrides.json")))

#* --- Controller Binary ---
CONTROLLER_BINARY = os.getenv("CONTROLLER_BINARY", "k8s-hosts-controller")
LOG_FILE = pathlib.Path(os.getenv("LOG_FILE", "/tmp/k8s-hosts-controller.log"))
NAMESPACES = os.getenv("NAMESPACES", "")
# Matched against the basename of each command line argument
CONTROLLER_PROCESS_NAME = os.getenv(
    "CONTROLLER_PROCESS_NAME", pathlib.Path(CONTROLLER_BINARY).name
)

#* --- Privileged Execution ---
USE_SUDO = _env_flag("USE_SUDO", "True")
SUDO_COMMAND = os.getenv("SUDO_COMMAND", "sudo")
# Resolved before elevating: sudo resets HOME, so ~ would point at root's home.
KUBECONFIG_PATH = pathlib.Path(os.getenv("KUBECONFIG", str(HOME_DIR / ".kube" / "config")))
PRIVILEGED_ENV_PASSTHROUGH = _env_list("PRIVILEGED_ENV_PASSTHROUGH")

#* --- Lifecycle Timings ---
GRACEFUL_SHUTDOWN_TIMEOUT = int(os.getenv("GRACEFUL_SHUTDOWN_TIMEOUT", "30"))  # poll cycles before SIGKILL
STARTUP_WAIT_TIME = float(os.getenv("STARTUP_WAIT_TIME", "2"))                 # seconds
STOP_POLL_INTERVAL = float(os.getenv("STOP_POLL_INTERVAL", "1"))               # seconds
KILL_CONFIRM_TIMEOUT = float(os.getenv("KILL_CONFIRM_TIMEOUT", "5"))           # seconds after SIGKILL

#* --- Start Claim (cross-session lock) ---
START_LOCK_ENABLED = _env_flag("START_LOCK_ENABLED", "True")
START_LOCK_PATH = pathlib.Path(os.getenv("START_LOCK_PATH", "/tmp/k8s-hosts-controller.lock"))
START_LOCK_TIMEOUT = float(os.getenv("START_LOCK_TIMEOUT", "30"))
START_LOCK_POLL_INTERVAL = 0.1

#* --- Logging ---
VERBOSE_LOGGING = _env_flag("VERBOSE_LOGGING", "False")
LOG_BUFFER_FLUSH_INTERVAL = 10

# Grafana Loki (for observability)
LOKI_ENABLED = _env_flag("LOKI_ENABLED", "False")
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")

#* --- MODIFIABLE SETTINGS (Changeable through the overrides file) ---
MODIFIABLE_SETTINGS = {
    # Lifecycle
    "GRACEFUL_SHUTDOWN_TIMEOUT", "STARTUP_WAIT_TIME",
    "STOP_POLL_INTERVAL", "KILL_CONFIRM_TIMEOUT",
    # Controller
    "LOG_FILE", "NAMESPACES",
    # Start claim
    "START_LOCK_ENABLED", "START_LOCK_TIMEOUT",
    # Logging
    "LOG_BUFFER_FLUSH_INTERVAL",
}

#* --- Process titles ---
SESSION_PROCESS_TITLE = "hosts-controller-manager"
