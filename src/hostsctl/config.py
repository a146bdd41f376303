import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import src.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    A singleton class that merges default settings with JSON overrides.

    This class provides a unified, attribute-based access point for all
    configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the environment / `.env` file (read by `settings.py`).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """Initializes the settings object by loading defaults and overrides."""
        self.OVERRIDES_JSON_PATH: Path = overrides_path or default_settings.OVERRIDES_JSON_PATH

        self._load_defaults()
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper() and key != "OVERRIDES_JSON_PATH":
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied. Values are coerced
        to the type of the default they replace.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.debug(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            try:
                setattr(self, key, _coerce(getattr(self, key), value))
                log.debug(f"Overridden setting: {key} = {value}")
            except (ValueError, TypeError) as e:
                log.error(f"Could not convert value '{value}' for key '{key}'. Error: {e}")

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, item, default)


def _coerce(original_value: Any, value: Any) -> Any:
    """Coerces an override to the type of the value it replaces."""
    if isinstance(original_value, bool):
        return str(value).lower() in ('true', '1', 't', 'yes', 'y')
    if isinstance(original_value, Path):
        return Path(value)
    if original_value is not None:
        return type(original_value)(value)
    return value


def parse_namespaces(raw: Optional[str]) -> Tuple[str, ...]:
    """Splits a comma-separated namespace list. An empty list means all namespaces."""
    if not raw:
        return ()
    return tuple(ns.strip() for ns in raw.split(",") if ns.strip())


@dataclass(frozen=True)
class ControllerConfig:
    """The resolved configuration one session runs with."""
    binary: str
    log_file: Path
    namespaces: Tuple[str, ...] = ()
    graceful_timeout: int = 30
    startup_wait: float = 2.0
    poll_interval: float = 1.0
    kill_confirm_timeout: float = 5.0
    process_name: str = "k8s-hosts-controller"
    use_sudo: bool = True
    sudo_command: str = "sudo"
    privileged_env: Dict[str, str] = field(default_factory=dict)
    lock_enabled: bool = True
    lock_path: Path = Path("/tmp/k8s-hosts-controller.lock")
    lock_timeout: float = 30.0
    lock_poll_interval: float = 0.1

    def controller_args(self) -> List[str]:
        """Returns the target-selection arguments for the controller binary."""
        if self.namespaces:
            return ["--namespaces", ",".join(self.namespaces)]
        return ["--all-namespaces"]

    def with_namespaces(self, namespaces: Tuple[str, ...]) -> "ControllerConfig":
        return replace(self, namespaces=tuple(namespaces))


def resolve_privileged_env(settings: Any, environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Builds the environment overrides handed to the elevated controller.

    Elevation changes HOME, so the kubeconfig location has to be resolved in the
    caller's environment before sudo runs.

    :param settings: The settings object to read from.
    :param environ: The caller's environment, defaults to `os.environ`.
    :return: A mapping of variable names to values.
    """
    environ = os.environ if environ is None else environ
    env = {"KUBECONFIG": str(settings.KUBECONFIG_PATH)}
    for name in settings.PRIVILEGED_ENV_PASSTHROUGH:
        if name in environ:
            env[name] = environ[name]
    return env


def resolve_config(namespaces: Optional[str] = None, settings: Any = None) -> ControllerConfig:
    """
    Resolves the effective ControllerConfig from settings and the CLI target list.

    :param namespaces: Comma-separated namespaces from the command line; falls back to `NAMESPACES`.
    :param settings: A settings object, defaults to the module-level `effective_settings`.
    :return: The resolved configuration.
    """
    settings = settings or effective_settings
    raw_namespaces = namespaces if namespaces is not None else settings.NAMESPACES
    return ControllerConfig(
        binary=settings.CONTROLLER_BINARY,
        log_file=Path(settings.LOG_FILE),
        namespaces=parse_namespaces(raw_namespaces),
        graceful_timeout=int(settings.GRACEFUL_SHUTDOWN_TIMEOUT),
        startup_wait=float(settings.STARTUP_WAIT_TIME),
        poll_interval=float(settings.STOP_POLL_INTERVAL),
        kill_confirm_timeout=float(settings.KILL_CONFIRM_TIMEOUT),
        process_name=settings.CONTROLLER_PROCESS_NAME,
        use_sudo=bool(settings.USE_SUDO),
        sudo_command=settings.SUDO_COMMAND,
        privileged_env=resolve_privileged_env(settings),
        lock_enabled=bool(settings.START_LOCK_ENABLED),
        lock_path=Path(settings.START_LOCK_PATH),
        lock_timeout=float(settings.START_LOCK_TIMEOUT),
        lock_poll_interval=float(settings.START_LOCK_POLL_INTERVAL),
    )


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
