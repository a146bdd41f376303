import sys
import logging
from pathlib import Path

from src.hostsctl.config import effective_settings as config
from src.log.handler import LokiHandler

DEFAULT_FORMAT = '[%(levelname)s] %(message)s'
VERBOSE_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw subprocess output."""

    def __init__(self, verbose: bool = False) -> None:
        super().__init__(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT)

    def format(self, record):
        # Lines captured from the controller binary are printed as-is.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO, verbose: bool = False) -> None:
    """
    Configures the root logger for the supervisor.
    This sets up the console handler on stderr and optionally Loki, clearing
    any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param verbose: Use the detailed format with timestamps and logger names.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    # --- Console Handler (diagnostic channel) ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter(verbose))
    root_logger.addHandler(console_handler)

    # --- Loki Handler (conditional) ---
    if config.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(
                url=config.LOKI_URL,
                org_id=config.LOKI_ORG_ID,
                labels={"controller": Path(config.CONTROLLER_BINARY).name},
            )
            loki_handler.setLevel(logging.INFO) # Avoid spamming Loki with DEBUG logs
            root_logger.addHandler(loki_handler)
            root_logger.debug(f"Grafana Loki logging handler initialized for {config.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
