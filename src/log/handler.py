import os
import sys
import socket
import logging
import threading
import requests
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple

from src.hostsctl.config import effective_settings as config

# (level, logger) -> one Loki stream; values are (timestamp in ns, line)
StreamKey = Tuple[str, str]
Entry = Tuple[StreamKey, str, str]


class LokiHandler(logging.Handler):
    """
    Ships supervisor and controller log lines to a Grafana Loki instance.

    Records are buffered and pushed in batches by a background thread. A
    supervisor run is usually short, so ERROR records and `close()` push
    immediately instead of waiting for the next interval.
    """
    def __init__(
        self,
        url: str,
        org_id: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
        flush_interval: Optional[float] = None,
    ):
        """
        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID sent as 'X-Scope-OrgID'.
        :param labels: Static labels added to every stream (e.g. the controller binary).
        :param flush_interval: Seconds between background pushes.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.labels = {
            "job": "hosts-controller-manager",
            "hostname": os.getenv('HOSTNAME') or socket.gethostname(),
            **(labels or {}),
        }
        self.flush_interval = flush_interval if flush_interval is not None else config.LOG_BUFFER_FLUSH_INTERVAL
        self.batch_size = 200

        self.http = requests.Session()
        self.http.headers['Content-Type'] = 'application/json'
        if org_id:
            self.http.headers['X-Scope-OrgID'] = org_id

        self._buffer: Deque[Entry] = deque()
        self._buffer_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._flush_thread = threading.Thread(target=self._periodic_flush, name="LokiFlushThread", daemon=True)
        self._flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self._stop_event.wait(self.flush_interval):
            self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            # Controller output is labelled with the process name, not the full logger path.
            if record.name.startswith('proc.'):
                key = (record.levelname.lower(), record.name.split('.', 1)[1])
                line = record.getMessage()
            else:
                key = (record.levelname.lower(), record.name)
                line = self.format(record)

            with self._buffer_lock:
                self._buffer.append((key, str(int(record.created * 1e9)), line))
                full = len(self._buffer) >= self.batch_size
            if full or record.levelno >= logging.ERROR:
                self.flush()
        except Exception:
            self.handleError(record)

    def _drain(self) -> List[Entry]:
        with self._buffer_lock:
            entries = list(self._buffer)
            self._buffer.clear()
        return entries

    def build_payload(self, entries: List[Entry]) -> Dict[str, list]:
        """Groups buffered entries into one Loki stream per (level, logger) pair."""
        streams: Dict[StreamKey, List[List[str]]] = defaultdict(list)
        for key, timestamp, line in entries:
            streams[key].append([timestamp, line])
        return {
            "streams": [
                {"stream": {**self.labels, "level": level, "logger": logger}, "values": values}
                for (level, logger), values in streams.items()
            ]
        }

    def flush(self) -> None:
        """Pushes everything buffered so far. Network errors are reported on stderr, never raised."""
        entries = self._drain()
        if not entries:
            return
        try:
            response = self.http.post(self.url, json=self.build_payload(entries), timeout=5)
            # Loki answers a successful push with 204 No Content
            if response.status_code != 204:
                sys.stderr.write(f"Loki rejected {len(entries)} log line(s): {response.status_code} {response.text}\n")
        except requests.RequestException as e:
            sys.stderr.write(f"Failed to send {len(entries)} log line(s) to Loki: {e}\n")

    def close(self) -> None:
        """Stops the background thread, pushes what is left and releases the HTTP session."""
        self._stop_event.set()
        if self._flush_thread.is_alive():
            self._flush_thread.join(timeout=self.flush_interval + 2)
        self.flush()
        self.http.close()
        super().close()
