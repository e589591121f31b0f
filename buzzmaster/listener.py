"""Reconnecting consumer for the ``/ws`` broadcast stream.

The server keeps no history, so events sent while a client was disconnected
are gone. After every reconnect the listener calls ``on_resync`` and the
consumer refetches authoritative state over HTTP.
"""
import json
import logging
import time
from typing import Callable, Optional

import socketio


class ReconnectBackoff:
    """Exponential delays ``min(base * 2**attempt, max)`` for a bounded number of attempts."""

    def __init__(self, base_delay=1.0, max_delay=10.0, max_attempts=5):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.attempts = 0

    def next_delay(self) -> Optional[float]:
        """Delay before the next attempt, or None once attempts are used up."""
        if self.attempts >= self.max_attempts:
            return None
        self.attempts += 1
        return min(self.base_delay * (2 ** self.attempts), self.max_delay)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def reset(self) -> None:
        self.attempts = 0


class EventListener:
    def __init__(self, url: str, on_event: Callable[[dict], None], on_resync: Optional[Callable[[], None]] = None,
                 backoff: Optional[ReconnectBackoff] = None, logger=None, namespace: str = '/ws',
                 client_factory=None, sleep=time.sleep):
        self.url = url
        self.on_event = on_event
        self.on_resync = on_resync
        self.backoff = backoff or ReconnectBackoff()
        self.logger = logger or logging.getLogger(__name__)
        self.namespace = namespace
        self.client_id = None
        self._client_factory = client_factory or (lambda: socketio.Client(reconnection=False))
        self._sleep = sleep
        self._connected_once = False
        self._stopped = False
        self.client = None

    def _build_client(self):
        client = self._client_factory()
        client.on('message', self._handle_message, namespace=self.namespace)
        client.on('disconnect', self._handle_disconnect, namespace=self.namespace)
        return client

    def _handle_message(self, data):
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                self.logger.warning(f"[listener] dropping unparseable frame: {data[:80]!r}")
                return
        if isinstance(data, dict) and data.get('type') == 'connected':
            self.client_id = data.get('clientId')
            self.logger.info(f"[listener] connected as {self.client_id}")
            return
        self.on_event(data)

    def _handle_disconnect(self, *args):
        self.logger.info(f"[listener] disconnected from {self.url}")

    def connect(self) -> bool:
        """One connection cycle with backoff. Returns False after giving up."""
        while not self._stopped:
            self.client = self._build_client()
            try:
                self.client.connect(self.url, namespaces=[self.namespace], transports=['websocket', 'polling'])
            except socketio.exceptions.ConnectionError as exc:
                delay = self.backoff.next_delay()
                if delay is None:
                    self.logger.error(f"[listener] giving up on {self.url} after {self.backoff.attempts} attempts")
                    return False
                self.logger.warning(
                    f"[listener] connect failed ({exc}); retry {self.backoff.attempts}/{self.backoff.max_attempts} "
                    f"in {delay}s"
                )
                self._sleep(delay)
                continue

            self.backoff.reset()
            if self._connected_once and self.on_resync:
                self.on_resync()
            self._connected_once = True
            return True
        return False

    def retry(self) -> bool:
        """Start a fresh backoff cycle, typically after ``connect`` gave up."""
        self.backoff.reset()
        return self.connect()

    def run_forever(self) -> None:
        """Stay connected until ``stop`` is called or reconnection gives up."""
        while not self._stopped:
            if not self.connect():
                return
            self.client.wait()

    def stop(self) -> None:
        self._stopped = True
        if self.client is not None:
            self.client.disconnect()
