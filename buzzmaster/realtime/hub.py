"""Fan-out of JSON event envelopes to every connected client.

The hub keeps only transport handles. It does not know which room a client
belongs to: room-scoped events go to everyone with ``roomId`` inside
``data`` and clients filter on their side.
"""

import json
import logging
import secrets
import threading
from typing import Any, Dict, Optional


class SocketIOConnection:
    """Adapts a Flask-SocketIO session to the hub's connection protocol."""

    def __init__(self, socketio, sid: str, namespace: str = '/ws'):
        self.socketio = socketio
        self.sid = sid
        self.namespace = namespace

    @property
    def is_open(self) -> bool:
        server = getattr(self.socketio, 'server', None)
        if server is None:
            return False
        return server.manager.is_connected(self.sid, self.namespace)

    def send(self, text: str) -> None:
        self.socketio.send(text, to=self.sid, namespace=self.namespace)


class BroadcastHub:
    """Connection table plus best-effort, at-most-once delivery.

    Sends never raise to the caller; a failed send or a connection that is no
    longer open counts as a disconnect and the connection is dropped.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._connections: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self, connection, connection_id: Optional[str] = None) -> str:
        connection_id = connection_id or secrets.token_hex(4)
        with self._lock:
            self._connections[connection_id] = connection
        self.logger.info(f"[ws] client connected id={connection_id}")
        self._send(connection_id, connection, json.dumps({
            'type': 'connected',
            'clientId': connection_id,
            'message': 'Connected to WebSocket server',
        }))
        return connection_id

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            removed = self._connections.pop(connection_id, None)
        if removed is not None:
            self.logger.info(f"[ws] client disconnected id={connection_id}")

    def broadcast_all(self, envelope) -> int:
        """Send ``envelope`` (a dict or an already-serialised string) to every client.

        Returns the number of clients the frame was handed to.
        """
        text = envelope if isinstance(envelope, str) else json.dumps(envelope, default=str)
        with self._lock:
            targets = list(self._connections.items())
        sent = 0
        for connection_id, connection in targets:
            if self._send(connection_id, connection, text):
                sent += 1
        self.logger.debug(f"[ws] broadcast to {sent}/{len(targets)} clients")
        return sent

    def broadcast_room(self, room_id, envelope: dict) -> int:
        data = envelope.get('data')
        if isinstance(data, dict):
            data = {**data, 'roomId': room_id}
        else:
            data = {'data': data, 'roomId': room_id}
        return self.broadcast_all({**envelope, 'data': data})

    def _send(self, connection_id: str, connection, text: str) -> bool:
        try:
            if not connection.is_open:
                self.logger.info(f"[ws] removing dead client id={connection_id}")
                self.unregister(connection_id)
                return False
            connection.send(text)
            return True
        except Exception as exc:
            self.logger.warning(f"[ws] send failed id={connection_id}: {exc}")
            self.unregister(connection_id)
            return False
