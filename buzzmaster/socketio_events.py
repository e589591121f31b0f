from flask import current_app, request
from buzzmaster import socketio
from buzzmaster.realtime import get_hub
from buzzmaster.realtime.hub import SocketIOConnection
import json

NAMESPACE = '/ws'


def handle_connect():
    # The Socket.IO session id doubles as the opaque client id
    get_hub().register(SocketIOConnection(socketio, request.sid, NAMESPACE), connection_id=request.sid)


def handle_disconnect(*args):
    get_hub().unregister(request.sid)


def handle_message(data):
    """Relay whatever a client sends to every connected client, unchanged."""
    if isinstance(data, (bytes, bytearray)):
        data = data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            current_app.logger.warning(f"[ws] unparseable frame from {request.sid}")
            return
    current_app.logger.info(f"[ws] relay from {request.sid} type={data.get('type') if isinstance(data, dict) else None}")
    get_hub().broadcast_all(data)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('message', handle_message, namespace=NAMESPACE)
    socketio.on_event('json', handle_message, namespace=NAMESPACE)
