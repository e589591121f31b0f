import logging
from typing import Any, Optional


class Publisher:
    """What request handlers call to announce a committed state change.

    Publishing is fire-and-forget: a failure is logged and dropped, the
    database write that preceded it stays committed.
    """

    def __init__(self, hub, logger: Optional[logging.Logger] = None):
        self.hub = hub
        self.logger = logger or logging.getLogger(__name__)

    def publish(self, event_type: str, payload: Any = None) -> None:
        try:
            self.hub.broadcast_all({'type': event_type, 'data': payload if payload is not None else {}})
        except Exception:
            self.logger.exception(f"[publish] dropped {event_type}")

    def publish_to_room(self, room_id, event_type: str, payload: Any = None) -> None:
        try:
            self.hub.broadcast_room(room_id, {'type': event_type, 'data': payload if payload is not None else {}})
        except Exception:
            self.logger.exception(f"[publish] dropped {event_type} room={room_id}")
