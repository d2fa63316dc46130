"""In-process websocket fan-out for the notification bell."""

from typing import Any, Dict, Set

from fastapi import WebSocket

from dealer_crm.utils.logging import get_logger

logger = get_logger("services.notification_realtime")


class NotificationHub:
    """Tracks open notification sockets per team member."""

    def __init__(self) -> None:
        self.connections: Dict[int, Set[WebSocket]] = {}

    def register(self, user_id: int, websocket: WebSocket) -> None:
        self.connections.setdefault(user_id, set()).add(websocket)

    def unregister(self, user_id: int, websocket: WebSocket) -> None:
        sockets = self.connections.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            self.connections.pop(user_id, None)

    def connected(self, user_id: int) -> int:
        return len(self.connections.get(user_id, ()))

    async def push(self, user_id: int, payload: Dict[str, Any]) -> int:
        """Send ``payload`` to every socket of ``user_id``; returns deliveries."""
        sockets = self.connections.get(user_id)
        if not sockets:
            return 0
        delivered = 0
        for ws in list(sockets):
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception as exc:
                logger.info("notification_socket_dropped", user_id=user_id, error=str(exc))
                self.unregister(user_id, ws)
        return delivered


hub = NotificationHub()
