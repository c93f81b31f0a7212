"""
Live tournament updates.

Publishing is best-effort: a subscriber that cannot be reached is dropped
and the tournament operation that published the event still succeeds.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    TOURNAMENT_UPDATED = "tournament:updated"
    SCORE_UPDATED = "tournament:score_updated"
    ROUND_COMPLETED = "tournament:round_completed"
    NEW_ROUND = "tournament:new_round"
    LEADERBOARD_UPDATED = "leaderboard:updated"
    MATCH_COMPLETED = "match:completed"
    PLAYER_JOINED = "player:joined"
    PLAYER_LEFT = "player:left"


def topic(tournament_id: str) -> str:
    return f"tournament:{tournament_id}"


class BroadcastChannel(ABC):

    @abstractmethod
    async def publish(self, tournament_id: str, event: EventKind, payload: Dict[str, Any]) -> None:
        ...


class NullChannel(BroadcastChannel):
    async def publish(self, tournament_id, event, payload):
        return None


class ConnectionManager(BroadcastChannel):
    """WebSocket subscribers grouped by tournament topic."""

    def __init__(self):
        self._topics: Dict[str, List[WebSocket]] = {}

    async def join(self, tournament_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._topics.setdefault(topic(tournament_id), []).append(websocket)
        logger.debug("Socket joined %s", topic(tournament_id))

    def leave(self, tournament_id: str, websocket: WebSocket) -> None:
        sockets = self._topics.get(topic(tournament_id), [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self._topics.pop(topic(tournament_id), None)
        logger.debug("Socket left %s", topic(tournament_id))

    def subscriber_count(self, tournament_id: str) -> int:
        return len(self._topics.get(topic(tournament_id), []))

    async def publish(self, tournament_id: str, event: EventKind, payload: Dict[str, Any]) -> None:
        message = {"event": event.value, "tournament_id": tournament_id, "data": payload}
        for websocket in list(self._topics.get(topic(tournament_id), [])):
            try:
                await websocket.send_json(message)
            except Exception:
                logger.warning("Dropping unreachable subscriber on %s", topic(tournament_id),
                               exc_info=True)
                self.leave(tournament_id, websocket)
