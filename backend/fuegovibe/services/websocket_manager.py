"""
WebSocket connection manager for live event projections.
Each connection owns an EventSyncService whose projection changes are
forwarded to the client.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple

from fastapi import WebSocket, WebSocketDisconnect

from fuegovibe.models.event import Event
from fuegovibe.schemas.event import EventRead, ProjectionMessage
from fuegovibe.services.event_sync import EventSyncService, Projection
from fuegovibe.store.interfaces import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class StreamSession:
    websocket: WebSocket
    user_id: str
    service: EventSyncService
    # Latest unsent snapshot per projection; a snapshot replaces the previous one
    pending: Dict[str, ProjectionMessage] = field(default_factory=dict)
    ready: asyncio.Event = field(default_factory=asyncio.Event)

    def on_projection_change(self, projection: Projection, events: Tuple[Event, ...]) -> None:
        self.pending[projection.value] = ProjectionMessage(
            projection=projection.value,
            events=[EventRead.from_event(event) for event in events],
        )
        self.ready.set()

    async def next_batch(self) -> List[ProjectionMessage]:
        """Wait for changes, then take every pending snapshot."""
        await self.ready.wait()
        self.ready.clear()
        batch = list(self.pending.values())
        self.pending.clear()
        return batch


class ConnectionManager:
    """Manages WebSocket connections streaming event projections."""

    def __init__(self):
        # {user_id: {session1, session2, ...}}
        self.active_connections: Dict[str, Set[StreamSession]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: str, store: DocumentStore) -> StreamSession:
        """Accept the connection, greet the client, then start live projections."""
        await websocket.accept()
        await websocket.send_json({
            "type": "connected",
            "message": "WebSocket connected successfully",
            "user_id": user_id,
        })

        service = EventSyncService(store)
        session = StreamSession(websocket=websocket, user_id=user_id, service=service)
        service.add_observer(session.on_projection_change)
        service.start_listening()
        service.start_my_events_listener(user_id)
        service.start_joined_events_listener(user_id)

        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(session)

        logger.info(f"WebSocket connected: user_id={user_id}, total_connections={len(self.active_connections[user_id])}")
        return session

    async def disconnect(self, session: StreamSession):
        """Stop the session's listeners and forget the connection."""
        session.service.close()
        async with self._lock:
            sessions = self.active_connections.get(session.user_id)
            if sessions is not None:
                sessions.discard(session)
                if not sessions:
                    del self.active_connections[session.user_id]

        logger.info(f"WebSocket disconnected: user_id={session.user_id}")

    async def pump(self, session: StreamSession):
        """Send projection snapshots until the connection closes."""
        try:
            while True:
                for message in await session.next_batch():
                    await session.websocket.send_json(message.model_dump(mode="json"))
                    logger.debug(f"Sent {message.projection} snapshot to user {session.user_id}")
        except (WebSocketDisconnect, RuntimeError) as e:
            # RuntimeError: send after the socket was closed
            logger.info(f"Stopped streaming to user {session.user_id}: {e!r}")

    def get_active_users(self) -> Set[str]:
        """Get set of user IDs with active WebSocket connections."""
        return set(self.active_connections.keys())

    def get_connection_count(self, user_id: str) -> int:
        """Get number of active connections for a user."""
        return len(self.active_connections.get(user_id, set()))


# Global instance
manager = ConnectionManager()
