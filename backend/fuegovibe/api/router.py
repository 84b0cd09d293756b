from fastapi import APIRouter

from fuegovibe.api.v1 import events, health, quotes, users, websocket


api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
api_router.include_router(websocket.router, prefix="/ws", tags=["websocket"])
