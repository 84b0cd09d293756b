from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from fuegovibe.core.config import settings
from fuegovibe.store.query import Query
from fuegovibe.services.websocket_manager import manager

router = APIRouter()


@router.get("/", summary="Health check", tags=["health"])
def read_health() -> dict[str, str]:
    """Return basic service health information."""
    return {"status": "ok"}


@router.get("/ready", summary="Readiness check", tags=["health"])
async def read_ready(request: Request):
    """Check if service is ready to accept traffic (readiness probe)."""
    try:
        await request.app.state.store.get_documents(Query(settings.USERS_COLLECTION))
        return {
            "status": "ready",
            "store": "connected",
            "live_users": str(len(manager.get_active_users())),
        }
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "store": "disconnected",
                "error": str(e) if settings.ENVIRONMENT != "production" else "Store connection failed"
            }
        )
