import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fuegovibe.api.router import api_router
from fuegovibe.core.config import Settings, settings
from fuegovibe.db import build_engine, init_db
from fuegovibe.store import (
    DocumentStore,
    MemoryDocumentStore,
    RedisChangeFeed,
    SQLDocumentStore,
)

logger = logging.getLogger(__name__)


async def build_store(config: Settings) -> DocumentStore:
    """Create the document store selected by ``STORE_BACKEND``."""
    if config.STORE_BACKEND == "memory":
        logger.info("Using in-memory document store")
        return MemoryDocumentStore()

    engine = build_engine(config.DATABASE_URL)
    init_db(engine)

    change_feed = None
    if config.CHANGE_FEED_ENABLED:
        change_feed = RedisChangeFeed(config.REDIS_URL, config.CHANGE_FEED_CHANNEL)
        try:
            await change_feed.connect()
        except Exception as e:
            # Subscriptions still refresh for writes made by this process
            logger.warning(f"Change feed unavailable, using local notifications: {e}")

    return SQLDocumentStore(engine, change_feed=change_feed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = await build_store(settings)
    logger.info(f"{settings.PROJECT_NAME} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await app.state.store.close()
        logger.info("Document store closed")


def create_application() -> FastAPI:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug(f"[REQUEST] {request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"[RESPONSE] {response.status_code} for {request.method} {request.url.path}")
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_application()
