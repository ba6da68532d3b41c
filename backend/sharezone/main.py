import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from sharezone.api.api_v1.api import api_router
from sharezone.core.config import settings
from sharezone.core.exceptions import ZoneError
from sharezone.db.init_db import init_db
from sharezone.db.session import SessionLocal, engine
from sharezone.services import BroadcastHub, ChatService, ExpiryReaper, UploadCoordinator, ZoneRegistry
from sharezone.storage import LocalStorageGateway, StorageGateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.REAPER_ENABLED:
        app.state.reaper.start()
    yield
    app.state.reaper.stop()


def create_app(
    *,
    session_factory: Optional[Callable[[], Session]] = None,
    storage: Optional[StorageGateway] = None,
    create_tables: bool = True,
) -> FastAPI:
    logging.basicConfig(level=settings.LOG_LEVEL)

    if create_tables:
        init_db(engine)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    # Components live on app.state so each app instance is self-contained
    hub = BroadcastHub()
    storage = storage or LocalStorageGateway(settings.STORAGE_PATHS)
    session_factory = session_factory or SessionLocal
    reaper = ExpiryReaper(
        storage=storage,
        hub=hub,
        session_factory=session_factory,
        interval_seconds=settings.REAPER_INTERVAL_SECONDS,
        orphan_grace=timedelta(minutes=settings.ORPHAN_GRACE_MINUTES),
    )

    app.state.session_factory = session_factory
    app.state.hub = hub
    app.state.storage = storage
    app.state.reaper = reaper
    app.state.registry = ZoneRegistry(
        hub=hub,
        reaper=reaper,
        min_hours=settings.ZONE_MIN_HOURS,
        max_hours=settings.ZONE_MAX_HOURS,
        max_total_hours=settings.ZONE_MAX_TOTAL_HOURS,
    )
    app.state.uploads = UploadCoordinator(
        hub=hub,
        storage=storage,
        max_file_size=settings.MAX_FILE_SIZE_BYTES,
        max_files=settings.MAX_FILES_PER_UPLOAD,
        allow_audio=settings.ALLOW_AUDIO_UPLOADS,
    )
    app.state.chat = ChatService(
        hub=hub,
        history_limit=settings.CHAT_HISTORY_LIMIT,
        max_length=settings.CHAT_MAX_LENGTH,
    )

    @app.get("/")
    def read_root():
        return {"message": f"Welcome to {settings.PROJECT_NAME} API"}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.exception_handler(ZoneError)
    async def zone_error_handler(request: Request, exc: ZoneError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("Validation error on %s %s: %s", request.method, request.url.path, exc.errors())
        return JSONResponse(
            status_code=422,
            content={"message": "Validation Error", "code": "validation_error", "detail": jsonable_errors(exc)},
        )

    # Global Exception Handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error", "code": "internal_error"},
        )

    return app


def jsonable_errors(exc: RequestValidationError):
    # Error contexts can carry exception objects
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8899)
