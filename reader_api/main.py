import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from reader_api.api.badges import router as badges_router
from reader_api.api.checkpoints import router as checkpoints_router
from reader_api.api.completion import router as completion_router
from reader_api.api.progress import router as progress_router
from reader_api.api.quiz_attempts import router as quiz_attempts_router
from reader_api.api.reading_sessions import router as reading_sessions_router
from reader_api.core.config import Settings, settings as default_settings
from reader_api.core.errors import AppError
from reader_api.core.logging import configure_logging, set_request_id
from reader_api.db.session import Database
from reader_api.services.seed import seed_exclusive_content

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    ok: bool
    service: str
    version: str
    db_ok: bool


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _run_startup_seed(app: FastAPI) -> None:
    if app.state.settings.disable_startup_seed:
        logger.info("Startup seed disabled")
        return
    db = app.state.db.session()
    try:
        counts = seed_exclusive_content(db)
        logger.info("Startup seed done: %s", counts)
    except SQLAlchemyError:
        db.rollback()
        # an unmigrated database should not keep the API from starting
        logger.exception("Startup seed failed")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _run_startup_seed(app)
    yield
    app.state.db.dispose()


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level, json_logs=settings.log_json)

    app = FastAPI(title="Reader Rewards API", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.db = database or Database(settings.database_url, echo=settings.db_echo)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        set_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            set_request_id(None)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "path", "query"))
        msg = first.get("msg", "invalid value")
        return _error(400, f"Invalid {field}: {msg}" if field else f"Invalid request: {msg}")

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "Internal server error")

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        db_ok = False
        db = request.app.state.db.session()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        except SQLAlchemyError:
            db_ok = False
        finally:
            db.close()

        return HealthResponse(ok=True, service="api", version=app.version, db_ok=db_ok)

    app.include_router(checkpoints_router)
    app.include_router(completion_router)
    app.include_router(badges_router)
    app.include_router(progress_router)
    app.include_router(reading_sessions_router)
    app.include_router(quiz_attempts_router)
    return app


app = create_app()
