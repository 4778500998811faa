import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request

from api.di.container import ApplicationContainer
from api.shared.dtos import ErrorResponse
from api.shared.exceptions import ExpertiseException
from core.logging_setup import setup_logging
from core.settings import SETTINGS

setup_logging(SETTINGS.APP)

logger = logging.getLogger("expertise")

API_PREFIX = "/api/v1"
CORS_ORIGINS = ["http://localhost", "http://localhost:3000", "http://localhost:8000"]


class ExpertiseAPI(FastAPI):
    container: ApplicationContainer


@asynccontextmanager
async def lifespan(_app: ExpertiseAPI):
    started = time.perf_counter()
    database = _app.container.infrastructure.database()
    try:
        await database.init()
        await database.ping()
    except (OSError, SQLAlchemyError):
        logger.exception("Database unreachable at startup")
        raise
    logger.info(f"Database ready in {time.perf_counter() - started:.2f}s")

    generator = _app.container.services.embedding_generator()
    if generator.is_configured():
        logger.info(f"Embedding endpoint: {generator.service_url} (model {generator.settings.EMBEDDING_MODEL_ID})")
    else:
        logger.warning("Embedding endpoint not configured; generation and text queries will fail")

    yield

    await database.shutdown()
    logger.info("Database engine disposed")


def _error_body(error_code: str, message: str, details=None) -> dict:
    return ErrorResponse(error_code=error_code, message=message, details=details).model_dump(mode="json")


def _register_exception_handlers(_app: FastAPI) -> None:
    @_app.exception_handler(ExpertiseException)
    async def expertise_exception_handler(request: Request, exc: ExpertiseException):
        return JSONResponse(
            status_code=exc.http_status,
            content=_error_body(exc.error_code, exc.message, exc.details),
        )

    @_app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=_error_body(
                "REQUEST_VALIDATION_ERROR",
                "Invalid request",
                {"errors": [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]},
            ),
        )

    @_app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )


def _register_probes(_app: ExpertiseAPI) -> None:
    @_app.get("/", include_in_schema=False)
    async def root():
        return {"service": _app.title, "status": "ok"}

    @_app.get("/health")
    async def health():
        return {"status": "ok"}

    @_app.get("/ready")
    async def ready():
        database = _app.container.infrastructure.database()
        try:
            await database.ping()
        except (RuntimeError, OSError, SQLAlchemyError) as e:
            logger.warning(f"Readiness check failed: {e}")
            return JSONResponse(
                status_code=503,
                content=_error_body("DATABASE_UNAVAILABLE", "Database not ready"),
            )
        return {"status": "ok"}


def create_fastapi_app() -> ExpertiseAPI:
    _app = ExpertiseAPI(
        title="Expertise Embedding API",
        description="Entity embeddings and expert-rated similarity search",
        version="0.1.0",
        lifespan=lifespan,
    )

    _app.container = ApplicationContainer()
    _app.container.infrastructure.config.from_dict(SETTINGS.model_dump())
    _app.container.wire(modules=[sys.modules[__name__]])

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    from api.features.embeddings.router import router as embeddings_router
    from api.features.similarity.router import router as similarity_router

    _app.include_router(embeddings_router, prefix=f"{API_PREFIX}/embeddings", tags=["Embeddings"])
    _app.include_router(similarity_router, prefix=f"{API_PREFIX}/similarity", tags=["Similarity"])

    _register_exception_handlers(_app)
    _register_probes(_app)
    return _app


app = create_fastapi_app()
