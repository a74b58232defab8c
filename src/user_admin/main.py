"""Reference users API (FastAPI) implementing the screen's server contract."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from user_admin.api.routes import health, users
from user_admin.api.schemas.user import ErrorDetail, ErrorPayload
from user_admin.config import get_settings
from user_admin.db.repositories.user import UserRepository
from user_admin.utils.exceptions import ApiError, UserAdminError
from user_admin.utils.logging_config import configure_logging

# Configure logging before doing anything else
configure_logging()

settings = get_settings()
logger = structlog.get_logger()


def _error_response(status_code: int, code: str, details: list[dict[str, str]]) -> JSONResponse:
    payload = ErrorPayload(
        error=code,
        details=[ErrorDetail(field=d.get("field", ""), message=d.get("message", "")) for d in details],
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("Starting users API", version=settings.app_version)
    yield
    logger.info("Shutting down users API")


def create_app(repository: UserRepository | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Users API backing the user administration screen",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.user_repository = repository or UserRepository()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Request-ID middleware, binds the id to structlog context
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # Exception handlers
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {"field": str(err["loc"][-1]) if err.get("loc") else "", "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(422, "validation_error", details)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        logger.info(
            "Request rejected",
            path=request.url.path,
            status=exc.status_code,
            code=exc.code,
        )
        return _error_response(exc.status_code, exc.code, exc.field_details)

    @app.exception_handler(UserAdminError)
    async def service_error_handler(request: Request, exc: UserAdminError) -> JSONResponse:
        logger.error("Unhandled service error", path=request.url.path, error=exc.message)
        return _error_response(500, "internal_error", [])

    app.include_router(health.router)
    app.include_router(users.router, prefix=settings.api.prefix)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "user_admin.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
