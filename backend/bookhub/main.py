import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bookhub.core.config import settings
from bookhub.core.database import init_db
from bookhub.core.validation import format_validation_errors
from bookhub.routes.books import router as books_router
from bookhub.routes.health import router as health_router
from bookhub.routes.users import router as users_router


if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s [%(levelname)s] - %(message)s",
    )

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    content = {"success": False, "message": exc.detail}
    errors = getattr(exc, "errors", None)
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": "Validation failed",
            "errors": format_validation_errors(exc.errors()),
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    # The raw message reaches the client; no redaction layer exists yet
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": str(exc) or "Internal Server Error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="BookHub Inventory API", version="0.1.0")

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, tags=["health"])
    app.include_router(users_router, prefix="/users", tags=["users"])
    app.include_router(books_router, prefix="/books", tags=["books"])

    return app


app = create_app()

if settings.env in {"dev", "test"}:
    init_db()
