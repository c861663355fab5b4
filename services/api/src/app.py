from typing import Optional

from couchbase.exceptions import DocumentExistsException, DocumentNotFoundException
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

import conf
from routes.base import router
from schemas.common import validation_errors
from utils import log
from utils.constants import MESSAGES
from utils.helpers import AppError, normalize_error

logger = log.get_logger(__name__)


def _envelope(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{success: false, message}``."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _envelope(exc.status_code, message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = validation_errors(exc)
        logger.info(f"Rejected {request.method} {request.url.path}: {len(errors)} validation error(s)")
        return _envelope(400, MESSAGES["VALIDATION_ERROR"], errors=errors)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        extra = {"code": exc.code} if exc.code else {}
        return _envelope(exc.status_code, exc.message, **extra)

    async def normalized_error_handler(request: Request, exc: Exception):
        error = normalize_error(exc)
        logger.warning(f"{request.method} {request.url.path} failed with {error.status_code}: {exc}")
        extra = {"code": error.code} if error.code else {}
        return _envelope(error.status_code, error.message, **extra)

    for exc_class in (DocumentExistsException, DocumentNotFoundException, ValidationError):
        app.add_exception_handler(exc_class, normalized_error_handler)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        extra = {"error": str(exc)} if conf.get_http_expose_errors() else {}
        return _envelope(500, MESSAGES["SERVER_ERROR"], **extra)


def create_app(lifespan: Optional[object] = None) -> FastAPI:
    app = FastAPI(
        title="Carbon Market API",
        version="0.1.0",
        docs_url="/docs",
        lifespan=lifespan,
    )

    app.include_router(router)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    return app
