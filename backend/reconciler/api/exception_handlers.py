"""
Map reconciliation errors onto HTTP responses.

Storage errors are deliberately not handled here and surface as 500s.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from reconciler.core.exceptions import (
    AlreadyExistsError,
    ImportValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from reconciler.core.logging import get_logger

logger = get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})

    @app.exception_handler(AlreadyExistsError)
    async def already_exists_handler(request: Request, exc: AlreadyExistsError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message})

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        logger.info(
            f"Rejected transition at {request.url.path}: {exc.message}",
            extra={"extra_fields": {"current": exc.current, "target": exc.target}},
        )
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message})

    @app.exception_handler(ImportValidationError)
    async def validation_handler(request: Request, exc: ImportValidationError) -> JSONResponse:
        logger.warning(f"Validation error at {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": exc.message},
        )
