"""
Typed error taxonomy shared by the service layer and the HTTP adapter.

Services raise :class:`ServiceError` for every condition they recognise;
the application maps ``ServiceError.kind`` to a status code in one place
(:func:`install_error_handlers`), so classification never depends on the
wording of a message.
"""
import enum
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    DUPLICATE_USER = "duplicate_user"
    DUPLICATE_TITLE = "duplicate_title"
    NOT_FOUND = "not_found"
    UPDATE_FAILED = "update_failed"
    PATCH_FAILED = "patch_failed"
    PERSISTENCE = "persistence"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.DUPLICATE_USER: 400,
    ErrorKind.DUPLICATE_TITLE: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UPDATE_FAILED: 500,
    ErrorKind.PATCH_FAILED: 500,
    ErrorKind.PERSISTENCE: 500,
}

# Fixed client-facing messages for the uniqueness failures.
DUPLICATE_USER_MESSAGE = "Email or username already exists"
DUPLICATE_TITLE_MESSAGE = "Title already exists"


class ServiceError(Exception):
    """A recognised failure raised by a service function."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def __repr__(self) -> str:
        return f"ServiceError({self.kind.value!r}, {self.message!r})"


def not_found(entity: str) -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, f"{entity} not found")


# ---------------------------------------------------------------------------
# HTTP mapping
# ---------------------------------------------------------------------------

async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Storage failures nobody classified: log with traceback, answer 500."""
    logger.error(
        "Unhandled persistence error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request input as 400 with the pydantic error list."""
    return JSONResponse(status_code=400, content={"errors": jsonable_encoder(exc.errors())})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(SQLAlchemyError, persistence_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
