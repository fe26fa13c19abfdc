# errors.py
import logging
import sqlite3
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# SQLSTATE for unique_violation (asyncpg exposes it as `sqlstate`)
UNIQUE_VIOLATION = "23505"


class PharmacyError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)


# ---------- 401 ----------

class AuthenticationError(PharmacyError):
    status_code = 401
    message = "Could not validate credentials"


class Unauthenticated(AuthenticationError):
    """No token, or a token that is not a JWT at all."""


class InvalidSession(AuthenticationError):
    """Bad signature, expired, or unusable claims."""


# ---------- 403 ----------

class InsufficientRole(PharmacyError):
    status_code = 403
    message = "Access denied. Insufficient role permissions."


# ---------- 400 ----------

class ValidationFailed(PharmacyError):
    status_code = 400
    message = "Invalid data or request"


class InvalidCredentials(ValidationFailed):
    message = "Invalid username or password"


class InvalidRole(ValidationFailed):
    message = "Invalid role."


class InvalidDrugData(ValidationFailed):
    message = "Invalid drug data"


class InvalidQuantity(ValidationFailed):
    message = "Quantity sold must be a positive integer."


class InsufficientStock(ValidationFailed):
    def __init__(self, name: str, current_stock: int):
        super().__init__(
            f"Insufficient stock for {name}. Only {current_stock} unit(s) available.",
            current_stock=current_stock,
        )


# ---------- 404 / 409 ----------

class NotFound(PharmacyError):
    status_code = 404
    message = "Not found"


class DuplicateUsername(PharmacyError):
    status_code = 409
    message = "Username already exists."


def is_unique_violation(exc: BaseException) -> bool:
    """
    True when a driver error is a unique-constraint violation.
    `databases` hands back the raw driver exception, so check both
    asyncpg (sqlstate) and sqlite3.
    """
    if getattr(exc, "sqlstate", None) == UNIQUE_VIOLATION:
        return True
    return isinstance(exc, sqlite3.IntegrityError) and "UNIQUE" in str(exc).upper()


def describe_validation_errors(errors) -> str:
    """First failing field as `field: message`, skipping the `body` prefix."""
    if not errors:
        return ValidationFailed.message
    first = errors[0]
    loc = [str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path")]
    msg = first.get("msg", "Invalid value")
    return f"{'.'.join(loc)}: {msg}" if loc else msg


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PharmacyError)
    async def pharmacy_error_handler(request: Request, exc: PharmacyError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, **exc.extra},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": describe_validation_errors(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
