"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors without importing HTTP
concepts. The handlers registered here translate them into the JSON
envelope every endpoint uses:

    {"success": false, "message": "...", "error_type": "..."}

Exception hierarchy:
    LedgerAPIError (base)
    ├── ValidationError           — bad amount, missing description/reason,
    │                               refund larger than the original payment
    ├── TransactionNotFoundError  — no transaction matches id/owner/type/status
    ├── StoreError                — the database call itself failed
    ├── DuplicateEmailError       — signup with an email already in use
    └── InvalidCredentialsError   — wrong email or password at login
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerAPIError(Exception):
    """Base exception for all Tavern Ledger domain errors."""

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class ValidationError(LedgerAPIError):
    """Raised when caller input is malformed or out of range. Never retried."""


class TransactionNotFoundError(LedgerAPIError):
    """
    Raised when no transaction matches the id, owner, type and status an
    operation requires.

    The message is the same whichever of those dimensions failed, so a
    caller cannot discover transactions owned by someone else.

    Attributes:
        transaction_id: The id the caller asked for.
    """

    def __init__(self, transaction_id: str, action: str = "found"):
        self.transaction_id = transaction_id
        self.action = action
        if action == "found":
            detail = "Transaction not found"
        else:
            detail = f"Transaction not found or cannot be {action}"
        super().__init__(detail)


class StoreError(LedgerAPIError):
    """
    Raised when the underlying database call fails (timeout, lost connection,
    constraint violation). The original SQLAlchemy error is chained.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Failed to {operation}")


class DuplicateEmailError(LedgerAPIError):
    """Raised when attempting to register with an email that's already in use."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(LedgerAPIError):
    """Raised when login credentials are incorrect."""

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _envelope(status_code: int, message: str, error_type: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error_type": error_type, **extra},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each handler maps an exception to an HTTP status code and the
    {success, message, error_type} envelope.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        return _envelope(400, exc.detail, "validation_error")

    @app.exception_handler(TransactionNotFoundError)
    async def not_found_handler(
        request: Request, exc: TransactionNotFoundError
    ) -> JSONResponse:
        return _envelope(404, exc.detail, "not_found")

    @app.exception_handler(StoreError)
    async def store_error_handler(
        request: Request, exc: StoreError
    ) -> JSONResponse:
        # Driver details stay in the logs, never in the response
        return _envelope(500, exc.detail, "store_error")

    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(
        request: Request, exc: DuplicateEmailError
    ) -> JSONResponse:
        return _envelope(409, exc.detail, "duplicate_email")

    @app.exception_handler(InvalidCredentialsError)
    async def invalid_credentials_handler(
        request: Request, exc: InvalidCredentialsError
    ) -> JSONResponse:
        return _envelope(401, exc.detail, "invalid_credentials")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'Invalid request')}" if field else "Invalid request"
        return _envelope(422, message, "request_validation", errors=jsonable_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        response = _envelope(exc.status_code, str(exc.detail), "http_error")
        if exc.headers:
            response.headers.update(exc.headers)
        return response


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip the non-serializable parts (ctx exceptions, raw input) from pydantic errors."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
