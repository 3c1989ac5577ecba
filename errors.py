import logging
from typing import Any, Dict, List, Optional

from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("storefront.errors")


class StoreError(Exception):
    """Base class for every error surfaced to API callers."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationFailed(StoreError):
    status_code = 400
    default_message = "Validation failed"


class Unauthorized(StoreError):
    status_code = 401
    default_message = "Authentication required"


class InvalidCredentials(Unauthorized):
    # Same message for unknown email and wrong password.
    default_message = "Invalid credentials"


class Forbidden(StoreError):
    status_code = 403
    default_message = "Access denied"


class NotFound(StoreError):
    status_code = 404
    default_message = "Not Found"


class Conflict(StoreError):
    status_code = 409
    default_message = "Conflict"


class DuplicateEmail(Conflict):
    default_message = "Email already in use"


class ProductUnavailable(StoreError):
    status_code = 400

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found or unavailable")


class InsufficientStock(StoreError):
    status_code = 400

    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Insufficient stock for {product_name}")


class InternalError(StoreError):
    status_code = 500


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    out = []
    for err in exc.errors():
        # drop the "body"/"query" prefix pydantic reports as the first loc entry
        loc = [str(p) for p in err.get("loc", ())[1:]] or [str(p) for p in err.get("loc", ())]
        out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return out


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        err = ValidationFailed(errors=_field_errors(exc))
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(InvalidId)
    async def invalid_id_handler(request: Request, exc: InvalidId):
        logger.error("%s %s: malformed identifier: %s", request.method, request.url.path, exc)
        err = InternalError(f"Server error: {exc}")
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = "Not Found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"message": message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Server error"})
