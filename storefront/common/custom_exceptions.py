from typing import Any, Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from storefront import logger
from storefront.common.utils import error_response


class AppError(Exception):
    """Base of every error the service surfaces on purpose.

    Carries the HTTP status, a stable machine code and a structured detail
    payload rendered by `app_error_handler`.
    """
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Any] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_details(self) -> dict:
        body = {"message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class StockNotFoundError(NotFoundError):
    code = "STOCK_NOT_FOUND"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "STATE_CONFLICT"


class CartValidationError(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "CART_VALIDATION_FAILED"


class DeliveryUnavailableError(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "DELIVERY_UNAVAILABLE"


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"


class UpstreamError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_FAILURE"


class GatewayError(UpstreamError):
    code = "PAYMENT_GATEWAY_FAILURE"


class ReservationError(UpstreamError):
    code = "RESERVATION_FAILED"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"


class StockCommitError(InternalError):
    code = "STOCK_COMMIT_FAILED"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_AUTH"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


async def app_error_handler(request: Request, exc: AppError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log("app.error", extra={"code": exc.code, "status_code": exc.status_code, "path": request.url.path,
                            "error_message": exc.message})
    return error_response(exc.code, exc.to_details(), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    logger.info("request.validation_failed", extra={"path": request.url.path, "errors": errors})
    return error_response("UNPROCESSABLE_ENTITY", {"message": "invalid request", "errors": errors},
                          status.HTTP_422_UNPROCESSABLE_ENTITY)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(f"HTTP_{exc.status_code}", {"message": exc.detail}, exc.status_code,
                          headers=getattr(exc, "headers", None))


async def fallback_handler(request: Request, exc: Exception):
    logger.error("unexpected.exception", extra={"path": request.url.path, "method": request.method}, exc_info=exc)
    return error_response("SERVER_ERROR", {"message": "Internal Server Error"},
                          status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_all_exceptions(app: FastAPI):
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    # starlette's class so router 404/405 land here too
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, fallback_handler)
