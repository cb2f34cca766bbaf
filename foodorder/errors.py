"""
Typed failures raised by the services.

Routers never build HTTP errors for these by hand; `register_error_handlers`
turns every EngineError into a JSON body of the shape

    {"detail": "...", "error": "CouponInvalid", "reason": "expired"}
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EngineError(Exception):
    status_code = 500

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def as_dict(self) -> dict:
        return {"detail": self.message, "error": type(self).__name__, "reason": self.reason}


class NotFound(EngineError):
    status_code = 404


class NoPaymentFound(NotFound):
    pass


class InvalidInput(EngineError):
    status_code = 400


class InvalidPaymentStatus(InvalidInput):
    pass


class InvalidTransition(EngineError):
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(f"cannot move order from '{current}' to '{target}'", reason=f"{current}->{target}")
        self.current = current
        self.target = target


class CouponInvalid(EngineError):
    status_code = 422

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    BELOW_MINIMUM = "below_minimum"
    EXHAUSTED = "exhausted"


class CouponExhausted(EngineError):
    status_code = 409

    def __init__(self, code: str):
        super().__init__(f"coupon '{code}' has reached its usage limit", reason=CouponInvalid.EXHAUSTED)
        self.code = code


class Conflict(EngineError):
    status_code = 409


class ExternalFailure(EngineError):
    status_code = 502


class CodeGenerationFailed(ExternalFailure):
    pass


class StorageTimeout(ExternalFailure):
    status_code = 503


class FanOutFailed(ExternalFailure):
    """The primary write committed; the secondary fan-out did not."""

    def __init__(self, message: str, resource_id: str):
        super().__init__(message, reason="customer_fanout")
        self.resource_id = resource_id

    def as_dict(self) -> dict:
        return {**super().as_dict(), "resource_id": self.resource_id}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EngineError)
    async def _engine_error(request: Request, exc: EngineError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s rejected: %s (%s)", request.method, request.url.path,
                        type(exc).__name__, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.as_dict())
