# backend/mostrador/core/errors.py

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """
    Base class for errors that map onto the API refusal envelope:

      {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
    """

    code: str = "SERVICE_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class BadRequestError(ServiceError):
    code = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class ForbiddenError(ServiceError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Insufficient permissions", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource", **kwargs: Any) -> None:
        super().__init__(f"{resource} not found", **kwargs)


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class BusinessRuleError(ServiceError):
    """A request that is well-formed and authorized but breaks a domain rule."""

    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422

    def __init__(self, message: str, *, rule: str, **kwargs: Any) -> None:
        details = dict(kwargs.pop("details", None) or {})
        details.setdefault("rule", rule)
        super().__init__(message, details=details, **kwargs)
        self.rule = rule


class MembershipStoreError(ServiceError):
    """The membership store could not be read. Never an authorization outcome."""

    code = "STORE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InvalidEvaluationInput(ValueError):
    """
    Malformed input to the permission evaluator (missing ids, unknown action/resource).

    Not a ServiceError. Gates translate caller-supplied cases to 400; anything
    escaping to the app handler is reported as 500.
    """


def _envelope(exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        if isinstance(exc, MembershipStoreError):
            logger.error("Membership store failure on %s %s: %s", request.method, request.url.path, exc.message)
        return _envelope(exc)

    @app.exception_handler(InvalidEvaluationInput)
    async def _invalid_evaluation_handler(request: Request, exc: InvalidEvaluationInput) -> JSONResponse:
        logger.error("Invalid permission evaluation input on %s %s: %s", request.method, request.url.path, exc)
        return _envelope(ServiceError("Authorization check failed", code="INTERNAL_ERROR"))

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception for %s %s", request.method, request.url.path)
        return _envelope(ServiceError("An unexpected error occurred", code="INTERNAL_ERROR"))
