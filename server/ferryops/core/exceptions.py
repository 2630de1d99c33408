"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for request values that are well-formed but not acceptable."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class DuplicateEntityError(ConflictError):
    """Exception when a creation collides with an existing identifier."""

    def __init__(self, resource_type: str, resource_id: str, field: str = "id"):
        super().__init__(
            detail=f"A {resource_type} with {field} '{resource_id}' already exists",
            conflicting_resource={
                "resource_type": resource_type,
                field: resource_id
            }
        )
        self.problem_details.update({
            "code": "DUPLICATE",
            "retryable": False
        })


class InUseError(ConflictError):
    """Exception when a deletion or update would orphan dependent records."""

    def __init__(self, resource_type: str, resource_id: str, referenced_by: str, count: int):
        super().__init__(
            detail=f"The {resource_type} '{resource_id}' is still referenced by {count} {referenced_by}",
            conflicting_resource={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "referenced_by": referenced_by,
                "count": count
            }
        )
        self.problem_details.update({
            "code": "IN_USE",
            "retryable": False
        })


class DataUnavailableError(ProblemDetailsException):
    """Exception when the persistence collaborator cannot serve the request."""

    def __init__(
        self,
        operation: Optional[str] = None,
        detail: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        code: str = "DATA_UNAVAILABLE",
    ):
        if not detail:
            detail = "The data store could not complete the operation"
            if operation:
                detail += f" '{operation}'"

        payload: Dict[str, Any] = {"code": code, "retryable": True}
        if operation:
            payload["operation"] = operation
        if extensions:
            payload.update(extensions)

        super().__init__(
            status_code=503,
            title="Data Unavailable",
            detail=detail,
            type_uri="https://example.com/problems/data-unavailable",
            extensions=payload,
        )


class DepartureBusyError(DataUnavailableError):
    """Exception when a departure lock could not be acquired in time."""

    def __init__(self, lock_key: str, timeout_seconds: float):
        super().__init__(
            detail=f"Departure '{lock_key}' is busy; lock not acquired within {timeout_seconds}s",
            extensions={"lock_key": lock_key, "timeout_seconds": timeout_seconds},
            code="DEPARTURE_BUSY",
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/request-validation",
            "title": "Request Validation Failed",
            "status": 422,
            "detail": "The request body did not match the expected schema",
            "instance": str(request.url),
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc
    )

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
