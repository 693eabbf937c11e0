"""
grading_engine/errors.py
Centralized error kinds for the grading engine

CORE PRINCIPLES:
- Every failure is raised synchronously to the caller
- All errors follow consistent structure
- Errors are user-safe (no stack traces)
- Errors are machine-readable

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

ERROR KINDS:
- ValidationError         400  malformed input
- AuthorizationError      403  actor lacks rights over organization/submission
- NotFoundError           404  rubric or submission does not exist
- InvariantViolationError 409  would break the single-default-rubric rule
- StateError              409  illegal grading transition
"""

import logging
from typing import Optional, Dict, Any
from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CRITERIA = "INVALID_CRITERIA"
    INVALID_SCORE = "INVALID_SCORE"
    INVALID_SELECTION = "INVALID_SELECTION"
    ZERO_MAX_POINTS = "ZERO_MAX_POINTS"

    FORBIDDEN = "FORBIDDEN"
    SCOPE_VIOLATION = "SCOPE_VIOLATION"

    NOT_FOUND = "NOT_FOUND"
    RUBRIC_NOT_FOUND = "RUBRIC_NOT_FOUND"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"

    DEFAULT_RUBRIC_REMOVAL = "DEFAULT_RUBRIC_REMOVAL"
    DEFAULT_RUBRIC_CONFLICT = "DEFAULT_RUBRIC_CONFLICT"

    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    ALREADY_GRADED = "ALREADY_GRADED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base grading engine exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(APIError):
    """400 Bad Request - Malformed input"""
    def __init__(self, message: str, code: str = ErrorCode.VALIDATION_ERROR, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Validation Error",
            message=message,
            code=code,
            details=details
        )


class AuthorizationError(APIError):
    """403 Forbidden - Actor lacks rights over the resource"""
    def __init__(self, message: str = "Access forbidden", code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=code,
            details=details
        )


class NotFoundError(APIError):
    """404 Not Found - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code,
            details={"resource": resource, "id": identifier} if identifier is not None else None
        )


class InvariantViolationError(APIError):
    """409 Conflict - Operation would break the single-default-rubric invariant"""
    def __init__(self, message: str, code: str = ErrorCode.DEFAULT_RUBRIC_CONFLICT, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Invariant Violation",
            message=message,
            code=code,
            details=details
        )


class StateError(APIError):
    """409 Conflict - Grading transition not legal from the current state"""
    def __init__(self, message: str, code: str = ErrorCode.STATE_TRANSITION_INVALID, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Invalid State",
            message=message,
            code=code,
            details=details
        )


async def api_error_handler(request, exc: APIError) -> JSONResponse:
    """FastAPI exception handler rendering any APIError."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return exc.to_response()
