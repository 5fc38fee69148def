"""Error types raised by the request-handling layer.

Every error knows its HTTP status and a stable ``error_code`` so API
consumers can branch on it; ``to_response`` renders the JSON body.
"""

import logging
from typing import Dict, List, Optional

from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class FinTrackError(Exception):
    status_code = 500
    error_code = "FINTRACK_ERROR"

    def __init__(self, message: str = "", context: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def payload(self) -> Dict:
        return {
            "message": self.message or "An error occurred",
            "error_code": self.error_code,
            "status": self.status_code,
        }

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.payload())

    def report(self):
        logger.error(
            "%s: %s",
            type(self).__name__,
            self.message,
            extra={"error_code": self.error_code, "status_code": self.status_code, **self.context},
        )


class AuthenticationError(FinTrackError):
    status_code = 401
    error_code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Unauthenticated.", context: Optional[Dict] = None):
        super().__init__(message, context)

    def payload(self) -> Dict:
        return {"message": self.message}

    def report(self):
        logger.warning("Authentication failed")


class ResourceNotFoundError(FinTrackError):
    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"

    @classmethod
    def make(cls, resource_type: str, identifier) -> "ResourceNotFoundError":
        return cls(
            f"{resource_type} not found",
            {"resource_type": resource_type, "identifier": identifier},
        )


class UnauthorizedAccessError(FinTrackError):
    status_code = 403
    error_code = "UNAUTHORIZED_ACCESS"

    @classmethod
    def make(cls, resource_type: str, identifier) -> "UnauthorizedAccessError":
        return cls(
            f"You do not have permission to access this {resource_type}",
            {"resource_type": resource_type, "identifier": identifier},
        )


class ValidationFailedError(FinTrackError):
    """Field-level input errors, shaped like pydantic's 422 responses."""

    status_code = 422
    error_code = "VALIDATION_FAILED"

    def __init__(self, errors: Dict[str, List[str]], message: str = "The given data was invalid."):
        super().__init__(message, {"fields": sorted(errors)})
        self.errors = errors

    @classmethod
    def field(cls, name: str, message: str) -> "ValidationFailedError":
        return cls({name: [message]})

    def payload(self) -> Dict:
        return {
            "message": self.message,
            "error_code": self.error_code,
            "errors": self.errors,
        }

    def report(self):
        logger.info("Validation failed", extra={"errors": self.errors})
