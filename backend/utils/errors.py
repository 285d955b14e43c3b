"""
Standardized Error Responses - Consistent error handling across the API
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    """
    Base API error with standardized format.

    All API errors use this body:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": {...}
        }
    }
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}

        super().__init__(
            status_code=status_code,
            detail={
                "error": {
                    "code": code,
                    "message": message,
                    "details": self.details
                }
            }
        )


# ============================================================================
# Authentication & Authorization Errors (401, 403)
# ============================================================================

class UnauthorizedError(APIError):
    """No identity could be resolved for the request"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="UNAUTHORIZED",
            message=message
        )


class InvalidCredentialsError(APIError):
    """Invalid email or password"""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="INVALID_CREDENTIALS",
            message=message
        )


class EmailNotVerifiedError(APIError):
    """Account exists but the email address was never verified"""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="email-not-verified",
            message="Please verify your email before signing in"
        )


class ForbiddenError(APIError):
    """Caller is not allowed to use this resource"""

    def __init__(self, message: str = "You don't have permission to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code="FORBIDDEN",
            message=message
        )


# ============================================================================
# Resource Errors (404, 409)
# ============================================================================

class NotFoundError(APIError):
    """Resource not found"""

    def __init__(self, resource: str, identifier: Optional[str] = None):
        message = f"{resource} not found"
        if identifier:
            message += f": {identifier}"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            message=message,
            details={"resource": resource, "identifier": identifier}
        )


class AlreadyExistsError(APIError):
    """Resource already exists"""

    def __init__(self, resource: str, field: str, value: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code="ALREADY_EXISTS",
            message=f"{resource} with {field} '{value}' already exists",
            details={"resource": resource, "field": field, "value": value}
        )


# ============================================================================
# Validation Errors (400)
# ============================================================================

class InvalidInputError(APIError):
    """Invalid input format"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="INVALID_INPUT",
            message=message,
            details=details
        )


# ============================================================================
# Usage limits (403)
# ============================================================================

class UsageLimitExceededError(APIError):
    """The user's tier allows no more of this feature until the counter resets"""

    def __init__(self, feature: str, current_count: int, limit: int, tier: str):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code="USAGE_LIMIT_EXCEEDED",
            message=f"You have reached your {feature.replace('_', ' ')} limit for the {tier} plan",
            details={
                "feature": feature,
                "current_count": current_count,
                "limit": limit,
                "current_tier": tier,
            }
        )


# ============================================================================
# Server Errors (500, 503)
# ============================================================================

class InternalServerError(APIError):
    """Internal server error"""

    def __init__(self, message: str = "An internal server error occurred"):
        # Log the error but don't expose details to client
        logger.error(f"Internal server error: {message}")

        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="INTERNAL_SERVER_ERROR",
            message="An internal server error occurred. Please try again later."
        )


class ServiceUnavailableError(APIError):
    """External service temporarily unavailable"""

    def __init__(self, service: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="SERVICE_UNAVAILABLE",
            message=f"{service} is temporarily unavailable. Please try again later.",
            details={"service": service}
        )


class DatabaseError(APIError):
    """Database operation failed"""

    def __init__(self, operation: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="DATABASE_ERROR",
            message="Database operation failed. Please try again later.",
            details={"operation": operation}
        )


# ============================================================================
# Helper Functions
# ============================================================================

def handle_database_error(error: Exception, operation: str):
    """
    Log a failed database operation and raise a sanitized DatabaseError.

    Args:
        error: The caught exception
        operation: Description of the operation that failed

    Raises:
        DatabaseError
    """
    logger.error(f"Database error during {operation}: {str(error)}", exc_info=True)
    raise DatabaseError(operation) from error


def handle_unexpected_error(error: Exception, context: str):
    """
    Log an unexpected failure and raise a generic InternalServerError.

    Raises:
        InternalServerError
    """
    logger.error(f"Unexpected error in {context}: {str(error)}", exc_info=True)
    raise InternalServerError(f"Error in {context}") from error
