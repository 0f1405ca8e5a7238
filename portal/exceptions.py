# portal/exceptions.py
# Domain exception hierarchy and the HTTP mapping for each failure class
# Handlers in main.py turn these into BaseResponse JSON bodies
# RELEVANT FILES: main.py, auth.py, utils/catalog_sync.py, utils/documents.py

from fastapi import status


class PortalError(Exception):
    """Base class for failures that are reported to the caller"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(PortalError):
    """Caller identity could not be established"""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid credentials"


class InvalidCredentials(AuthenticationError):
    """Unknown email, inactive account or wrong phone (never distinguished)"""


class TokenError(AuthenticationError):
    """Malformed, expired or forged token"""

    default_message = "Authentication required"


class AuthorizationError(PortalError):
    """Identity is valid but the role does not allow the action"""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Resource already exists"


class ValidationFailure(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request data"


class StorageError(PortalError):
    """Blob-store call failed after retries"""

    default_message = "Storage operation failed"
