from typing import Optional, Dict, Any


class CloudForgeException(Exception):
    """Base exception for all CloudForge errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class ResourceNotFoundError(CloudForgeException):
    """Raised when a directly requested entity does not exist."""
    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


class ConflictError(CloudForgeException):
    """Raised when a create would duplicate a unique business key."""
    def __init__(self, message: str, code: str = "conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=409, details=details)


class ValidationError(CloudForgeException):
    """Raised for malformed role references, account ids, regions or blank required fields."""
    def __init__(self, message: str, code: str = "validation_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=422, details=details)


class InvalidStateTransitionError(CloudForgeException):
    """Raised when a linked account is asked to move along an edge its state table does not allow."""
    def __init__(self, message: str, code: str = "invalid_state_transition", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=409, details=details)


class FederationError(CloudForgeException):
    """
    Raised when role assumption or the identity check fails.
    The message is a human-readable cause, never a provider traceback.
    """
    def __init__(self, message: str, code: str = "federation_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)


class AdapterError(CloudForgeException):
    """Raised when a cloud listing call fails or returns a malformed payload."""
    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)
