"""
axec Exception Hierarchy

Provides clear, actionable error messages with structured information
for logging, user feedback, and programmatic error handling.
"""

from typing import Optional, Dict, Any


class AxecError(Exception):
    """
    Base exception for all axec errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the error is recoverable
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Package operation errors
# =============================================================================

class ValidationError(AxecError):
    """Input rejected before anything was written."""
    def __init__(self, value: str, reason: str):
        super().__init__(
            f"Rejected '{value}': {reason}",
            code="INVALID_INPUT",
            details={"value": value, "reason": reason},
            recoverable=False,
        )


class NotFoundError(AxecError):
    """Package id is not in the catalog."""
    def __init__(self, package_id: str):
        super().__init__(
            f"Package '{package_id}' not found",
            code="PACKAGE_NOT_FOUND",
            details={"package_id": package_id},
            recoverable=False,
        )


class IoError(AxecError):
    """Filesystem or process operation failed."""
    def __init__(
        self,
        path: str,
        operation: str,
        reason: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            f"Failed to {operation} '{path}': {reason}",
            code="IO_FAILED",
            details={"path": path, "operation": operation, "reason": reason},
            cause=cause,
        )


class IntegrationError(AxecError):
    """Catalog persistence failed after artifacts were staged (rolled back)."""
    def __init__(self, package_id: str, stage: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Could not register package '{package_id}' ({stage}); changes rolled back",
            code="INTEGRATION_FAILED",
            details={"package_id": package_id, "stage": stage},
            cause=cause,
        )


# =============================================================================
# Catalog errors
# =============================================================================

class CatalogError(AxecError):
    """Catalog file could not be read or written."""
    def __init__(self, path: str, reason: str, cause: Optional[Exception] = None,
                 code: str = "CATALOG_UNREADABLE"):
        super().__init__(
            f"Catalog '{path}': {reason}",
            code=code,
            details={"path": path, "reason": reason},
            cause=cause,
        )


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(AxecError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )
