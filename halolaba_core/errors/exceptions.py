# =============================================================================
# halolaba_core/errors/exceptions.py
# Custom Exception Hierarchy for HaloLaba
# =============================================================================

from typing import Optional, Dict, Any


class HaloLabaError(Exception):
    """
    Base exception for all HaloLaba errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "HL_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class StorageUnavailable(HaloLabaError):
    """Raised when the local SQLite store cannot be opened or written"""

    def __init__(
        self,
        message: str,
        db_path: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if db_path:
            details["db_path"] = db_path
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# REMOTE SERVICE EXCEPTIONS
# =============================================================================

class RemoteError(HaloLabaError):
    """Base class for failures reported by the remote data service"""

    default_code = "REMOTE_000"

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code=kwargs.pop("code", self.default_code),
            details=details,
            **kwargs,
        )


class RemoteRejected(RemoteError):
    """Raised when the remote service definitively refuses a request"""

    default_code = "REMOTE_001"


class RemoteUnreachable(RemoteError):
    """Raised when the remote service cannot be reached (transient)"""

    default_code = "REMOTE_002"


# =============================================================================
# DATA LAYER EXCEPTIONS
# =============================================================================

class PayloadValidationError(HaloLabaError):
    """Raised when a row payload does not match its table's field set"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        fields: Optional[list] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if fields:
            details["fields"] = fields

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(HaloLabaError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
