# =============================================================================
# halolaba_core/errors/__init__.py
# Centralized Error Handling for HaloLaba
# =============================================================================

from .exceptions import (
    HaloLabaError,
    StorageUnavailable,
    RemoteError,
    RemoteRejected,
    RemoteUnreachable,
    PayloadValidationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
)

__all__ = [
    # Exceptions
    "HaloLabaError",
    "StorageUnavailable",
    "RemoteError",
    "RemoteRejected",
    "RemoteUnreachable",
    "PayloadValidationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
]
