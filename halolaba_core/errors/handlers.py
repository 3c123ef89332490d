# =============================================================================
# halolaba_core/errors/handlers.py
# Error Reporting for HaloLaba
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
import streamlit as st

from halolaba_core.logging import get_logger
from .exceptions import HaloLabaError, RemoteUnreachable

logger = get_logger(__name__)

# What the cashier sees when no caller-specific message is given
USER_MESSAGES = {
    "STORE_001": "Penyimpanan lokal tidak dapat diakses",
    "REMOTE_001": "Server menolak perubahan data",
    "REMOTE_002": "Server tidak dapat dihubungi",
    "DATA_001": "Data tidak valid",
    "CONFIG_001": "Konfigurasi aplikasi belum lengkap",
}


def _describe(error: Exception) -> Tuple[str, str, Dict[str, Any], bool]:
    if isinstance(error, HaloLabaError):
        return error.code, error.message, error.details, error.recoverable
    return "UNKNOWN", str(error), {"error_type": type(error).__name__}, True


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> str:
    """
    Report an error to the log and, optionally, to the cashier.

    Background work (queue replay, cache refresh, connectivity drains) calls
    this with show_user_message=False.

    Args:
        error: The exception to report
        show_user_message: Show an st.error box in the Streamlit page
        log_error: Write the error to the log
        user_message: What the failed action was; shown instead of the
            generic text for the error code

    Returns:
        The error code ("UNKNOWN" for exceptions outside the hierarchy)
    """
    code, message, details, recoverable = _describe(error)

    if log_error:
        text = f"[{code}] {user_message}: {message}" if user_message else f"[{code}] {message}"
        if isinstance(error, RemoteUnreachable):
            # Transient; no traceback
            logger.warning(text, extra={"details": details})
        else:
            logger.error(text, extra={"details": details}, exc_info=error)

    if show_user_message:
        shown = user_message or USER_MESSAGES.get(code, message)
        if recoverable:
            st.error(f"Gagal: {shown}")
        else:
            st.error(f"Kesalahan kritis: {shown}. Silakan hubungi admin.")

    return code
