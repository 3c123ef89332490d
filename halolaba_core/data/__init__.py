# =============================================================================
# halolaba_core/data/__init__.py
# Remote Data Access
# =============================================================================

from halolaba_core.data.remote import RemoteDataService, Row

__all__ = ["RemoteDataService", "Row"]
