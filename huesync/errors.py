from typing import Optional


class HueSyncError(Exception):
    """Base error for the sync engine."""


class AuthExpired(HueSyncError):
    """Token refresh failed; the tenant is skipped until re-authorized."""


class VendorUnavailable(HueSyncError):
    """Vendor API returned non-2xx or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceFailure(HueSyncError):
    """A store read or write failed."""
