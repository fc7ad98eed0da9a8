import asyncio
from typing import Dict, Iterable

class TenantLocks:
    """One lock per tenant, shared by every job that refreshes tenant tokens."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, tenant_id: str) -> asyncio.Lock:
        return self._locks.setdefault(tenant_id, asyncio.Lock())

    def prune(self, keep: Iterable[str]):
        """Drop idle locks of tenants no longer being polled."""
        keep = set(keep)
        for tenant_id in list(self._locks):
            if tenant_id not in keep and not self._locks[tenant_id].locked():
                del self._locks[tenant_id]

    def __len__(self) -> int:
        return len(self._locks)
