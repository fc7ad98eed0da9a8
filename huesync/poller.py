import logging
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from .errors import AuthExpired, HueSyncError, PersistenceFailure, VendorUnavailable
from .hue_client import HueClient
from .locks import TenantLocks
from .models import TenantConfig, utcnow
from .registry import DeviceRegistry
from .rooms import RoomResolver
from .classifier import upsert_snapshot
from .aggregation import Aggregator
from .store import Store
from .tokens import ensure_valid_access_token
from .vendor import parse_snapshot

log = logging.getLogger("poller")

class TenantPollResult(BaseModel):
    tenant_id: str
    success: bool = False
    devices_checked: int = 0
    devices_discovered: int = 0
    changes_detected: int = 0
    events_inserted: int = 0
    windows_updated: int = 0
    error: Optional[str] = None
    # non-fatal per-device / per-window failures
    errors: List[str] = Field(default_factory=list)

class PollSummary(BaseModel):
    success: bool
    tenants_processed: int
    tenants_failed: int
    devices_checked: int
    changes_detected: int
    results: List[TenantPollResult]

class TenantBusy(HueSyncError):
    """Another sync for this tenant is still running in this process."""

class Poller:
    """Runs one poll cycle over every active tenant.

    Tenants are processed one after another; a failure in one is recorded in
    its result and never stops the others.
    """

    def __init__(self, store: Store, client: Optional[HueClient] = None, aggregator: Optional[Aggregator] = None,
                 locks: Optional[TenantLocks] = None):
        self.store = store
        self.client = client or HueClient()
        self.aggregator = aggregator or Aggregator(store)
        self.locks = locks or TenantLocks()

    async def run_poll_cycle(self, now: Optional[datetime] = None) -> PollSummary:
        # only a failure to enumerate tenants propagates
        tenants = self.store.get_active_tenants()
        self.locks.prune(t.id for t in tenants)
        results = []
        for tenant in tenants:
            results.append(await self.poll_tenant(tenant, now=now))
        summary = PollSummary(
            success=all(r.success for r in results),
            tenants_processed=len(results),
            tenants_failed=sum(1 for r in results if not r.success),
            devices_checked=sum(r.devices_checked for r in results),
            changes_detected=sum(r.changes_detected for r in results),
            results=results,
        )
        log.info("Poll complete: %d tenants (%d failed), %d devices, %d changes",
                 summary.tenants_processed, summary.tenants_failed, summary.devices_checked, summary.changes_detected)
        return summary

    async def poll_tenant(self, tenant: TenantConfig, now: Optional[datetime] = None) -> TenantPollResult:
        result = TenantPollResult(tenant_id=tenant.id)
        if not tenant.bridge_username:
            result.error = "No bridge_username - bridge linking incomplete"
            log.warning("Skipping tenant %s: %s", tenant.id, result.error)
            return result
        lock = self.locks.get(tenant.id)
        if lock.locked():
            result.error = str(TenantBusy(f"sync already running for tenant {tenant.id}"))
            log.warning(result.error)
            return result
        async with lock:
            try:
                # tokens may have been rotated by another job since the tenant was loaded
                tenant = self.store.get_tenant(tenant.id) or tenant
                await self._sync_tenant(tenant, result, now or utcnow())
                result.success = True
            except AuthExpired as e:
                # the token manager already moved the tenant to error
                result.error = f"AuthExpired: {e}"
            except VendorUnavailable as e:
                result.error = f"VendorUnavailable: {e}"
                self._record_error(tenant, result.error)
            except PersistenceFailure as e:
                result.error = f"PersistenceFailure: {e}"
                self._record_error(tenant, result.error)
            except Exception as e:
                log.exception("Unexpected error syncing tenant %s", tenant.id)
                result.error = f"{e.__class__.__name__}: {e}"
                self._record_error(tenant, result.error)
        if not result.success:
            log.warning("Sync failed for tenant %s: %s", tenant.id, result.error)
        return result

    def _record_error(self, tenant: TenantConfig, message: str):
        try:
            self.store.update_tenant_status(tenant.id, last_error=message)
        except PersistenceFailure:
            log.error("Could not record error for tenant %s", tenant.id)

    async def _sync_tenant(self, tenant: TenantConfig, result: TenantPollResult, now: datetime):
        token = await ensure_valid_access_token(tenant, self.client, self.store, now=now)
        snapshot = await self.client.fetch_bridge(token, tenant.bridge_username)
        resolver = RoomResolver.from_snapshot(snapshot)
        registry = DeviceRegistry(self.store, tenant)

        events = []
        for vendor in parse_snapshot(snapshot):
            if vendor.device_class is None:
                continue
            try:
                device = registry.upsert_discovered(vendor, resolver.resolve(vendor))
                result.devices_checked += 1
                outcome = upsert_snapshot(device.device_type, device.last_state, vendor, now)
                if outcome.changed:
                    registry.save_snapshot(device, last_state=outcome.state, last_state_at=now)
            except PersistenceFailure as e:
                result.errors.append(f"{vendor.unique_id}: {e}")
                continue
            if outcome.event is None:
                continue
            ev = outcome.event
            log.debug("%s %r in %s: %s at %s", ev.device_type, device.name, device.room_name, ev.payload, ev.recorded_at)
            events.append({
                "tenant_id": tenant.id,
                "device_id": device.id,
                "device_type": ev.device_type,
                "room_name": device.room_name,
                "is_on": ev.is_on,
                "payload": ev.payload,
                "recorded_at": ev.recorded_at,
            })
        result.devices_discovered = registry.discovered
        result.changes_detected = len(events)

        result.events_inserted = self.store.insert_events(events)
        if events:
            windows = self.aggregator.refresh_windows(tenant.id, [e["recorded_at"] for e in events])
            result.windows_updated = windows.windows_updated
            result.errors.extend(windows.errors)
        self.store.mark_synced(tenant.id, now)
        log.info("Tenant %s: %d devices (%d new), %d events",
                 tenant.id, result.devices_checked, result.devices_discovered, result.events_inserted)
