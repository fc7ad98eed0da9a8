import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from .settings import settings
from .errors import AuthExpired, PersistenceFailure, VendorUnavailable
from .hue_client import HueClient
from .locks import TenantLocks
from .models import Device, TenantConfig, utcnow
from .store import Store
from .tokens import ensure_valid_access_token
from .vendor import accessory_prefix, parse_sensor

log = logging.getLogger("battery")

HEALTH_DEVICE_TYPES = ("motion_sensor", "contact_sensor")

def sensor_health_status(last_state_at: Optional[datetime], now: datetime) -> str:
    if last_state_at is None:
        return "unknown"
    age = now - last_state_at
    if age < timedelta(minutes=90):
        return "healthy"
    if age < timedelta(hours=24):
        return "warning"
    if age < timedelta(days=365):
        return "offline"
    return "failure"

class TenantBatteryResult(BaseModel):
    tenant_id: str
    success: bool = False
    readings_inserted: int = 0
    low_battery_count: int = 0
    health_updated: int = 0
    error: Optional[str] = None
    errors: List[str] = Field(default_factory=list)

class BatterySummary(BaseModel):
    success: bool
    results: List[TenantBatteryResult]

class BatteryPoller:
    """Hourly battery readings, one per physical accessory, plus sensor liveness.

    Shares tenant locks with the state poller and waits for a running sync of
    the same tenant instead of refreshing its tokens concurrently.
    """

    def __init__(self, store: Store, client: Optional[HueClient] = None, locks: Optional[TenantLocks] = None):
        self.store = store
        self.client = client or HueClient()
        self.locks = locks or TenantLocks()

    async def run(self, now: Optional[datetime] = None) -> BatterySummary:
        now = now or utcnow()
        results = []
        for tenant in self.store.get_active_tenants():
            result = TenantBatteryResult(tenant_id=tenant.id)
            async with self.locks.get(tenant.id):
                try:
                    tenant = self.store.get_tenant(tenant.id) or tenant
                    await self._poll_tenant(tenant, result, now)
                    result.success = True
                except (AuthExpired, VendorUnavailable, PersistenceFailure) as e:
                    result.error = f"{e.__class__.__name__}: {e}"
                except Exception as e:
                    log.exception("Unexpected error in battery poll for tenant %s", tenant.id)
                    result.error = f"{e.__class__.__name__}: {e}"
            if not result.success:
                log.warning("Battery poll failed for tenant %s: %s", tenant.id, result.error)
            results.append(result)
        return BatterySummary(success=all(r.success for r in results), results=results)

    async def _poll_tenant(self, tenant: TenantConfig, result: TenantBatteryResult, now: datetime):
        if not tenant.bridge_username:
            raise VendorUnavailable("No bridge_username - bridge linking incomplete")
        token = await ensure_valid_access_token(tenant, self.client, self.store, now=now)
        sensors = await self.client.fetch_sensors(token, tenant.bridge_username)
        devices = {d.hue_unique_id: d for d in self.store.get_devices_for(tenant.id)}

        accessories: Dict[str, List[Device]] = {}
        levels: Dict[str, int] = {}
        for hue_id, raw in sensors.items():
            vendor = parse_sensor(hue_id, raw)
            if vendor is None or vendor.battery is None or vendor.unique_id not in devices:
                continue
            prefix = accessory_prefix(vendor.unique_id)
            accessories.setdefault(prefix, []).append(devices[vendor.unique_id])
            levels.setdefault(prefix, vendor.battery)

        for prefix, members in accessories.items():
            level = levels[prefix]
            is_low = level < settings.LOW_BATTERY_THRESHOLD
            try:
                self.store.record_battery(tenant.id, [d.id for d in members], prefix, level, is_low, now)
            except PersistenceFailure as e:
                result.errors.append(f"{prefix}: {e}")
                continue
            result.readings_inserted += 1
            if is_low:
                result.low_battery_count += 1

        by_status: Dict[str, List[str]] = {}
        for device in devices.values():
            if device.device_type in HEALTH_DEVICE_TYPES:
                by_status.setdefault(sensor_health_status(device.last_state_at, now), []).append(device.id)
        result.health_updated = self.store.update_health(by_status)
        log.info("Battery poll for tenant %s: %d readings, %d low", tenant.id, result.readings_inserted, result.low_battery_count)
