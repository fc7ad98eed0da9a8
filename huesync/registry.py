import logging
from typing import Dict, Optional
from .models import Device, TenantConfig
from .store import Store
from .vendor import VendorDevice

log = logging.getLogger("registry")

class DeviceRegistry:
    """Known devices of one tenant, keyed by vendor unique id."""

    def __init__(self, store: Store, tenant: TenantConfig):
        self.store = store
        self.tenant = tenant
        self.known: Dict[str, Device] = {d.hue_unique_id: d for d in store.get_devices_for(tenant.id)}
        self.discovered = 0

    def upsert_discovered(self, vendor: VendorDevice, room_name: Optional[str]) -> Optional[Device]:
        """Create on first sight, otherwise refresh name and room.

        Unknown vendor types (daylight, CLIP generic sensors) have no device
        class and are ignored. An unresolved room never clears a stored one.
        """
        if vendor.device_class is None:
            return None
        existing = self.known.get(vendor.unique_id)
        if existing is None:
            device = self.store.upsert_device(
                self.tenant.id, vendor.unique_id,
                hue_id=vendor.vendor_id, device_type=vendor.device_class,
                name=vendor.name, room_name=room_name,
            )
            self.discovered += 1
            log.info("Discovered %s %r in %s for tenant %s", vendor.device_class, vendor.name, room_name, self.tenant.id)
        else:
            room = room_name or existing.room_name
            if existing.name == vendor.name and existing.room_name == room:
                return existing
            device = self.store.upsert_device(self.tenant.id, vendor.unique_id, name=vendor.name, room_name=room)
        self.known[vendor.unique_id] = device
        return device

    def save_snapshot(self, device: Device, **fields) -> Device:
        updated = self.store.upsert_device(self.tenant.id, device.hue_unique_id, **fields)
        self.known[device.hue_unique_id] = updated
        return updated
