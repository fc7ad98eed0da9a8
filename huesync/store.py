import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from .db import Base, SessionLocal
from .errors import PersistenceFailure
from .models import TenantConfig, Device, ActivityEvent, ActivityWindow, DailyStats, BatteryReading, utcnow

log = logging.getLogger("store")

class Store:
    """Typed read/upsert/insert operations over the sync tables.

    Every method runs in its own transaction so a failed write for one
    entity never blocks its siblings.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._sessions = session_factory

    @contextmanager
    def session(self, what: str) -> Iterator[Session]:
        s = self._sessions()
        try:
            yield s
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            log.error("Store failure during %s: %s", what, e)
            raise PersistenceFailure(f"{what} failed: {e.__class__.__name__}") from e
        finally:
            s.close()

    def init_db(self):
        with self.session("init_db") as s:
            Base.metadata.create_all(s.get_bind())

    # tenants

    def get_active_tenants(self) -> List[TenantConfig]:
        return self.get_tenants(status="active")

    def get_tenants(self, status: Optional[str] = None) -> List[TenantConfig]:
        with self.session("get_tenants") as s:
            stmt = select(TenantConfig).order_by(TenantConfig.created_at, TenantConfig.id)
            if status:
                stmt = stmt.where(TenantConfig.status == status)
            return list(s.scalars(stmt).all())

    def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        with self.session("get_tenant") as s:
            return s.get(TenantConfig, tenant_id)

    def update_tenant_tokens(self, tenant_id: str, access_token: str, refresh_token: str, expires_at: datetime):
        with self.session("update_tenant_tokens") as s:
            tenant = s.get(TenantConfig, tenant_id)
            tenant.access_token = access_token
            tenant.refresh_token = refresh_token
            tenant.token_expires_at = expires_at

    def update_tenant_status(self, tenant_id: str, status: Optional[str] = None, last_error: Optional[str] = None):
        with self.session("update_tenant_status") as s:
            tenant = s.get(TenantConfig, tenant_id)
            if status:
                tenant.status = status
            tenant.last_error = last_error

    def mark_synced(self, tenant_id: str, at: datetime):
        with self.session("mark_synced") as s:
            tenant = s.get(TenantConfig, tenant_id)
            tenant.last_sync_at = at
            tenant.last_error = None

    # devices

    def get_devices_for(self, tenant_id: str, device_type: Optional[str] = None) -> List[Device]:
        with self.session("get_devices_for") as s:
            stmt = select(Device).where(Device.tenant_id == tenant_id).order_by(Device.device_type, Device.name)
            if device_type:
                stmt = stmt.where(Device.device_type == device_type)
            return list(s.scalars(stmt).all())

    def upsert_device(self, tenant_id: str, unique_id: str, **fields: Any) -> Device:
        """Create or update the device identified by (tenant, unique id)."""
        with self.session("upsert_device") as s:
            device = s.scalars(
                select(Device).where(Device.tenant_id == tenant_id, Device.hue_unique_id == unique_id)
            ).one_or_none()
            if device is None:
                device = Device(tenant_id=tenant_id, hue_unique_id=unique_id)
                s.add(device)
            for key, value in fields.items():
                setattr(device, key, value)
            s.flush()
            return device

    def update_health(self, device_ids_by_status: Dict[str, List[str]]) -> int:
        n = 0
        with self.session("update_health") as s:
            for status, ids in device_ids_by_status.items():
                for device_id in ids:
                    device = s.get(Device, device_id)
                    if device is not None:
                        device.health_status = status
                        n += 1
        return n

    def record_battery(self, tenant_id: str, device_ids: List[str], prefix: str, level: int, is_low: bool, at: datetime) -> BatteryReading:
        """One reading for an accessory; every capability sharing it gets the level."""
        with self.session("record_battery") as s:
            for device_id in device_ids:
                device = s.get(Device, device_id)
                device.battery_percentage = level
                device.battery_updated_at = at
            reading = BatteryReading(
                tenant_id=tenant_id, device_id=device_ids[0], accessory_prefix=prefix,
                battery=level, is_low=is_low, recorded_at=at,
            )
            s.add(reading)
            return reading

    # events

    def insert_events(self, batch: List[Dict[str, Any]]) -> int:
        if not batch:
            return 0
        with self.session("insert_events") as s:
            s.add_all([ActivityEvent(**row) for row in batch])
        return len(batch)

    def events_between(self, start: datetime, end: Optional[datetime] = None, tenant_id: Optional[str] = None) -> List[ActivityEvent]:
        with self.session("events_between") as s:
            stmt = select(ActivityEvent).where(ActivityEvent.recorded_at >= start)
            if end is not None:
                stmt = stmt.where(ActivityEvent.recorded_at < end)
            if tenant_id:
                stmt = stmt.where(ActivityEvent.tenant_id == tenant_id)
            return list(s.scalars(stmt.order_by(ActivityEvent.recorded_at, ActivityEvent.id)).all())

    # aggregates

    def upsert_activity_window(self, tenant_id: str, room_name: str, window_start: datetime, **fields: Any) -> ActivityWindow:
        with self.session("upsert_activity_window") as s:
            row = s.scalars(select(ActivityWindow).where(
                ActivityWindow.tenant_id == tenant_id,
                ActivityWindow.room_name == room_name,
                ActivityWindow.activity_window == window_start,
            )).one_or_none()
            if row is None:
                row = ActivityWindow(tenant_id=tenant_id, room_name=room_name, activity_window=window_start)
                s.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            return row

    def get_activity_windows(self, tenant_id: str, since: Optional[datetime] = None) -> List[ActivityWindow]:
        with self.session("get_activity_windows") as s:
            stmt = select(ActivityWindow).where(ActivityWindow.tenant_id == tenant_id)
            if since is not None:
                stmt = stmt.where(ActivityWindow.activity_window >= since)
            return list(s.scalars(stmt.order_by(ActivityWindow.activity_window, ActivityWindow.room_name)).all())

    def upsert_daily_stats(self, tenant_id: str, day: date, **fields: Any) -> DailyStats:
        with self.session("upsert_daily_stats") as s:
            row = s.scalars(select(DailyStats).where(DailyStats.tenant_id == tenant_id, DailyStats.date == day)).one_or_none()
            if row is None:
                row = DailyStats(tenant_id=tenant_id, date=day)
                s.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            return row

    def get_daily_stats(self, tenant_id: str, day: date) -> Optional[DailyStats]:
        with self.session("get_daily_stats") as s:
            return s.scalars(select(DailyStats).where(DailyStats.tenant_id == tenant_id, DailyStats.date == day)).one_or_none()
