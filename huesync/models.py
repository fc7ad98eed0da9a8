import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, JSON, Integer, Boolean, Date, Time, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from .db import Base

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _uuid() -> str:
    return uuid.uuid4().hex

class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, also on backends that store naive values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

class TenantConfig(Base):
    __tablename__ = "hue_config"
    id = Column(String, primary_key=True, default=_uuid)
    user_email = Column(String)
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(UTCDateTime)
    bridge_username = Column(String)  # bridge application key
    status = Column(String, nullable=False, default="pending")  # active | pending | error
    last_sync_at = Column(UTCDateTime)
    last_error = Column(Text)
    created_at = Column(UTCDateTime)

class Device(Base):
    __tablename__ = "hue_devices"
    __table_args__ = (UniqueConstraint("tenant_id", "hue_unique_id", name="uq_hue_devices_tenant_unique_id"),)
    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("hue_config.id", ondelete="CASCADE"), nullable=False, index=True)
    hue_id = Column(String)
    hue_unique_id = Column(String, nullable=False)
    device_type = Column(String, nullable=False)
    name = Column(String)
    room_name = Column(String)
    last_state = Column(JSON)
    last_state_at = Column(UTCDateTime)
    battery_percentage = Column(Integer)
    battery_updated_at = Column(UTCDateTime)
    health_status = Column(String, default="unknown")

class ActivityEvent(Base):
    __tablename__ = "activity_events"
    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("hue_config.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(String, ForeignKey("hue_devices.id", ondelete="CASCADE"), nullable=False)
    device_type = Column(String, nullable=False)
    room_name = Column(String)
    is_on = Column(Boolean)
    payload = Column(JSON)
    recorded_at = Column(UTCDateTime, nullable=False, index=True)

class ActivityWindow(Base):
    __tablename__ = "room_activity"
    __table_args__ = (UniqueConstraint("tenant_id", "room_name", "activity_window", name="uq_room_activity_window"),)
    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("hue_config.id", ondelete="CASCADE"), nullable=False)
    room_name = Column(String, nullable=False)
    activity_window = Column(UTCDateTime, nullable=False)
    trigger_types = Column(JSON)
    trigger_count = Column(Integer, nullable=False, default=0)
    first_trigger_at = Column(UTCDateTime)
    last_trigger_at = Column(UTCDateTime)
    updated_at = Column(UTCDateTime)

class DailyStats(Base):
    __tablename__ = "daily_activity_stats"
    __table_args__ = (UniqueConstraint("tenant_id", "date", name="uq_daily_activity_stats_day"),)
    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("hue_config.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    first_activity = Column(Time)
    last_activity = Column(Time)
    total_events = Column(Integer, default=0)
    events_per_hour = Column(JSON)  # 24 ints, index 0 = 00:00-01:00
    active_hours = Column(Integer, default=0)
    rooms_active = Column(Integer, default=0)
    rooms_available = Column(Integer, default=0)
    longest_gap_minutes = Column(Integer, default=0)
    night_events = Column(Integer, default=0)
    night_active_hours = Column(Integer, default=0)
    motion_events = Column(Integer, default=0)
    door_events = Column(Integer, default=0)
    updated_at = Column(UTCDateTime)

class BatteryReading(Base):
    __tablename__ = "battery_readings"
    id = Column(String, primary_key=True, default=_uuid)
    tenant_id = Column(String, ForeignKey("hue_config.id", ondelete="CASCADE"), nullable=False)
    device_id = Column(String, ForeignKey("hue_devices.id", ondelete="CASCADE"), nullable=False)
    accessory_prefix = Column(String)
    battery = Column(Integer, nullable=False)
    is_low = Column(Boolean, nullable=False)
    recorded_at = Column(UTCDateTime, nullable=False)
