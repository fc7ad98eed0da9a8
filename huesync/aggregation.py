import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from pydantic import BaseModel, Field
from .settings import settings
from .errors import PersistenceFailure
from .models import ActivityEvent, utcnow
from .store import Store

log = logging.getLogger("aggregation")

ROOM_DEVICE_TYPES = ("motion_sensor", "contact_sensor", "light")


def window_start(ts: datetime, minutes: Optional[int] = None) -> datetime:
    minutes = minutes or settings.ACTIVITY_WINDOW_MINUTES
    ts = ts.astimezone(timezone.utc)
    return ts.replace(minute=ts.minute - ts.minute % minutes, second=0, microsecond=0)


@dataclass
class WindowAggregate:
    tenant_id: str
    room_name: str
    activity_window: datetime
    trigger_types: set = field(default_factory=set)
    trigger_count: int = 0
    first_trigger_at: Optional[datetime] = None
    last_trigger_at: Optional[datetime] = None

    def add(self, event: ActivityEvent):
        self.trigger_types.add(event.device_type)
        self.trigger_count += 1
        if self.first_trigger_at is None or event.recorded_at < self.first_trigger_at:
            self.first_trigger_at = event.recorded_at
        if self.last_trigger_at is None or event.recorded_at > self.last_trigger_at:
            self.last_trigger_at = event.recorded_at


def build_windows(events: Iterable[ActivityEvent], minutes: Optional[int] = None) -> List[WindowAggregate]:
    """Group events on (tenant, room, window start); roomless events are skipped."""
    windows: Dict[Tuple[str, str, datetime], WindowAggregate] = {}
    for event in events:
        if not event.room_name:
            continue
        start = window_start(event.recorded_at, minutes)
        key = (event.tenant_id, event.room_name, start)
        if key not in windows:
            windows[key] = WindowAggregate(event.tenant_id, event.room_name, start)
        windows[key].add(event)
    return sorted(windows.values(), key=lambda w: (w.tenant_id, w.activity_window, w.room_name))


def is_night(hour: int) -> bool:
    start, end = settings.NIGHT_START_HOUR, settings.NIGHT_END_HOUR
    if start > end:
        return hour >= start or hour < end
    return start <= hour < end


def compute_daily_stats(events: Sequence[ActivityEvent], rooms_available: int) -> Dict:
    """Full DailyStats column set for one tenant-day, from that day's events."""
    events = sorted(events, key=lambda e: e.recorded_at)
    per_hour = [0] * 24
    for e in events:
        per_hour[e.recorded_at.astimezone(timezone.utc).hour] += 1
    longest_gap = 0.0
    for prev, cur in zip(events, events[1:]):
        longest_gap = max(longest_gap, (cur.recorded_at - prev.recorded_at).total_seconds() / 60)
    active = [h for h in range(24) if per_hour[h]]
    return {
        "first_activity": events[0].recorded_at.astimezone(timezone.utc).time() if events else None,
        "last_activity": events[-1].recorded_at.astimezone(timezone.utc).time() if events else None,
        "total_events": len(events),
        "events_per_hour": per_hour,
        "active_hours": len(active),
        "rooms_active": len({e.room_name for e in events if e.room_name}),
        "rooms_available": rooms_available,
        "longest_gap_minutes": int(round(longest_gap)),
        "night_events": sum(per_hour[h] for h in range(24) if is_night(h)),
        "night_active_hours": sum(1 for h in active if is_night(h)),
        "motion_events": sum(1 for e in events if e.device_type == "motion_sensor"),
        "door_events": sum(1 for e in events if e.device_type == "contact_sensor"),
    }


class WindowSummary(BaseModel):
    events_processed: int = 0
    windows_updated: int = 0
    errors: List[str] = Field(default_factory=list)


class DailyStatsRow(BaseModel):
    tenant_id: str
    day: date
    total_events: int


class DailySummary(BaseModel):
    days_processed: int = 0
    rows: List[DailyStatsRow] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class Aggregator:
    def __init__(self, store: Store):
        self.store = store

    def _write_windows(self, windows: List[WindowAggregate], summary: WindowSummary) -> WindowSummary:
        for w in windows:
            try:
                self.store.upsert_activity_window(
                    w.tenant_id, w.room_name, w.activity_window,
                    trigger_types=sorted(w.trigger_types),
                    trigger_count=w.trigger_count,
                    first_trigger_at=w.first_trigger_at,
                    last_trigger_at=w.last_trigger_at,
                )
                summary.windows_updated += 1
            except PersistenceFailure as e:
                summary.errors.append(f"{w.tenant_id}/{w.room_name}@{w.activity_window.isoformat()}: {e}")
        return summary

    def aggregate_window(self, lookback_minutes: int, now: Optional[datetime] = None) -> WindowSummary:
        """Rebuild every window touched by events in the lookback period.

        The cutoff is aligned down to a window boundary so no window is
        rebuilt from only part of its events.
        """
        now = now or utcnow()
        cutoff = window_start(now - timedelta(minutes=lookback_minutes))
        events = self.store.events_between(cutoff)
        summary = WindowSummary(events_processed=len(events))
        self._write_windows(build_windows(events), summary)
        log.info("Aggregated %d events into %d windows since %s", len(events), summary.windows_updated, cutoff.isoformat())
        return summary

    def refresh_windows(self, tenant_id: str, timestamps: Iterable[datetime]) -> WindowSummary:
        """Rebuild the windows containing the given timestamps from all their events."""
        minutes = settings.ACTIVITY_WINDOW_MINUTES
        starts = sorted({window_start(ts, minutes) for ts in timestamps})
        summary = WindowSummary()
        for start in starts:
            events = self.store.events_between(start, start + timedelta(minutes=minutes), tenant_id=tenant_id)
            summary.events_processed += len(events)
            self._write_windows(build_windows(events, minutes), summary)
        return summary

    def rooms_available(self, tenant_id: str) -> int:
        devices = self.store.get_devices_for(tenant_id)
        return len({d.room_name for d in devices if d.device_type in ROOM_DEVICE_TYPES and d.room_name})

    def refresh_daily_stats(self, tenant_id: Optional[str] = None, days_back: Optional[int] = None,
                            today: Optional[date] = None) -> DailySummary:
        """Recompute DailyStats for today and the ``days_back`` days before it."""
        days_back = settings.DAILY_STATS_DAYS_BACK if days_back is None else days_back
        today = today or utcnow().date()
        tenants = [t for t in self.store.get_active_tenants() if tenant_id is None or t.id == tenant_id]
        summary = DailySummary()
        for tenant in tenants:
            try:
                rooms = self.rooms_available(tenant.id)
            except PersistenceFailure as e:
                summary.errors.append(f"{tenant.id}: {e}")
                continue
            for offset in range(days_back, -1, -1):
                day = today - timedelta(days=offset)
                start = datetime.combine(day, time.min, tzinfo=timezone.utc)
                try:
                    events = self.store.events_between(start, start + timedelta(days=1), tenant_id=tenant.id)
                    stats = compute_daily_stats(events, rooms)
                    self.store.upsert_daily_stats(tenant.id, day, **stats)
                except PersistenceFailure as e:
                    summary.errors.append(f"{tenant.id}/{day.isoformat()}: {e}")
                    continue
                summary.days_processed += 1
                summary.rows.append(DailyStatsRow(tenant_id=tenant.id, day=day, total_events=stats["total_events"]))
        log.info("Daily stats refreshed: %d tenant-days", summary.days_processed)
        return summary
