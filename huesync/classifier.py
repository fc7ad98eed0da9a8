import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from .vendor import VendorDevice

NONE_SENTINEL = "none"
_TZ_SUFFIX = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")


@dataclass
class ActivityEventData:
    device_type: str
    recorded_at: datetime
    is_on: bool
    payload: Dict[str, Any]


@dataclass
class SnapshotResult:
    state: Dict[str, Any]
    changed: bool
    event: Optional[ActivityEventData] = None


def _vendor_time(value: Optional[str]) -> bool:
    return bool(value) and value != NONE_SENTINEL


def normalize_timestamp(value: Optional[str], poll_time: datetime) -> datetime:
    """Bridge timestamps are UTC without a marker; missing or "none" means poll time."""
    if not _vendor_time(value):
        return poll_time
    if not _TZ_SUFFIX.search(value):
        value = value + "Z"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return poll_time
    return parsed.astimezone(timezone.utc)


def _light(prev: Dict[str, Any], cur: Dict[str, Any], poll_time: datetime) -> Optional[ActivityEventData]:
    was_on = prev.get("on") is True
    is_on = cur.get("on") is True
    if was_on == is_on:
        return None
    return ActivityEventData("light", poll_time, is_on, {"on": is_on})


# presence can stay true across many pulses; a moved lastupdated clock is the activity
def _motion(prev: Dict[str, Any], cur: Dict[str, Any], poll_time: datetime) -> Optional[ActivityEventData]:
    ts = cur.get("lastupdated")
    if not _vendor_time(ts) or ts == prev.get("lastupdated"):
        return None
    return ActivityEventData("motion_sensor", normalize_timestamp(ts, poll_time), True, {"motion": True})


def _contact(prev: Dict[str, Any], cur: Dict[str, Any], poll_time: datetime) -> Optional[ActivityEventData]:
    ts = cur.get("changed")
    if not _vendor_time(ts) or ts == prev.get("changed"):
        return None
    is_open = cur.get("open") is True
    return ActivityEventData("contact_sensor", normalize_timestamp(ts, poll_time), is_open, {"open": is_open})


def _button(prev: Dict[str, Any], cur: Dict[str, Any], poll_time: datetime) -> Optional[ActivityEventData]:
    code = cur.get("buttonevent")
    if code is None or code == prev.get("buttonevent"):
        return None
    return ActivityEventData("button", normalize_timestamp(cur.get("lastupdated"), poll_time), True, {"buttonevent": code})


PREDICATES: Dict[str, Callable[[Dict[str, Any], Dict[str, Any], datetime], Optional[ActivityEventData]]] = {
    "light": _light,
    "motion_sensor": _motion,
    "contact_sensor": _contact,
    "button": _button,
}


def upsert_snapshot(device_type: str, previous_state: Optional[Dict[str, Any]], observed: VendorDevice, poll_time: datetime) -> SnapshotResult:
    """Compare a fresh observation with the stored snapshot.

    ``previous_state`` of None means first sighting: the snapshot is seeded
    and nothing is emitted.
    """
    state = observed.state()
    if previous_state is None:
        return SnapshotResult(state=state, changed=True)
    changed = state != previous_state
    predicate = PREDICATES.get(device_type)
    event = predicate(previous_state, state, poll_time) if predicate else None
    return SnapshotResult(state=state, changed=changed, event=event)
