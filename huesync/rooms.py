import re
from typing import Callable, Dict, List, Optional, Sequence
from .vendor import (
    BridgeSnapshot, VendorDevice, Light, accessory_prefix,
    parse_device_resource, parse_room_resource,
)

Strategy = Callable[[VendorDevice], Optional[str]]

_SENSOR_SUFFIX = re.compile(r"\s*(motion|temperature|sensor|light level|presence)\s*", re.IGNORECASE)


def clean_sensor_name(name: str) -> str:
    return " ".join(_SENSOR_SUFFIX.sub(" ", name or "").split()).lower()


def room_groups(groups: Dict[str, dict]) -> List[dict]:
    return [g for g in groups.values() if isinstance(g, dict) and g.get("type") == "Room" and g.get("name")]


class ResourceGraphStrategy:
    """Room children of the v2 resource graph, matched by owner or by id_v1."""

    def __init__(self, rooms: Sequence[dict], devices: Sequence[dict]):
        self.device_room: Dict[str, str] = {}
        for raw in rooms:
            room = parse_room_resource(raw)
            if room:
                for rid in room.device_ids:
                    self.device_room[rid] = room.name
        self.legacy_path_device: Dict[str, str] = {}
        for raw in devices:
            res = parse_device_resource(raw)
            if res and res.id_v1:
                self.legacy_path_device[res.id_v1] = res.id

    def __call__(self, device: VendorDevice) -> Optional[str]:
        if device.owner_rid:
            return self.device_room.get(device.owner_rid)
        rid = self.legacy_path_device.get(device.legacy_path)
        return self.device_room.get(rid) if rid else None


class GroupMembershipStrategy:
    """Legacy ``Room`` groups listing the device id in ``lights`` or ``sensors``."""

    def __init__(self, groups: Dict[str, dict]):
        self.members: Dict[str, str] = {}
        for group in room_groups(groups):
            for light_id in group.get("lights") or []:
                self.members[f"/lights/{light_id}"] = group["name"]
            for sensor_id in group.get("sensors") or []:
                self.members[f"/sensors/{sensor_id}"] = group["name"]

    def __call__(self, device: VendorDevice) -> Optional[str]:
        if device.owner_rid:
            return None
        return self.members.get(device.legacy_path)


class AccessoryPrefixStrategy:
    """Sensors inherit the room of a roomed light on the same physical accessory."""

    def __init__(self, groups: Dict[str, dict], lights: Dict[str, dict]):
        self.prefix_room: Dict[str, str] = {}
        for group in room_groups(groups):
            for light_id in group.get("lights") or []:
                unique_id = (lights.get(str(light_id)) or {}).get("uniqueid")
                if unique_id:
                    self.prefix_room[accessory_prefix(unique_id)] = group["name"]

    def __call__(self, device: VendorDevice) -> Optional[str]:
        if isinstance(device, Light):
            return None
        return self.prefix_room.get(accessory_prefix(device.unique_id))


class NameMatchStrategy:
    """Last resort: a sensor called "Kitchen motion" belongs in "Kitchen"."""

    def __init__(self, groups: Dict[str, dict]):
        self.rooms = [g["name"] for g in room_groups(groups)]

    def __call__(self, device: VendorDevice) -> Optional[str]:
        if isinstance(device, Light):
            return None
        name = (device.name or "").lower()
        cleaned = clean_sensor_name(device.name)
        if not cleaned:
            return None
        for room in self.rooms:
            lower = room.lower()
            if lower in name or cleaned in lower:
                return room
        return None


class RoomResolver:
    def __init__(self, strategies: Sequence[Strategy]):
        self.strategies = list(strategies)

    @classmethod
    def from_snapshot(cls, snapshot: BridgeSnapshot) -> "RoomResolver":
        return cls([
            ResourceGraphStrategy(snapshot.rooms, snapshot.devices),
            GroupMembershipStrategy(snapshot.groups),
            AccessoryPrefixStrategy(snapshot.groups, snapshot.lights),
            NameMatchStrategy(snapshot.groups),
        ])

    def resolve(self, device: VendorDevice) -> Optional[str]:
        for strategy in self.strategies:
            room = strategy(device)
            if room:
                return room
        return None
