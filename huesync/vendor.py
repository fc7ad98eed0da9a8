from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional

# Capabilities of one physical accessory share the MAC part of the unique id,
# e.g. "00:17:88:01:0b:d0:f5:1d-02-0406" -> "00:17:88:01:0b:d0:f5:1d".
ACCESSORY_PREFIX_LEN = 23

SENSOR_TYPE_MAP: Dict[str, str] = {
    "ZLLPresence": "motion_sensor",
    "ZLLLightLevel": "light_sensor",
    "ZLLTemperature": "temperature_sensor",
    "ZLLSwitch": "button",
    "ZGPSwitch": "button",
    "CLIPOpenClose": "contact_sensor",
    "ZLLOpenClose": "contact_sensor",
}


def accessory_prefix(unique_id: str) -> str:
    return unique_id[:ACCESSORY_PREFIX_LEN]


@dataclass
class VendorDevice:
    vendor_id: str
    unique_id: str
    name: str
    # v2 device resource owning this capability, when known
    owner_rid: Optional[str] = None
    battery: Optional[int] = None

    device_class: ClassVar[Optional[str]] = None
    legacy_collection: ClassVar[str] = "sensors"

    @property
    def legacy_path(self) -> str:
        return f"/{self.legacy_collection}/{self.vendor_id}"

    def state(self) -> Dict[str, Any]:
        return {}


@dataclass
class Light(VendorDevice):
    on: Optional[bool] = None
    bri: Optional[int] = None
    ct: Optional[int] = None
    hue: Optional[int] = None
    sat: Optional[int] = None
    reachable: Optional[bool] = None

    device_class: ClassVar[Optional[str]] = "light"
    legacy_collection: ClassVar[str] = "lights"

    def state(self) -> Dict[str, Any]:
        return {"on": self.on, "bri": self.bri, "ct": self.ct, "hue": self.hue, "sat": self.sat, "reachable": self.reachable}


@dataclass
class MotionSensor(VendorDevice):
    presence: Optional[bool] = None
    lastupdated: Optional[str] = None

    device_class: ClassVar[Optional[str]] = "motion_sensor"

    def state(self) -> Dict[str, Any]:
        return {"presence": self.presence, "lastupdated": self.lastupdated}


@dataclass
class ContactSensor(VendorDevice):
    open: Optional[bool] = None
    changed: Optional[str] = None

    device_class: ClassVar[Optional[str]] = "contact_sensor"

    def state(self) -> Dict[str, Any]:
        return {"open": self.open, "changed": self.changed}


@dataclass
class TemperatureSensor(VendorDevice):
    temperature: Optional[float] = None  # degrees C
    lastupdated: Optional[str] = None

    device_class: ClassVar[Optional[str]] = "temperature_sensor"

    def state(self) -> Dict[str, Any]:
        return {"temperature": self.temperature, "lastupdated": self.lastupdated}


@dataclass
class LightSensor(VendorDevice):
    lightlevel: Optional[int] = None
    dark: Optional[bool] = None
    daylight: Optional[bool] = None
    lastupdated: Optional[str] = None

    device_class: ClassVar[Optional[str]] = "light_sensor"

    def state(self) -> Dict[str, Any]:
        return {"lightlevel": self.lightlevel, "dark": self.dark, "daylight": self.daylight, "lastupdated": self.lastupdated}


@dataclass
class Button(VendorDevice):
    buttonevent: Optional[int] = None
    lastupdated: Optional[str] = None

    device_class: ClassVar[Optional[str]] = "button"

    def state(self) -> Dict[str, Any]:
        return {"buttonevent": self.buttonevent, "lastupdated": self.lastupdated}


@dataclass
class Unknown(VendorDevice):
    vendor_type: str = ""


@dataclass
class RoomResource:
    """A CLIP v2 room: name plus the v2 device ids it contains."""
    id: str
    name: str
    device_ids: List[str] = field(default_factory=list)


@dataclass
class DeviceResource:
    id: str
    name: Optional[str] = None
    product_name: Optional[str] = None
    id_v1: Optional[str] = None


@dataclass
class BridgeSnapshot:
    """Everything one poll fetched for a tenant."""
    lights: Dict[str, Any] = field(default_factory=dict)
    sensors: Dict[str, Any] = field(default_factory=dict)
    groups: Dict[str, Any] = field(default_factory=dict)
    contacts: List[Dict[str, Any]] = field(default_factory=list)
    rooms: List[Dict[str, Any]] = field(default_factory=list)
    devices: List[Dict[str, Any]] = field(default_factory=list)


def parse_light(hue_id: str, raw: Dict[str, Any]) -> Optional[Light]:
    unique_id = raw.get("uniqueid")
    if not unique_id:
        return None
    state = raw.get("state") or {}
    return Light(
        vendor_id=str(hue_id),
        unique_id=unique_id,
        name=raw.get("name") or f"Light {hue_id}",
        on=state.get("on"),
        bri=state.get("bri"),
        ct=state.get("ct"),
        hue=state.get("hue"),
        sat=state.get("sat"),
        reachable=state.get("reachable"),
    )


def parse_sensor(hue_id: str, raw: Dict[str, Any]) -> Optional[VendorDevice]:
    unique_id = raw.get("uniqueid")
    if not unique_id:
        return None
    state = raw.get("state") or {}
    common = dict(
        vendor_id=str(hue_id),
        unique_id=unique_id,
        name=raw.get("name") or f"Sensor {hue_id}",
        battery=(raw.get("config") or {}).get("battery"),
    )
    kind = SENSOR_TYPE_MAP.get(raw.get("type"))
    lastupdated = state.get("lastupdated")
    if kind == "motion_sensor":
        return MotionSensor(presence=state.get("presence"), lastupdated=lastupdated, **common)
    if kind == "contact_sensor":
        return ContactSensor(open=state.get("open"), changed=lastupdated, **common)
    if kind == "temperature_sensor":
        temperature = state.get("temperature")
        # bridge reports hundredths of a degree
        return TemperatureSensor(
            temperature=temperature / 100 if temperature is not None else None,
            lastupdated=lastupdated,
            **common,
        )
    if kind == "light_sensor":
        return LightSensor(
            lightlevel=state.get("lightlevel"),
            dark=state.get("dark"),
            daylight=state.get("daylight"),
            lastupdated=lastupdated,
            **common,
        )
    if kind == "button":
        return Button(buttonevent=state.get("buttonevent"), lastupdated=lastupdated, **common)
    return Unknown(vendor_type=raw.get("type") or "", **common)


def parse_contact(raw: Dict[str, Any], device_names: Dict[str, str]) -> Optional[ContactSensor]:
    """CLIP v2 contact resource; ``contact`` means closed, ``no_contact`` open."""
    contact_id = raw.get("id")
    if not contact_id:
        return None
    owner = (raw.get("owner") or {}).get("rid")
    report = raw.get("contact_report") or {}
    state = report.get("state")
    return ContactSensor(
        vendor_id=contact_id,
        unique_id=contact_id,
        name=device_names.get(owner) or "Contact sensor",
        owner_rid=owner,
        open=(state == "no_contact") if state is not None else None,
        changed=report.get("changed"),
    )


def parse_room_resource(raw: Dict[str, Any]) -> Optional[RoomResource]:
    name = (raw.get("metadata") or {}).get("name")
    if not name:
        return None
    device_ids = [c["rid"] for c in raw.get("children") or [] if c.get("rtype") == "device" and c.get("rid")]
    return RoomResource(id=raw.get("id", ""), name=name, device_ids=device_ids)


def parse_device_resource(raw: Dict[str, Any]) -> Optional[DeviceResource]:
    if not raw.get("id"):
        return None
    return DeviceResource(
        id=raw["id"],
        name=(raw.get("metadata") or {}).get("name"),
        product_name=(raw.get("product_data") or {}).get("product_name"),
        id_v1=raw.get("id_v1"),
    )


def parse_snapshot(snapshot: BridgeSnapshot) -> List[VendorDevice]:
    """All devices of a poll, lights first, then legacy sensors, then v2 contacts."""
    out: List[VendorDevice] = []
    for hue_id, raw in snapshot.lights.items():
        light = parse_light(hue_id, raw)
        if light:
            out.append(light)
    for hue_id, raw in snapshot.sensors.items():
        sensor = parse_sensor(hue_id, raw)
        if sensor:
            out.append(sensor)
    device_names = {}
    for raw in snapshot.devices:
        res = parse_device_resource(raw)
        if res and (res.name or res.product_name):
            device_names[res.id] = res.name or res.product_name
    for raw in snapshot.contacts:
        contact = parse_contact(raw, device_names)
        if contact:
            out.append(contact)
    return out
