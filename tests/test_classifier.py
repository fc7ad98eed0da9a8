from datetime import datetime, timezone

from huesync.classifier import normalize_timestamp, upsert_snapshot
from huesync.vendor import Button, ContactSensor, Light, LightSensor, MotionSensor, TemperatureSensor

POLL = datetime(2024, 1, 1, 10, 4, 30, tzinfo=timezone.utc)
UID = "00:17:88:01:0b:d0:f5:1d-02-0406"


def _light(on, **kw):
    return Light(vendor_id="1", unique_id=UID, name="Lamp", on=on, **kw)


def _motion(lastupdated, presence=True):
    return MotionSensor(vendor_id="5", unique_id=UID, name="Hallway motion", presence=presence, lastupdated=lastupdated)


def test_normalize_appends_utc_marker():
    assert normalize_timestamp("2024-01-01T10:03:00", POLL) == datetime(2024, 1, 1, 10, 3, tzinfo=timezone.utc)


def test_normalize_keeps_explicit_zone():
    assert normalize_timestamp("2024-01-01T10:03:00.123Z", POLL) == datetime(2024, 1, 1, 10, 3, 0, 123000, tzinfo=timezone.utc)
    assert normalize_timestamp("2024-01-01T12:03:00+02:00", POLL) == datetime(2024, 1, 1, 10, 3, tzinfo=timezone.utc)


def test_normalize_falls_back_to_poll_time():
    assert normalize_timestamp(None, POLL) == POLL
    assert normalize_timestamp("none", POLL) == POLL
    assert normalize_timestamp("garbage", POLL) == POLL


def test_first_sighting_seeds_without_event():
    result = upsert_snapshot("light", None, _light(True), POLL)
    assert result.event is None
    assert result.changed
    assert result.state["on"] is True


def test_light_brightness_change_is_not_activity():
    prev = _light(True).state()
    result = upsert_snapshot("light", prev, _light(True, bri=10, hue=100, ct=153), POLL)
    assert result.event is None
    assert result.changed
    assert result.state["bri"] == 10


def test_light_on_flip_is_activity():
    prev = _light(False).state()
    result = upsert_snapshot("light", prev, _light(True), POLL)
    assert result.event is not None
    assert result.event.recorded_at == POLL
    assert result.event.payload == {"on": True}
    off = upsert_snapshot("light", result.state, _light(False), POLL)
    assert off.event.is_on is False


def test_unchanged_state_emits_nothing():
    for device_type, observed in [
        ("light", _light(True)),
        ("motion_sensor", _motion("2024-01-01T10:00:00")),
        ("contact_sensor", ContactSensor(vendor_id="c", unique_id="c", name="Door", open=True, changed="2024-01-01T09:00:00Z")),
        ("button", Button(vendor_id="9", unique_id=UID, name="Dimmer", buttonevent=1002, lastupdated="2024-01-01T08:00:00")),
    ]:
        result = upsert_snapshot(device_type, observed.state(), observed, POLL)
        assert result.event is None, device_type
        assert not result.changed, device_type


def test_motion_pulse_with_presence_still_true():
    prev = _motion("2024-01-01T10:00:00").state()
    result = upsert_snapshot("motion_sensor", prev, _motion("2024-01-01T10:03:00"), POLL)
    assert result.event is not None
    assert result.event.recorded_at == datetime(2024, 1, 1, 10, 3, tzinfo=timezone.utc)
    assert result.event.payload == {"motion": True}


def test_motion_sentinel_none_is_ignored():
    prev = _motion("2024-01-01T10:00:00").state()
    result = upsert_snapshot("motion_sensor", prev, _motion("none", presence=False), POLL)
    assert result.event is None
    assert result.state["lastupdated"] == "none"


def test_contact_changed_timestamp():
    prev = {"open": False, "changed": "2024-01-01T09:00:00.000Z"}
    observed = ContactSensor(vendor_id="c", unique_id="c", name="Front door", open=True, changed="2024-01-01T10:01:00.000Z")
    result = upsert_snapshot("contact_sensor", prev, observed, POLL)
    assert result.event.is_on is True
    assert result.event.payload == {"open": True}
    assert result.event.recorded_at == datetime(2024, 1, 1, 10, 1, tzinfo=timezone.utc)


def test_button_code_change():
    prev = {"buttonevent": 1002, "lastupdated": "2024-01-01T08:00:00"}
    observed = Button(vendor_id="9", unique_id=UID, name="Dimmer", buttonevent=4002, lastupdated="2024-01-01T10:02:00")
    result = upsert_snapshot("button", prev, observed, POLL)
    assert result.event.payload == {"buttonevent": 4002}
    assert result.event.recorded_at == datetime(2024, 1, 1, 10, 2, tzinfo=timezone.utc)


def test_button_null_code_is_ignored():
    prev = {"buttonevent": 1002, "lastupdated": "2024-01-01T08:00:00"}
    observed = Button(vendor_id="9", unique_id=UID, name="Dimmer", buttonevent=None, lastupdated="none")
    assert upsert_snapshot("button", prev, observed, POLL).event is None


def test_environment_sensors_never_emit():
    temp = TemperatureSensor(vendor_id="6", unique_id=UID, name="Temp", temperature=19.5, lastupdated="2024-01-01T10:03:00")
    result = upsert_snapshot("temperature_sensor", {"temperature": 21.0, "lastupdated": "2024-01-01T09:00:00"}, temp, POLL)
    assert result.event is None
    assert result.changed

    level = LightSensor(vendor_id="7", unique_id=UID, name="Light level", lightlevel=12000, dark=False, daylight=True)
    assert upsert_snapshot("light_sensor", {"lightlevel": 0, "dark": True}, level, POLL).event is None
