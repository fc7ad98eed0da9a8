import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Set
from urllib.parse import parse_qsl

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from huesync.db import Base
from huesync.hue_client import HueClient
from huesync.models import TenantConfig
from huesync.settings import settings
from huesync.store import Store

POLL_TIME = datetime(2024, 1, 1, 10, 4, 30, tzinfo=timezone.utc)


class FakeBridge:
    """In-memory Hue remote API, one bridge per application key."""

    def __init__(self):
        self.bridges: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.token_status = 200
        self.token_body: Dict[str, Any] = {
            "access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 604800, "token_type": "bearer",
        }
        self.fail: Dict[str, int] = {}
        # rotating refresh tokens: a second use of the same one is rejected
        self.single_use_refresh = False
        self.used_refresh: Set[str] = set()

    def bridge(self, app_key: str) -> Dict[str, Any]:
        return self.bridges.setdefault(app_key, {
            "lights": {}, "sensors": {}, "groups": {}, "contact": [], "room": [], "device": [],
        })

    @staticmethod
    def light(uniqueid: str, on: bool = False, name: str = "Lamp", **state) -> Dict[str, Any]:
        return {"name": name, "type": "Extended color light", "uniqueid": uniqueid,
                "state": {"on": on, "bri": 200, "ct": 366, "hue": 8000, "sat": 140, "reachable": True, **state}}

    @staticmethod
    def motion(uniqueid: str, lastupdated: str, presence: bool = True, name: str = "Hallway motion", battery: int = 90) -> Dict[str, Any]:
        return {"name": name, "type": "ZLLPresence", "uniqueid": uniqueid,
                "state": {"presence": presence, "lastupdated": lastupdated}, "config": {"on": True, "battery": battery}}

    @staticmethod
    def temperature(uniqueid: str, temperature: int = 2150, name: str = "Hue temperature sensor 1", battery: int = 90) -> Dict[str, Any]:
        return {"name": name, "type": "ZLLTemperature", "uniqueid": uniqueid,
                "state": {"temperature": temperature, "lastupdated": "2024-01-01T09:00:00"}, "config": {"battery": battery}}

    @staticmethod
    def button(uniqueid: str, buttonevent: int, lastupdated: str, name: str = "Dimmer switch") -> Dict[str, Any]:
        return {"name": name, "type": "ZLLSwitch", "uniqueid": uniqueid,
                "state": {"buttonevent": buttonevent, "lastupdated": lastupdated}, "config": {"battery": 15}}

    @staticmethod
    def daylight() -> Dict[str, Any]:
        return {"name": "Daylight", "type": "Daylight", "state": {"daylight": True, "lastupdated": "2024-01-01T07:00:00"}}

    @staticmethod
    def room(name: str, lights=(), sensors=()) -> Dict[str, Any]:
        return {"name": name, "type": "Room", "lights": list(lights), "sensors": list(sensors)}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.startswith(settings.HUE_TOKEN_URL):
            if self.single_use_refresh:
                refresh = dict(parse_qsl(request.content.decode())).get("refresh_token")
                if refresh in self.used_refresh:
                    return httpx.Response(400, json={"error": "invalid_grant"})
                self.used_refresh.add(refresh)
            return httpx.Response(self.token_status, json=self.token_body)
        if url.startswith(settings.HUE_API_V2_URL):
            rtype = url[len(settings.HUE_API_V2_URL):].strip("/")
            if rtype in self.fail:
                return httpx.Response(self.fail[rtype], json={"errors": [{"description": "unavailable"}]})
            app_key = request.headers.get("hue-application-key")
            return httpx.Response(200, json={"errors": [], "data": self.bridge(app_key)[rtype]})
        if url.startswith(settings.HUE_API_URL):
            app_key, resource = url[len(settings.HUE_API_URL):].strip("/").split("/", 1)
            if resource in self.fail:
                return httpx.Response(self.fail[resource], text="bridge offline")
            return httpx.Response(200, json=self.bridge(app_key)[resource])
        return httpx.Response(404)

    async def yielding_handler(self, request: httpx.Request) -> httpx.Response:
        # gives other tasks a turn during every request
        await asyncio.sleep(0)
        return self.handler(request)

    def client(self, yielding: bool = False) -> HueClient:
        return HueClient(transport=httpx.MockTransport(self.yielding_handler if yielding else self.handler))

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def store():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield Store(sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))
    engine.dispose()


@pytest.fixture
def fake_bridge():
    return FakeBridge()


@pytest.fixture
def client_credentials(monkeypatch):
    monkeypatch.setattr(settings, "HUE_CLIENT_ID", "client-id")
    monkeypatch.setattr(settings, "HUE_CLIENT_SECRET", "client-secret")


@pytest.fixture
def make_tenant(store):
    def _make(tenant_id: str = "tenant-1", app_key: str = "bridge-key-1", expires_in: timedelta = timedelta(days=3), **fields) -> TenantConfig:
        with store.session("make_tenant") as s:
            values = dict(
                id=tenant_id,
                access_token=f"access-{tenant_id}",
                refresh_token=f"refresh-{tenant_id}",
                token_expires_at=POLL_TIME + expires_in,
                bridge_username=app_key,
                status="active",
                created_at=POLL_TIME - timedelta(days=30),
            )
            values.update(fields)
            s.add(TenantConfig(**values))
        return store.get_tenant(tenant_id)
    return _make
