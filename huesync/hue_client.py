import asyncio, logging
import httpx
from pydantic import BaseModel, ValidationError
from typing import Any, Dict, List, Optional
from .settings import settings
from .errors import AuthExpired, VendorUnavailable
from .vendor import BridgeSnapshot

log = logging.getLogger("hue")

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: Optional[str] = None

class HueClient:
    """Reads from the Hue remote API, legacy (v1) and CLIP v2 generations."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def legacy_get(self, token: str, app_key: str, resource: str) -> Dict[str, Any]:
        url = f"{settings.HUE_API_URL}/{app_key}/{resource}"
        try:
            async with self._client() as c:
                r = await c.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            raise VendorUnavailable(f"Failed to fetch {resource}: {e}") from e
        if not r.is_success:
            raise VendorUnavailable(f"Failed to fetch {resource}: {r.status_code}", status_code=r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            raise VendorUnavailable(f"Failed to fetch {resource}: invalid JSON") from e
        # the legacy API reports auth problems as a 200 with a list of errors
        if isinstance(body, list):
            raise VendorUnavailable(f"Failed to fetch {resource}: {body}")
        return body

    async def resource_get(self, token: str, app_key: str, rtype: str) -> List[Dict[str, Any]]:
        """CLIP v2 resources are optional enrichment; failures degrade to []."""
        headers = {"Authorization": f"Bearer {token}", "hue-application-key": app_key}
        try:
            async with self._client() as c:
                r = await c.get(f"{settings.HUE_API_V2_URL}/{rtype}", headers=headers)
            r.raise_for_status()
            return r.json().get("data") or []
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            log.warning("v2 %s unavailable: %s", rtype, e)
            return []

    async def fetch_lights(self, token: str, app_key: str) -> Dict[str, Any]:
        return await self.legacy_get(token, app_key, "lights")

    async def fetch_sensors(self, token: str, app_key: str) -> Dict[str, Any]:
        return await self.legacy_get(token, app_key, "sensors")

    async def fetch_groups(self, token: str, app_key: str) -> Dict[str, Any]:
        return await self.legacy_get(token, app_key, "groups")

    async def fetch_contact_sensors(self, token: str, app_key: str) -> List[Dict[str, Any]]:
        return await self.resource_get(token, app_key, "contact")

    async def fetch_room_resources(self, token: str, app_key: str) -> List[Dict[str, Any]]:
        return await self.resource_get(token, app_key, "room")

    async def fetch_device_resources(self, token: str, app_key: str) -> List[Dict[str, Any]]:
        return await self.resource_get(token, app_key, "device")

    async def fetch_bridge(self, token: str, app_key: str) -> BridgeSnapshot:
        lights, sensors, groups, contacts, rooms, devices = await asyncio.gather(
            self.fetch_lights(token, app_key),
            self.fetch_sensors(token, app_key),
            self.fetch_groups(token, app_key),
            self.fetch_contact_sensors(token, app_key),
            self.fetch_room_resources(token, app_key),
            self.fetch_device_resources(token, app_key),
        )
        return BridgeSnapshot(lights=lights, sensors=sensors, groups=groups, contacts=contacts, rooms=rooms, devices=devices)

    async def refresh_token(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token; raises AuthExpired with the reason on any failure."""
        if not settings.HUE_CLIENT_ID or not settings.HUE_CLIENT_SECRET:
            raise AuthExpired("Missing HUE_CLIENT_ID or HUE_CLIENT_SECRET")
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
        try:
            async with self._client() as c:
                r = await c.post(settings.HUE_TOKEN_URL, data=data, auth=(settings.HUE_CLIENT_ID, settings.HUE_CLIENT_SECRET))
        except httpx.HTTPError as e:
            raise AuthExpired(f"Token refresh error: {e}") from e
        if not r.is_success:
            log.debug("Token refresh response: %s", r.text[:200])
            raise AuthExpired(f"Token refresh failed: {r.status_code}")
        try:
            return TokenResponse.model_validate(r.json())
        except (ValidationError, ValueError) as e:
            raise AuthExpired("Token refresh returned a malformed body") from e
