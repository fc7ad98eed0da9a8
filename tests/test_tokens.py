from datetime import timedelta

import pytest
from conftest import POLL_TIME

from huesync.errors import AuthExpired
from huesync.tokens import ensure_valid_access_token, is_token_expired


def test_expiry_inside_buffer_counts_as_expired(make_tenant):
    assert is_token_expired(make_tenant("a", expires_in=timedelta(minutes=3)), POLL_TIME)
    assert not is_token_expired(make_tenant("b", expires_in=timedelta(minutes=6)), POLL_TIME)
    assert is_token_expired(make_tenant("c", token_expires_at=None), POLL_TIME)


@pytest.mark.asyncio
async def test_valid_token_is_returned_unchanged(store, fake_bridge, make_tenant):
    tenant = make_tenant()
    token = await ensure_valid_access_token(tenant, fake_bridge.client(), store, now=POLL_TIME)
    assert token == "access-tenant-1"
    assert fake_bridge.requests == []


@pytest.mark.asyncio
async def test_refresh_is_persisted(store, fake_bridge, make_tenant, client_credentials):
    tenant = make_tenant(expires_in=timedelta(minutes=3))
    token = await ensure_valid_access_token(tenant, fake_bridge.client(), store, now=POLL_TIME)
    assert token == "new-access"
    stored = store.get_tenant("tenant-1")
    assert stored.access_token == "new-access"
    assert stored.refresh_token == "new-refresh"
    assert stored.token_expires_at == POLL_TIME + timedelta(seconds=604800)
    assert tenant.access_token == "new-access"


@pytest.mark.asyncio
async def test_refresh_failure_moves_tenant_to_error(store, fake_bridge, make_tenant, client_credentials):
    fake_bridge.token_status = 400
    tenant = make_tenant(expires_in=timedelta(minutes=-10))
    with pytest.raises(AuthExpired):
        await ensure_valid_access_token(tenant, fake_bridge.client(), store, now=POLL_TIME)
    stored = store.get_tenant("tenant-1")
    assert stored.status == "error"
    assert "400" in stored.last_error
    assert stored.access_token == "access-tenant-1"
