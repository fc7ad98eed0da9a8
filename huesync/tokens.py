import logging
from datetime import datetime, timedelta
from typing import Optional
from .settings import settings
from .errors import AuthExpired
from .hue_client import HueClient
from .models import TenantConfig, utcnow
from .store import Store

log = logging.getLogger("tokens")

def is_token_expired(tenant: TenantConfig, now: Optional[datetime] = None) -> bool:
    """True once we are inside the refresh buffer before expiry."""
    if tenant.token_expires_at is None:
        return True
    now = now or utcnow()
    return now > tenant.token_expires_at - timedelta(seconds=settings.TOKEN_REFRESH_BUFFER_S)

async def ensure_valid_access_token(tenant: TenantConfig, client: HueClient, store: Store, now: Optional[datetime] = None) -> str:
    """Return a usable access token, refreshing and persisting it when needed.

    On refresh failure the tenant is moved to ``error`` and AuthExpired is
    raised; the next scheduled run is the retry.
    """
    now = now or utcnow()
    if not is_token_expired(tenant, now):
        return tenant.access_token

    log.info("Token for tenant %s expires at %s, refreshing", tenant.id, tenant.token_expires_at)
    try:
        tokens = await client.refresh_token(tenant.refresh_token or "")
    except AuthExpired as e:
        log.warning("Token refresh failed for tenant %s: %s", tenant.id, e)
        store.update_tenant_status(tenant.id, status="error", last_error=str(e))
        raise

    expires_at = now + timedelta(seconds=tokens.expires_in)
    store.update_tenant_tokens(tenant.id, tokens.access_token, tokens.refresh_token, expires_at)
    tenant.access_token = tokens.access_token
    tenant.refresh_token = tokens.refresh_token
    tenant.token_expires_at = expires_at
    log.info("Tokens refreshed for tenant %s", tenant.id)
    return tokens.access_token
