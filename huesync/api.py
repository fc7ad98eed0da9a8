from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from .aggregation import Aggregator, DailySummary, WindowSummary
from .battery import BatteryPoller, BatterySummary
from .errors import PersistenceFailure
from .poller import Poller, PollSummary
from .store import Store

router = APIRouter(prefix="/api/v1")

_store = Store()
_poller = Poller(_store)

def get_store() -> Store:
    return _store

def get_poller() -> Poller:
    return _poller

class DeviceOut(BaseModel):
    id: str
    hue_unique_id: str
    device_type: str
    name: Optional[str] = None
    room_name: Optional[str] = None
    last_state: Optional[Dict[str, Any]] = None
    battery_percentage: Optional[int] = None
    health_status: Optional[str] = None

    model_config = {"from_attributes": True}

@router.post("/poll", response_model=PollSummary)
async def poll(poller: Poller = Depends(get_poller)):
    try:
        return await poller.run_poll_cycle()
    except PersistenceFailure as e:
        raise HTTPException(503, f"Could not load tenants: {e}")

@router.post("/battery", response_model=BatterySummary)
async def battery(poller: Poller = Depends(get_poller)):
    try:
        return await BatteryPoller(poller.store, poller.client, locks=poller.locks).run()
    except PersistenceFailure as e:
        raise HTTPException(503, f"Could not load tenants: {e}")

@router.post("/aggregate/windows", response_model=WindowSummary)
def aggregate_windows(minutes: int = Query(60, ge=1), store: Store = Depends(get_store)):
    try:
        return Aggregator(store).aggregate_window(minutes)
    except PersistenceFailure as e:
        raise HTTPException(503, f"Could not load events: {e}")

@router.post("/aggregate/daily", response_model=DailySummary)
def aggregate_daily(tenant_id: Optional[str] = None, days: Optional[int] = Query(None, ge=0), store: Store = Depends(get_store)):
    try:
        return Aggregator(store).refresh_daily_stats(tenant_id=tenant_id, days_back=days)
    except PersistenceFailure as e:
        raise HTTPException(503, f"Could not load tenants: {e}")

@router.get("/tenants/{tenant_id}/devices", response_model=List[DeviceOut])
def list_devices(tenant_id: str, device_type: Optional[str] = None, store: Store = Depends(get_store)):
    if store.get_tenant(tenant_id) is None:
        raise HTTPException(404, "Tenant not found")
    return store.get_devices_for(tenant_id, device_type=device_type)
