import logging
from fastapi import FastAPI
from .settings import settings
from .api import router as api_router, get_store

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, "INFO"))

app = FastAPI(title="Hue Activity Sync", version="0.1.0")
app.include_router(api_router)

@app.on_event("startup")
def on_start():
    log = logging.getLogger("startup")
    get_store().init_db()
    log.info("Database ready at %s", settings.DB_URL.split("@")[-1])

@app.get("/")
def root():
    return {"name": "hue-activity-sync", "status": "ok"}
