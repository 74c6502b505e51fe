import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from laserdesk import config
from laserdesk.api import dashboard, orders, settings, sync_api
from laserdesk.db.session import init_db
from laserdesk.utils.logger import configure_logging

logger = logging.getLogger(__name__)

app = FastAPI(title="Laserdesk")

# CORS for the desktop/web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync_api.router, prefix="", tags=["sync"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(settings.router, prefix="/settings", tags=["settings"])
app.include_router(settings.config_router, prefix="/config", tags=["config"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])


@app.on_event("startup")
def on_startup():
    configure_logging(config.LOG_LEVEL, config.LOGS_DIR)
    config.ensure_directories()
    init_db()
    logger.info("Laserdesk started data_dir=%s work_dir=%s", config.DATA_DIR, config.WORK_DIR)


@app.get("/")
async def root():
    return {"status": "ok", "service": "laserdesk"}


@app.get("/health")
async def health():
    return {"ok": True}
