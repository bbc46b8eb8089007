from fastapi import FastAPI
from .routers import reaper
from .config import get_settings
import logging

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Scan-Job TTL Reaper")


@app.on_event("startup")
async def startup():
    from .services.reconciler import get_scheduler

    # Builds the Kubernetes client and validates the prefix; failures abort startup
    scheduler = get_scheduler()

    # Start background reconciliation loop
    scheduler.start()
    logger.info("Reconciliation loop started")


@app.on_event("shutdown")
async def shutdown():
    from .services.reconciler import get_scheduler

    # Let the in-flight cycle finish before the process exits
    await get_scheduler().stop()


@app.get("/health")
async def health_check():
    from .services.reconciler import get_scheduler

    return {"status": "healthy", "scheduler": get_scheduler().state.value}


app.include_router(reaper.router)
