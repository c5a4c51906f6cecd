import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .adapters.entry.http.monitor_router import router as monitor_router
from .config import get_settings
from .workers.monitor_supervisor import MonitorSupervisor


def _setup_logging():
    """
    Configure basic logging for the whole process.
    """
    logging.basicConfig(
        level=get_settings().LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context for startup/shutdown lifecycle.
    """
    _setup_logging()
    logging.getLogger(__name__).info("Starting position-monitor (lifespan startup)...")
    supervisor = MonitorSupervisor()
    await supervisor.start()

    app.state.supervisor = supervisor

    try:
        yield
    finally:
        logging.getLogger(__name__).info("Shutting down position-monitor (lifespan shutdown)...")
        await supervisor.stop()


app = FastAPI(title="position-monitor", version="0.1.0", lifespan=lifespan)
app.include_router(monitor_router)


@app.get("/healthz")
async def healthz():
    """
    Liveness probe endpoint.
    """
    return {"status": "ok"}


def run(host: str = "0.0.0.0", port: int = 8000):
    """Console entry point: serve the app with uvicorn."""
    uvicorn.run("position_monitor.main:app", host=host, port=port, log_level=get_settings().LOG_LEVEL.lower())
