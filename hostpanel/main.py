import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .api import events, files, health, sites, ssl, system
from .config import get_settings
from .container import Panel
from .logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)

    hub = events.WebSocketHub()
    hub.bind_loop(asyncio.get_running_loop())
    panel = Panel(settings, hub)

    app.state.hub = hub
    app.state.panel = panel
    panel.start()
    try:
        yield
    finally:
        panel.stop()


app = FastAPI(title="Hosting Control Panel", lifespan=lifespan)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(sites.router, prefix="/sites", tags=["sites"])
app.include_router(ssl.router, prefix="/ssl", tags=["ssl"])
app.include_router(system.router, prefix="/system", tags=["system"])
app.include_router(files.router, prefix="/files", tags=["files"])
app.include_router(events.router, tags=["events"])


def run() -> None:
    settings = get_settings()
    uvicorn.run("hostpanel.main:app", host=settings.host, port=settings.port)
