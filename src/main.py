"""Entry point for the telephony to realtime translation bridge."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as health_router
from api.telephony_routes import router as telephony_router
from bridge.store import SessionStore
from config.settings import get_settings
from integrations.twilio_client import get_provider_config

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    LOGGER.info(
        "Starting bridge (environment=%s, provider=%s, media path=%s)",
        settings.environment,
        get_provider_config(settings).label,
        settings.media_path,
    )
    app.state.session_store = SessionStore()
    yield
    await app.state.session_store.close_all()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Realtime Translation Bridge",
    description="Bridges telephony media streams to a realtime speech-translation backend.",
    lifespan=lifespan,
)
app.include_router(health_router)
app.include_router(telephony_router)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
