from __future__ import annotations

import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from synchealth.api import hub as hub_api
from synchealth.core.config import get_settings
from synchealth.core.errors import HubError
from synchealth.core.logging import setup_logging
from synchealth.services.sync_health import run_sync_health
from synchealth.sync.replica import InMemoryReplica

logger = logging.getLogger(__name__)


def create_app(replica: Optional[InMemoryReplica] = None) -> FastAPI:
    """Create a FastAPI application serving one replica over the hub API."""

    app = FastAPI(title="synchealth hub")
    app.state.replica = replica if replica is not None else InMemoryReplica(nickname="synchealth")
    app.include_router(hub_api.router)
    return app


def run() -> None:
    """Run one sync health session configured from the environment."""

    settings = get_settings()
    setup_logging(settings.log_level)
    try:
        asyncio.run(run_sync_health(settings))
    except HubError as exc:
        logger.error("Sync health aborted: %s", exc)
        raise SystemExit(1) from exc


def serve() -> None:
    """Serve an empty in-memory replica, useful as a local peer."""

    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(), host=settings.app_host, port=settings.app_port, log_level="info")


if __name__ == "__main__":
    run()
