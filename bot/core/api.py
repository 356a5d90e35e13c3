from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from core.errors import PersistenceError

if TYPE_CHECKING:
    from core.bot import TicketBot

LOGGER = logging.getLogger(__name__)


def create_api_app(bot: TicketBot) -> FastAPI:
    app = FastAPI(title="Ticket Bot API", version="1.0.0")

    @app.get("/health")
    async def health() -> JSONResponse:
        checks: dict[str, str] = {}
        try:
            await bot.database.ping()
            checks["database"] = "ok"
        except PersistenceError as exc:
            LOGGER.warning("Health check: database unavailable: %s", exc)
            checks["database"] = "unavailable"
        checks["cache"] = "ok" if bot.cache is not None and await bot.cache.ping() else "unavailable"
        checks["discord"] = "ok" if bot.is_ready() else "connecting"
        checks["background_tasks"] = str(bot.tasks.pending)

        healthy = checks["database"] == "ok" and checks["discord"] == "ok"
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "ok" if healthy else "degraded", "checks": checks},
        )

    return app
