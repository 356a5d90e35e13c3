from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import uvicorn

from core.api import create_api_app
from core.bot import TicketBot
from core.config import AppConfig, load_config
from core.logging import configure_logging

LOGGER = logging.getLogger("ticketbot")


def _build_health_server(bot: TicketBot, config: AppConfig) -> uvicorn.Server:
    return uvicorn.Server(
        uvicorn.Config(
            app=create_api_app(bot),
            host=config.api.host,
            port=config.api.port,
            log_level=config.logging.level.lower(),
            log_config=None,
        )
    )


async def run(config: AppConfig) -> None:
    bot = TicketBot(config=config)
    async with bot:
        server: uvicorn.Server | None = None
        server_task: asyncio.Task[None] | None = None
        if config.api.enabled:
            server = _build_health_server(bot, config)
            server_task = asyncio.create_task(server.serve(), name="health-api")
            LOGGER.info("Health endpoint listening on %s:%s", config.api.host, config.api.port)
        try:
            await bot.start(config.discord.token)
        finally:
            if server is not None and server_task is not None:
                server.should_exit = True
                await asyncio.gather(server_task, return_exceptions=True)


def main() -> None:
    root = Path(__file__).resolve().parent
    config = load_config(root / "config" / "config.yaml")
    configure_logging(config.logging)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
