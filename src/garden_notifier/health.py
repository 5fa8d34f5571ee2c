"""Liveness endpoint for external uptime checks."""

from __future__ import annotations

import logging

from aiohttp import web

ALIVE_TEXT = "🌱 Bot is alive!"

logger = logging.getLogger(__name__)


async def _alive(_: web.Request) -> web.Response:
    return web.Response(text=ALIVE_TEXT)


def make_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", _alive)
    return app


async def start_health_server(port: int, *, host: str = "0.0.0.0") -> web.AppRunner:
    """Serve the liveness route; the caller owns the returned runner."""

    runner = web.AppRunner(make_app())
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    logger.info("Listening on port %s", port)
    return runner
