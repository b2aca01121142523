# -*- coding: utf-8 -*-
"""
Simple HTTP healthcheck endpoint for monitoring.
Returns bot status, uptime and alert engine counters.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional
from aiohttp import web
from loguru import logger


class HealthcheckServer:
    """Simple HTTP server for healthcheck endpoint."""

    def __init__(self, engine, host: str = "0.0.0.0", port: int = 8080):
        self.engine = engine
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self.start_time = datetime.now(timezone.utc)

        self.app.router.add_get('/health', self.health_handler)
        self.app.router.add_get('/status', self.status_handler)

    async def health_handler(self, request: web.Request) -> web.Response:
        """Returns 200 OK while the process is up."""
        return web.json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    async def status_handler(self, request: web.Request) -> web.Response:
        """
        Detailed status endpoint with alert engine metrics.
        """
        now = datetime.now(timezone.utc)
        uptime_seconds = (now - self.start_time).total_seconds()

        days = int(uptime_seconds // 86400)
        hours = int((uptime_seconds % 86400) // 3600)
        minutes = int((uptime_seconds % 3600) // 60)

        return web.json_response({
            "status": "running" if self.engine.running else "idle",
            "uptime": f"{days}d {hours}h {minutes}m",
            "uptime_seconds": int(uptime_seconds),
            "start_time": self.start_time.isoformat(),
            **self.engine.stats(),
            "timestamp": now.isoformat()
        })

    async def start(self):
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            self.site = web.TCPSite(self.runner, self.host, self.port)
            await self.site.start()
            logger.info(f"Healthcheck server started on http://{self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to start healthcheck server: {e}")

    async def stop(self):
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Healthcheck server stopped")

    async def run(self):
        """Run healthcheck server (keeps running until cancelled)."""
        await self.start()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            await self.stop()
            raise
