"""Dashboard server: runs uvicorn inside the existing asyncio event loop."""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI
from loguru import logger


async def run_dashboard_server(app: FastAPI, port: int, host: str = "0.0.0.0") -> None:
    """Serve ``app`` until cancelled.

    Runs as an asyncio task next to the sweep loop and the live monitor.
    """
    config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="warning",
        loop="none",  # use the existing event loop
    )
    server = uvicorn.Server(config)
    logger.info(f"Dashboard API starting on http://{host}:{port}")
    await server.serve()
