# src/gasless_relay/main.py
"""Main entry point for the gasless vote relay."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from gasless_relay.api.errors import register_exception_handlers
from gasless_relay.api.v1 import system_router, votes_router
from gasless_relay.core.settings import settings
from gasless_relay.services.relay import get_relay_runtime

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Gasless Poll Relayer",
    description="Collects signed poll votes and submits them in operator-paid batches",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

register_exception_handlers(app)

# Paths match the ones the voting frontend posts to.
app.include_router(votes_router)
app.include_router(system_router)


@app.on_event("startup")
async def on_startup() -> None:
    relay = get_relay_runtime()
    await relay.start()
    logger.info(
        "Gasless Poll Relayer ready "
        "(contract: %s, relayer: %s, rpc: %s, batch size: %d, interval: %dms)",
        relay.config.contract_address or "Not configured",
        relay.client.operator_address or "Not configured",
        relay.config.rpc_url,
        relay.config.batch_size,
        relay.config.batch_interval_ms,
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    logger.info("Shutting down gracefully")
    await get_relay_runtime().shutdown()


def run() -> None:
    """Run the relay under uvicorn."""
    import uvicorn

    uvicorn.run(
        "gasless_relay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
