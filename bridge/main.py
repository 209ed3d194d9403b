"""Pixel Office Bridge FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bridge import config
from bridge.channel import EventChannel
from bridge.pipeline import BridgePipeline
from bridge.routers.stream import stream_router
from bridge.session_registry import SessionRegistry
from bridge.watcher import SessionWatcher

logging.basicConfig(level=logging.DEBUG if config.VERBOSE else logging.INFO)
logger = logging.getLogger("bridge")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info(f"Pixel Office Bridge {config.VERSION} starting up")
    logger.info(f"Claude directory: {config.CLAUDE_DIR} (via {config.CLAUDE_DIR_RESOLVED_VIA})")

    # 1. Event fan-out and session state
    channel = EventChannel(max_queue_size=config.SUBSCRIBER_QUEUE_SIZE)
    registry = SessionRegistry(
        channel,
        ttl_seconds=config.SESSION_TTL_SECONDS,
        reap_interval_seconds=config.SESSION_REAP_INTERVAL_SECONDS,
    )
    pipeline = BridgePipeline(registry, channel)
    watcher = SessionWatcher(
        pipeline,
        config.PROJECTS_DIR,
        recency_seconds=config.WATCH_RECENCY_SECONDS,
        source=config.DEFAULT_SOURCE,
        debounce_ms=config.WATCH_DEBOUNCE_MS,
    )

    app.state.channel = channel
    app.state.registry = registry
    app.state.pipeline = pipeline
    app.state.watcher = watcher

    # 2. Background tasks
    await registry.start()
    await watcher.start()

    yield

    logger.info("Pixel Office Bridge shutting down")
    await watcher.stop()
    channel.close()
    await registry.cleanup()


app = FastAPI(
    title="Pixel Office Bridge",
    description="Streams normalized coding-agent activity to Pixel Office clients",
    version=config.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(stream_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    watcher = getattr(app.state, "watcher", None)
    registry = getattr(app.state, "registry", None)
    channel = getattr(app.state, "channel", None)
    return {
        "status": "ok",
        "watcher": "running" if watcher and watcher.is_running else "stopped",
        "sessions": registry.get_active_count() if registry else 0,
        "subscribers": channel.subscriber_count if channel else 0,
    }


def main() -> None:
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level="debug" if config.VERBOSE else "info")


if __name__ == "__main__":
    main()
