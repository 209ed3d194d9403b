"""State snapshot and live event stream API."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from bridge import config
from bridge.channel import EventChannel, Subscription
from bridge.events import serialize_event
from bridge.session_registry import SessionRegistry

logger = logging.getLogger("bridge.stream")

stream_router = APIRouter(tags=["stream"])


def _get_registry(request: Request) -> SessionRegistry:
    registry = getattr(request.app.state, "registry", None)
    if not registry:
        raise HTTPException(status_code=503, detail="Session registry not initialized")
    return registry


def _welcome_message() -> dict[str, Any]:
    return {
        "type": "welcome",
        "payload": {
            "message": "Connected to Pixel Office Bridge",
            "version": config.VERSION,
            "authRequired": False,
        },
    }


def _state_message(registry: SessionRegistry) -> dict[str, Any]:
    return {"type": "state", "payload": registry.get_state().model_dump(mode="json")}


@stream_router.get("/api/state")
def get_state(request: Request):
    """Point-in-time snapshot of every tracked session."""
    return _get_registry(request).get_state()


async def handle_client_message(websocket: WebSocket, registry: SessionRegistry, data: str) -> None:
    try:
        message = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Ignoring unparseable client message")
        return
    if not isinstance(message, dict):
        logger.debug("Ignoring non-object client message")
        return

    message_type = message.get("type")
    if message_type == "ping":
        await websocket.send_json({"type": "pong"})
    elif message_type == "get_state":
        await websocket.send_json(_state_message(registry))
    elif message_type == "subscribe":
        logger.debug(f"Client subscribed to: {message.get('sessionId') or 'all'}")
    else:
        logger.debug(f"Unknown message type: {message_type}")


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json({"type": "event", "payload": serialize_event(event)})
        if event.type == "activity":
            continue
        detail = getattr(event, "tool", None) or getattr(event, "action", None)
        if detail:
            logger.debug(f"-> {event.type}: {getattr(detail, 'value', detail)}")
        else:
            logger.debug(f"-> {event.type}")


async def _receive_messages(websocket: WebSocket, registry: SessionRegistry) -> None:
    while True:
        data = await websocket.receive_text()
        await handle_client_message(websocket, registry, data)


@stream_router.websocket("/ws")
async def stream_events(websocket: WebSocket):
    """Push every normalized event to the client; answer ping and get_state."""
    channel: EventChannel = getattr(websocket.app.state, "channel", None)
    registry: SessionRegistry = getattr(websocket.app.state, "registry", None)

    await websocket.accept()
    if channel is None or registry is None:
        await websocket.close(code=1011, reason="Bridge not initialized")
        return

    subscription = channel.subscribe()
    logger.info(f"Client connected ({channel.subscriber_count} total)")
    tasks: list[asyncio.Task] = []
    try:
        await websocket.send_json(_welcome_message())
        tasks = [
            asyncio.create_task(_forward_events(websocket, subscription)),
            asyncio.create_task(_receive_messages(websocket, registry)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Client stream error: {error}")
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass
            except Exception as e:
                logger.debug(f"Client task ended with error: {e}")
        subscription.unsubscribe()
        logger.info(f"Client disconnected ({channel.subscriber_count} total)")
