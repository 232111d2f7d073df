"""WebSocket endpoint — live page events and markdown previews for editors.

Learn: Each editor connects to /ws/pages?token=JWT. The handler:
1. Authenticates via the JWT query param (required outside development)
2. Subscribes to the pages Redis channel, if Redis is available
3. Forwards every page.saved event to the client
4. Answers client messages:
   {"type": "ping"}                      → {"type": "pong"}
   {"type": "markdown", "body": "# Hi"}  → {"type": "markdown", "html": "..."}
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from wikiserver.auth.jwt import TokenError, get_token_issuer
from wikiserver.config import settings
from wikiserver.realtime.pubsub import PAGES_CHANNEL, get_redis
from wikiserver.rendering import render_markdown

logger = structlog.get_logger()
router = APIRouter()


def handle_client_message(raw: str) -> dict | None:
    """Build the reply to one client message (None: nothing to send)."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(msg, dict):
        return None

    if msg.get("type") == "ping":
        return {"type": "pong"}
    if msg.get("type") == "markdown":
        body = msg.get("body")
        if not isinstance(body, str):
            return {"type": "error", "error": "markdown body must be a string"}
        return {"type": "markdown", "html": render_markdown(body)}
    return None


@router.websocket("/ws/pages")
async def pages_websocket(websocket: WebSocket):
    """WebSocket endpoint for live page events.

    Learn: Two concurrent tasks run:
    1. Redis listener — reads from pub/sub, sends to WebSocket
    2. Client listener — answers pings and markdown preview requests

    When either side finishes, both tasks are cancelled cleanly.
    """
    # ── Authentication ──────────────────────────────────────
    token = websocket.query_params.get("token")

    if not token and settings.environment != "development":
        await websocket.close(code=4001, reason="Authentication required")
        return

    if token:
        try:
            get_token_issuer().verify(token)
        except TokenError:
            await websocket.close(code=4001, reason="Invalid or expired token")
            return

    # ── Connection accepted ─────────────────────────────────
    await websocket.accept()

    try:
        pubsub = get_redis().pubsub()
        await pubsub.subscribe(PAGES_CHANNEL)
    except RuntimeError:
        pubsub = None
        logger.info("realtime.ws_without_redis")

    async def redis_listener():
        """Forward Redis messages to the WebSocket client."""
        try:
            async for message in pubsub.listen():
                if message["type"] == "message":
                    await websocket.send_text(message["data"])
        except asyncio.CancelledError:
            pass

    async def client_listener():
        try:
            while True:
                reply = handle_client_message(await websocket.receive_text())
                if reply is not None:
                    await websocket.send_text(json.dumps(reply))
        except (WebSocketDisconnect, asyncio.CancelledError):
            pass

    tasks = [asyncio.create_task(client_listener())]
    if pubsub is not None:
        tasks.append(asyncio.create_task(redis_listener()))

    try:
        # Wait for either to finish (usually client disconnect)
        done, pending = await asyncio.wait(
            tasks,
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        if pubsub is not None:
            await pubsub.unsubscribe(PAGES_CHANNEL)
            await pubsub.aclose()
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
