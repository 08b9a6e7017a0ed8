"""
WebSocket relay for the flow-debugging UI (non-production only).
"""

import asyncio
import json
from typing import Optional
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from loguru import logger
from idp.debug.broker import DebugEventBroker, Subscription

router = APIRouter()


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        await websocket.send_json(
            {"type": "event", "event": event, "sessionId": subscription.session_id}
        )


@router.websocket("/ws/debug")
async def debug_socket(websocket: WebSocket, session_id: Optional[str] = Query(None, alias="sessionId")):
    broker: DebugEventBroker = websocket.app.state.debug_broker
    await websocket.accept()
    subscription = None
    forwarder = None
    if session_id:
        subscription = broker.subscribe(session_id)
        await websocket.send_json({"type": "history", "events": broker.history(session_id)})
        forwarder = asyncio.create_task(_forward(websocket, subscription))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Ignoring malformed debug message")
                continue
            if not isinstance(message, dict) or message.get("type") != "event":
                continue
            target = message.get("sessionId") or session_id
            if target:
                broker.publish(target, message.get("event"))
    except WebSocketDisconnect:
        pass
    finally:
        if forwarder:
            forwarder.cancel()
        if subscription:
            broker.unsubscribe(subscription)
