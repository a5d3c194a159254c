"""Chat router providing WebSocket and HTTP endpoints.

This module provides:
    - WebSocket /ws/chat: Presence and 1:1 messaging events
    - GET /conversations: Conversation between two identities
    - GET /presence: Current presence snapshot

Protocol Message Types (client -> server):
    - announce_presence: {identity, displayName}
    - watch_presence: {}
    - logout: {}
    - join_conversation: {identityA, identityB}
    - send_message: {sender, recipient, body?, fileDescriptor?, messageId?}
    - delete_message: {messageId, requesterIdentity}

Protocol Message Types (server -> client):
    - connected, presence_snapshot, conversation_joined,
      message_received, message_deleted, error
"""
import json
import logging

from fastapi import APIRouter, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from parley.errors import InvalidEvent, ParleyError

from .engine import DeliveryEngine
from .schemas import (
    AnnouncePresenceEvent,
    DeleteMessageEvent,
    JoinConversationEvent,
    SendMessageEvent,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SEND_FAILED = "Message could not be sent"
# Same text for unknown and foreign messages so clients cannot probe ids.
DELETE_FAILED = "Message could not be deleted"


def get_engine(request: Request) -> DeliveryEngine:
    return request.app.state.engine


@router.get("/conversations")
async def get_conversation(
    request: Request,
    identityA: str = Query(..., description="First participant"),
    identityB: str = Query(..., description="Second participant"),
) -> JSONResponse:
    """Get the conversation between two identities.

    A pair that never chatted returns the same shape with no messages.

    Example:
        GET /conversations?identityA=alice@example.com&identityB=bob@example.com
    """
    try:
        conversation = await get_engine(request).fetch_conversation(identityA, identityB)
    except ParleyError as exc:
        logger.error(f"[Conversations] Fetch failed for {identityA}/{identityB}: {exc.message}")
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    return JSONResponse(conversation.model_dump(mode="json"))


@router.get("/presence")
async def get_presence(request: Request) -> dict:
    """Get the identities currently online, in announcement order."""
    return {"users": get_engine(request).presence()}


def _check_asserted_identity(engine: DeliveryEngine, connection_id: str, claimed: str) -> None:
    # SECURITY: once a connection announced an identity it may only act as it
    announced = engine.identity_of(connection_id)
    if announced is not None and claimed != announced:
        raise InvalidEvent(
            f"Connection {connection_id} announced {announced} but claimed {claimed}"
        )


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for presence and 1:1 messaging.

    Protocol Flow:
        1. Client connects -> Server sends: {type: "connected", connectionId}
        2. Client sends: {type: "announce_presence", identity, displayName}
           -> Broadcast room receives: {type: "presence_snapshot", users: [...]}
        3. Client sends: {type: "join_conversation", identityA, identityB}
           -> Client receives: {type: "conversation_joined", roomKey}
        4. Client sends: {type: "send_message", sender, recipient, body}
           -> Pair room receives: {type: "message_received", message: {...}}
        5. Client sends: {type: "delete_message", messageId, requesterIdentity}
           -> Pair room receives: {type: "message_deleted", messageId}
        6. On disconnect -> presence entry and room memberships are removed
           and the new snapshot is broadcast.
    """
    engine: DeliveryEngine = websocket.app.state.engine
    hub = engine.hub

    connection_id = await hub.accept(websocket)
    logger.info(f"[WS] Connection accepted: {connection_id}")

    try:
        await websocket.send_json({"type": "connected", "connectionId": connection_id})

        # Main message loop
        while True:
            try:
                raw = await websocket.receive_text()
            except KeyError:
                # Binary frame: the ASGI message carries "bytes" and no "text"
                await websocket.send_json({"type": "error", "error": "Expected a text frame"})
                continue
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "error": "Invalid JSON"})
                continue
            message_type = data.get("type") if isinstance(data, dict) else None
            logger.debug("[WS] %s received: type=%s", connection_id, message_type)

            # --- Presence events (malformed ones are ignored silently) ---
            if message_type == "announce_presence":
                try:
                    event = AnnouncePresenceEvent(**data)
                except (ValidationError, TypeError):
                    logger.debug(f"[WS] Malformed announce from {connection_id}")
                    continue
                await engine.announce_presence(connection_id, event.identity, event.displayName)
                continue

            if message_type == "watch_presence":
                await engine.watch_presence(connection_id)
                continue

            if message_type == "logout":
                await engine.logout(connection_id)
                continue

            # --- Conversation events ---
            if message_type == "join_conversation":
                try:
                    event = JoinConversationEvent(**data)
                    key = engine.join_conversation(connection_id, event.identityA, event.identityB)
                except (ValidationError, TypeError, InvalidEvent):
                    await websocket.send_json({
                        "type": "error",
                        "error": "Invalid join_conversation: identityA and identityB are required"
                    })
                    continue
                await websocket.send_json({"type": "conversation_joined", "roomKey": key})
                continue

            if message_type == "send_message":
                try:
                    event = SendMessageEvent(**data)
                    _check_asserted_identity(engine, connection_id, event.sender)
                except (ValidationError, TypeError, InvalidEvent) as exc:
                    logger.warning(f"[WS] Rejected send_message from {connection_id}: {exc}")
                    await websocket.send_json({"type": "error", "error": SEND_FAILED})
                    continue

                message = await engine.on_send(
                    event.sender,
                    event.recipient,
                    body=event.body,
                    file=event.fileDescriptor,
                    message_id=event.messageId,
                )
                if message is None:
                    await websocket.send_json({"type": "error", "error": SEND_FAILED})
                continue

            if message_type == "delete_message":
                try:
                    event = DeleteMessageEvent(**data)
                    _check_asserted_identity(engine, connection_id, event.requesterIdentity)
                except (ValidationError, TypeError, InvalidEvent) as exc:
                    logger.warning(f"[WS] Rejected delete_message from {connection_id}: {exc}")
                    await websocket.send_json({"type": "error", "error": DELETE_FAILED})
                    continue

                if not await engine.on_delete(event.messageId, event.requesterIdentity):
                    await websocket.send_json({"type": "error", "error": DELETE_FAILED})
                continue

            await websocket.send_json({
                "type": "error",
                "error": f"Unknown event type: {message_type}"
            })

    except WebSocketDisconnect:
        logger.info(f"[WS] Connection closed: {connection_id}")
    finally:
        await engine.disconnect(connection_id)
