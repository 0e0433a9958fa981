"""
WebSocket handler for real-time SOS sessions.

The connection holds the conversation state, so the client only sends
answers. Follow-ups are scheduled on the server as one-shot asyncio tasks;
any client turn arriving first makes the pending follow-up a no-op.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from ..core.errors import SupportError, Unauthenticated
from ..core.model import ConversationState, Credentials, TurnResult
from .session import SupportServices

logger = logging.getLogger(__name__)


class _Connection:
    def __init__(self, websocket: WebSocket, services: SupportServices):
        self.websocket = websocket
        self.services = services
        self.state: Optional[ConversationState] = None
        self.turn_counter = 0
        self.pending: Optional[asyncio.Task] = None

    async def send_turn(self, result: TurnResult) -> None:
        delay = self.services.settings.typing_delay_seconds
        await self.websocket.send_json({"type": "typing"})
        if delay > 0:
            await asyncio.sleep(delay)
        payload: Dict[str, Any] = result.to_dict()
        payload.pop("state", None)
        await self.websocket.send_json({"type": "assistant_message", **payload})
        if result.follow_up_after is not None:
            self.schedule_follow_up(result.follow_up_after)

    def schedule_follow_up(self, seconds: float) -> None:
        if self.pending is not None:
            self.pending.cancel()
        self.pending = asyncio.create_task(self._follow_up(seconds, self.turn_counter))

    async def _follow_up(self, seconds: float, scheduled_at_turn: int) -> None:
        await asyncio.sleep(seconds)
        self.pending = None
        if self.state is None or self.turn_counter != scheduled_at_turn:
            logger.info("[websocket] Follow-up superseded by a client turn")
            return
        try:
            await self._deliver_follow_up()
        except Exception as e:
            logger.warning(f"[websocket] Follow-up failed: {e!r}")

    async def _deliver_follow_up(self) -> None:
        try:
            result = self.services.dispatcher.follow_up(self.state)
        except SupportError as e:
            await self.websocket.send_json({"type": "error", "message": e.user_message})
            return
        if result is not None:
            await self.send_turn(result)

    def cancel(self) -> None:
        if self.pending is not None:
            self.pending.cancel()
            self.pending = None


async def websocket_endpoint(websocket: WebSocket, services: SupportServices):
    """
    WebSocket handler for one SOS conversation.

    Protocol:
        Client -> Server:
            {"type": "start", "token": "...", "client_id": "...", "kind": "craving|energy|null"}
            {"type": "user_message", "content": "..."}

        Server -> Client:
            {"type": "session", "client_id": "...", "coach_name": "..."}
            {"type": "typing"}
            {"type": "assistant_message", "message": "...", "message_type": "...",
             "next_step": "...", "options": [...], "interventions": [...],
             "follow_up_after": null, "is_complete": false}
            {"type": "error", "message": "..."}
    """
    await websocket.accept()
    conn = _Connection(websocket, services)

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "")

            if msg_type == "start":
                credentials = Credentials(
                    token=data.get("token"),
                    cached_client_id=data.get("client_id"),
                )
                try:
                    session = services.authenticate(credentials)
                except Unauthenticated as e:
                    await websocket.send_json({"type": "error", "message": e.user_message})
                    await websocket.close()
                    return

                conn.cancel()
                conn.state = services.new_state(session)
                await websocket.send_json({
                    "type": "session",
                    "client_id": session.client_id,
                    "coach_name": conn.state.coach_name,
                })

                kind = data.get("kind")
                try:
                    if kind:
                        engine = services.dispatcher.engine_for(kind)
                        await conn.send_turn(engine.start(conn.state))
                        await conn.send_turn(engine.advance(conn.state, None))
                    else:
                        await conn.send_turn(services.dispatcher.greeting(conn.state))
                except (SupportError, ValueError) as e:
                    message = e.user_message if isinstance(e, SupportError) else str(e)
                    await websocket.send_json({"type": "error", "message": message})

            elif msg_type == "user_message":
                if conn.state is None:
                    await websocket.send_json({"type": "error", "message": "Send a start message first"})
                    continue
                conn.turn_counter += 1
                try:
                    result = services.dispatcher.handle_turn(conn.state, data.get("content", ""))
                except (SupportError, ValueError) as e:
                    message = e.user_message if isinstance(e, SupportError) else str(e)
                    await websocket.send_json({"type": "error", "message": message})
                    continue
                await conn.send_turn(result)

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        conn.cancel()
        logger.info("[websocket] Client disconnected")
