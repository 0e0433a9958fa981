"""
REST API routes for SOS support sessions.

Conversation state travels with the client, so every call re-resolves who
is asking and checks that the state and incident belong to them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Cookie, HTTPException, Query, Response

from ..core.errors import GenerationFailed, IncidentCreationFailed, Unauthenticated
from ..core.model import KINDS, ClientSession, ConversationState, Credentials, Incident, TurnResult
from .schemas import (
    FollowUpRequest,
    MessageData,
    StartSessionRequest,
    StartSessionResponse,
    StatusResponse,
    TurnRequest,
    TurnResponse,
)
from .session import SupportServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

CLIENT_COOKIE = "sos_client_id"
SESSION_COOKIE = "sos_session"
NOT_YOURS = "This conversation belongs to a different client."

# Global services (created lazily; tests replace them)
services: Optional[SupportServices] = None


def get_services() -> SupportServices:
    global services
    if services is None:
        services = SupportServices()
    return services


def set_services(replacement: Optional[SupportServices]) -> None:
    global services
    services = replacement


async def _typing_pause(svc: SupportServices) -> None:
    if svc.settings.typing_delay_seconds > 0:
        await asyncio.sleep(svc.settings.typing_delay_seconds)


def _authenticate(
    svc: SupportServices,
    token: Optional[str],
    cached_client_id: Optional[str],
    auth_client_id: Optional[str],
) -> ClientSession:
    credentials = Credentials(
        token=token,
        cached_client_id=cached_client_id,
        auth_client_id=auth_client_id,
    )
    try:
        return svc.authenticate(credentials)
    except Unauthenticated as e:
        logger.info(f"[routes] {e}")
        raise HTTPException(401, e.user_message)


def _owned_incident(
    svc: SupportServices,
    session: ClientSession,
    incident_id: str,
    kind: Optional[str] = None,
) -> Incident:
    incident = svc.store.get_incident(incident_id)
    if incident is None or (kind is not None and incident.kind != kind):
        raise HTTPException(404, f"Incident {incident_id} not found")
    if incident.client_id != session.client_id:
        logger.warning(f"[routes] Client {session.client_id} denied incident {incident_id}")
        raise HTTPException(403, NOT_YOURS)
    return incident


def _state_for(
    svc: SupportServices, data: Dict[str, Any], session: ClientSession
) -> ConversationState:
    """Rebuild posted state, rejecting state minted for another client."""
    state = ConversationState.from_dict(data)
    if state.session.client_id != session.client_id:
        logger.warning(
            f"[routes] State for {state.session.client_id!r} posted by {session.client_id}"
        )
        raise HTTPException(403, NOT_YOURS)
    if state.incident_id:
        _owned_incident(svc, session, state.incident_id, state.kind)
    return state


def _run_turn(fn, *args) -> Optional[TurnResult]:
    """Call into the dispatcher, translating domain errors to HTTP errors."""
    try:
        return fn(*args)
    except IncidentCreationFailed as e:
        logger.warning(f"[routes] {e}")
        raise HTTPException(503, e.user_message)
    except GenerationFailed as e:
        logger.warning(f"[routes] {e}")
        raise HTTPException(502, e.user_message)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/status", response_model=StatusResponse)
async def status():
    """Check system status including LLM availability."""
    svc = get_services()
    return StatusResponse(
        llm_available=svc.llm_available,
        store=type(svc.store).__name__,
    )


@router.post("/sos/start", response_model=StartSessionResponse)
async def start_session(
    response: Response,
    request: StartSessionRequest = StartSessionRequest(),
    sos_client_id: Optional[str] = Cookie(None),
    sos_session: Optional[str] = Cookie(None),
):
    """Resolve who the client is and open an SOS conversation."""
    svc = get_services()
    session = _authenticate(svc, request.token, request.client_id or sos_client_id, sos_session)

    response.set_cookie(CLIENT_COOKIE, session.client_id, httponly=True, samesite="lax")
    state = svc.new_state(session)

    if request.kind is None:
        turns = [svc.dispatcher.greeting(state)]
    else:
        engine = svc.dispatcher.engine_for(request.kind)
        welcome = _run_turn(engine.start, state)
        first = _run_turn(engine.advance, state, None)
        turns = [welcome, first]

    await _typing_pause(svc)
    return StartSessionResponse(
        client_id=session.client_id,
        coach_name=state.coach_name,
        turns=[TurnResponse.from_result(t) for t in turns],
    )


@router.post("/sos/turn", response_model=TurnResponse)
async def turn(
    request: TurnRequest,
    sos_client_id: Optional[str] = Cookie(None),
    sos_session: Optional[str] = Cookie(None),
):
    """Process one client turn."""
    svc = get_services()
    session = _authenticate(svc, request.token, sos_client_id, sos_session)
    state = _state_for(svc, request.state, session)
    result = _run_turn(svc.dispatcher.handle_turn, state, request.user_message)
    await _typing_pause(svc)
    return TurnResponse.from_result(result)


@router.post("/sos/follow-up", response_model=Optional[TurnResponse])
async def follow_up(
    request: FollowUpRequest,
    sos_client_id: Optional[str] = Cookie(None),
    sos_session: Optional[str] = Cookie(None),
):
    """Deferred check-in after the client went to try a strategy."""
    svc = get_services()
    session = _authenticate(svc, request.token, sos_client_id, sos_session)
    state = _state_for(svc, request.state, session)
    result = _run_turn(svc.dispatcher.follow_up, state)
    if result is None:
        return None
    return TurnResponse.from_result(result)


@router.get("/sos/{kind}/{incident_id}/messages", response_model=List[MessageData])
async def list_messages(
    kind: str,
    incident_id: str,
    token: Optional[str] = Query(None),
    sos_client_id: Optional[str] = Cookie(None),
    sos_session: Optional[str] = Cookie(None),
):
    """Message log for one of the caller's incidents, oldest first."""
    if kind not in KINDS:
        raise HTTPException(404, f"Unknown support kind {kind}")
    svc = get_services()
    session = _authenticate(svc, token, sos_client_id, sos_session)
    _owned_incident(svc, session, incident_id, kind)
    return [MessageData.from_message(m) for m in svc.store.list_messages(kind, incident_id)]
