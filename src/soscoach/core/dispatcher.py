"""
UnifiedDispatcher: asks what the client is struggling with, then hands the
conversation to the craving or energy engine.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from ..config import Settings
from ..content.options import STRUGGLE_OPTIONS
from ..content.templates import STRUGGLE_REPROMPT, render_fallback
from ..llm.generator import ResponseGenerator
from .engine import ConversationEngine
from .flows import get_flow
from .lifecycle import IncidentLifecycle
from .model import (
    KIND_CRAVING,
    KIND_ENERGY,
    MSG_OPTION_SELECTION,
    STEP_IDENTIFY_STRUGGLE,
    ConversationState,
    TurnResult,
)
from .selector import InterventionSelector
from .utils import utcnow

logger = logging.getLogger(__name__)


def detect_kind(user_input: Optional[str]) -> Optional[str]:
    """Map a struggle answer (option label, option value or free text) to a kind."""
    if not user_input:
        return None
    text = user_input.strip().lower()
    if "craving" in text:
        return KIND_CRAVING
    if "energy" in text:
        return KIND_ENERGY
    return None


class UnifiedDispatcher:
    def __init__(
        self,
        lifecycle: IncidentLifecycle,
        selector: Optional[InterventionSelector] = None,
        generator: Optional[ResponseGenerator] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.lifecycle = lifecycle
        self.selector = selector
        self.generator = generator
        self.settings = settings
        self.clock = clock
        self._engines: Dict[str, ConversationEngine] = {}

    def engine_for(self, kind: str) -> ConversationEngine:
        """Build the engine for ``kind`` on first use."""
        if kind not in self._engines:
            self._engines[kind] = ConversationEngine(
                get_flow(kind),
                self.lifecycle,
                selector=self.selector,
                generator=self.generator,
                settings=self.settings,
                clock=self.clock,
            )
        return self._engines[kind]

    def greeting(self, state: ConversationState) -> TurnResult:
        state.kind = None
        state.step = STEP_IDENTIFY_STRUGGLE
        line = render_fallback(None, STEP_IDENTIFY_STRUGGLE, {"name": state.client_name})
        return TurnResult(
            line=line,
            message_type=MSG_OPTION_SELECTION,
            next_step=STEP_IDENTIFY_STRUGGLE,
            options=list(STRUGGLE_OPTIONS),
            state=state,
        )

    def handle_turn(self, state: ConversationState, user_input: Optional[str]) -> TurnResult:
        if state.step == STEP_IDENTIFY_STRUGGLE:
            kind = detect_kind(user_input)
            if kind is None:
                logger.info(f"[UnifiedDispatcher] Could not tell support type from {user_input!r}")
                line = STRUGGLE_REPROMPT.format(name=state.client_name or "there")
                return TurnResult(
                    line=line,
                    message_type=MSG_OPTION_SELECTION,
                    next_step=STEP_IDENTIFY_STRUGGLE,
                    options=list(STRUGGLE_OPTIONS),
                    state=state,
                )
            logger.info(f"[UnifiedDispatcher] Client {state.session.client_id} chose {kind}")
            state.incident_id = None
            return self.engine_for(kind).open(state, user_input)

        if state.kind is None:
            raise ValueError("Support type must be chosen before the conversation can continue")
        return self.engine_for(state.kind).advance(state, user_input)

    def follow_up(self, state: ConversationState) -> Optional[TurnResult]:
        if state.kind is None:
            return None
        return self.engine_for(state.kind).follow_up(state)
