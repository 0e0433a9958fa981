"""
ConversationEngine: drives one SOS flow, one turn at a time.

``state.step`` is the step the next turn enters. Entering a step:

  1. writes the answer to the previous step's question into the incident,
  2. logs the client's message,
  3. asks the generator for this step's coach line,
  4. logs the coach line and moves the cursor to the following step.

Persistence always happens before generation, so a generation failure
never loses what the client just told us.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import POLICY_STRICT, Settings
from ..content.interventions import is_fallback_intervention
from ..content.options import (
    ANOTHER_IDEA_LABEL,
    RATING_OPTIONS,
    SECOND_ROUND_OPTIONS,
)
from ..content.templates import (
    PROMPT_ANOTHER_IDEA,
    SESSION_COMPLETE_MESSAGE,
    render_fallback,
)
from ..llm.generator import ResponseGenerator
from ..llm.prompts import PromptContext
from .errors import GenerationFailed, NoEligibleInterventions, StoreError
from .flows import (
    ACTION_CHOOSE,
    ACTION_CLOSE,
    ACTION_RATE,
    ACTION_SELECT,
    SLOT_COMPLETED,
    SLOT_INTENSITY,
    SLOT_INTERVENTION_NAME,
    SLOT_RATING,
    FlowDefinition,
    StepSpec,
)
from .lifecycle import IncidentLifecycle
from .model import (
    MSG_OPTION_SELECTION,
    MSG_TACTIC_RESPONSE,
    MSG_TEXT,
    SENDER_CLIENT,
    SENDER_COACH,
    STEP_CLOSE,
    STEP_ENCOURAGEMENT,
    STEP_RATE_RESULT,
    STEP_SUGGEST_TACTIC,
    STEP_WELCOME,
    ConversationState,
    EffectivenessRecord,
    Intervention,
    Message,
    TurnResult,
)
from .selector import InterventionSelector, build_history
from .utils import Outcome, new_id, parse_rating, parse_yes_no, utcnow

logger = logging.getLogger(__name__)

SINGLE_OPTION_LINE = (
    "That's the only strategy set up for this situation right now. "
    "Want to give it a go?"
)

_ANOTHER_IDEA_WORDS = ("another", "different", "something else", "other", "no")


def wants_another_idea(answer: Optional[str]) -> bool:
    if not answer:
        return False
    text = answer.strip().lower()
    if text == ANOTHER_IDEA_LABEL.lower():
        return True
    if "another idea" in text:
        return True
    return any(text == w or text.startswith((w + " ", w + ",")) for w in _ANOTHER_IDEA_WORDS)


class ConversationEngine:
    """Generic table-driven engine; one instance per flow."""

    def __init__(
        self,
        flow: FlowDefinition,
        lifecycle: IncidentLifecycle,
        selector: Optional[InterventionSelector] = None,
        generator: Optional[ResponseGenerator] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.flow = flow
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.selector = selector or InterventionSelector(clock=clock)
        self.generator = generator
        self.settings = settings or Settings()
        self.clock = clock
        self.generation_policy = (
            self.settings.generation_policy(flow.kind) if settings else flow.generation_policy
        )

    @property
    def kind(self) -> str:
        return self.flow.kind

    # =========================================================================
    # PUBLIC
    # =========================================================================

    def start(self, state: ConversationState) -> TurnResult:
        """Greet the client; the next turn asks the first question."""
        state.kind = self.kind
        state.step = STEP_WELCOME
        self._ensure_incident(state)
        return self.advance(state, None)

    def open(self, state: ConversationState, opening: Optional[str] = None) -> TurnResult:
        """Skip the greeting and ask the flow's first question."""
        state.kind = self.kind
        state.step = self.flow.first_question
        self._ensure_incident(state)
        self._log_client(state, opening, MSG_OPTION_SELECTION)
        return self.advance(state, None)

    def advance(self, state: ConversationState, answer: Optional[str]) -> TurnResult:
        """Enter ``state.step`` with the client's answer to the previous question."""
        state.kind = self.kind
        self._ensure_incident(state)
        spec = self.flow.spec(state.step)
        answer = answer.strip() if isinstance(answer, str) else None

        if spec.action == ACTION_SELECT:
            return self._enter_suggestion(spec, state, answer)
        if spec.action == ACTION_CHOOSE:
            return self._enter_encouragement(spec, state, answer)
        if spec.action == ACTION_RATE:
            return self._enter_rating(spec, state, answer)
        if spec.action == ACTION_CLOSE:
            self._log_client(state, answer, spec.answer_type)
            return self._fixed(state, SESSION_COMPLETE_MESSAGE, STEP_CLOSE)

        self._persist_slot(state, spec.answer_slot, answer)
        self._log_client(state, answer, spec.answer_type)
        return self._emit(state, spec, spec.step)

    def follow_up(self, state: ConversationState) -> Optional[TurnResult]:
        """One-shot deferred re-invocation after the client went to try the strategy."""
        if state.step not in (self.flow.post_choice_step, STEP_RATE_RESULT) or state.resolved:
            logger.info(f"[ConversationEngine] Follow-up skipped at {state.step}")
            return None
        return self.advance(state, None)

    # =========================================================================
    # STEP HANDLERS
    # =========================================================================

    def _enter_suggestion(
        self, spec: StepSpec, state: ConversationState, answer: Optional[str]
    ) -> TurnResult:
        self._persist_slot(state, spec.answer_slot, answer)
        self._log_client(state, answer, spec.answer_type)

        outcome = self.selector.select(
            self._load_candidates(state), state.facts(), self._load_history(state)
        )
        if not outcome.ok:
            if isinstance(outcome.error, NoEligibleInterventions):
                return self._fixed(state, NoEligibleInterventions.user_message, STEP_CLOSE)
            raise outcome.error

        selection = outcome.value
        state.primary = selection.primary
        state.secondary = selection.secondary
        state.chosen = None
        state.second_round = False
        logger.info(f"[ConversationEngine] {self.kind} selection: {selection.reasoning}")
        return self._emit(
            state, spec, STEP_SUGGEST_TACTIC,
            intervention=selection.primary,
            interventions=[selection.primary],
            candidates=[selection.primary, selection.secondary],
        )

    def _enter_encouragement(
        self, spec: StepSpec, state: ConversationState, answer: Optional[str]
    ) -> TurnResult:
        if not state.second_round and wants_another_idea(answer):
            self._log_client(state, answer, spec.answer_type)
            state.second_round = True
            alternative = state.secondary
            if alternative is None or (state.primary and alternative.id == state.primary.id):
                return self._fixed(
                    state, SINGLE_OPTION_LINE, STEP_ENCOURAGEMENT,
                    message_type=MSG_TACTIC_RESPONSE,
                    options=list(SECOND_ROUND_OPTIONS),
                    interventions=[state.primary] if state.primary else [],
                )
            return self._emit(
                state, spec, PROMPT_ANOTHER_IDEA,
                next_step=STEP_ENCOURAGEMENT,
                message_type=MSG_TACTIC_RESPONSE,
                options=list(SECOND_ROUND_OPTIONS),
                intervention=alternative,
                interventions=[alternative],
            )

        chosen = state.secondary if state.second_round and state.secondary else state.primary
        if chosen is None:
            logger.warning("[ConversationEngine] No intervention on offer at encouragement")
            return self._fixed(state, NoEligibleInterventions.user_message, STEP_CLOSE)

        state.chosen = chosen
        fields: Dict[str, Any] = {self.flow.column(SLOT_INTERVENTION_NAME): chosen.name}
        if not is_fallback_intervention(chosen.id):
            fields["intervention_id"] = chosen.id
        self.lifecycle.update_incident(state.incident_id, fields)
        self._log_client(state, answer, spec.answer_type)

        result = self._emit(
            state, spec, STEP_ENCOURAGEMENT,
            intervention=chosen,
            follow_up_after=self.settings.follow_up_seconds(self.kind),
        )
        # Counted only once the turn went through; a failed turn is retried.
        if not is_fallback_intervention(chosen.id):
            self._record_use(state, chosen)
        return result

    def _enter_rating(
        self, spec: StepSpec, state: ConversationState, answer: Optional[str]
    ) -> TurnResult:
        rating = parse_rating(answer)
        if rating is None:
            if spec.answer_slot == SLOT_COMPLETED:
                completed = parse_yes_no(answer)
                if completed is not None:
                    self.lifecycle.update_incident(
                        state.incident_id, {self.flow.column(SLOT_COMPLETED): completed}
                    )
            self._log_client(state, answer, spec.answer_type)
            return self._emit(
                state, spec, STEP_RATE_RESULT,
                next_step=STEP_RATE_RESULT,
                options=list(RATING_OPTIONS),
                intervention=state.chosen,
            )

        state.rating = rating
        self.lifecycle.update_incident(state.incident_id, {self.flow.column(SLOT_RATING): rating})
        if not state.resolved:
            self.lifecycle.mark_resolved(state.incident_id)
            state.resolved = True
        self._log_client(state, answer, spec.answer_type)
        result = self._emit(
            state, spec, STEP_CLOSE,
            next_step=STEP_CLOSE,
            options=[],
            message_type=MSG_TEXT,
            intervention=state.chosen,
            metadata={"resolve_incident": True},
        )
        if state.chosen and not is_fallback_intervention(state.chosen.id):
            self._record_rating(state, state.chosen, rating)
        return result

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _ensure_incident(self, state: ConversationState) -> None:
        if not state.incident_id:
            state.incident_id = self.lifecycle.ensure_incident(state.session.client_id, self.kind)

    def _persist_slot(
        self, state: ConversationState, slot: Optional[str], answer: Optional[str]
    ) -> None:
        if not slot or not answer:
            return
        if slot == SLOT_INTENSITY:
            value: Any = parse_rating(answer)
            if value is None:
                logger.info(f"[ConversationEngine] Ignoring non-numeric {slot} answer {answer!r}")
                return
        else:
            value = answer
        setattr(state, slot, value)
        column = self.flow.column(slot)
        if column:
            self.lifecycle.update_incident(state.incident_id, {column: value})

    def _log_client(self, state: ConversationState, answer: Optional[str], message_type: str) -> None:
        if answer:
            self._append(state, SENDER_CLIENT, answer, message_type)

    def _append(
        self,
        state: ConversationState,
        sender: str,
        text: str,
        message_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        message = Message(
            id=new_id(),
            incident_id=state.incident_id or "",
            kind=self.kind,
            sender=sender,
            text=text,
            message_type=message_type,
            created_at=self.clock(),
            metadata=metadata or {},
        )
        try:
            self.store.append_message(message)
        except StoreError as e:
            logger.warning(f"[ConversationEngine] Could not log {sender} message: {e}")

    def _record_use(self, state: ConversationState, intervention: Intervention) -> None:
        try:
            self.store.record_intervention_use(
                state.session.client_id, intervention.id, self.kind, self.clock()
            )
        except StoreError as e:
            logger.warning(f"[ConversationEngine] Could not record use of {intervention.id}: {e}")

    def _record_rating(self, state: ConversationState, intervention: Intervention, rating: int) -> None:
        try:
            self.store.record_intervention_rating(
                state.session.client_id, intervention.id, self.kind, rating
            )
        except StoreError as e:
            logger.warning(f"[ConversationEngine] Could not record rating for {intervention.id}: {e}")

    def _load_candidates(self, state: ConversationState) -> List[Intervention]:
        try:
            return self.store.list_client_interventions(state.session.client_id, self.kind)
        except StoreError as e:
            logger.warning(f"[ConversationEngine] Could not load interventions, using defaults: {e}")
            return list(self.flow.fallback_interventions)

    def _load_history(self, state: ConversationState) -> List[EffectivenessRecord]:
        client_id = state.session.client_id
        try:
            records = self.store.list_client_intervention_records(client_id, self.kind)
            catalog = self.store.list_client_interventions(client_id, self.kind, active_only=False)
            incidents = self.store.list_incidents(client_id, self.kind)
        except StoreError as e:
            logger.warning(f"[ConversationEngine] Could not load effectiveness history: {e}")
            return []
        return build_history(
            records, catalog, incidents, self.clock(),
            recent_days=self.settings.recent_suggestion_days,
        )

    def _recent_messages(self, state: ConversationState) -> List[Message]:
        if not state.incident_id:
            return []
        try:
            messages = self.store.list_messages(self.kind, state.incident_id)
        except StoreError as e:
            logger.warning(f"[ConversationEngine] Could not load history: {e}")
            return []
        return messages[-self.settings.history_turns:]

    # =========================================================================
    # PHRASING
    # =========================================================================

    def _phrase(self, ctx: PromptContext) -> str:
        outcome: Outcome[str]
        if self.generator is None:
            outcome = Outcome.failure(GenerationFailed("No generator configured"))
        else:
            outcome = self.generator.generate(ctx)
        if outcome.ok:
            return outcome.value
        if self.generation_policy == POLICY_STRICT:
            logger.warning(f"[ConversationEngine] Generation failed at {ctx.prompt_key}: {outcome.error}")
            raise outcome.error if isinstance(outcome.error, GenerationFailed) else GenerationFailed(str(outcome.error))
        logger.info(f"[ConversationEngine] Using template for {ctx.kind}/{ctx.prompt_key}")
        return render_fallback(ctx.kind, ctx.prompt_key, ctx.template_values())

    def _emit(
        self,
        state: ConversationState,
        spec: StepSpec,
        prompt_key: str,
        next_step: Optional[str] = None,
        message_type: Optional[str] = None,
        options: Optional[Sequence[Any]] = None,
        intervention: Optional[Intervention] = None,
        interventions: Optional[List[Intervention]] = None,
        candidates: Optional[List[Intervention]] = None,
        follow_up_after: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TurnResult:
        ctx = PromptContext(
            kind=self.kind,
            prompt_key=prompt_key,
            client_name=state.client_name,
            coach_name=state.coach_name,
            coach_tone=state.coach_tone,
            trigger=state.trigger,
            intensity=state.intensity,
            location=state.location,
            context=state.context,
            intervention=intervention,
            candidates=candidates or [],
            rating=state.rating,
            history=self._recent_messages(state),
        )
        line = self._phrase(ctx)
        message_type = message_type or spec.message_type
        self._append(state, SENDER_COACH, line, message_type, metadata)

        state.step = next_step or spec.next_step
        return TurnResult(
            line=line,
            message_type=message_type,
            next_step=state.step,
            options=list(spec.options if options is None else options),
            interventions=interventions or [],
            follow_up_after=follow_up_after,
            state=state,
        )

    def _fixed(
        self,
        state: ConversationState,
        line: str,
        next_step: str,
        message_type: str = MSG_TEXT,
        options: Optional[List[Any]] = None,
        interventions: Optional[List[Intervention]] = None,
    ) -> TurnResult:
        """A coach line that is never generated."""
        self._append(state, SENDER_COACH, line, message_type)
        state.step = next_step
        return TurnResult(
            line=line,
            message_type=message_type,
            next_step=next_step,
            options=options or [],
            interventions=interventions or [],
            state=state,
        )
