"""
Step tables for the craving and energy flows.

A flow is data: for each step, which gathered slot the incoming answer
fills, which prompt phrases the coach line, the options offered and the
step that follows. ``ConversationEngine`` interprets these tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..config import POLICY_FALLBACK, POLICY_STRICT
from ..content import options as opts
from ..content.interventions import FALLBACK_CRAVING_INTERVENTIONS
from .model import (
    KIND_CRAVING,
    KIND_ENERGY,
    MSG_FOLLOWUP_RESPONSE,
    MSG_INTENSITY_RATING,
    MSG_LOCATION_SELECTION,
    MSG_OPTION_SELECTION,
    MSG_TACTIC_RESPONSE,
    MSG_TEXT,
    STEP_CHECK_ACTIVITY_COMPLETION,
    STEP_CLOSE,
    STEP_ENCOURAGEMENT,
    STEP_GAUGE_ENERGY,
    STEP_GAUGE_INTENSITY,
    STEP_IDENTIFY_APPROACH,
    STEP_IDENTIFY_BLOCKER,
    STEP_IDENTIFY_CRAVING,
    STEP_IDENTIFY_LOCATION,
    STEP_IDENTIFY_TRIGGER,
    STEP_RATE_RESULT,
    STEP_SUGGEST_TACTIC,
    STEP_WELCOME,
    Intervention,
)

# Step actions beyond "store the answer and phrase the prompt"
ACTION_SELECT = "select_interventions"
ACTION_CHOOSE = "choose_intervention"
ACTION_RATE = "rate_result"
ACTION_CLOSE = "close"

# Gathered slots; each flow maps them onto its incident columns
SLOT_TRIGGER = "trigger"
SLOT_INTENSITY = "intensity"
SLOT_LOCATION = "location"
SLOT_CONTEXT = "context"
SLOT_INTERVENTION_NAME = "intervention_name"
SLOT_RATING = "rating"
SLOT_COMPLETED = "completed"


@dataclass(frozen=True)
class StepSpec:
    step: str
    next_step: str
    message_type: str = MSG_TEXT
    options: Tuple[Any, ...] = ()
    answer_slot: Optional[str] = None
    answer_type: str = MSG_TEXT
    action: Optional[str] = None

    @property
    def prompt_key(self) -> str:
        return self.step


@dataclass
class FlowDefinition:
    kind: str
    first_question: str
    post_choice_step: str
    steps: Dict[str, StepSpec]
    field_map: Dict[str, str]
    generation_policy: str = POLICY_FALLBACK
    fallback_interventions: List[Intervention] = field(default_factory=list)

    def spec(self, step: str) -> StepSpec:
        try:
            return self.steps[step]
        except KeyError:
            raise ValueError(f"Step {step!r} is not part of the {self.kind} flow") from None

    def column(self, slot: str) -> Optional[str]:
        return self.field_map.get(slot)


def _table(*specs: StepSpec) -> Dict[str, StepSpec]:
    return {s.step: s for s in specs}


# =============================================================================
# CRAVING
# =============================================================================

CRAVING_FLOW = FlowDefinition(
    kind=KIND_CRAVING,
    first_question=STEP_IDENTIFY_CRAVING,
    post_choice_step=STEP_RATE_RESULT,
    generation_policy=POLICY_FALLBACK,
    fallback_interventions=FALLBACK_CRAVING_INTERVENTIONS,
    field_map={
        SLOT_TRIGGER: "trigger_food",
        SLOT_INTENSITY: "initial_intensity",
        SLOT_LOCATION: "location",
        SLOT_CONTEXT: "context",
        SLOT_INTERVENTION_NAME: "tactic_used",
        SLOT_RATING: "result_rating",
    },
    steps=_table(
        StepSpec(STEP_WELCOME, next_step=STEP_IDENTIFY_CRAVING),
        StepSpec(
            STEP_IDENTIFY_CRAVING, next_step=STEP_GAUGE_INTENSITY,
            message_type=MSG_OPTION_SELECTION, options=tuple(opts.FOOD_OPTIONS),
        ),
        StepSpec(
            STEP_GAUGE_INTENSITY, next_step=STEP_IDENTIFY_LOCATION,
            message_type=MSG_INTENSITY_RATING, options=tuple(opts.RATING_OPTIONS),
            answer_slot=SLOT_TRIGGER, answer_type=MSG_OPTION_SELECTION,
        ),
        StepSpec(
            STEP_IDENTIFY_LOCATION, next_step=STEP_IDENTIFY_TRIGGER,
            message_type=MSG_LOCATION_SELECTION, options=tuple(opts.CRAVING_LOCATION_OPTIONS),
            answer_slot=SLOT_INTENSITY, answer_type=MSG_INTENSITY_RATING,
        ),
        StepSpec(
            STEP_IDENTIFY_TRIGGER, next_step=STEP_SUGGEST_TACTIC,
            message_type=MSG_OPTION_SELECTION, options=tuple(opts.TRIGGER_OPTIONS),
            answer_slot=SLOT_LOCATION, answer_type=MSG_LOCATION_SELECTION,
        ),
        StepSpec(
            STEP_SUGGEST_TACTIC, next_step=STEP_ENCOURAGEMENT,
            message_type=MSG_TACTIC_RESPONSE, options=tuple(opts.TACTIC_OPTIONS),
            answer_slot=SLOT_CONTEXT, answer_type=MSG_OPTION_SELECTION,
            action=ACTION_SELECT,
        ),
        StepSpec(
            STEP_ENCOURAGEMENT, next_step=STEP_RATE_RESULT,
            answer_type=MSG_TACTIC_RESPONSE, action=ACTION_CHOOSE,
        ),
        StepSpec(
            STEP_RATE_RESULT, next_step=STEP_CLOSE,
            message_type=MSG_INTENSITY_RATING, options=tuple(opts.RATING_OPTIONS),
            answer_type=MSG_FOLLOWUP_RESPONSE, action=ACTION_RATE,
        ),
        StepSpec(STEP_CLOSE, next_step=STEP_CLOSE, action=ACTION_CLOSE),
    ),
)


# =============================================================================
# ENERGY
# =============================================================================

ENERGY_FLOW = FlowDefinition(
    kind=KIND_ENERGY,
    first_question=STEP_IDENTIFY_BLOCKER,
    post_choice_step=STEP_CHECK_ACTIVITY_COMPLETION,
    generation_policy=POLICY_STRICT,
    field_map={
        SLOT_TRIGGER: "blocker_type",
        SLOT_INTENSITY: "energy_level",
        SLOT_LOCATION: "location",
        SLOT_CONTEXT: "approach",
        SLOT_INTERVENTION_NAME: "activity_type",
        SLOT_RATING: "post_energy_level",
        SLOT_COMPLETED: "activity_completed",
    },
    steps=_table(
        StepSpec(STEP_WELCOME, next_step=STEP_IDENTIFY_BLOCKER),
        StepSpec(
            STEP_IDENTIFY_BLOCKER, next_step=STEP_GAUGE_ENERGY,
            message_type=MSG_OPTION_SELECTION, options=tuple(opts.BLOCKER_OPTIONS),
        ),
        StepSpec(
            STEP_GAUGE_ENERGY, next_step=STEP_IDENTIFY_LOCATION,
            message_type=MSG_INTENSITY_RATING, options=tuple(opts.RATING_OPTIONS),
            answer_slot=SLOT_TRIGGER, answer_type=MSG_OPTION_SELECTION,
        ),
        StepSpec(
            STEP_IDENTIFY_LOCATION, next_step=STEP_IDENTIFY_APPROACH,
            message_type=MSG_LOCATION_SELECTION, options=tuple(opts.ENERGY_LOCATION_OPTIONS),
            answer_slot=SLOT_INTENSITY, answer_type=MSG_INTENSITY_RATING,
        ),
        StepSpec(
            STEP_IDENTIFY_APPROACH, next_step=STEP_SUGGEST_TACTIC,
            message_type=MSG_OPTION_SELECTION, options=tuple(opts.APPROACH_OPTIONS),
            answer_slot=SLOT_LOCATION, answer_type=MSG_LOCATION_SELECTION,
        ),
        StepSpec(
            STEP_SUGGEST_TACTIC, next_step=STEP_ENCOURAGEMENT,
            message_type=MSG_TACTIC_RESPONSE, options=tuple(opts.TACTIC_OPTIONS),
            answer_slot=SLOT_CONTEXT, answer_type=MSG_OPTION_SELECTION,
            action=ACTION_SELECT,
        ),
        StepSpec(
            STEP_ENCOURAGEMENT, next_step=STEP_CHECK_ACTIVITY_COMPLETION,
            answer_type=MSG_TACTIC_RESPONSE, action=ACTION_CHOOSE,
        ),
        StepSpec(
            STEP_CHECK_ACTIVITY_COMPLETION, next_step=STEP_RATE_RESULT,
            message_type=MSG_OPTION_SELECTION, options=tuple(opts.COMPLETION_OPTIONS),
            answer_type=MSG_FOLLOWUP_RESPONSE,
        ),
        StepSpec(
            STEP_RATE_RESULT, next_step=STEP_CLOSE,
            message_type=MSG_INTENSITY_RATING, options=tuple(opts.RATING_OPTIONS),
            answer_slot=SLOT_COMPLETED, answer_type=MSG_FOLLOWUP_RESPONSE,
            action=ACTION_RATE,
        ),
        StepSpec(STEP_CLOSE, next_step=STEP_CLOSE, action=ACTION_CLOSE),
    ),
)


FLOWS = {
    KIND_CRAVING: CRAVING_FLOW,
    KIND_ENERGY: ENERGY_FLOW,
}


def get_flow(kind: str) -> FlowDefinition:
    try:
        return FLOWS[kind]
    except KeyError:
        raise ValueError(f"Unknown support kind: {kind!r}") from None
