"""
Data model for SOS support sessions.

Steps, kinds and message types are module-level string constants so they
serialize as-is through the API and the store. Records are plain
dataclasses; ``ConversationState`` is the cursor the UI round-trips on
every turn.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple


# =============================================================================
# KINDS, STEPS, MESSAGE TYPES
# =============================================================================

KIND_CRAVING = "craving"
KIND_ENERGY = "energy"
KINDS = (KIND_CRAVING, KIND_ENERGY)

STEP_IDENTIFY_STRUGGLE = "identify_struggle"
STEP_WELCOME = "welcome"
STEP_IDENTIFY_CRAVING = "identify_craving"
STEP_IDENTIFY_BLOCKER = "identify_blocker"
STEP_GAUGE_INTENSITY = "gauge_intensity"
STEP_GAUGE_ENERGY = "gauge_energy"
STEP_IDENTIFY_LOCATION = "identify_location"
STEP_IDENTIFY_TRIGGER = "identify_trigger"
STEP_IDENTIFY_APPROACH = "identify_approach"
STEP_SUGGEST_TACTIC = "suggest_tactic"
STEP_ENCOURAGEMENT = "encouragement"
STEP_CHECK_ACTIVITY_COMPLETION = "check_activity_completion"
STEP_RATE_RESULT = "rate_result"
STEP_CLOSE = "close"

SENDER_COACH = "coach"
SENDER_CLIENT = "client"

MSG_TEXT = "text"
MSG_OPTION_SELECTION = "option_selection"
MSG_INTENSITY_RATING = "intensity_rating"
MSG_LOCATION_SELECTION = "location_selection"
MSG_TACTIC_RESPONSE = "tactic_response"
MSG_FOLLOWUP_RESPONSE = "followup_response"

TONE_PRESETS = ("professional", "friendly", "motivational", "gentle")
DEFAULT_TONE = "friendly"


def normalize_tone(tone: Optional[str]) -> str:
    return tone if tone in TONE_PRESETS else DEFAULT_TONE


# =============================================================================
# INCIDENTS
# =============================================================================

@dataclass
class Incident:
    """One SOS episode. Subclasses add the kind-specific fields."""

    id: str
    client_id: str
    created_at: datetime
    day_of_week: int
    time_of_day: str
    resolved_at: Optional[datetime] = None
    intervention_id: Optional[str] = None

    KIND: ClassVar[str] = ""
    PATCHABLE: ClassVar[Tuple[str, ...]] = ()

    @property
    def kind(self) -> str:
        return self.KIND

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def apply(self, fields: Dict[str, Any]) -> List[str]:
        """
        Sparse patch. ``None`` values and unknown names are skipped; falsy
        values such as ``False`` and ``0`` are real values.
        Returns the names that were written.
        """
        applied = []
        for name, value in fields.items():
            if value is None or name not in self.PATCHABLE:
                continue
            setattr(self, name, value)
            applied.append(name)
        return applied

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind
        for key in ("created_at", "resolved_at"):
            if data.get(key) is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class CravingIncident(Incident):
    trigger_food: Optional[str] = None
    initial_intensity: Optional[int] = None
    location: Optional[str] = None
    context: Optional[str] = None
    tactic_used: Optional[str] = None
    result_rating: Optional[int] = None
    notify_coach: bool = False

    KIND: ClassVar[str] = KIND_CRAVING
    PATCHABLE: ClassVar[Tuple[str, ...]] = (
        "trigger_food",
        "initial_intensity",
        "location",
        "context",
        "intervention_id",
        "tactic_used",
        "result_rating",
        "notify_coach",
        "resolved_at",
    )


@dataclass
class MovementIncident(Incident):
    blocker_type: Optional[str] = None
    energy_level: Optional[int] = None
    location: Optional[str] = None
    approach: Optional[str] = None
    activity_type: Optional[str] = None
    activity_completed: Optional[bool] = None
    duration_minutes: Optional[int] = None
    post_energy_level: Optional[int] = None

    KIND: ClassVar[str] = KIND_ENERGY
    PATCHABLE: ClassVar[Tuple[str, ...]] = (
        "blocker_type",
        "energy_level",
        "location",
        "approach",
        "intervention_id",
        "activity_type",
        "activity_completed",
        "duration_minutes",
        "post_energy_level",
        "resolved_at",
    )


INCIDENT_CLASSES = {
    KIND_CRAVING: CravingIncident,
    KIND_ENERGY: MovementIncident,
}


# =============================================================================
# MESSAGES, PEOPLE, INTERVENTIONS
# =============================================================================

@dataclass
class Message:
    id: str
    incident_id: str
    kind: str
    sender: str
    text: str
    message_type: str = MSG_TEXT
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "incident_id": self.incident_id,
            "kind": self.kind,
            "sender": self.sender,
            "text": self.text,
            "message_type": self.message_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "metadata": dict(self.metadata),
        }


@dataclass
class Coach:
    id: str
    full_name: str
    avatar_url: Optional[str] = None
    tone_preset: str = DEFAULT_TONE


@dataclass
class Client:
    id: str
    coach_id: str
    full_name: str
    email: Optional[str] = None
    status: str = "active"
    access_token: Optional[str] = None

    @property
    def first_name(self) -> str:
        return self.full_name.split()[0] if self.full_name.strip() else ""


@dataclass
class Intervention:
    id: str
    name: str
    description: str
    kind: str = KIND_CRAVING
    category: Optional[str] = None
    context_tags: Optional[List[str]] = None
    coach_id: Optional[str] = None
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "context_tags": list(self.context_tags) if self.context_tags else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], kind: str = KIND_CRAVING) -> "Intervention":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            description=data.get("description", ""),
            kind=data.get("kind", kind),
            category=data.get("category"),
            context_tags=data.get("context_tags"),
        )


@dataclass
class ClientIntervention:
    """A client's assignment of one catalog intervention."""

    client_id: str
    intervention_id: str
    kind: str
    active: bool = True
    favorite: bool = False
    times_used: int = 0
    last_used_at: Optional[datetime] = None
    effectiveness_rating: Optional[int] = None
    coach_notes: Optional[str] = None


@dataclass
class Credentials:
    """Identity evidence presented at the boundary, in priority order."""

    token: Optional[str] = None
    cached_client_id: Optional[str] = None
    auth_client_id: Optional[str] = None


@dataclass
class ClientSession:
    client_id: str
    coach_id: str
    token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"client_id": self.client_id, "coach_id": self.coach_id, "token": self.token}


# =============================================================================
# SELECTION
# =============================================================================

@dataclass
class EffectivenessRecord:
    intervention_id: str
    name: str
    effectiveness: int
    context: str
    times_suggested: int
    last_suggested_at: Optional[datetime] = None
    recently_suggested: bool = False


@dataclass
class SituationFacts:
    """What the client has told us so far, used for ranking."""

    kind: str
    trigger: Optional[str] = None
    intensity: Optional[int] = None
    location: Optional[str] = None
    context: Optional[str] = None


@dataclass
class Selection:
    primary: Intervention
    secondary: Intervention
    reasoning: str = ""


# =============================================================================
# CONVERSATION STATE & TURN RESULT
# =============================================================================

@dataclass
class ConversationState:
    """Cursor and cache for one SOS conversation."""

    session: ClientSession
    kind: Optional[str] = None
    step: str = STEP_WELCOME
    incident_id: Optional[str] = None
    client_name: str = ""
    coach_name: str = ""
    coach_tone: str = DEFAULT_TONE
    trigger: Optional[str] = None
    intensity: Optional[int] = None
    location: Optional[str] = None
    context: Optional[str] = None
    primary: Optional[Intervention] = None
    secondary: Optional[Intervention] = None
    chosen: Optional[Intervention] = None
    second_round: bool = False
    resolved: bool = False
    rating: Optional[int] = None

    def facts(self) -> SituationFacts:
        return SituationFacts(
            kind=self.kind or KIND_CRAVING,
            trigger=self.trigger,
            intensity=self.intensity,
            location=self.location,
            context=self.context,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "kind": self.kind,
            "step": self.step,
            "incident_id": self.incident_id,
            "client_name": self.client_name,
            "coach_name": self.coach_name,
            "coach_tone": self.coach_tone,
            "trigger": self.trigger,
            "intensity": self.intensity,
            "location": self.location,
            "context": self.context,
            "primary": self.primary.to_dict() if self.primary else None,
            "secondary": self.secondary.to_dict() if self.secondary else None,
            "chosen": self.chosen.to_dict() if self.chosen else None,
            "second_round": self.second_round,
            "resolved": self.resolved,
            "rating": self.rating,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationState":
        kind = data.get("kind")
        session = data.get("session") or {}

        def _intervention(key: str) -> Optional[Intervention]:
            raw = data.get(key)
            return Intervention.from_dict(raw, kind or KIND_CRAVING) if raw else None

        return cls(
            session=ClientSession(
                client_id=session.get("client_id", ""),
                coach_id=session.get("coach_id", ""),
                token=session.get("token"),
            ),
            kind=kind,
            step=data.get("step") or STEP_WELCOME,
            incident_id=data.get("incident_id"),
            client_name=data.get("client_name") or "",
            coach_name=data.get("coach_name") or "",
            coach_tone=normalize_tone(data.get("coach_tone")),
            trigger=data.get("trigger"),
            intensity=data.get("intensity"),
            location=data.get("location"),
            context=data.get("context"),
            primary=_intervention("primary"),
            secondary=_intervention("secondary"),
            chosen=_intervention("chosen"),
            second_round=bool(data.get("second_round", False)),
            resolved=bool(data.get("resolved", False)),
            rating=data.get("rating"),
        )


@dataclass
class TurnResult:
    """What one turn hands back to the UI."""

    line: str
    message_type: str
    next_step: str
    options: List[Any] = field(default_factory=list)
    interventions: List[Intervention] = field(default_factory=list)
    follow_up_after: Optional[float] = None
    state: Optional[ConversationState] = None

    @property
    def is_complete(self) -> bool:
        return self.next_step == STEP_CLOSE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.line,
            "message_type": self.message_type,
            "next_step": self.next_step,
            "options": list(self.options),
            "interventions": [i.to_dict() for i in self.interventions],
            "follow_up_after": self.follow_up_after,
            "is_complete": self.is_complete,
            "state": self.state.to_dict() if self.state else None,
        }
