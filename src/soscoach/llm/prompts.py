"""
Prompt construction for coach lines.

Each step gets a short instruction and a token ceiling. The system prompt
carries the coach persona, tone and everything the client has shared so far.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..content.templates import PROMPT_ANOTHER_IDEA
from ..core.model import (
    DEFAULT_TONE,
    KIND_ENERGY,
    SENDER_COACH,
    STEP_CHECK_ACTIVITY_COMPLETION,
    STEP_CLOSE,
    STEP_ENCOURAGEMENT,
    STEP_GAUGE_ENERGY,
    STEP_GAUGE_INTENSITY,
    STEP_IDENTIFY_APPROACH,
    STEP_IDENTIFY_BLOCKER,
    STEP_IDENTIFY_CRAVING,
    STEP_IDENTIFY_LOCATION,
    STEP_IDENTIFY_STRUGGLE,
    STEP_IDENTIFY_TRIGGER,
    STEP_RATE_RESULT,
    STEP_SUGGEST_TACTIC,
    STEP_WELCOME,
    Intervention,
    Message,
)

TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 60

TONE_STYLES = {
    "professional": "Use a professional, clear and supportive tone.",
    "friendly": "Use a warm, friendly and encouraging tone.",
    "motivational": "Use an energetic, motivational and upbeat tone.",
    "gentle": "Use a gentle, calm and reassuring tone.",
}

MAX_TOKENS = {
    STEP_IDENTIFY_STRUGGLE: 40,
    STEP_WELCOME: 40,
    STEP_IDENTIFY_CRAVING: 35,
    STEP_IDENTIFY_BLOCKER: 40,
    STEP_GAUGE_INTENSITY: 40,
    STEP_GAUGE_ENERGY: 40,
    STEP_IDENTIFY_LOCATION: 40,
    STEP_IDENTIFY_TRIGGER: 50,
    STEP_IDENTIFY_APPROACH: 50,
    STEP_SUGGEST_TACTIC: 80,
    PROMPT_ANOTHER_IDEA: 80,
    STEP_ENCOURAGEMENT: 60,
    STEP_CHECK_ACTIVITY_COMPLETION: 40,
    STEP_RATE_RESULT: 50,
    STEP_CLOSE: 60,
}


@dataclass
class PromptContext:
    """Everything the generator may use to phrase one coach line."""

    kind: str
    prompt_key: str
    client_name: str = ""
    coach_name: str = ""
    coach_tone: str = DEFAULT_TONE
    trigger: Optional[str] = None
    intensity: Optional[int] = None
    location: Optional[str] = None
    context: Optional[str] = None
    intervention: Optional[Intervention] = None
    candidates: List[Intervention] = field(default_factory=list)
    rating: Optional[int] = None
    history: List[Message] = field(default_factory=list)

    def template_values(self) -> Dict[str, Any]:
        return {
            "name": self.client_name,
            "coach_name": self.coach_name,
            "trigger": self.trigger,
            "intensity": self.intensity,
            "location": self.location,
            "context": self.context,
            "intervention_name": self.intervention.name if self.intervention else None,
            "intervention_description": self.intervention.description if self.intervention else None,
            "rating": self.rating,
        }


# ── Step instructions ───────────────────────────────────────────────────────

_CRAVING_INSTRUCTIONS = {
    STEP_WELCOME: "Greet {name} warmly and acknowledge they're having a craving. One or two short sentences, no question yet.",
    STEP_IDENTIFY_CRAVING: "Ask what food or drink they're craving right now. One short question.",
    STEP_GAUGE_INTENSITY: "They're craving {trigger}. Acknowledge it and ask how intense the craving is from 1 to 10.",
    STEP_IDENTIFY_LOCATION: "Their craving intensity is {intensity}/10. Briefly validate it and ask where they are right now.",
    STEP_IDENTIFY_TRIGGER: "They're at {location}. Ask what they think triggered this craving.",
    STEP_SUGGEST_TACTIC: (
        "Suggest this strategy: {intervention_name} ({intervention_description}). "
        "Tie it to their craving for {trigger} triggered by {context}, and ask if they'll try it."
    ),
    PROMPT_ANOTHER_IDEA: (
        "They asked for another idea. Offer this alternative: {intervention_name} "
        "({intervention_description}) and ask if they'll try it."
    ),
    STEP_ENCOURAGEMENT: (
        "They chose {intervention_name}. Encourage them, restate the steps briefly "
        "({intervention_description}), and say you'll check back in 15 minutes."
    ),
    STEP_CHECK_ACTIVITY_COMPLETION: "Ask whether they were able to try {intervention_name}.",
    STEP_RATE_RESULT: "Check back about {intervention_name} and ask them to rate from 1 to 10 how well it helped with the craving.",
    STEP_CLOSE: "They rated the strategy {rating}/10. Thank them, respond to the rating, and close the session warmly.",
}

_ENERGY_INSTRUCTIONS = {
    STEP_WELCOME: "Greet {name} warmly and acknowledge their energy is low. One or two short sentences, no question yet.",
    STEP_IDENTIFY_BLOCKER: "Ask what's getting in the way of moving right now. One short question.",
    STEP_GAUGE_ENERGY: "Their blocker is: {trigger}. Acknowledge it and ask them to rate their energy from 1 to 10.",
    STEP_IDENTIFY_LOCATION: "Their energy is {intensity}/10. Validate it briefly and ask where they are right now.",
    STEP_IDENTIFY_APPROACH: "They're at {location}. Ask what usually helps them get moving.",
    STEP_SUGGEST_TACTIC: (
        "Suggest this activity: {intervention_name} ({intervention_description}). "
        "Connect it to their blocker ({trigger}) and what helps them ({context}); ask if they'll try it."
    ),
    PROMPT_ANOTHER_IDEA: (
        "They asked for another idea. Offer this alternative: {intervention_name} "
        "({intervention_description}) and ask if they'll try it."
    ),
    STEP_ENCOURAGEMENT: (
        "They chose {intervention_name}. Encourage them with energy, restate the steps "
        "briefly ({intervention_description}), and say you'll check in shortly."
    ),
    STEP_CHECK_ACTIVITY_COMPLETION: "Check in and ask whether they managed to do {intervention_name}.",
    STEP_RATE_RESULT: "Ask them to rate their energy now from 1 to 10.",
    STEP_CLOSE: "Their energy is now {rating}/10. Celebrate any movement, respond to the rating, and close warmly.",
}


class _Blanks(dict):
    def __missing__(self, key: str) -> str:
        return "unknown"


def _instruction(kind: str, prompt_key: str, values: Dict[str, Any]) -> str:
    table = _ENERGY_INSTRUCTIONS if kind == KIND_ENERGY else _CRAVING_INSTRUCTIONS
    template = table.get(prompt_key, "Respond briefly and supportively.")
    filled = _Blanks({k: v for k, v in values.items() if v not in (None, "")})
    return template.format_map(filled)


def build_system_prompt(ctx: PromptContext) -> str:
    coach = ctx.coach_name or (
        "a supportive fitness coach" if ctx.kind == KIND_ENERGY
        else "a supportive nutrition coach"
    )
    tone = TONE_STYLES.get(ctx.coach_tone, TONE_STYLES[DEFAULT_TONE])
    parts = [
        f"You are {coach}, helping a client through an SOS moment in a chat. {tone}",
        "Reply with one or two short sentences. No lists, no emojis unless natural, "
        "never mention that you are an AI.",
    ]

    facts = []
    if ctx.client_name:
        facts.append(f"Client name: {ctx.client_name}")
    if ctx.trigger:
        label = "Blocker" if ctx.kind == KIND_ENERGY else "Craving"
        facts.append(f"{label}: {ctx.trigger}")
    if ctx.intensity is not None:
        label = "Energy level" if ctx.kind == KIND_ENERGY else "Intensity"
        facts.append(f"{label}: {ctx.intensity}/10")
    if ctx.location:
        facts.append(f"Location: {ctx.location}")
    if ctx.context:
        label = "What helps" if ctx.kind == KIND_ENERGY else "Trigger"
        facts.append(f"{label}: {ctx.context}")
    if ctx.intervention:
        facts.append(f"Current strategy: {ctx.intervention.name} ({ctx.intervention.description})")
    if ctx.candidates:
        names = ", ".join(c.name for c in ctx.candidates)
        facts.append(f"Strategies on offer: {names}")
    if facts:
        parts.append("\n## What the client has shared\n" + "\n".join(f"- {f}" for f in facts))

    if ctx.history:
        lines = []
        for msg in ctx.history:
            speaker = "Coach" if msg.sender == SENDER_COACH else "Client"
            lines.append(f"{speaker}: {msg.text}")
        parts.append("\n## Conversation so far\n" + "\n".join(lines))

    return "\n".join(parts)


def build_prompt(ctx: PromptContext) -> Tuple[str, str, int]:
    """Return (system prompt, user prompt, max tokens) for one coach line."""
    user = _instruction(ctx.kind, ctx.prompt_key, ctx.template_values())
    return build_system_prompt(ctx), user, MAX_TOKENS.get(ctx.prompt_key, DEFAULT_MAX_TOKENS)
