"""
Static coach lines used when language-model phrasing is unavailable.

Every (kind, step) pair has a template. Placeholders are filled from the
turn context; missing values fall back to neutral wording so a rendered
line is never empty.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..core.model import (
    KIND_CRAVING,
    KIND_ENERGY,
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
)

PROMPT_ANOTHER_IDEA = "another_idea"

SESSION_COMPLETE_MESSAGE = "Session complete. If you need more support, just start a new SOS!"

STRUGGLE_PROMPT = (
    "Hi {name}! I'm here to help you get the support you need. "
    "What are you struggling with right now?"
)

STRUGGLE_REPROMPT = (
    "Sorry {name}, I didn't catch that. Are you having a craving, "
    "or do you need an energy boost?"
)

GENERIC_FALLBACK = "I'm here with you. Let's keep going."

PLACEHOLDER_DEFAULTS = {
    "name": "there",
    "coach_name": "your coach",
    "trigger": "that",
    "intensity": "that",
    "location": "where you are",
    "context": "this",
    "intervention_name": "this strategy",
    "intervention_description": "Give it a few minutes and see how you feel.",
    "rating": "that",
}


# =============================================================================
# CRAVING
# =============================================================================

CRAVING_TEMPLATES = {
    STEP_WELCOME: (
        "Hi {name}, I see you're having a craving moment. "
        "Let's work through this together."
    ),
    STEP_IDENTIFY_CRAVING: "What's calling your name? (tap or type)",
    STEP_GAUGE_INTENSITY: "How intense is the pull right now? (1-10)",
    STEP_IDENTIFY_LOCATION: "Where are you right now?",
    STEP_IDENTIFY_TRIGGER: "What do you think triggered this craving?",
    STEP_SUGGEST_TACTIC: (
        "Here's something that could help: {intervention_name}. "
        "{intervention_description} Want to give it a try?"
    ),
    PROMPT_ANOTHER_IDEA: (
        "No problem, here's another option: {intervention_name}. "
        "{intervention_description}"
    ),
    STEP_ENCOURAGEMENT: (
        "Great choice! {intervention_name}: {intervention_description}\n"
        "After your strategy, take a moment to notice how you feel. "
        "I'll check back with you in 15 minutes."
    ),
    STEP_CHECK_ACTIVITY_COMPLETION: "Were you able to try {intervention_name}?",
    STEP_RATE_RESULT: (
        "Hi again! How did that strategy work for you? "
        "On a scale of 1-10, how well did it help with the craving?"
    ),
    STEP_CLOSE: (
        "Thanks for sharing, {name}. Every craving you work through "
        "makes the next one easier."
    ),
}


# =============================================================================
# ENERGY
# =============================================================================

ENERGY_TEMPLATES = {
    STEP_WELCOME: (
        "Hi {name}, sounds like your energy is low right now. "
        "Let's find something small that gets you moving."
    ),
    STEP_IDENTIFY_BLOCKER: "What's getting in the way of moving right now?",
    STEP_GAUGE_ENERGY: "How's your energy right now? (1-10)",
    STEP_IDENTIFY_LOCATION: "Where are you right now?",
    STEP_IDENTIFY_APPROACH: "What usually helps you get going?",
    STEP_SUGGEST_TACTIC: (
        "Let's try this: {intervention_name}. "
        "{intervention_description} Are you up for it?"
    ),
    PROMPT_ANOTHER_IDEA: (
        "Sure, here's a different idea: {intervention_name}. "
        "{intervention_description}"
    ),
    STEP_ENCOURAGEMENT: (
        "You've got this! {intervention_name}: {intervention_description}\n"
        "Go for it and I'll check in with you shortly."
    ),
    STEP_CHECK_ACTIVITY_COMPLETION: (
        "Checking in! Did you get a chance to try {intervention_name}?"
    ),
    STEP_RATE_RESULT: "How's your energy now? (1-10)",
    STEP_CLOSE: (
        "Thanks for checking in, {name}. Every bit of movement counts. "
        "Reach out whenever you need another boost."
    ),
}

SHARED_TEMPLATES = {
    STEP_IDENTIFY_STRUGGLE: STRUGGLE_PROMPT,
}

TEMPLATES = {
    KIND_CRAVING: CRAVING_TEMPLATES,
    KIND_ENERGY: ENERGY_TEMPLATES,
}


class _SafeValues(dict):
    def __missing__(self, key: str) -> str:
        return PLACEHOLDER_DEFAULTS.get(key, "")


def render_fallback(
    kind: Optional[str],
    prompt_key: str,
    values: Optional[Dict[str, Any]] = None,
) -> str:
    """Render the static line for a step. Never returns an empty string."""
    table = TEMPLATES.get(kind or "", {})
    template = table.get(prompt_key) or SHARED_TEMPLATES.get(prompt_key) or GENERIC_FALLBACK

    safe = _SafeValues()
    for key, value in (values or {}).items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        safe[key] = value

    text = template.format_map(safe).strip()
    return text or GENERIC_FALLBACK
