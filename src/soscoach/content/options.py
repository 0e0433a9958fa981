"""
Fixed option menus offered at each step, and the location-to-tag map used
to filter interventions.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def _opt(emoji: str, name: str, value: Optional[str] = None) -> Dict[str, Any]:
    opt: Dict[str, Any] = {"emoji": emoji, "name": name}
    if value is not None:
        opt["value"] = value
    return opt


# ── Dispatcher ──────────────────────────────────────────────────────────────

STRUGGLE_OPTIONS = [
    _opt("🍰", "I'm having a craving", "craving"),
    _opt("⚡", "I need an energy boost", "energy"),
]

# ── Craving flow ────────────────────────────────────────────────────────────

FOOD_OPTIONS = [
    _opt("🍫", "Chocolate"),
    _opt("🍕", "Pizza"),
    _opt("🍸", "Drink"),
    _opt("🍦", "Ice Cream"),
    _opt("🍪", "Cookies"),
]

CRAVING_LOCATION_OPTIONS = [
    _opt("🏠", "Home"),
    _opt("🏢", "Work"),
    _opt("🚗", "Car"),
    _opt("🛒", "Store"),
    _opt("🍽️", "Restaurant"),
]

TRIGGER_OPTIONS = [
    _opt("😐", "Boredom"),
    _opt("😣", "Stress"),
    _opt("👀", "Saw food"),
    _opt("🔁", "Habit"),
    _opt("👥", "Social pressure"),
]

# ── Energy flow ─────────────────────────────────────────────────────────────

BLOCKER_OPTIONS = [
    _opt("😴", "Too tired"),
    _opt("⏰", "No time"),
    _opt("😑", "Not motivated"),
    _opt("🎯", "Don't know what to do"),
    _opt("😰", "Feeling overwhelmed"),
    _opt("🚫", "Don't feel like it"),
]

ENERGY_LOCATION_OPTIONS = [
    _opt("🏠", "Home"),
    _opt("🏢", "Work"),
    _opt("🏋️", "Gym"),
    _opt("🌳", "Outdoors"),
    _opt("🚗", "Car/Transit"),
    _opt("🛒", "Public space"),
]

APPROACH_OPTIONS = [
    _opt("🎵", "Music or external energy"),
    _opt("🤏", "Starting really small"),
    _opt("🎯", "Having a clear plan"),
    _opt("🤝", "Connecting with someone"),
    _opt("🌱", "Changing my environment"),
    _opt("🧠", "Shifting how I think about it"),
]

COMPLETION_OPTIONS = [
    _opt("✅", "Yes, I did it!"),
    _opt("❌", "Not this time"),
]

# ── Shared ──────────────────────────────────────────────────────────────────

ACCEPT_LABEL = "Yes, I'll try it"
ANOTHER_IDEA_LABEL = "Another idea"

TACTIC_OPTIONS = [
    _opt("👍", ACCEPT_LABEL),
    _opt("💡", ANOTHER_IDEA_LABEL),
]

SECOND_ROUND_OPTIONS = [
    _opt("👍", ACCEPT_LABEL),
]

RATING_OPTIONS = [{"name": str(n), "value": str(n)} for n in range(1, 11)]


# ── Location tags ───────────────────────────────────────────────────────────

UNIVERSAL_TAG = "universal"

LOCATION_TAGS = {
    "home": "home",
    "work": "work",
    "car": "car",
    "store": "store",
    "restaurant": "restaurant",
    "gym": "gym",
    "friend's house": "social",
    "hotel/travel": "travel",
    "outdoors": "outdoors",
    "car/transit": "car",
    "public space": "public",
}


def location_tag(location: Optional[str]) -> str:
    """Map a location answer to its context tag (``universal`` when unknown)."""
    if not location:
        return UNIVERSAL_TAG
    return LOCATION_TAGS.get(location.strip().lower(), UNIVERSAL_TAG)


def option_label(option: Any) -> str:
    if isinstance(option, dict):
        return str(option.get("name", ""))
    return str(option)
