"""
Runtime settings for the SOS coach service.

Values come from environment variables, after the first ``.env`` file found
walking up from the working directory has been loaded into ``os.environ``
(variables already set in the environment win).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

POLICY_FALLBACK = "fallback"
POLICY_STRICT = "strict"
GENERATION_POLICIES = (POLICY_FALLBACK, POLICY_STRICT)


def load_dotenv() -> None:
    """Load .env file into os.environ (only vars not already set)."""
    for parent in [Path.cwd()] + list(Path(__file__).resolve().parents):
        env_path = parent / ".env"
        if env_path.exists():
            for line in env_path.read_text().splitlines():
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key, value = key.strip(), value.strip().strip('"').strip("'")
                if key and key not in os.environ:
                    os.environ[key] = value
            break


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Settings] {name}={raw!r} is not a number, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_policy(name: str, default: str) -> str:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw not in GENERATION_POLICIES:
        logger.warning(f"[Settings] {name}={raw!r} is not one of {GENERATION_POLICIES}, using {default}")
        return default
    return raw


@dataclass
class Settings:
    """Tunable knobs for sessions, timing and storage."""

    active_window_minutes: int = 60
    craving_follow_up_seconds: float = 900.0
    energy_follow_up_seconds: float = 30.0
    typing_delay_seconds: float = 1.0
    craving_generation_policy: str = POLICY_FALLBACK
    energy_generation_policy: str = POLICY_STRICT
    recent_suggestion_days: int = 7
    history_turns: int = 10
    database_url: str = ""
    seed_demo: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            active_window_minutes=_env_int("SOS_ACTIVE_WINDOW_MINUTES", 60),
            craving_follow_up_seconds=_env_float("SOS_CRAVING_FOLLOW_UP_SECONDS", 900.0),
            energy_follow_up_seconds=_env_float("SOS_ENERGY_FOLLOW_UP_SECONDS", 30.0),
            typing_delay_seconds=_env_float("SOS_TYPING_DELAY_SECONDS", 1.0),
            craving_generation_policy=_env_policy("SOS_CRAVING_GENERATION_POLICY", POLICY_FALLBACK),
            energy_generation_policy=_env_policy("SOS_ENERGY_GENERATION_POLICY", POLICY_STRICT),
            recent_suggestion_days=_env_int("SOS_RECENT_SUGGESTION_DAYS", 7),
            history_turns=_env_int("SOS_HISTORY_TURNS", 10),
            database_url=os.environ.get("SOS_DATABASE_URL", "").strip(),
            seed_demo=_env_bool("SOS_SEED_DEMO", True),
        )

    def follow_up_seconds(self, kind: str) -> float:
        return self.energy_follow_up_seconds if kind == "energy" else self.craving_follow_up_seconds

    def generation_policy(self, kind: str) -> str:
        return self.energy_generation_policy if kind == "energy" else self.craving_generation_policy

    def to_dict(self) -> Dict[str, object]:
        return {
            "active_window_minutes": self.active_window_minutes,
            "craving_follow_up_seconds": self.craving_follow_up_seconds,
            "energy_follow_up_seconds": self.energy_follow_up_seconds,
            "typing_delay_seconds": self.typing_delay_seconds,
            "craving_generation_policy": self.craving_generation_policy,
            "energy_generation_policy": self.energy_generation_policy,
            "recent_suggestion_days": self.recent_suggestion_days,
            "history_turns": self.history_turns,
            "database_url": self.database_url or "memory",
        }
