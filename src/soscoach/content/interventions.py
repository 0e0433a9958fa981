"""
Starter intervention catalogs and demo seeding.

Coaches normally curate their own catalogs. These defaults give the demo
server something to work with. The ``fallback-`` entries stand in for a
craving client's catalog when it can't be read.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import List

from ..core.model import (
    KIND_CRAVING,
    KIND_ENERGY,
    Client,
    ClientIntervention,
    Coach,
    Intervention,
)
from ..store.base import IncidentStore

logger = logging.getLogger(__name__)

FALLBACK_ID_PREFIX = "fallback-"


def _craving(iid: str, name: str, description: str, category: str, tags=None) -> Intervention:
    return Intervention(
        id=iid, name=name, description=description, kind=KIND_CRAVING,
        category=category, context_tags=tags,
    )


def _energy(iid: str, name: str, description: str, category: str, tags=None) -> Intervention:
    return Intervention(
        id=iid, name=name, description=description, kind=KIND_ENERGY,
        category=category, context_tags=tags,
    )


FALLBACK_CRAVING_INTERVENTIONS: List[Intervention] = [
    _craving(
        "fallback-1", "Deep breathing",
        "Take 5 deep breaths, inhaling for 4 counts and exhaling for 6 counts.",
        "mindfulness",
    ),
    _craving(
        "fallback-2", "Drink water",
        "Drink a full glass of water slowly, focusing on the sensation.",
        "physical",
    ),
    _craving(
        "fallback-3", "Take a walk",
        "Take a short 5-minute walk to redirect your attention.",
        "movement",
    ),
]


DEMO_CRAVING_INTERVENTIONS: List[Intervention] = [
    _craving(
        "craving-breathing", "Box breathing",
        "Breathe in for 4, hold for 4, out for 4, hold for 4. Repeat four times.",
        "mindfulness", ["universal"],
    ),
    _craving(
        "craving-tea", "Make a cup of tea",
        "Brew a hot tea and sip it slowly before deciding anything.",
        "substitution", ["home", "work"],
    ),
    _craving(
        "craving-delay", "Ten-minute delay",
        "Set a timer for 10 minutes. If you still want it afterwards, have a small portion mindfully.",
        "delay", ["universal"],
    ),
    _craving(
        "craving-leave-aisle", "Walk past the aisle",
        "Finish your list first and skip the snack aisle entirely.",
        "environment", ["store"],
    ),
    _craving(
        "craving-music", "Sing it out",
        "Put on your favourite song and sing along until it ends.",
        "distraction", ["car"],
    ),
]


DEMO_ENERGY_INTERVENTIONS: List[Intervention] = [
    _energy(
        "energy-two-minutes", "Two-minute start",
        "Commit to just two minutes of movement. Stopping after that is allowed.",
        "starting small", ["universal"],
    ),
    _energy(
        "energy-playlist", "Power song",
        "Play one upbeat song and move however you like for its length.",
        "music", ["home", "gym", "outdoors"],
    ),
    _energy(
        "energy-stairs", "Take the stairs",
        "Walk two flights of stairs at an easy pace.",
        "movement", ["work", "public"],
    ),
    _energy(
        "energy-stretch", "Desk stretch",
        "Stand up, reach overhead, then fold forward. Five slow rounds.",
        "mobility", ["work", "home"],
    ),
    _energy(
        "energy-text-friend", "Text a friend",
        "Message a friend that you're about to move. Tell them when you're done.",
        "connection", None,
    ),
]


DEMO_COACH = Coach(id="coach-demo", full_name="Sam Rivera", tone_preset="friendly")
DEMO_CLIENT = Client(
    id="client-demo",
    coach_id=DEMO_COACH.id,
    full_name="Alex Morgan",
    email="alex@example.com",
    access_token="demo-token",
)


def seed_demo_data(store: IncidentStore) -> Client:
    """Create the demo coach, client and catalogs, assigning everything."""
    store.add_coach(DEMO_COACH)
    store.add_client(DEMO_CLIENT)
    for intervention in DEMO_CRAVING_INTERVENTIONS + DEMO_ENERGY_INTERVENTIONS:
        intervention = dataclasses.replace(intervention, coach_id=DEMO_COACH.id)
        store.add_intervention(intervention)
        store.assign_intervention(ClientIntervention(
            client_id=DEMO_CLIENT.id,
            intervention_id=intervention.id,
            kind=intervention.kind,
        ))
    logger.info(
        f"[Seed] Demo client {DEMO_CLIENT.id} with "
        f"{len(DEMO_CRAVING_INTERVENTIONS)} craving and "
        f"{len(DEMO_ENERGY_INTERVENTIONS)} energy interventions"
    )
    return DEMO_CLIENT


def is_fallback_intervention(intervention_id: str) -> bool:
    return intervention_id.startswith(FALLBACK_ID_PREFIX)
