"""Shared fixtures: a fixed clock, a seeded store and scripted LLM stand-ins."""

from datetime import datetime, timedelta, timezone

import pytest

from soscoach.config import Settings
from soscoach.content.interventions import DEMO_CLIENT, seed_demo_data
from soscoach.core.dispatcher import UnifiedDispatcher
from soscoach.core.engine import ConversationEngine
from soscoach.core.errors import GenerationFailed
from soscoach.core.flows import CRAVING_FLOW, ENERGY_FLOW
from soscoach.core.lifecycle import IncidentLifecycle
from soscoach.core.model import ClientSession, ConversationState
from soscoach.core.selector import InterventionSelector
from soscoach.core.utils import Outcome
from soscoach.store.memory import InMemoryIncidentStore


class FakeClock:
    """Monday 2026-03-02 08:05 UTC, advanced by hand."""

    def __init__(self):
        self.now = datetime(2026, 3, 2, 8, 5, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class ScriptedGenerator:
    """Returns ``[kind:prompt_key]`` lines, or fails when told to."""

    def __init__(self, fail=False, on_generate=None):
        self.fail = fail
        self.on_generate = on_generate
        self.calls = []

    @property
    def is_available(self):
        return True

    def generate(self, ctx):
        self.calls.append(ctx)
        if self.on_generate is not None:
            self.on_generate(ctx)
        if self.fail:
            return Outcome.failure(GenerationFailed("scripted failure"))
        return Outcome.success(f"[{ctx.kind}:{ctx.prompt_key}]")


class ScriptedRanker:
    def __init__(self, outcome=None):
        self.outcome = outcome
        self.calls = []

    def rank(self, request, candidates):
        self.calls.append((request, list(candidates)))
        return self.outcome


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    s = InMemoryIncidentStore()
    seed_demo_data(s)
    return s


@pytest.fixture
def settings():
    return Settings(typing_delay_seconds=0.0)


@pytest.fixture
def lifecycle(store, clock):
    return IncidentLifecycle(store, active_window_minutes=60, clock=clock)


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def session():
    return ClientSession(
        client_id=DEMO_CLIENT.id,
        coach_id=DEMO_CLIENT.coach_id,
        token=DEMO_CLIENT.access_token,
    )


@pytest.fixture
def state(session):
    return ConversationState(session=session, client_name="Alex", coach_name="Sam Rivera")


@pytest.fixture
def craving_engine(lifecycle, generator, settings, clock):
    return ConversationEngine(
        CRAVING_FLOW, lifecycle,
        selector=InterventionSelector(clock=clock),
        generator=generator, settings=settings, clock=clock,
    )


@pytest.fixture
def energy_engine(lifecycle, generator, settings, clock):
    return ConversationEngine(
        ENERGY_FLOW, lifecycle,
        selector=InterventionSelector(clock=clock),
        generator=generator, settings=settings, clock=clock,
    )


@pytest.fixture
def dispatcher(lifecycle, generator, settings, clock):
    return UnifiedDispatcher(
        lifecycle,
        selector=InterventionSelector(clock=clock),
        generator=generator,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def scripted_generator_cls():
    return ScriptedGenerator


@pytest.fixture
def scripted_ranker_cls():
    return ScriptedRanker
