"""Tests for identity resolution and the incident lifecycle."""

import pytest

from soscoach.content.interventions import DEMO_CLIENT, DEMO_COACH
from soscoach.core.errors import IncidentCreationFailed, StoreError, Unauthenticated
from soscoach.core.lifecycle import DEFAULT_COACH_NAME, IncidentLifecycle
from soscoach.core.model import (
    KIND_CRAVING,
    KIND_ENERGY,
    Client,
    ClientSession,
    Credentials,
)
from soscoach.store.memory import InMemoryIncidentStore


class BrokenCreateStore(InMemoryIncidentStore):
    def create_incident(self, client_id, kind, now):
        raise StoreError("database unavailable")


class TestResolveIdentity:
    def test_token_resolves_client(self, lifecycle):
        session = lifecycle.resolve_identity(Credentials(token="demo-token"))
        assert session.client_id == DEMO_CLIENT.id
        assert session.coach_id == DEMO_COACH.id
        assert session.token == "demo-token"

    def test_bad_token_falls_through_to_cached_id(self, lifecycle):
        session = lifecycle.resolve_identity(
            Credentials(token="stale-token", cached_client_id=DEMO_CLIENT.id)
        )
        assert session.client_id == DEMO_CLIENT.id
        assert session.token == DEMO_CLIENT.access_token

    def test_auth_session_is_last_resort(self, lifecycle):
        session = lifecycle.resolve_identity(Credentials(auth_client_id=DEMO_CLIENT.id))
        assert session.client_id == DEMO_CLIENT.id

    def test_token_wins_over_cached_id(self, lifecycle, store):
        store.add_client(Client(
            id="client-other", coach_id=DEMO_COACH.id, full_name="Jo Other",
            access_token="other-token",
        ))
        session = lifecycle.resolve_identity(
            Credentials(token="other-token", cached_client_id=DEMO_CLIENT.id)
        )
        assert session.client_id == "client-other"

    def test_no_credentials_is_unauthenticated(self, lifecycle):
        with pytest.raises(Unauthenticated):
            lifecycle.resolve_identity(Credentials())

    def test_inactive_client_is_rejected(self, lifecycle, store):
        store.add_client(Client(
            id="client-paused", coach_id=DEMO_COACH.id, full_name="Pat Paused",
            status="paused", access_token="paused-token",
        ))
        with pytest.raises(Unauthenticated) as exc:
            lifecycle.resolve_identity(Credentials(token="paused-token"))
        assert "coach" in exc.value.user_message


class TestLoadProfile:
    def test_loads_client_and_coach(self, lifecycle, session):
        client, coach = lifecycle.load_profile(session)
        assert client.first_name == "Alex"
        assert coach.full_name == "Sam Rivera"

    def test_missing_coach_gets_default_persona(self, lifecycle):
        client, coach = lifecycle.load_profile(
            ClientSession(client_id=DEMO_CLIENT.id, coach_id="coach-missing")
        )
        assert client is not None
        assert coach.full_name == DEFAULT_COACH_NAME


class TestEnsureIncident:
    def test_reuses_active_incident(self, lifecycle):
        first = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        second = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        assert first == second

    def test_incidents_are_per_kind(self, lifecycle):
        craving = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        energy = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_ENERGY)
        assert craving != energy

    def test_new_incident_after_window(self, lifecycle, clock):
        first = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        clock.advance(minutes=61)
        assert lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING) != first

    def test_resolved_incident_not_reused(self, lifecycle):
        first = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        assert lifecycle.mark_resolved(first)
        assert lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING) != first

    def test_records_day_and_time(self, lifecycle, store):
        incident = store.get_incident(lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING))
        assert incident.day_of_week == 1  # Monday, Sunday = 0
        assert incident.time_of_day == "08:05:00"

    def test_creation_failure_raises(self, clock):
        lifecycle = IncidentLifecycle(BrokenCreateStore(), clock=clock)
        with pytest.raises(IncidentCreationFailed):
            lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)


class TestUpdateAndResolve:
    def test_sparse_update_skips_none(self, lifecycle, store):
        iid = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        assert lifecycle.update_incident(iid, {"trigger_food": "Pizza"})
        assert lifecycle.update_incident(iid, {"trigger_food": None, "location": "Work"})
        incident = store.get_incident(iid)
        assert incident.trigger_food == "Pizza"
        assert incident.location == "Work"

    def test_false_is_written(self, lifecycle, store):
        iid = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_ENERGY)
        assert lifecycle.update_incident(iid, {"activity_completed": False})
        assert store.get_incident(iid).activity_completed is False

    def test_failed_update_returns_false(self, lifecycle):
        assert lifecycle.update_incident("no-such-incident", {"location": "Home"}) is False
        assert lifecycle.update_incident(None, {"location": "Home"}) is False

    def test_mark_resolved_only_once(self, lifecycle, store, clock):
        iid = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        resolved_at = clock.now
        assert lifecycle.mark_resolved(iid) is True
        clock.advance(minutes=5)
        assert lifecycle.mark_resolved(iid) is False
        assert store.get_incident(iid).resolved_at == resolved_at
