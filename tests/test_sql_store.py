"""SqlIncidentStore against an in-memory SQLite database."""

from datetime import timedelta

import pytest

from soscoach.content.interventions import DEMO_CLIENT, seed_demo_data
from soscoach.core.errors import StoreError
from soscoach.core.lifecycle import IncidentLifecycle
from soscoach.core.model import (
    KIND_CRAVING,
    KIND_ENERGY,
    SENDER_CLIENT,
    SENDER_COACH,
    Message,
)
from soscoach.store.sql import SqlIncidentStore


@pytest.fixture
def sql_store():
    store = SqlIncidentStore("sqlite://")
    seed_demo_data(store)
    return store


def _message(incident_id, sender, text, when, metadata=None):
    return Message(id="", incident_id=incident_id, kind=KIND_CRAVING, sender=sender,
                   text=text, created_at=when, metadata=metadata or {})


class TestIncidents:
    def test_create_and_read_back(self, sql_store, clock):
        incident = sql_store.create_incident(DEMO_CLIENT.id, KIND_CRAVING, clock.now)
        loaded = sql_store.get_incident(incident.id)
        assert loaded.kind == KIND_CRAVING
        assert loaded.created_at == clock.now
        assert loaded.day_of_week == 1
        assert loaded.resolved_at is None

    def test_find_active_respects_window_and_resolution(self, sql_store, clock):
        old = sql_store.create_incident(DEMO_CLIENT.id, KIND_CRAVING, clock.now - timedelta(hours=2))
        fresh = sql_store.create_incident(DEMO_CLIENT.id, KIND_CRAVING, clock.now)
        since = clock.now - timedelta(hours=1)

        assert sql_store.find_active_incident(DEMO_CLIENT.id, KIND_CRAVING, since).id == fresh.id
        assert sql_store.find_active_incident(DEMO_CLIENT.id, KIND_ENERGY, since) is None

        sql_store.update_incident(fresh.id, {"resolved_at": clock.now})
        assert sql_store.find_active_incident(DEMO_CLIENT.id, KIND_CRAVING, since) is None
        assert [i.id for i in sql_store.list_incidents(DEMO_CLIENT.id, KIND_CRAVING)] == [fresh.id, old.id]

    def test_sparse_update(self, sql_store, clock):
        incident = sql_store.create_incident(DEMO_CLIENT.id, KIND_ENERGY, clock.now)
        sql_store.update_incident(incident.id, {"blocker_type": "No time", "energy_level": 4})
        sql_store.update_incident(incident.id, {"blocker_type": None, "activity_completed": False})
        loaded = sql_store.get_incident(incident.id)
        assert loaded.blocker_type == "No time"
        assert loaded.energy_level == 4
        assert loaded.activity_completed is False

    def test_update_missing_incident_raises(self, sql_store):
        with pytest.raises(StoreError):
            sql_store.update_incident("missing", {"location": "Home"})

    def test_lifecycle_on_sql(self, sql_store, clock):
        lifecycle = IncidentLifecycle(sql_store, clock=clock)
        iid = lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING)
        assert lifecycle.ensure_incident(DEMO_CLIENT.id, KIND_CRAVING) == iid
        assert lifecycle.mark_resolved(iid) is True
        assert lifecycle.mark_resolved(iid) is False


class TestMessages:
    def test_messages_in_order(self, sql_store, clock):
        incident = sql_store.create_incident(DEMO_CLIENT.id, KIND_CRAVING, clock.now)
        sql_store.append_message(_message(incident.id, SENDER_COACH, "What are you craving?", clock.now))
        sql_store.append_message(_message(incident.id, SENDER_CLIENT, "Chocolate", clock.now))
        sql_store.append_message(_message(
            incident.id, SENDER_COACH, "Thanks!", clock.now + timedelta(seconds=5),
            metadata={"resolve_incident": True},
        ))

        messages = sql_store.list_messages(KIND_CRAVING, incident.id)
        assert [m.text for m in messages] == ["What are you craving?", "Chocolate", "Thanks!"]
        assert messages[-1].metadata == {"resolve_incident": True}
        assert all(m.id for m in messages)
        assert sql_store.list_messages(KIND_ENERGY, incident.id) == []

    def test_message_for_unknown_incident_rejected(self, sql_store, clock):
        with pytest.raises(StoreError):
            sql_store.append_message(_message("missing", SENDER_CLIENT, "hi", clock.now))


class TestPeopleAndInterventions:
    def test_client_lookup(self, sql_store):
        assert sql_store.find_client_by_token("demo-token").id == DEMO_CLIENT.id
        assert sql_store.find_client_by_token("nope") is None
        assert sql_store.get_coach(DEMO_CLIENT.coach_id).full_name == "Sam Rivera"

    def test_client_interventions_by_kind(self, sql_store):
        craving = sql_store.list_client_interventions(DEMO_CLIENT.id, KIND_CRAVING)
        energy = sql_store.list_client_interventions(DEMO_CLIENT.id, KIND_ENERGY)
        assert [c.id for c in craving][:2] == ["craving-breathing", "craving-tea"]
        assert all(c.kind == KIND_ENERGY for c in energy)
        assert next(e for e in energy if e.id == "energy-text-friend").context_tags is None
        assert next(c for c in craving if c.id == "craving-tea").context_tags == ["home", "work"]

    def test_use_and_rating(self, sql_store, clock):
        sql_store.record_intervention_use(DEMO_CLIENT.id, "craving-tea", KIND_CRAVING, clock.now)
        sql_store.record_intervention_rating(DEMO_CLIENT.id, "craving-tea", KIND_CRAVING, 9)
        sql_store.record_intervention_rating(DEMO_CLIENT.id, "craving-tea", KIND_CRAVING, 5)
        records = sql_store.list_client_intervention_records(DEMO_CLIENT.id, KIND_CRAVING)
        tea = next(r for r in records if r.intervention_id == "craving-tea")
        assert tea.times_used == 1
        assert tea.last_used_at == clock.now
        assert tea.effectiveness_rating == 7

    def test_unassigned_use_raises(self, sql_store, clock):
        with pytest.raises(StoreError):
            sql_store.record_intervention_use(DEMO_CLIENT.id, "not-assigned", KIND_CRAVING, clock.now)
