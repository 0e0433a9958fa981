"""Tests for location filtering, history and primary/secondary selection."""

from datetime import timedelta

import pytest

from soscoach.core.errors import NoEligibleInterventions
from soscoach.core.model import (
    KIND_CRAVING,
    ClientIntervention,
    CravingIncident,
    EffectivenessRecord,
    Intervention,
    SituationFacts,
)
from soscoach.core.selector import (
    FALLBACK_REASONING,
    SINGLE_CANDIDATE_REASONING,
    VARIETY_NOTE,
    InterventionSelector,
    build_history,
    describe_incident,
    filter_by_location,
)
from soscoach.core.utils import Outcome
from soscoach.llm.ranker import RankedPick


def _iv(iid, tags=None):
    return Intervention(id=iid, name=iid.title(), description=f"Do {iid}.", context_tags=tags)


@pytest.fixture
def catalog():
    return [
        _iv("a"),
        _iv("b", ["home"]),
        _iv("c", ["store"]),
        _iv("d", ["universal"]),
    ]


@pytest.fixture
def home():
    return SituationFacts(kind=KIND_CRAVING, trigger="Chocolate", intensity=7, location="Home", context="Stress")


def _recent(iid):
    return EffectivenessRecord(
        intervention_id=iid, name=iid, effectiveness=5, context="general usage",
        times_suggested=1, recently_suggested=True,
    )


class TestFilterByLocation:
    def test_home_keeps_untagged_home_and_universal(self, catalog):
        kept = filter_by_location(catalog, "Home")
        assert [c.id for c in kept] == ["a", "b", "d"]

    def test_location_is_case_insensitive(self, catalog):
        assert [c.id for c in filter_by_location(catalog, "  store ")] == ["a", "c", "d"]

    def test_unknown_location_keeps_only_general(self, catalog):
        assert [c.id for c in filter_by_location(catalog, "On the moon")] == ["a", "d"]

    def test_tags_compared_case_insensitively(self):
        assert filter_by_location([_iv("x", ["Home"])], "Home")


class TestSelect:
    def test_no_survivors_is_failure(self, home):
        outcome = InterventionSelector().select([_iv("c", ["store"])], home)
        assert not outcome.ok
        assert isinstance(outcome.error, NoEligibleInterventions)

    def test_single_survivor_is_both(self, home):
        outcome = InterventionSelector().select([_iv("only")], home)
        sel = outcome.unwrap()
        assert sel.primary.id == sel.secondary.id == "only"
        assert sel.reasoning == SINGLE_CANDIDATE_REASONING

    def test_without_ranker_takes_first_two(self, catalog, home):
        sel = InterventionSelector().select(catalog, home).unwrap()
        assert (sel.primary.id, sel.secondary.id) == ("a", "b")
        assert sel.reasoning == FALLBACK_REASONING

    def test_ranker_pick_is_used(self, catalog, home, clock, scripted_ranker_cls):
        ranker = scripted_ranker_cls(Outcome.success(RankedPick("d", "b", "Breathing fits stress.")))
        sel = InterventionSelector(ranker, clock=clock).select(catalog, home).unwrap()
        assert (sel.primary.id, sel.secondary.id) == ("d", "b")
        assert sel.reasoning == "Breathing fits stress."

        request, offered = ranker.calls[0]
        assert request.time_label == "Morning (08:05)"
        assert request.day_name == "Monday"
        assert [c.id for c in offered] == ["a", "b", "d"]

    def test_duplicate_secondary_is_replaced(self, catalog, home, clock, scripted_ranker_cls):
        ranker = scripted_ranker_cls(Outcome.success(RankedPick("b", "b", "Same twice.")))
        sel = InterventionSelector(ranker, clock=clock).select(catalog, home).unwrap()
        assert sel.primary.id == "b"
        assert sel.secondary.id == "a"
        assert sel.reasoning.endswith(VARIETY_NOTE)

    def test_unknown_ids_fall_back(self, catalog, home, clock, scripted_ranker_cls):
        ranker = scripted_ranker_cls(Outcome.success(RankedPick("zzz", "b")))
        sel = InterventionSelector(ranker, clock=clock).select(catalog, home).unwrap()
        assert (sel.primary.id, sel.secondary.id) == ("a", "b")
        assert sel.reasoning == FALLBACK_REASONING

    def test_filtered_out_id_is_not_accepted(self, catalog, home, clock, scripted_ranker_cls):
        ranker = scripted_ranker_cls(Outcome.success(RankedPick("c", "b")))
        sel = InterventionSelector(ranker, clock=clock).select(catalog, home).unwrap()
        assert sel.primary.id != "c"

    def test_ranker_failure_falls_back(self, catalog, home, clock, scripted_ranker_cls):
        ranker = scripted_ranker_cls(Outcome.failure(RuntimeError("timeout")))
        sel = InterventionSelector(ranker, clock=clock).select(catalog, home).unwrap()
        assert (sel.primary.id, sel.secondary.id) == ("a", "b")

    def test_recently_suggested_are_deprioritised(self, home):
        catalog = [_iv("a"), _iv("b"), _iv("c"), _iv("d")]
        sel = InterventionSelector().select(catalog, home, [_recent("a"), _recent("b")]).unwrap()
        assert (sel.primary.id, sel.secondary.id) == ("c", "d")

    def test_recent_kept_when_too_few_fresh(self, home):
        catalog = [_iv("a"), _iv("b"), _iv("c")]
        sel = InterventionSelector().select(catalog, home, [_recent("a"), _recent("b")]).unwrap()
        assert (sel.primary.id, sel.secondary.id) == ("a", "b")


class TestHistory:
    def test_build_history(self, clock):
        now = clock.now
        records = [
            ClientIntervention("client", "a", KIND_CRAVING, times_used=3,
                               last_used_at=now - timedelta(days=2), effectiveness_rating=6),
            ClientIntervention("client", "b", KIND_CRAVING, times_used=1,
                               last_used_at=now - timedelta(days=30), effectiveness_rating=9),
            ClientIntervention("client", "c", KIND_CRAVING, times_used=0),
        ]
        incidents = [
            CravingIncident(id="i2", client_id="client", created_at=now, day_of_week=1,
                            time_of_day="08:00:00", intervention_id="a",
                            trigger_food="Chips", location="Work", context="Boredom"),
            CravingIncident(id="i1", client_id="client", created_at=now - timedelta(days=5),
                            day_of_week=3, time_of_day="20:00:00", intervention_id="a",
                            trigger_food="Chocolate"),
        ]
        history = build_history(records, [_iv("a"), _iv("b")], incidents, now, recent_days=7)

        assert [h.intervention_id for h in history] == ["b", "a"]
        b, a = history
        assert b.context == "general usage"
        assert b.recently_suggested is False
        assert a.name == "A"
        assert a.context == "Chips craving, at Work, Boredom"
        assert a.times_suggested == 3
        assert a.recently_suggested is True

    def test_describe_none(self):
        assert describe_incident(None) == "general usage"
