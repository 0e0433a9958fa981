"""Tests for the struggle question and hand-off to the right flow."""

import pytest

from soscoach.content.options import option_label
from soscoach.core.dispatcher import detect_kind
from soscoach.core.model import (
    KIND_CRAVING,
    KIND_ENERGY,
    SENDER_CLIENT,
    STEP_GAUGE_ENERGY,
    STEP_GAUGE_INTENSITY,
    STEP_IDENTIFY_STRUGGLE,
)


class TestDetectKind:
    @pytest.mark.parametrize("text,kind", [
        ("I'm having a craving", KIND_CRAVING),
        ("craving", KIND_CRAVING),
        ("I need an energy boost", KIND_ENERGY),
        ("ENERGY", KIND_ENERGY),
        ("hello", None),
        ("", None),
        (None, None),
    ])
    def test_detect(self, text, kind):
        assert detect_kind(text) == kind


class TestUnifiedDispatcher:
    def test_greeting_offers_both_struggles(self, dispatcher, state):
        result = dispatcher.greeting(state)
        assert result.next_step == STEP_IDENTIFY_STRUGGLE
        assert "Alex" in result.line
        assert [o["value"] for o in result.options] == ["craving", "energy"]
        assert state.incident_id is None

    def test_craving_choice_opens_craving_flow(self, dispatcher, state, store):
        dispatcher.greeting(state)
        result = dispatcher.handle_turn(state, "I'm having a craving")
        assert state.kind == KIND_CRAVING
        assert result.line == "[craving:identify_craving]"
        assert result.next_step == STEP_GAUGE_INTENSITY
        assert option_label(result.options[0]) == "Chocolate"

        messages = store.list_messages(KIND_CRAVING, state.incident_id)
        assert messages[0].sender == SENDER_CLIENT
        assert messages[0].text == "I'm having a craving"

    def test_energy_choice_opens_energy_flow(self, dispatcher, state):
        dispatcher.greeting(state)
        result = dispatcher.handle_turn(state, "energy")
        assert state.kind == KIND_ENERGY
        assert result.next_step == STEP_GAUGE_ENERGY

    def test_unrecognised_choice_reprompts(self, dispatcher, state):
        dispatcher.greeting(state)
        result = dispatcher.handle_turn(state, "not sure")
        assert result.next_step == STEP_IDENTIFY_STRUGGLE
        assert len(result.options) == 2
        assert state.kind is None
        assert state.incident_id is None

    def test_later_turns_go_to_chosen_engine(self, dispatcher, state, store):
        dispatcher.greeting(state)
        dispatcher.handle_turn(state, "craving")
        dispatcher.handle_turn(state, "Pizza")
        assert store.get_incident(state.incident_id).trigger_food == "Pizza"

    def test_engines_are_reused(self, dispatcher):
        assert dispatcher.engine_for(KIND_CRAVING) is dispatcher.engine_for(KIND_CRAVING)

    def test_turn_without_kind_is_rejected(self, dispatcher, state):
        state.step = STEP_GAUGE_INTENSITY
        with pytest.raises(ValueError):
            dispatcher.handle_turn(state, "7")

    def test_unknown_kind_is_rejected(self, dispatcher):
        with pytest.raises(ValueError):
            dispatcher.engine_for("sleep")

    def test_follow_up_before_choice_is_noop(self, dispatcher, state):
        dispatcher.greeting(state)
        assert dispatcher.follow_up(state) is None
