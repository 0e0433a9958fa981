"""Tests for the chat client, coach-line generator and intervention ranker."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from soscoach.core.errors import GenerationFailed, MalformedSelectorResponse
from soscoach.core.model import (
    KIND_CRAVING,
    KIND_ENERGY,
    SENDER_CLIENT,
    SENDER_COACH,
    STEP_GAUGE_INTENSITY,
    STEP_SUGGEST_TACTIC,
    EffectivenessRecord,
    Intervention,
    Message,
    SituationFacts,
)
from soscoach.llm.client import ChatClient, LLMAPIError
from soscoach.llm.generator import ResponseGenerator
from soscoach.llm.prompts import MAX_TOKENS, PromptContext, build_prompt
from soscoach.llm.ranker import (
    InterventionRanker,
    RankingRequest,
    build_ranking_prompt,
    parse_ranking,
)


def _client(reply=None, error=None):
    client = MagicMock()
    client.is_available = True
    if error is not None:
        client.chat_completion.side_effect = error
    else:
        client.chat_completion.return_value = reply
    return client


def _ctx(**kwargs):
    defaults = dict(
        kind=KIND_CRAVING,
        prompt_key=STEP_GAUGE_INTENSITY,
        client_name="Alex",
        coach_name="Sam Rivera",
        trigger="Chocolate",
    )
    defaults.update(kwargs)
    return PromptContext(**defaults)


def _response(status, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    resp.text = text
    resp.headers = {}
    return resp


class TestPrompts:
    def test_system_prompt_carries_persona_and_facts(self):
        system, user, max_tokens = build_prompt(_ctx(coach_tone="gentle", intensity=7))
        assert "Sam Rivera" in system
        assert "gentle" in system
        assert "Craving: Chocolate" in system
        assert "Intensity: 7/10" in system
        assert "Chocolate" in user
        assert max_tokens == MAX_TOKENS[STEP_GAUGE_INTENSITY]

    def test_energy_labels(self):
        system, _, _ = build_prompt(_ctx(kind=KIND_ENERGY, trigger="Too tired", intensity=3))
        assert "Blocker: Too tired" in system
        assert "Energy level: 3/10" in system

    def test_history_is_included(self):
        history = [
            Message(id="1", incident_id="i", kind=KIND_CRAVING, sender=SENDER_COACH, text="What are you craving?"),
            Message(id="2", incident_id="i", kind=KIND_CRAVING, sender=SENDER_CLIENT, text="Chocolate"),
        ]
        system, _, _ = build_prompt(_ctx(history=history))
        assert "Coach: What are you craving?" in system
        assert "Client: Chocolate" in system

    def test_missing_values_do_not_break_instruction(self):
        _, user, _ = build_prompt(_ctx(prompt_key=STEP_SUGGEST_TACTIC, trigger=None))
        assert "{" not in user


class TestResponseGenerator:
    def test_returns_stripped_reply(self):
        client = _client("  Chocolate, got it. How strong is it, 1 to 10?  ")
        outcome = ResponseGenerator(client).generate(_ctx())
        assert outcome.ok
        assert outcome.value == "Chocolate, got it. How strong is it, 1 to 10?"
        kwargs = client.chat_completion.call_args.kwargs
        assert kwargs["max_tokens"] == MAX_TOKENS[STEP_GAUGE_INTENSITY]
        assert kwargs["messages"][0]["role"] == "system"

    def test_empty_reply_is_failure(self):
        outcome = ResponseGenerator(_client("   ")).generate(_ctx())
        assert not outcome.ok
        assert isinstance(outcome.error, GenerationFailed)

    def test_api_error_is_failure(self):
        outcome = ResponseGenerator(_client(error=LLMAPIError(500, "boom"))).generate(_ctx())
        assert not outcome.ok
        assert isinstance(outcome.error, GenerationFailed)

    def test_unexpected_client_error_is_failure(self):
        outcome = ResponseGenerator(_client(error=KeyError("choices"))).generate(_ctx())
        assert not outcome.ok
        assert isinstance(outcome.error, GenerationFailed)

    def test_unavailable_without_client(self):
        generator = ResponseGenerator(None)
        assert generator.is_available is False
        assert not generator.generate(_ctx()).ok


class TestRanker:
    CANDIDATES = [
        Intervention(id="a", name="Box breathing", description="Breathe.", category="mindfulness"),
        Intervention(id="b", name="Tea", description="Brew tea."),
    ]

    def _request(self):
        return RankingRequest(
            facts=SituationFacts(kind=KIND_CRAVING, trigger="Chocolate", intensity=7,
                                 location="Home", context="Stress"),
            time_label="Evening (19:30)",
            day_name="Friday",
            history=[EffectivenessRecord("a", "Box breathing", 9, "Chips craving, at Work", 4,
                                         recently_suggested=True)],
        )

    def test_prompt_lists_candidates_and_history(self):
        prompt = build_ranking_prompt(self._request(), self.CANDIDATES)
        assert "id=a: Box breathing [mindfulness]" in prompt
        assert "id=b: Tea" in prompt
        assert "rated 9/10" in prompt
        assert "(suggested recently)" in prompt
        assert "Evening (19:30), Friday" in prompt

    def test_rank_parses_json(self):
        reply = json.dumps({
            "primaryIntervention": {"id": "b", "name": "Tea"},
            "secondaryIntervention": {"id": "a", "name": "Box breathing"},
            "reasoning": "Warm drink at home.",
        })
        client = _client(reply)
        outcome = InterventionRanker(client).rank(self._request(), self.CANDIDATES)
        pick = outcome.unwrap()
        assert (pick.primary_id, pick.secondary_id) == ("b", "a")
        assert pick.reasoning == "Warm drink at home."
        kwargs = client.chat_completion.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.3

    def test_api_error_is_failure(self):
        outcome = InterventionRanker(_client(error=LLMAPIError(503, "down"))).rank(
            self._request(), self.CANDIDATES
        )
        assert not outcome.ok

    def test_unexpected_client_error_is_failure(self):
        outcome = InterventionRanker(_client(error=IndexError("list index out of range"))).rank(
            self._request(), self.CANDIDATES
        )
        assert not outcome.ok
        assert isinstance(outcome.error, MalformedSelectorResponse)

    @pytest.mark.parametrize("reply", [
        "not json",
        "null",
        json.dumps({"primaryIntervention": {"id": "a"}}),
        json.dumps({"primaryIntervention": "a", "secondaryIntervention": "b"}),
    ])
    def test_malformed_replies(self, reply):
        outcome = parse_ranking(reply)
        assert not outcome.ok
        assert isinstance(outcome.error, MalformedSelectorResponse)


class TestChatClient:
    def test_missing_key_is_unavailable(self, monkeypatch):
        monkeypatch.delenv("LLM_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with patch("soscoach.llm.client.load_dotenv"):
            client = ChatClient()
        assert client.is_available is False
        with pytest.raises(LLMAPIError) as exc:
            client.chat_completion([{"role": "user", "content": "hi"}])
        assert exc.value.status_code == 401

    def test_successful_completion(self):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1")
        ok = _response(200, {"choices": [{"message": {"content": "Hello"}}]})
        with patch("soscoach.llm.client.requests.post", return_value=ok) as post:
            assert client.chat_completion([{"role": "user", "content": "hi"}], max_tokens=20) == "Hello"
        url = post.call_args.args[0]
        body = post.call_args.kwargs["json"]
        assert url == "http://llm.test/v1/chat/completions"
        assert body["model"] == "m"
        assert body["max_tokens"] == 20
        assert "response_format" not in body

    def test_client_errors_fail_fast(self):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1")
        with patch("soscoach.llm.client.requests.post", return_value=_response(401, text="bad key")) as post:
            with pytest.raises(LLMAPIError):
                client.chat_completion([{"role": "user", "content": "hi"}])
        assert post.call_count == 1

    def test_server_errors_are_retried(self):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1", max_retries=2)
        ok = _response(200, {"choices": [{"message": {"content": "Hi"}}]})
        with patch("soscoach.llm.client.requests.post", side_effect=[_response(500), ok]), \
                patch("soscoach.llm.client.time.sleep") as sleep:
            assert client.chat_completion([{"role": "user", "content": "hi"}]) == "Hi"
        sleep.assert_called_once_with(1)

    def test_timeouts_exhaust_retries(self):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1", max_retries=1)
        with patch("soscoach.llm.client.requests.post", side_effect=requests.exceptions.Timeout), \
                patch("soscoach.llm.client.time.sleep"):
            with pytest.raises(LLMAPIError) as exc:
                client.chat_completion([{"role": "user", "content": "hi"}])
        assert exc.value.status_code == 408

    @pytest.mark.parametrize("payload", [
        {"error": {"message": "upstream overloaded"}},
        {"choices": []},
        {"choices": [{"delta": {}}]},
    ])
    def test_unexpected_body_is_api_error(self, payload):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1", max_retries=0)
        with patch("soscoach.llm.client.requests.post", return_value=_response(200, payload)):
            with pytest.raises(LLMAPIError) as exc:
                client.chat_completion([{"role": "user", "content": "hi"}])
        assert exc.value.status_code == 502

    def test_non_json_body_is_api_error(self):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1", max_retries=0)
        resp = _response(200, text="<html>gateway</html>")
        resp.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0)
        with patch("soscoach.llm.client.requests.post", return_value=resp):
            with pytest.raises(LLMAPIError) as exc:
                client.chat_completion([{"role": "user", "content": "hi"}])
        assert exc.value.status_code == 502

    def test_other_request_errors_are_api_errors(self):
        client = ChatClient(api_key="k", model="m", base_url="http://llm.test/v1", max_retries=1)
        with patch("soscoach.llm.client.requests.post", side_effect=requests.exceptions.TooManyRedirects), \
                patch("soscoach.llm.client.time.sleep"):
            with pytest.raises(LLMAPIError) as exc:
                client.chat_completion([{"role": "user", "content": "hi"}])
        assert exc.value.status_code == 0
