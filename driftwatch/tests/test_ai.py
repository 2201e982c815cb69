"""Tests for the AI adapter: client, prompt building, response parsing, degradation."""
from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from driftwatch.ai import (
    LLMCallError,
    LLMClient,
    build_assessment_prompt,
    extract_json,
    fetch_ai_opinion,
    fetch_counter_evidence,
    parse_ai_response,
)
from driftwatch.schemas import AssessmentResult, ContentItem, StatusLevel

VALID_PAYLOAD = {
    "status": "Warning",
    "confidence": 0.8,
    "reasoning": "Courts are still pushing back.",
    "evidenceFor": ["Reclassification memo"],
    "evidenceAgainst": ["Injunction granted"],
    "howWeCouldBeWrong": ["Memo may never be implemented", "Coverage is thin"],
}

ITEMS = [
    ContentItem(title="Schedule F order signed", agency="OPM", pubDate="2025-01-22"),
    ContentItem(title="broken", isError=True),
]
KEYWORD_RESULT = AssessmentResult(
    status=StatusLevel.DRIFT, reason="needs corroboration", matches=["schedule f"],
)


def _mock_client(**call_kwargs) -> MagicMock:
    client = MagicMock()
    client.provider = "anthropic"
    client.model = "test-model"
    client.call = AsyncMock(**call_kwargs)
    return client


class TestParsing:
    def test_camel_case_payload(self):
        parsed = parse_ai_response(json.dumps(VALID_PAYLOAD))
        assert parsed.status == StatusLevel.WARNING
        assert parsed.evidence_for == ["Reclassification memo"]
        assert parsed.how_we_could_be_wrong[1] == "Coverage is thin"

    def test_fenced_payload(self):
        text = "Here you go:\n```json\n" + json.dumps(VALID_PAYLOAD) + "\n```"
        assert parse_ai_response(text).confidence == 0.8

    def test_dict_payload(self):
        assert parse_ai_response(VALID_PAYLOAD).reasoning.startswith("Courts")

    @pytest.mark.parametrize("payload", [
        None,
        "not json at all",
        {**VALID_PAYLOAD, "status": "Collapse"},
        {**VALID_PAYLOAD, "confidence": 1.5},
        {"status": "Warning"},
    ])
    def test_invalid_payloads(self, payload):
        assert parse_ai_response(payload) is None

    def test_extract_json_rejects_arrays(self):
        assert extract_json("[1, 2, 3]") is None


class TestPrompt:
    def test_prompt_contents(self):
        prompt = build_assessment_prompt(
            "civilService", "Government Worker Protections", ITEMS[:1],
            StatusLevel.DRIFT, "needs corroboration",
        )
        assert "Government Worker Protections" in prompt
        assert "KEYWORD-BASED ASSESSMENT: Drift - needs corroboration" in prompt
        assert '1. "Schedule F order signed" (OPM) [2025-01-22]' in prompt

    def test_prompt_limits_items(self):
        items = [ContentItem(title=f"Item {n}") for n in range(30)]
        prompt = build_assessment_prompt("x", "X", items, StatusLevel.STABLE, "r", max_items=20)
        assert '20. "Item 19"' in prompt
        assert "Item 20" not in prompt


class TestFetchOpinion:
    @pytest.mark.asyncio
    async def test_success(self):
        client = _mock_client(return_value=VALID_PAYLOAD)
        opinion = await fetch_ai_opinion(client, "civilService", "Workers", ITEMS, KEYWORD_RESULT)
        assert opinion.result.status == StatusLevel.WARNING
        assert opinion.result.provider == "anthropic"
        assert opinion.result.model == "test-model"
        assert opinion.response.how_we_could_be_wrong
        prompt = client.call.call_args.args[1]
        assert "broken" not in prompt

    @pytest.mark.asyncio
    async def test_provider_error_returns_none(self):
        client = _mock_client(side_effect=LLMCallError("boom", retryable=True))
        assert await fetch_ai_opinion(client, "civilService", "Workers", ITEMS, KEYWORD_RESULT) is None

    @pytest.mark.asyncio
    async def test_invalid_payload_returns_none(self):
        client = _mock_client(return_value={"status": "Maybe"})
        assert await fetch_ai_opinion(client, "civilService", "Workers", ITEMS, KEYWORD_RESULT) is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)
            return VALID_PAYLOAD

        client = _mock_client()
        client.call = slow
        result = await fetch_ai_opinion(
            client, "civilService", "Workers", ITEMS, KEYWORD_RESULT, timeout=0.01,
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_counter_evidence(self):
        client = _mock_client(return_value={"counterPoints": ["a", "b", "", "c"]})
        points = await fetch_counter_evidence(client, "Workers", KEYWORD_RESULT)
        assert points == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_counter_evidence_failure(self):
        client = _mock_client(side_effect=LLMCallError("down"))
        assert await fetch_counter_evidence(client, "Workers", KEYWORD_RESULT) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("points", [3, "one long string", [1, 2], None, {"a": "b"}])
    async def test_counter_evidence_wrong_shape(self, points):
        client = _mock_client(return_value={"counterPoints": points})
        assert await fetch_counter_evidence(client, "Workers", KEYWORD_RESULT) == []


class TestLLMClient:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMClient(provider="carrier-pigeon")

    @pytest.mark.asyncio
    async def test_anthropic_fenced_json(self):
        client = LLMClient(provider="anthropic", api_key="test-key")
        response = MagicMock()
        response.content = [MagicMock(text='```json\n{"status": "Stable"}\n```')]
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(return_value=response)
        assert await client.call("sys", "user") == {"status": "Stable"}

    @pytest.mark.asyncio
    async def test_api_failure_is_retryable(self):
        client = LLMClient(provider="anthropic", api_key="test-key")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(side_effect=RuntimeError("503"))
        with pytest.raises(LLMCallError) as excinfo:
            await client.call("sys", "user")
        assert excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_unparseable_reply_not_retryable(self):
        client = LLMClient(provider="openai", api_key="test-key")
        response = MagicMock()
        response.choices = [MagicMock(message=MagicMock(content="sorry, no"))]
        client._client = MagicMock()
        client._client.chat.completions.create = AsyncMock(return_value=response)
        with pytest.raises(LLMCallError) as excinfo:
            await client.call("sys", "user")
        assert not excinfo.value.retryable
