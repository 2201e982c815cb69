"""AI second-opinion adapter.

The provider call is the only slow, failure-prone step of an assessment.  It
runs before reconciliation, under a timeout, and any failure (timeout,
provider error, unparseable or invalid payload) is reported as "no opinion"
so the caller falls back to the keyword result.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from typing import Any

from pydantic import BaseModel, ValidationError

from driftwatch.schemas import (
    AIAssessmentResponse,
    AIResult,
    AssessmentResult,
    ContentItem,
    CounterEvidenceResponse,
    StatusLevel,
)

log = logging.getLogger(__name__)


class LLMCallError(Exception):
    """LLM call failed or returned unparseable output."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

ASSESSMENT_SYSTEM_PROMPT = """\
You are a nonpartisan analyst specializing in democratic institutions, rule of \
law, and executive power. You analyze government documents objectively, noting \
both concerning and reassuring patterns. You are careful not to overreact to \
routine government activity, but you take genuine threats to checks and balances \
seriously. Always provide balanced analysis with evidence on both sides. \
Respond only with valid JSON.
"""

COUNTER_EVIDENCE_SYSTEM_PROMPT = """\
You are a critical analyst who challenges assessments of democratic health. Your \
role is to find legitimate reasons why a concerning assessment might be wrong, not \
to dismiss concerns but to ensure intellectual rigor. Focus on institutional \
resilience, historical precedents, and analytical blind spots. Respond only with \
valid JSON.
"""


def _format_items(items: list[ContentItem], limit: int) -> str:
    lines = []
    for n, item in enumerate(items[:limit], start=1):
        parts = [f'{n}. "{item.title}"']
        if item.agency:
            parts.append(f"({item.agency})")
        if item.pub_date:
            parts.append(f"[{item.pub_date}]")
        if item.summary:
            parts.append(f"- {item.summary[:200]}")
        lines.append(" ".join(parts))
    return "\n".join(lines)


def build_assessment_prompt(
    category: str,
    category_title: str,
    items: list[ContentItem],
    keyword_status: StatusLevel,
    keyword_reason: str,
    max_items: int = 20,
) -> str:
    return f"""\
Assess the current state of "{category_title}" based on these recent government documents.

CATEGORY: {category}
KEYWORD-BASED ASSESSMENT: {StatusLevel(keyword_status).value} - {keyword_reason}

RECENT DOCUMENTS:
{_format_items(items, max_items)}

Provide:
1. STATUS: one of [Stable, Warning, Drift, Capture]
   - Stable: normal operations, checks and balances functioning
   - Warning: some concerning patterns, but institutions pushing back
   - Drift: multiple warning signs of power centralization
   - Capture: serious violations of law, defiance of courts/oversight
2. CONFIDENCE: 0.0 to 1.0
3. REASONING: 2-3 sentences
4. EVIDENCE_FOR: up to 3 items supporting the assessment
5. EVIDENCE_AGAINST: up to 3 items suggesting it may be overstated
6. HOW_WE_COULD_BE_WRONG: 2-3 ways this assessment might be incorrect

Respond with ONLY valid JSON:
{{
  "status": "Stable|Warning|Drift|Capture",
  "confidence": 0.0,
  "reasoning": "...",
  "evidenceFor": ["..."],
  "evidenceAgainst": ["..."],
  "howWeCouldBeWrong": ["..."]
}}
"""


def build_counter_evidence_prompt(
    category_title: str, status: StatusLevel, reasoning: str, evidence: list[str],
) -> str:
    listed = "\n".join(f"{n}. {e}" for n, e in enumerate(evidence[:10], start=1))
    return f"""\
Perform a red-team review of this democratic institutions assessment.

CATEGORY: {category_title}
CURRENT ASSESSMENT: {StatusLevel(status).value}
REASONING: {reasoning}

KEY EVIDENCE USED:
{listed}

Consider alternative explanations, historical precedents, overlooked \
institutional safeguards and selection bias in the evidence. Give 3-5 specific, \
substantive reasons why this assessment might be incorrect or overstated.

Respond with ONLY valid JSON:
{{
  "counterPoints": ["...", "...", "..."]
}}
"""


# ---------------------------------------------------------------------------
# LLM Client
# ---------------------------------------------------------------------------

DEFAULT_MODELS = {
    "anthropic": "claude-haiku-4-5-20251001",
    "openai": "gpt-4o-mini",
    "openai_compatible": "gpt-4o-mini",
}


class LLMClient:
    """Async second-opinion client for Anthropic or OpenAI-compatible APIs.

    Provider and model fall back to ``LLM_PROVIDER`` / ``LLM_MODEL``; keys to
    the provider's usual environment variables.
    """

    temperature = 0.3

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.provider = provider or os.environ.get("LLM_PROVIDER", "anthropic")
        if self.provider not in DEFAULT_MODELS:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")
        self.model = model or os.environ.get("LLM_MODEL") or DEFAULT_MODELS[self.provider]
        self._client: Any = self._make_client(api_key, base_url)

    def _make_client(self, api_key: str | None, base_url: str | None) -> Any:
        if self.provider == "anthropic":
            import anthropic
            return anthropic.AsyncAnthropic(api_key=api_key or os.environ.get("ANTHROPIC_API_KEY"))

        import openai
        kwargs: dict[str, Any] = {}
        key = api_key or os.environ.get("OPENAI_API_KEY")
        if key:
            kwargs["api_key"] = key
        url = base_url or os.environ.get("OPENAI_BASE_URL")
        if url:
            kwargs["base_url"] = url
        return openai.AsyncOpenAI(**kwargs)

    async def _complete_anthropic(self, system: str, user: str, max_tokens: int) -> str:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return response.content[0].text.strip()

    async def _complete_openai(self, system: str, user: str, max_tokens: int) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        return response.choices[0].message.content or "{}"

    async def call(self, system: str, user: str, max_tokens: int = 1024) -> dict[str, Any]:
        """Return the reply's JSON object; LLMCallError if the call or parse fails."""
        complete = self._complete_anthropic if self.provider == "anthropic" else self._complete_openai
        try:
            text = await complete(system, user, max_tokens)
        except Exception as exc:
            raise LLMCallError(f"{self.provider} call failed: {exc}", retryable=True) from exc

        data = extract_json(text)
        if data is None:
            raise LLMCallError(f"{self.provider} returned no JSON object: {text[:200]}")
        return data


def extract_json(text: str) -> dict[str, Any] | None:
    """Pull the JSON object out of a reply that may be fenced or padded."""
    m = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, re.DOTALL)
    if m:
        text = m.group(1)
    else:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            text = text[start:end + 1]
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_ai_response(payload: str | dict[str, Any] | None) -> AIAssessmentResponse | None:
    if payload is None:
        return None
    data = extract_json(payload) if isinstance(payload, str) else payload
    if data is None:
        return None
    try:
        return AIAssessmentResponse.model_validate(data)
    except ValidationError as exc:
        log.warning("AI assessment payload failed validation: %s", exc.errors()[:3])
        return None


class AIOpinion(BaseModel):
    result: AIResult
    response: AIAssessmentResponse


async def fetch_ai_opinion(
    client: LLMClient,
    category: str,
    category_title: str,
    items: list[ContentItem],
    keyword_result: AssessmentResult,
    timeout: float = 30.0,
    max_items: int = 20,
) -> AIOpinion | None:
    """Ask the provider for a second opinion; None on any failure."""
    prompt = build_assessment_prompt(
        category, category_title, [i for i in items if i.is_valid],
        keyword_result.status, keyword_result.reason, max_items,
    )
    started = time.monotonic()
    try:
        payload = await asyncio.wait_for(client.call(ASSESSMENT_SYSTEM_PROMPT, prompt), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning("AI assessment for %s timed out after %.1fs", category, timeout)
        return None
    except LLMCallError as exc:
        log.warning("AI assessment for %s failed (retryable=%s): %s", category, exc.retryable, exc)
        return None

    parsed = parse_ai_response(payload)
    if parsed is None:
        log.warning("AI assessment for %s returned an invalid payload", category)
        return None
    return AIOpinion(
        result=AIResult(
            provider=client.provider,
            model=client.model,
            status=parsed.status,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning,
            latency_ms=int((time.monotonic() - started) * 1000),
        ),
        response=parsed,
    )


async def fetch_counter_evidence(
    client: LLMClient,
    category_title: str,
    keyword_result: AssessmentResult,
    timeout: float = 30.0,
) -> list[str]:
    prompt = build_counter_evidence_prompt(
        category_title, keyword_result.status, keyword_result.reason, keyword_result.matches,
    )
    try:
        payload = await asyncio.wait_for(client.call(COUNTER_EVIDENCE_SYSTEM_PROMPT, prompt, 512), timeout=timeout)
    except (asyncio.TimeoutError, LLMCallError) as exc:
        log.info("Counter-evidence for %s unavailable: %s", category_title, exc)
        return []
    try:
        parsed = CounterEvidenceResponse.model_validate(payload)
    except ValidationError as exc:
        log.warning("Counter-evidence payload for %s failed validation: %s", category_title, exc.errors()[:3])
        return []
    return [p for p in parsed.counter_points if p.strip()][:5]
