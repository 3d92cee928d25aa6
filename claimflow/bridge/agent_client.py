"""Agent invocation bridge: the contract the orchestrator calls agents through.

The orchestrator only sees ``AgentInvoker``.  ``OpenRouterInvoker`` is the
default implementation: an OpenAI-compatible chat-completions call over a
persistent ``httpx.AsyncClient``.  Tests substitute a scripted invoker.

Agents answer in JSON.  ``extract_json`` tolerates a single surrounding
Markdown code fence, which models add despite being told not to.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


class UpstreamError(RuntimeError):
    """Raised when the completion service fails or is unreachable.

    ``status`` is the HTTP status, or 0 when no response was received.
    """

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Agent upstream failed ({status}): {message}")
        self.status = status
        self.message = message


class AgentOutputError(RuntimeError):
    """Raised when agent text is not a JSON object."""


class AgentOptions(BaseModel):
    """Per-call overrides.  Unset fields fall back to the invoker defaults."""

    model_config = ConfigDict(frozen=True)

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    enable_reasoning: bool = False
    images: list[str] = []


class AgentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    model: str
    usage: dict[str, Any] | None = None
    reasoning: str | None = None
    citations: list[str] | None = None


@runtime_checkable
class AgentInvoker(Protocol):
    """Sends one system + user message pair to a named agent."""

    async def invoke(
        self,
        agent_id: str,
        system_prompt: str,
        user_message: str,
        options: AgentOptions | None = None,
    ) -> AgentResponse: ...


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------


def extract_json(text: str) -> dict[str, Any]:
    """Parse agent text as a JSON object, stripping an optional code fence."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned, count=1), count=1)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AgentOutputError(f"Agent output is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AgentOutputError(
            f"Agent output must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


# ---------------------------------------------------------------------------
# System prompts
# ---------------------------------------------------------------------------


def load_system_prompt(
    agents_dir: Path, agent_id: str, schema: dict[str, Any] | None = None
) -> str:
    """Read ``<agents_dir>/<agent_id>/SYSTEM_PROMPT.md``.

    Falls back to a generic JSON-only instruction, embedding *schema* when
    given, if the file is missing.
    """
    path = Path(agents_dir) / agent_id / "SYSTEM_PROMPT.md"
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("No system prompt at %s; using fallback", path)

    prompt = (
        f"You are the {agent_id} agent. Respond ONLY with valid JSON matching "
        "your OUTPUT_SCHEMA. No markdown, no code fences, no explanation text."
    )
    if schema is not None:
        prompt += "\n\nOUTPUT_SCHEMA:\n" + json.dumps(schema, indent=2)
    return prompt


# ---------------------------------------------------------------------------
# OpenRouter invoker
# ---------------------------------------------------------------------------


class OpenRouterInvoker:
    """Async chat-completions client for OpenRouter-compatible endpoints.

    Parameters
    ----------
    api_key:
        Bearer token for the completion service.
    base_url:
        API root; ``/chat/completions`` is appended.
    default_model:
        Model used when neither the call nor ``model_overrides`` name one.
    model_overrides:
        Per-agent model, keyed by agent id.
    client:
        Optional persistent client (injected in tests).  One is created
        and owned by the invoker otherwise.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        default_model: str = "google/gemini-2.0-flash-001",
        model_overrides: dict[str, str] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.1,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._default_model = default_model
        self._model_overrides = dict(model_overrides or {})
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def model_for(self, agent_id: str, options: AgentOptions) -> str:
        return options.model or self._model_overrides.get(agent_id, self._default_model)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": "claimflow",
        }

    @staticmethod
    def _user_content(user_message: str, images: list[str]) -> Any:
        if not images:
            return user_message
        parts: list[dict[str, Any]] = [{"type": "text", "text": user_message}]
        parts.extend({"type": "image_url", "image_url": {"url": url}} for url in images)
        return parts

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def invoke(
        self,
        agent_id: str,
        system_prompt: str,
        user_message: str,
        options: AgentOptions | None = None,
    ) -> AgentResponse:
        options = options or AgentOptions()
        model = self.model_for(agent_id, options)
        body: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": self._user_content(user_message, options.images)},
            ],
            "max_tokens": options.max_tokens or self._max_tokens,
            "temperature": (
                options.temperature if options.temperature is not None else self._temperature
            ),
        }
        if options.enable_reasoning:
            body["reasoning"] = {"enabled": True}

        try:
            response = await self._client.post(self._url, headers=self._headers(), json=body)
        except httpx.HTTPError as exc:
            raise UpstreamError(0, f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamError(response.status_code, response.text[:500])

        try:
            data = response.json()
            message = data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError(
                response.status_code, f"Malformed completion response: {exc}"
            ) from exc

        logger.debug("Agent %s answered via %s", agent_id, data.get("model", model))
        return AgentResponse(
            text=message.get("content") or "",
            model=data.get("model") or model,
            usage=data.get("usage"),
            reasoning=message.get("reasoning"),
            citations=data.get("citations"),
        )
