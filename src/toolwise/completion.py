"""
Completion capability.

Every provider exposes a single coroutine::

    await provider.complete(messages, temperature=..., max_tokens=..., json_mode=...)

which returns the assistant text or raises one of ``CompletionTimeout``,
``RateLimited``, ``ExternalServiceUnavailable`` or ``MalformedResponse``.
Providers are OpenAI-compatible chat-completions endpoints (Groq, Gemini's
OpenAI endpoint, local servers) reached with ``httpx.AsyncClient``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from .errors import (
    CompletionTimeout,
    ExternalServiceUnavailable,
    MalformedResponse,
    RateLimited,
)
from .settings import ProviderSettings, Settings

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class CompletionProvider:
    """Base class for completion providers."""

    name = "provider"

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
        json_mode: bool = False,
    ) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        """Release any held connections."""


class OpenAICompatibleProvider(CompletionProvider):
    """Chat-completions client for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        config: ProviderSettings,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.name = config.name
        self.model = config.model
        self._endpoint = config.base_url.rstrip("/") + "/chat/completions"
        self._api_key = config.api_key
        self._timeout = config.timeout
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
        json_mode: bool = False,
    ) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = await self._client.post(
                self._endpoint, headers=headers, json=payload, timeout=self._timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("%s completion timed out after %ss", self.name, self._timeout)
            raise CompletionTimeout(f"{self.name} timed out") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("%s completion HTTP %s", self.name, status)
            if status == 429:
                raise RateLimited(f"{self.name} rate limited") from exc
            raise ExternalServiceUnavailable(f"{self.name} returned HTTP {status}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s completion failed: %s", self.name, exc)
            raise ExternalServiceUnavailable(f"{self.name} unreachable") from exc

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise MalformedResponse(f"{self.name} returned an unexpected body") from exc
        if not isinstance(content, str) or not content.strip():
            raise MalformedResponse(f"{self.name} returned empty content")
        logger.debug("%s raw response: %s", self.name, content[:150])
        return content.strip()

    async def close(self) -> None:
        await self._client.aclose()


def build_providers(settings: Settings) -> List[CompletionProvider]:
    """Instantiate the configured providers in priority order."""
    providers: List[CompletionProvider] = []
    for config in settings.providers:
        providers.append(OpenAICompatibleProvider(config))
        logger.info("Completion provider enabled: %s (%s)", config.name, config.model)
    if not providers:
        logger.info("No completion provider configured; using rule-based fallbacks only")
    return providers


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse the first ``{...}`` span in *text* as a JSON object.

    Raises:
        MalformedResponse: no object found or it does not decode to a dict.
    """
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise MalformedResponse("no JSON object in completion output")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise MalformedResponse(f"invalid JSON in completion output: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponse("completion output is not a JSON object")
    return data
