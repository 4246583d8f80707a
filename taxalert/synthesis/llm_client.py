"""Async clients for hosted and self-served generative models.

Clients make exactly one request per call and surface every provider failure
as :class:`UpstreamError`. Retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from taxalert.errors import ConfigurationError, UpstreamError
from taxalert.synthesis.prompts import TEMPERATURE_FACTUAL
from taxalert.utils.settings import DEFAULT_BASE_URLS, Settings, get_settings

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
ERROR_BODY_CHARS = 300


@runtime_checkable
class ModelClient(Protocol):
    """Anything that can turn a system/user prompt pair into raw text."""

    model: str

    async def extract(self, system_prompt: str, user_prompt: str) -> str: ...

    async def close(self) -> None: ...


class HTTPModelClient(ABC):
    """Shared request/error handling for HTTPS model providers."""

    provider = "http"
    endpoint = "/chat/completions"

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        api_key: Optional[str] = None,
        timeout_seconds: float = 120.0,
        temperature: float = TEMPERATURE_FACTUAL,
        max_tokens: int = 4000,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.headers = {"Content-Type": "application/json", **self._auth_headers(), **(headers or {})}
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            headers=self.headers,
            transport=transport,
        )
        logger.info("Initialized %s client: %s with model: %s", self.provider, self.base_url, model)

    def _auth_headers(self) -> Dict[str, str]:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    @abstractmethod
    def _build_payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        """Provider request body for one extraction."""

    @abstractmethod
    def _parse_response(self, data: Dict[str, Any]) -> str:
        """Pull the generated text out of the provider envelope."""

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:ERROR_BODY_CHARS] or response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        return str(body)[:ERROR_BODY_CHARS]

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as exc:
            raise UpstreamError(
                f"request timed out after {self.timeout_seconds}s", provider=self.provider
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamError(
                f"{type(exc).__name__}: {exc}", provider=self.provider
            ) from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error(
                "%s API error (status=%s): %s", self.provider, response.status_code, message
            )
            raise UpstreamError(message, status=response.status_code, provider=self.provider)

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                "response body is not JSON", status=response.status_code, provider=self.provider
            ) from exc

    async def extract(self, system_prompt: str, user_prompt: str) -> str:
        data = await self._post(self._build_payload(system_prompt, user_prompt))
        try:
            text = self._parse_response(data)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise UpstreamError(
                f"unexpected response envelope: {str(data)[:ERROR_BODY_CHARS]}",
                provider=self.provider,
            ) from exc
        logger.debug("%s response received (%s chars)", self.provider, len(text))
        return text

    async def close(self) -> None:
        await self.client.aclose()


class AnthropicClient(HTTPModelClient):
    """Client for the Anthropic Messages API."""

    provider = "anthropic"
    endpoint = "/messages"

    def __init__(self, *, api_key: str, base_url: Optional[str] = None, **kwargs: Any) -> None:
        if not api_key:
            raise ConfigurationError(
                "Anthropic API key is required. Set ANTHROPIC_API_KEY or LLM_API_KEY."
            )
        super().__init__(base_url or DEFAULT_BASE_URLS["anthropic"], api_key=api_key, **kwargs)

    def _auth_headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key or "", "anthropic-version": ANTHROPIC_VERSION}

    def _build_payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

    def _parse_response(self, data: Dict[str, Any]) -> str:
        blocks = data["content"]
        return "\n".join(block["text"] for block in blocks if block.get("type") == "text")


class OpenAICompatibleClient(HTTPModelClient):
    """Client for OpenAI-style chat completion servers (vLLM by default)."""

    provider = "vllm"

    def _build_payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": False,
        }

    def _parse_response(self, data: Dict[str, Any]) -> str:
        choice = data["choices"][0]
        if choice.get("finish_reason") == "length":
            logger.warning("%s response truncated at max_tokens=%s", self.provider, self.max_tokens)
        return choice["message"]["content"] or ""


class OllamaAPIClient(OpenAICompatibleClient):
    """Ollama's OpenAI-compatible bridge."""

    provider = "ollama"


class OpenAIClient(OpenAICompatibleClient):
    """Client targeting OpenAI's native API."""

    provider = "openai"

    def __init__(self, *, api_key: str, base_url: Optional[str] = None, **kwargs: Any) -> None:
        if not api_key:
            raise ConfigurationError("OpenAI API key is required when using the OpenAI provider")
        super().__init__(base_url or DEFAULT_BASE_URLS["openai"], api_key=api_key, **kwargs)


_PROVIDERS = {
    "anthropic": AnthropicClient,
    "openai": OpenAIClient,
    "vllm": OpenAICompatibleClient,
    "ollama": OllamaAPIClient,
}


def create_model_client(
    settings: Optional[Settings] = None,
    *,
    provider: Optional[str] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> HTTPModelClient:
    """Build the provider client described by ``settings`` with explicit overrides."""

    settings = settings or get_settings()
    llm = settings.llm
    provider_name = (provider or llm.provider).lower()
    client_cls = _PROVIDERS.get(provider_name)
    if client_cls is None:
        raise ConfigurationError(f"Unknown LLM provider: {provider_name}")

    same_provider = provider_name == llm.provider
    base_url = llm.resolved_base_url() if same_provider else DEFAULT_BASE_URLS[provider_name]
    common: Dict[str, Any] = {
        "model": model or llm.default_model,
        "timeout_seconds": llm.timeout_seconds,
        "temperature": llm.temperature,
        "max_tokens": llm.max_tokens,
        "transport": transport,
    }

    if client_cls in (AnthropicClient, OpenAIClient):
        resolved_key = api_key or llm.resolved_api_key(provider_name)
        return client_cls(api_key=resolved_key or "", base_url=base_url, **common)

    return client_cls(base_url, api_key=api_key or (llm.api_key if same_provider else None), **common)


__all__ = [
    "ModelClient",
    "HTTPModelClient",
    "AnthropicClient",
    "OpenAICompatibleClient",
    "OllamaAPIClient",
    "OpenAIClient",
    "create_model_client",
]
