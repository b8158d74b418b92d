from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Protocol

import requests

from errors import (
    ConfigurationError,
    EmptyResponseError,
    GenerationTimeoutError,
    UpstreamError,
    sanitize_error,
)
from logger import get_logger, log_performance

logger = get_logger(__name__)

DEFAULT_TEMPERATURE = 0.3  # low temperature keeps edits consistent
DEFAULT_MAX_TOKENS = 4096
ERROR_PREVIEW_CHARS = 200


class LanguageModel(Protocol):
    def generate(self, system: str, user: str) -> str: ...


def chat_messages(system: str, user: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


class OpenAIModel:
    """Chat-completions client for any OpenAI-compatible endpoint."""

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 max_tokens: int = DEFAULT_MAX_TOKENS, timeout_s: float = 30.0,
                 temperature: float = DEFAULT_TEMPERATURE) -> None:
        if not api_key or not model:
            raise ConfigurationError("Generation service is not configured. Set an API key and model.")
        from openai import OpenAI
        # No SDK retries: a failed refinement is reported, never retried
        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_s, max_retries=0)
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self.temperature = temperature

    def complete(self, messages: List[Dict[str, str]]) -> str:
        from openai import APIConnectionError, APIStatusError, APITimeoutError

        t0 = time.perf_counter()
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except APITimeoutError as e:
            logger.error(f"LLM request timed out after {self.timeout_s}s")
            raise GenerationTimeoutError("LLM request timed out") from e
        except APIStatusError as e:
            sanitized = sanitize_error(str(e.message or e), self.api_key)
            logger.error(f"LLM API error ({e.status_code}): {sanitized}")
            raise UpstreamError(
                f"LLM API returned {e.status_code}: {sanitized[:ERROR_PREVIEW_CHARS]}",
                upstream_status=e.status_code,
            ) from e
        except APIConnectionError as e:
            sanitized = sanitize_error(str(e), self.api_key)
            logger.error(f"LLM connection failed: {sanitized}")
            raise UpstreamError(f"LLM connection failed: {sanitized[:ERROR_PREVIEW_CHARS]}") from e

        content = ""
        if getattr(resp, "choices", None):
            content = resp.choices[0].message.content or ""
        if not content.strip():
            raise EmptyResponseError("LLM returned an empty or malformed response")

        log_performance("LLM_COMPLETION", (time.perf_counter() - t0) * 1000,
                        model=self.model, chars_out=len(content))
        return content.strip()

    def generate(self, system: str, user: str) -> str:
        return self.complete(chat_messages(system, user))


class PluginProxyModel:
    """Routes generation through a separately configured proxy's /refine endpoint."""

    def __init__(self, base_url: str, timeout_s: float = 30.0,
                 session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def _request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        try:
            resp = self.session.request(method, url, json=body, timeout=self.timeout_s)
        except requests.Timeout as e:
            raise GenerationTimeoutError("Proxy request timed out") from e
        except requests.RequestException as e:
            raise UpstreamError(f"Proxy unreachable: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not resp.ok:
            message = (data.get("error") if isinstance(data, dict) else None) or f"Server returned {resp.status_code}"
            if resp.status_code == 503:
                raise ConfigurationError(message)
            if resp.status_code == 504:
                raise GenerationTimeoutError(message)
            raise UpstreamError(message, upstream_status=resp.status_code)
        return data if isinstance(data, dict) else {}

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/status")

    def generate(self, system: str, user: str) -> str:
        result = self._request("POST", "/refine", {"messages": chat_messages(system, user)})
        text = result.get("text")
        if not isinstance(text, str) or not text.strip():
            raise EmptyResponseError("Plugin returned an empty response")
        return text.strip()
