from __future__ import annotations

import asyncio
import json
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError

from errors import (
    ConfigurationError,
    GenerationTimeoutError,
    PayloadTooLargeError,
    RedraftError,
    ValidationError,
    mask_key,
    sanitize_error,
)
from language_model import DEFAULT_MAX_TOKENS, OpenAIModel
from logger import get_logger, log_exception
from settings import Settings

logger = get_logger('api.main')

MODULE_NAME = "redraft"


@dataclass
class ProxyConfig:
    api_url: str
    api_key: str
    model: str
    max_tokens: int = DEFAULT_MAX_TOKENS

    def to_dict(self) -> Dict[str, Any]:
        return {"apiUrl": self.api_url, "apiKey": self.api_key, "model": self.model, "maxTokens": self.max_tokens}

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_url)


class ProxyConfigStore:
    """Credentials for the proxied provider, persisted as JSON.

    Re-read from disk on every access so edits made outside the process apply
    to the next request.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self.cached: Optional[ProxyConfig] = None

    def read(self) -> Optional[ProxyConfig]:
        try:
            if not os.path.exists(self.path):
                return None
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
            self.cached = ProxyConfig(
                api_url=str(raw.get("apiUrl") or ""),
                api_key=str(raw.get("apiKey") or ""),
                model=str(raw.get("model") or ""),
                max_tokens=_coerce_max_tokens(raw.get("maxTokens")),
            )
            return self.cached
        except Exception as e:
            logger.error(f"[{MODULE_NAME}] Failed to read config: {e}")
            return None

    def write(self, config: ProxyConfig) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        with self._lock:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".config-", suffix=".json")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(config.to_dict(), f, indent=2)
                os.replace(tmp, self.path)
            except Exception:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise
            self.cached = config

    def secret(self) -> Optional[str]:
        return self.cached.api_key if self.cached else None


def _coerce_max_tokens(value: Any) -> int:
    try:
        n = int(float(value))
    except (TypeError, ValueError):
        return DEFAULT_MAX_TOKENS
    return n if n > 0 else DEFAULT_MAX_TOKENS


def _required_string(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required and must be a non-empty string")
    return value.strip()


class ChatMessage(BaseModel):
    role: str
    content: str


class RefineProxyRequest(BaseModel):
    messages: List[ChatMessage]


def _validate_messages(data: Any) -> List[Dict[str, str]]:
    messages = data.get("messages") if isinstance(data, dict) else None
    if not isinstance(messages, list) or not messages:
        raise ValidationError("messages must be a non-empty array")
    for msg in messages:
        if not isinstance(msg, dict) or not isinstance(msg.get("role"), str) or not msg.get("role"):
            raise ValidationError('Each message must have a string "role"')
        if not isinstance(msg.get("content"), str) or not msg.get("content"):
            raise ValidationError('Each message must have a string "content"')
    try:
        parsed = RefineProxyRequest(messages=messages)
    except PydanticValidationError as e:
        raise ValidationError("Malformed messages", details={"detail": e.errors()}) from e
    return [m.model_dump() for m in parsed.messages]


def create_error_response(message: str, status_code: int = 500, error_code: Optional[str] = None,
                          details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    """Create a standardized error response."""
    error_data = {
        "error": message,
        "status_code": status_code,
        "error_code": error_code or f"ERROR_{status_code}",
        "timestamp": datetime.now().isoformat(),
    }
    if details:
        error_data["details"] = json.loads(json.dumps(details, default=str))
    return JSONResponse(error_data, status_code=status_code)


ModelFactory = Callable[[ProxyConfig, Settings], OpenAIModel]


def default_model_factory(config: ProxyConfig, settings: Settings) -> OpenAIModel:
    return OpenAIModel(
        config.api_key,
        model=config.model,
        base_url=config.api_url,
        max_tokens=config.max_tokens,
        timeout_s=settings.request_timeout_s,
    )


def create_app(settings: Optional[Settings] = None,
               model_factory: Optional[ModelFactory] = None) -> FastAPI:
    settings = settings or Settings.load()
    config_store = ProxyConfigStore(settings.proxy_config_path)
    factory = model_factory or default_model_factory

    app = FastAPI(title="ReDraft Refinement Proxy", version="1.0.0")
    app.state.settings = settings
    app.state.config_store = config_store

    @app.exception_handler(RedraftError)
    async def redraft_error_handler(request: Request, exc: RedraftError):
        message = sanitize_error(exc.message, config_store.secret())
        logger.warning(f"[{MODULE_NAME}] {exc.error_code}: {message}")
        return create_error_response(message, exc.status_code, exc.error_code, exc.details)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"[{MODULE_NAME}] Unhandled error: {sanitize_error(str(exc), config_store.secret())}")
        return create_error_response("Internal server error", 500, "INTERNAL_ERROR")

    async def _json_body(request: Request) -> Any:
        body = await request.body()
        if len(body) > settings.max_body_size_bytes:
            raise PayloadTooLargeError("Request body too large")
        try:
            return json.loads(body or b"null")
        except ValueError as e:
            raise ValidationError("invalid json") from e

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/config")
    async def save_config(request: Request):
        data = await _json_body(request)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        config = ProxyConfig(
            api_url=_required_string(data, "apiUrl").rstrip("/"),
            api_key=_required_string(data, "apiKey"),
            model=_required_string(data, "model"),
            max_tokens=_coerce_max_tokens(data.get("maxTokens")),
        )
        try:
            config_store.write(config)
        except Exception as e:
            log_exception("CONFIG_SAVE_ERROR", e)
            return create_error_response("Failed to save configuration", 500, "CONFIG_SAVE_ERROR")
        logger.info(f"[{MODULE_NAME}] Config saved successfully")
        return {"ok": True}

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        config = config_store.read()
        if not config or not config.configured:
            return {"configured": False, "apiUrl": None, "model": None, "maskedKey": None}
        return {
            "configured": True,
            "apiUrl": config.api_url,
            "model": config.model or None,
            "maskedKey": mask_key(config.api_key),
        }

    @app.post("/refine")
    async def refine(request: Request):
        data = await _json_body(request)
        messages = _validate_messages(data)

        config = config_store.read()
        if not config or not config.configured:
            raise ConfigurationError("ReDraft is not configured. Please set up API credentials.")

        try:
            model = factory(config, settings)
            text = await asyncio.wait_for(
                asyncio.to_thread(model.complete, messages),
                timeout=settings.request_timeout_s,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"[{MODULE_NAME}] LLM request timed out after {settings.request_timeout_s:g}s")
            raise GenerationTimeoutError("LLM request timed out") from e
        except RedraftError:
            raise
        except Exception as e:
            logger.error(f"[{MODULE_NAME}] Refine error: {sanitize_error(str(e), config.api_key)}")
            return create_error_response("Internal error during refinement", 500, "INTERNAL_ERROR")

        return {"text": text}

    logger.info(f"[{MODULE_NAME}] Proxy loaded. Config "
                f"{'found' if config_store.read() else 'not found, configure via POST /config'}.")
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
