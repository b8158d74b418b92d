"""Tests for the generation clients."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest
import requests

from errors import (
    ConfigurationError,
    EmptyResponseError,
    GenerationTimeoutError,
    UpstreamError,
)
from language_model import OpenAIModel, PluginProxyModel, chat_messages

KEY = "sk-live-abcdef123456"
REQUEST = httpx.Request("POST", "https://llm.example.com/v1/chat/completions")


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def model():
    m = OpenAIModel(KEY, model="gpt-4o-mini", base_url="https://llm.example.com/v1", max_tokens=512)
    m.client = MagicMock()
    return m


def test_chat_messages_order() -> None:
    assert chat_messages("sys", "usr") == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "usr"},
    ]


class TestOpenAIModel:
    @pytest.mark.parametrize("key,name", [("", "gpt-4o-mini"), (KEY, "")])
    def test_missing_credentials(self, key, name) -> None:
        with pytest.raises(ConfigurationError):
            OpenAIModel(key, model=name)

    def test_generate_sends_system_and_user(self, model) -> None:
        model.client.chat.completions.create.return_value = _completion("  [REFINED]x[/REFINED]\n")
        assert model.generate("sys", "usr") == "[REFINED]x[/REFINED]"
        kwargs = model.client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "usr"}]
        assert kwargs["max_tokens"] == 512
        assert kwargs["temperature"] == 0.3

    @pytest.mark.parametrize("response", [_completion(""), _completion(None), SimpleNamespace(choices=[])])
    def test_empty_reply(self, model, response) -> None:
        model.client.chat.completions.create.return_value = response
        with pytest.raises(EmptyResponseError):
            model.generate("s", "u")

    def test_timeout(self, model) -> None:
        model.client.chat.completions.create.side_effect = openai.APITimeoutError(request=REQUEST)
        with pytest.raises(GenerationTimeoutError):
            model.generate("s", "u")

    def test_status_error_is_sanitised_and_truncated(self, model) -> None:
        message = f"Incorrect API key provided: {KEY}. " + "x" * 500
        model.client.chat.completions.create.side_effect = openai.APIStatusError(
            message, response=httpx.Response(401, request=REQUEST), body=None
        )
        with pytest.raises(UpstreamError) as exc_info:
            model.generate("s", "u")
        err = exc_info.value
        assert err.upstream_status == 401
        assert KEY not in err.message
        assert "[REDACTED]" in err.message
        assert err.message.startswith("LLM API returned 401: ")
        assert len(err.message) <= len("LLM API returned 401: ") + 200

    def test_connection_error(self, model) -> None:
        model.client.chat.completions.create.side_effect = openai.APIConnectionError(request=REQUEST)
        with pytest.raises(UpstreamError):
            model.generate("s", "u")


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self.ok = status_code < 400
        self._data = data

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json, timeout))
        if self.error is not None:
            raise self.error
        return self.response


class TestPluginProxyModel:
    def test_generate_posts_messages(self) -> None:
        session = FakeSession(FakeResponse(200, {"text": " refined "}))
        proxy = PluginProxyModel("http://host/api/plugins/redraft/", timeout_s=7, session=session)
        assert proxy.generate("sys", "usr") == "refined"
        method, url, body, timeout = session.calls[0]
        assert (method, url, timeout) == ("POST", "http://host/api/plugins/redraft/refine", 7)
        assert body == {"messages": [{"role": "system", "content": "sys"}, {"role": "user", "content": "usr"}]}

    @pytest.mark.parametrize("status,expected", [
        (503, ConfigurationError),
        (504, GenerationTimeoutError),
        (502, UpstreamError),
        (400, UpstreamError),
    ])
    def test_error_statuses(self, status, expected) -> None:
        session = FakeSession(FakeResponse(status, {"error": "nope"}))
        proxy = PluginProxyModel("http://host", session=session)
        with pytest.raises(expected) as exc_info:
            proxy.generate("s", "u")
        assert exc_info.value.message == "nope"

    def test_error_without_json_body(self) -> None:
        proxy = PluginProxyModel("http://host", session=FakeSession(FakeResponse(500, None)))
        with pytest.raises(UpstreamError, match="Server returned 500"):
            proxy.generate("s", "u")

    def test_blank_text(self) -> None:
        proxy = PluginProxyModel("http://host", session=FakeSession(FakeResponse(200, {"text": "  "})))
        with pytest.raises(EmptyResponseError):
            proxy.generate("s", "u")

    def test_transport_errors(self) -> None:
        proxy = PluginProxyModel("http://host", session=FakeSession(error=requests.Timeout()))
        with pytest.raises(GenerationTimeoutError):
            proxy.generate("s", "u")
        proxy = PluginProxyModel("http://host", session=FakeSession(error=requests.ConnectionError("refused")))
        with pytest.raises(UpstreamError):
            proxy.generate("s", "u")

    def test_status(self) -> None:
        session = FakeSession(FakeResponse(200, {"configured": True, "maskedKey": "sk-...1234"}))
        proxy = PluginProxyModel("http://host", session=session)
        assert proxy.status()["configured"] is True
        assert session.calls[0][:2] == ("GET", "http://host/status")
