"""Shared fixtures for the refinement pipeline tests."""

from __future__ import annotations

import os
import tempfile

# Keep test runs from writing into the repository logs/ directory
os.environ.setdefault("REDRAFT_LOG_DIR", tempfile.mkdtemp(prefix="redraft-logs-"))

from typing import List, Tuple  # noqa: E402

import pytest  # noqa: E402

from domain import CustomRule, RefinePreferences  # noqa: E402
from prompt_schema import DEFAULT_BUILTIN_TOGGLES  # noqa: E402
from settings import Settings  # noqa: E402


class FakeModel:
    """LanguageModel double that records prompts and replays a canned reply."""

    def __init__(self, reply: str = "", error: Exception | None = None, echo: bool = False) -> None:
        self.reply = reply
        self.error = error
        self.echo = echo
        self.calls: List[Tuple[str, str]] = []

    def generate(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if self.error is not None:
            raise self.error
        if self.echo:
            message = user.split("Original message:\n", 1)[1]
            return f"[CHANGELOG]\n- none\n[/CHANGELOG]\n[REFINED]\n{message}\n[/REFINED]"
        return self.reply


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="sk-test-0123456789",
        request_timeout_s=2.0,
        proxy_config_path=str(tmp_path / "config.json"),
        metadata_path=str(tmp_path / "metadata.json"),
    )


@pytest.fixture
def preferences() -> RefinePreferences:
    return RefinePreferences(
        builtin_rules=dict(DEFAULT_BUILTIN_TOGGLES),
        custom_rules=[CustomRule(text="Keep British spelling")],
    )


@pytest.fixture
def fake_model_cls():
    return FakeModel
