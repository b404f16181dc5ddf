import os
import tempfile

# Keep the import-time config dir away from the real home directory
os.environ.setdefault("DRUID_CONFIG_DIR", tempfile.mkdtemp(prefix="druid-test-"))

import pytest

from druid import config, crypto
from druid.bots import storage as bot_storage
from druid.chat import preferences
from druid.conversation import storage as message_storage
from druid.deploy import flow
from druid.deploy import storage as token_storage
from druid.llm import registry
from druid.llm.base import LLMProvider
from druid.llm.errors import InvalidResponse
from druid.middleware import rate_limiter


class FakeProvider(LLMProvider):
    """Records calls and answers with canned text or raises a canned error."""

    name = "fake"

    def __init__(self, reply: str = "Hello there.", error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    async def complete(self, messages, model, **kwargs):
        self.calls.append({"messages": messages, "model": model, **kwargs})
        if self.error is not None:
            raise self.error
        if not self.reply:
            raise InvalidResponse()
        return self.reply

    async def vision(self, messages, images, model, **kwargs):
        self.calls.append({"messages": messages, "images": images, "model": model, **kwargs})
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "_config_dir", tmp_path)
    monkeypatch.setattr(config, "_config_file", tmp_path / "config.json")
    monkeypatch.setattr(bot_storage, "_bots_file", tmp_path / "bots.json")
    monkeypatch.setattr(message_storage, "_messages_dir", tmp_path / "messages")
    monkeypatch.setattr(token_storage, "_tokens_file", tmp_path / "tokens.json")
    monkeypatch.setattr(preferences, "_prefs_file", tmp_path / "preferences.json")
    monkeypatch.setattr(config, "_current_config", config.AppConfig())
    for name in config.ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    crypto.reset_fernet()
    registry.reset_providers()
    rate_limiter.reset()
    flow._sessions.clear()
    yield tmp_path
    crypto.reset_fernet()
    registry.reset_providers()
    flow._sessions.clear()


@pytest.fixture
def app_config():
    return config.get_config()


@pytest.fixture
def fake_provider():
    provider = FakeProvider()
    for name in ("openai", "deepseek", "uncensored"):
        registry.register_provider(name, provider)
    return provider


@pytest.fixture
def gate_balance(monkeypatch):
    """Set the gate-token balance every wallet reports."""
    from druid.solana import balance

    state = {"balance": 0.0, "calls": 0}

    async def fake_balance(wallet, rpc=None):
        state["calls"] += 1
        return state["balance"]

    monkeypatch.setattr(balance, "get_gate_balance", fake_balance)
    return state
