import pytest

from druid.bots import storage as bot_storage
from druid.bots.models import BotFields
from druid.chat.dispatcher import build_messages, dispatch, friendly_error, send_chat
from druid.chat.models import ChatMessage, ChatMode
from druid.conversation import storage as message_storage
from druid.i18n import t
from druid.llm import registry
from druid.llm.errors import (
    InvalidResponse,
    MissingCredentials,
    RateLimited,
    UpstreamError,
)
from druid.persona import Persona

from .conftest import FakeProvider

PERSONA = Persona(name="Ada", personality="Curious.", background="Mathematician.")


def _bot():
    return bot_storage.create_bot(
        BotFields(name="Ada", personality="Curious.", background="Mathematician."), "owner"
    )


def test_system_prompt_comes_first():
    history = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]
    messages = build_messages(PERSONA, history, "how are you?")
    assert messages[0] == {"role": "system", "content": "You are Ada. Curious. Mathematician."}
    assert messages[1:] == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "how are you?"},
    ]


def test_long_history_is_sent_in_full():
    history = [
        ChatMessage(role="user" if i % 2 == 0 else "assistant", content=str(i)) for i in range(60)
    ]
    messages = build_messages(PERSONA, history, "latest")
    assert messages[0]["role"] == "system"
    assert len(messages) == 62
    assert messages[1] == {"role": "user", "content": "0"}
    assert messages[-1] == {"role": "user", "content": "latest"}


@pytest.mark.parametrize(
    "mode, expected_model",
    [(ChatMode.NATURAL, "gpt-4o-mini"), (ChatMode.DEEPSEEK, "deepseek-chat")],
)
async def test_dispatch_routes_by_mode(mode, expected_model):
    natural, deepseek = FakeProvider("from natural"), FakeProvider("from deepseek")
    registry.register_provider("openai", natural)
    registry.register_provider("deepseek", deepseek)

    reply = await dispatch(mode, PERSONA, [], "hello")

    used = natural if mode == ChatMode.NATURAL else deepseek
    unused = deepseek if mode == ChatMode.NATURAL else natural
    assert reply == f"from {mode.value}"
    assert used.calls[0]["model"] == expected_model
    assert used.calls[0]["max_tokens"] == 1000
    assert unused.calls == []


async def test_dispatch_without_key_is_unavailable():
    with pytest.raises(MissingCredentials):
        await dispatch(ChatMode.DEEPSEEK, PERSONA, [], "hello")


async def test_uncensored_needs_endpoint(app_config):
    app_config.llm.uncensored_api_key = "key"
    with pytest.raises(MissingCredentials):
        await dispatch(ChatMode.UNCENSORED, PERSONA, [], "hello")


async def test_dispatch_rejects_blank_reply(fake_provider):
    fake_provider.reply = "   "
    with pytest.raises(InvalidResponse):
        await dispatch(ChatMode.NATURAL, PERSONA, [], "hello")


@pytest.mark.parametrize(
    "error, key",
    [
        (RateLimited(), "chat_rate_limited"),
        (MissingCredentials(), "chat_unavailable_deepseek"),
        (InvalidResponse(), "chat_invalid_response"),
        (UpstreamError(), "chat_error_deepseek"),
    ],
)
def test_friendly_error_text(error, key):
    assert friendly_error(ChatMode.DEEPSEEK, error) == t(key)


async def test_send_chat_stores_both_turns(fake_provider):
    bot = _bot()
    outcome = await send_chat(bot, "hello", ChatMode.NATURAL)

    assert outcome.stored is True
    assert outcome.error is None
    assert outcome.reply.content == "Hello there."
    stored = message_storage.list_messages(bot.id)
    assert [(m.role, m.content) for m in stored] == [("user", "hello"), ("assistant", "Hello there.")]


async def test_send_chat_uses_stored_history(fake_provider):
    bot = _bot()
    await send_chat(bot, "first", ChatMode.NATURAL)
    await send_chat(bot, "second", ChatMode.NATURAL)

    sent = fake_provider.calls[-1]["messages"]
    assert [m["content"] for m in sent[1:]] == ["first", "Hello there.", "second"]


async def test_send_chat_failure_keeps_user_turn_only(fake_provider):
    fake_provider.error = RateLimited()
    bot = _bot()
    outcome = await send_chat(bot, "hello", ChatMode.NATURAL)

    assert outcome.stored is False
    assert outcome.error == "rate_limited"
    assert outcome.reply.role == "assistant"
    assert outcome.reply.content == t("chat_rate_limited")
    stored = message_storage.list_messages(bot.id)
    assert [(m.role, m.content) for m in stored] == [("user", "hello")]
