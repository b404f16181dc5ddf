import logging
from typing import Iterable, Union

from ..bots.models import Bot
from ..config import get_config
from ..conversation import storage as message_storage
from ..conversation.models import Message
from ..i18n import t
from ..llm.errors import (
    ChatServiceError,
    InvalidResponse,
    MissingCredentials,
    RateLimited,
)
from ..llm.registry import get_provider_for_mode, model_for_mode
from ..persona import Persona, build_system_prompt
from .models import ChatMessage, ChatMode, ChatOutcome

logger = logging.getLogger(__name__)


def build_messages(
    persona: Persona,
    history: Iterable[Union[ChatMessage, Message]],
    user_message: str,
) -> list[dict]:
    """System prompt, then the full prior history, then the new user turn."""
    turns = [{"role": m.role, "content": m.content} for m in history]
    turns.append({"role": "user", "content": user_message})
    return [
        {"role": "system", "content": build_system_prompt(persona)},
        *turns,
    ]


async def dispatch(
    mode: ChatMode,
    persona: Persona,
    history: Iterable[Union[ChatMessage, Message]],
    user_message: str,
) -> str:
    """One assistant reply from the backend selected by *mode*. No retry."""
    llm = get_config().llm
    provider = get_provider_for_mode(mode)
    messages = build_messages(persona, history, user_message)
    reply = await provider.complete(
        messages,
        model_for_mode(mode),
        max_tokens=llm.max_tokens,
        temperature=llm.temperature,
    )
    if not reply.strip():
        raise InvalidResponse(f"{mode.value}: empty reply")
    return reply


def friendly_error(mode: ChatMode, error: Exception, lang: str = "en") -> str:
    if isinstance(error, RateLimited):
        return t("chat_rate_limited", lang)
    if isinstance(error, MissingCredentials):
        return t(f"chat_unavailable_{mode.value}", lang)
    if isinstance(error, InvalidResponse):
        return t("chat_invalid_response", lang)
    if isinstance(error, ChatServiceError):
        return t(f"chat_error_{mode.value}", lang)
    return t("chat_generic", lang)


async def send_chat(bot: Bot, text: str, mode: ChatMode, lang: str = "en") -> ChatOutcome:
    """Store the user turn, ask the backend, store the reply.

    The user turn is stored before dispatch and stays stored when the
    backend fails; failures come back as a friendly, unstored reply.
    """
    history = message_storage.list_messages(bot.id)
    message_storage.append_message(bot.id, "user", text)

    persona = Persona(name=bot.name, personality=bot.personality, background=bot.background)
    try:
        reply = await dispatch(mode, persona, history, text)
    except ChatServiceError as e:
        logger.warning("Chat %s failed for bot %s: %s", mode.value, bot.id, e)
        return ChatOutcome(
            reply=ChatMessage(role="assistant", content=friendly_error(mode, e, lang)),
            stored=False,
            error=e.kind,
        )

    message_storage.append_message(bot.id, "assistant", reply)
    return ChatOutcome(reply=ChatMessage(role="assistant", content=reply), stored=True)
