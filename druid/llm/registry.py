from typing import Optional

from ..chat.models import ChatMode
from ..config import get_config
from .base import LLMProvider
from .deepseek_provider import DeepSeekProvider
from .errors import MissingCredentials
from .openai_provider import OpenAIProvider
from .uncensored_provider import UncensoredProvider

_MODE_TO_PROVIDER: dict[ChatMode, str] = {
    ChatMode.NATURAL: "openai",
    ChatMode.DEEPSEEK: "deepseek",
    ChatMode.UNCENSORED: "uncensored",
}

_providers: dict[str, LLMProvider] = {}


def _init_provider(provider_name: str) -> Optional[LLMProvider]:
    llm = get_config().llm

    if provider_name == "openai":
        if not llm.openai_api_key:
            return None
        return OpenAIProvider(llm.openai_api_key)

    if provider_name == "deepseek":
        if not llm.deepseek_api_key:
            return None
        return DeepSeekProvider(llm.deepseek_api_key, base_url=llm.deepseek_base_url)

    # Uncensored needs both the key and an endpoint
    if provider_name == "uncensored":
        if not llm.uncensored_api_key or not llm.uncensored_base_url:
            return None
        return UncensoredProvider(llm.uncensored_api_key, base_url=llm.uncensored_base_url)

    return None


def _get_provider(provider_name: str) -> LLMProvider:
    if provider_name not in _providers:
        provider = _init_provider(provider_name)
        if provider is None:
            raise MissingCredentials(f"{provider_name}: API key not configured")
        _providers[provider_name] = provider
    return _providers[provider_name]


def get_provider_for_mode(mode: ChatMode) -> LLMProvider:
    """Return the cached provider for *mode*, raising MissingCredentials if unset."""
    return _get_provider(_MODE_TO_PROVIDER[mode])


def get_vision_provider() -> LLMProvider:
    return _get_provider("openai")


def model_for_mode(mode: ChatMode) -> str:
    llm = get_config().llm
    if mode == ChatMode.DEEPSEEK:
        return llm.deepseek_model
    if mode == ChatMode.UNCENSORED:
        return llm.uncensored_model
    return llm.natural_model


def register_provider(provider_name: str, provider: LLMProvider) -> None:
    """Install a ready-made provider, bypassing config lookup."""
    _providers[provider_name] = provider


def reset_providers() -> None:
    _providers.clear()
