from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """Abstract base class for chat and vision providers."""

    name: str

    @abstractmethod
    async def complete(
        self, messages: list[dict], model: str, **kwargs
    ) -> str:
        """Send messages and get a complete response."""
        ...

    @abstractmethod
    async def vision(
        self, messages: list[dict], images: list[str], model: str, **kwargs
    ) -> str:
        """Send messages with image URLs (or data URLs) and get a response."""
        ...
