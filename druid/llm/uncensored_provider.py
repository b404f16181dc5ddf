from .openai_provider import OpenAIProvider


class UncensoredProvider(OpenAIProvider):
    """Unfiltered model behind any OpenAI-compatible endpoint.

    The base URL comes from ``llm.uncensored_base_url`` in the config.
    """

    name = "uncensored"

    async def vision(
        self, messages: list[dict], images: list[str], model: str, **kwargs
    ) -> str:
        return await self.complete(messages, model, **kwargs)
