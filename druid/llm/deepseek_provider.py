from .openai_provider import OpenAIProvider


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek API provider (OpenAI-compatible)."""

    name = "deepseek"
    base_url = "https://api.deepseek.com"

    async def vision(
        self, messages: list[dict], images: list[str], model: str, **kwargs
    ) -> str:
        # DeepSeek chat models are text-only, fall back to the text prompt
        return await self.complete(messages, model, **kwargs)
