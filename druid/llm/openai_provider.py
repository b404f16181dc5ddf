import logging
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI

from .base import LLMProvider
from .errors import InvalidResponse, MissingCredentials, RateLimited, UpstreamError

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions; also the vision backend for persona generation."""

    name = "openai"
    base_url: Optional[str] = None

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        # Single attempt; failures surface to the user as a chat message
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url or self.base_url,
            max_retries=0,
            http_client=http_client,
        )

    async def _create(self, **kwargs) -> str:
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.RateLimitError as e:
            raise RateLimited(str(e)) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise MissingCredentials(f"{self.name}: invalid API key") from e
        except openai.APIStatusError as e:
            if e.status_code == 429:
                raise RateLimited(str(e)) from e
            raise UpstreamError(f"{self.name} returned {e.status_code}") from e
        except openai.APIConnectionError as e:
            raise UpstreamError(f"{self.name} unreachable: {e}") from e

        if not response.choices:
            raise InvalidResponse(f"{self.name} returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise InvalidResponse(f"{self.name} returned an empty message")
        return content

    async def complete(
        self, messages: list[dict], model: str, **kwargs
    ) -> str:
        return await self._create(model=model, messages=messages, **kwargs)

    async def vision(
        self, messages: list[dict], images: list[str], model: str, **kwargs
    ) -> str:
        vision_messages = [dict(m) for m in messages]
        image_content = [
            {"type": "image_url", "image_url": {"url": url}} for url in images
        ]
        if vision_messages and vision_messages[-1]["role"] == "user":
            last = vision_messages[-1]
            if isinstance(last["content"], str):
                last["content"] = [{"type": "text", "text": last["content"]}]
            last["content"] = list(last["content"]) + image_content
        else:
            vision_messages.append({"role": "user", "content": image_content})

        return await self._create(model=model, messages=vision_messages, **kwargs)
