from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel


class ChatMode(str, Enum):
    NATURAL = "natural"
    UNCENSORED = "uncensored"
    DEEPSEEK = "deepseek"


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatOutcome(BaseModel):
    """Result of one chat turn as shown in the chat window."""

    reply: ChatMessage
    stored: bool  # False when the reply is a friendly error, not a model answer
    error: Optional[str] = None  # ChatServiceError.kind
