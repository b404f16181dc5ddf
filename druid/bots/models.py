import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_client_token() -> str:
    """Opaque per-browser pseudo-identity. Not a credential."""
    return uuid.uuid4().hex


class Bot(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str
    image_url: str = ""
    personality: str = ""
    background: str = ""
    client_token: str
    is_public: bool = False
    made_public_at: Optional[str] = None
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)


class BotFields(BaseModel):
    """Editable bot fields; unset fields are left untouched on update."""

    name: Optional[str] = None
    image_url: Optional[str] = None
    personality: Optional[str] = None
    background: Optional[str] = None
