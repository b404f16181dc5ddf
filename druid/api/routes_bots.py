import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..bots import storage
from ..bots.models import BotFields, new_client_token
from ..bots.storage import BotNotFound, NotOwner, StorageError
from ..persona import PersonaGenerationError, generate_persona

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["bots"])


class CreateBotRequest(BotFields):
    client_token: Optional[str] = None
    is_public: bool = False


class GenerateBotRequest(BaseModel):
    client_token: Optional[str] = None
    image: str  # URL or data URL; also stored as the bot image


class UpdateBotRequest(BotFields):
    client_token: Optional[str] = None


class VisibilityRequest(BaseModel):
    client_token: Optional[str] = None
    is_public: bool


def _require_token(client_token: Optional[str]) -> str:
    if not client_token:
        raise HTTPException(status_code=401, detail="No client token provided")
    return client_token


@router.post("/client-token")
async def issue_client_token():
    return {"client_token": new_client_token()}


@router.get("/bots")
async def list_bots(client_token: Optional[str] = None):
    token = _require_token(client_token)
    try:
        bots = storage.list_bots(token)
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to fetch bots")
    return [b.model_dump() for b in bots]


@router.post("/bots")
async def create_bot(req: CreateBotRequest):
    token = _require_token(req.client_token)
    if not req.name:
        raise HTTPException(status_code=400, detail="Bot name is required")
    fields = BotFields(**req.model_dump(include=set(BotFields.model_fields)))
    try:
        bot = storage.create_bot(fields, token, is_public=req.is_public)
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to create bot")
    return bot.model_dump()


@router.post("/bots/generate")
async def generate_bot(req: GenerateBotRequest):
    """Image -> persona -> stored bot, in one call."""
    token = _require_token(req.client_token)
    try:
        persona = await generate_persona(req.image)
    except PersonaGenerationError:
        raise HTTPException(status_code=500, detail="Failed to analyze image")
    fields = BotFields(image_url=req.image, **persona.model_dump())
    try:
        bot = storage.create_bot(fields, token)
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to create bot")
    return bot.model_dump()


@router.get("/bots/{bot_id}")
async def get_bot(bot_id: str):
    bot = storage.get_bot(bot_id)
    if not bot:
        raise HTTPException(status_code=404, detail="Bot not found")
    data = bot.model_dump()
    data.pop("client_token")
    return data


@contextmanager
def _mutation_errors(action: str):
    try:
        yield
    except BotNotFound:
        raise HTTPException(status_code=404, detail="Bot not found")
    except NotOwner:
        raise HTTPException(status_code=403, detail="Not the owner of this bot")
    except StorageError:
        raise HTTPException(status_code=500, detail=f"Failed to {action} bot")


@router.put("/bots/{bot_id}")
async def update_bot(bot_id: str, req: UpdateBotRequest):
    token = _require_token(req.client_token)
    fields = BotFields(**req.model_dump(include=set(BotFields.model_fields)))
    with _mutation_errors("update"):
        bot = storage.update_bot(bot_id, fields, token)
    return bot.model_dump()


@router.put("/bots/{bot_id}/visibility")
async def set_visibility(bot_id: str, req: VisibilityRequest):
    token = _require_token(req.client_token)
    with _mutation_errors("update"):
        bot = storage.set_visibility(bot_id, req.is_public, token)
    return bot.model_dump()


@router.delete("/bots/{bot_id}")
async def delete_bot(bot_id: str, client_token: Optional[str] = None):
    token = _require_token(client_token)
    with _mutation_errors("delete"):
        storage.delete_bot(bot_id, token)
    return {"status": "deleted"}
