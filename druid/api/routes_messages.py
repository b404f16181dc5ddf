from typing import Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..bots import storage as bot_storage
from ..bots.storage import StorageError
from ..conversation import storage

router = APIRouter(prefix="/api/messages", tags=["messages"])


class AppendMessageRequest(BaseModel):
    bot_id: str
    role: Literal["user", "assistant"]
    content: str


@router.get("")
async def list_messages(bot_id: str):
    try:
        messages = storage.list_messages(bot_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid bot id")
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to fetch messages")
    return {"messages": [m.model_dump() for m in messages]}


@router.post("")
async def append_message(req: AppendMessageRequest):
    if not bot_storage.get_bot(req.bot_id):
        raise HTTPException(status_code=404, detail="Bot not found")
    try:
        message = storage.append_message(req.bot_id, req.role, req.content)
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to store message")
    return {"message": message.model_dump()}
