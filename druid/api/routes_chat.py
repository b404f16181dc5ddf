import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..bots import storage as bot_storage
from ..bots.storage import StorageError
from ..chat import preferences
from ..chat.dispatcher import dispatch, send_chat
from ..chat.models import ChatMessage, ChatMode
from ..chat.preferences import ModeNotAllowed
from ..config import get_config
from ..i18n import t
from ..llm.errors import (
    ChatServiceError,
    InvalidResponse,
    MissingCredentials,
    RateLimited,
)
from ..persona import Persona
from ..solana import balance as gate
from ..solana.rpc import RPCError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


class StatelessChatRequest(BaseModel):
    messages: list[ChatMessage]
    persona: Persona
    wallet_address: Optional[str] = None


class BotChatRequest(BaseModel):
    client_token: Optional[str] = None
    message: str
    mode: Optional[ChatMode] = None


class ModeRequest(BaseModel):
    client_token: Optional[str] = None
    mode: ChatMode
    wallet_address: Optional[str] = None


class WalletRefreshRequest(BaseModel):
    client_token: Optional[str] = None
    wallet_address: Optional[str] = None


def _require_token(client_token: Optional[str]) -> str:
    if not client_token:
        raise HTTPException(status_code=401, detail="No client token provided")
    return client_token


def _lang() -> str:
    return get_config().language


def _uncensored_forbidden() -> HTTPException:
    required = get_config().solana.uncensored_min_balance
    return HTTPException(
        status_code=403,
        detail=t("uncensored_requires_tokens", _lang(), amount=f"{required:,.0f}"),
    )


def _error_detail(mode: ChatMode, error: ChatServiceError) -> str:
    if isinstance(error, RateLimited):
        return "Too many requests. Please wait a moment and try again."
    if isinstance(error, MissingCredentials):
        return f"{mode.value} API key not configured"
    if isinstance(error, InvalidResponse):
        return f"Invalid response format from {mode.value} API"
    return f"Failed to get response from {mode.value} API"


@router.post("/chat/{mode}")
async def chat_stateless(mode: ChatMode, req: StatelessChatRequest):
    """Single reply for a client-held conversation; nothing is stored."""
    if not req.messages or req.messages[-1].role != "user":
        raise HTTPException(status_code=400, detail="Last message must be from the user")
    if mode == ChatMode.UNCENSORED and not await gate.has_uncensored_access(req.wallet_address):
        raise _uncensored_forbidden()

    history, last = req.messages[:-1], req.messages[-1]
    try:
        reply = await dispatch(mode, req.persona, history, last.content)
    except ChatServiceError as e:
        logger.error("Chat %s failed: %s", mode.value, e)
        raise HTTPException(status_code=e.status_code, detail=_error_detail(mode, e))
    return {"response": reply}


@router.post("/bots/{bot_id}/chat")
async def chat_with_bot(bot_id: str, req: BotChatRequest):
    token = _require_token(req.client_token)
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty")
    bot = bot_storage.get_bot(bot_id)
    if not bot:
        raise HTTPException(status_code=404, detail="Bot not found")

    selected = preferences.mode_for(token, bot_id)
    mode = req.mode or selected
    if mode == ChatMode.UNCENSORED and selected != ChatMode.UNCENSORED:
        raise HTTPException(status_code=403, detail=t("uncensored_not_enabled", _lang()))

    try:
        outcome = await send_chat(bot, req.message, mode, _lang())
    except (StorageError, ValueError) as e:
        logger.error("Failed to store chat for bot %s: %s", bot_id, e)
        raise HTTPException(status_code=500, detail="Failed to store message")
    return outcome.model_dump()


@router.get("/bots/{bot_id}/mode")
async def get_mode(bot_id: str, client_token: Optional[str] = None):
    token = _require_token(client_token)
    return {"bot_id": bot_id, "mode": preferences.mode_for(token, bot_id).value}


@router.put("/bots/{bot_id}/mode")
async def set_mode(bot_id: str, req: ModeRequest):
    token = _require_token(req.client_token)
    if not bot_storage.get_bot(bot_id):
        raise HTTPException(status_code=404, detail="Bot not found")
    try:
        mode = await preferences.select_mode(token, bot_id, req.mode, req.wallet_address)
    except ModeNotAllowed:
        raise _uncensored_forbidden()
    return {"bot_id": bot_id, "mode": mode.value}


@router.post("/wallet/refresh")
async def refresh_wallet(req: WalletRefreshRequest):
    """Called when the wallet connects, disconnects or changes."""
    token = _require_token(req.client_token)
    reverted = await preferences.refresh_wallet(token, req.wallet_address)
    return {"reverted": reverted}


@router.get("/wallet/{address}/access")
async def wallet_access(address: str):
    required = get_config().solana.uncensored_min_balance
    try:
        balance = await gate.get_gate_balance(address)
    except RPCError as e:
        logger.warning("Balance lookup failed for %s: %s", address, e)
        return {"wallet": address, "balance": None, "required": required, "has_access": False}
    return {
        "wallet": address,
        "balance": balance,
        "required": required,
        "has_access": balance >= required,
    }
