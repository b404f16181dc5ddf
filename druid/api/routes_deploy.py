import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..bots import storage as bot_storage
from ..deploy import storage as token_storage
from ..deploy.flow import DeploymentFlow, DeploymentStateError, get_session
from ..solana.rpc import RPCError
from ..solana.transactions import InvalidTransaction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["deploy"])


class PrepareRequest(BaseModel):
    client_token: Optional[str] = None
    wallet_address: str


class SubmitRequest(BaseModel):
    signed_transaction: str  # base64


async def get_deployment_flow() -> AsyncIterator[DeploymentFlow]:
    flow = DeploymentFlow.from_config()
    try:
        yield flow
    finally:
        await flow.close()


@router.post("/deploy/{bot_id}/prepare")
async def prepare_deployment(
    bot_id: str,
    req: PrepareRequest,
    flow: DeploymentFlow = Depends(get_deployment_flow),
):
    """Returns the unsigned fee transfer for the connected wallet to sign."""
    if not req.client_token:
        raise HTTPException(status_code=401, detail="No client token provided")
    bot = bot_storage.get_bot(bot_id)
    if not bot:
        raise HTTPException(status_code=404, detail="Bot not found")
    if bot.client_token != req.client_token:
        raise HTTPException(status_code=403, detail="Not the owner of this bot")

    try:
        session = await flow.prepare(bot, req.client_token, req.wallet_address)
    except InvalidTransaction as e:
        raise HTTPException(status_code=400, detail=f"Invalid wallet address: {e}")
    except RPCError as e:
        logger.error("Could not prepare deployment for %s: %s", bot_id, e)
        raise HTTPException(status_code=502, detail="Solana RPC unavailable")
    return session.public_view()


@router.post("/deploy/sessions/{session_id}/submit")
async def submit_deployment(
    session_id: str,
    req: SubmitRequest,
    flow: DeploymentFlow = Depends(get_deployment_flow),
):
    try:
        session = await flow.submit(session_id, req.signed_transaction)
    except KeyError:
        raise HTTPException(status_code=404, detail="Deployment not found")
    except DeploymentStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session.public_view()


@router.get("/deploy/sessions/{session_id}")
async def get_deployment(session_id: str):
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return session.public_view()


@router.get("/tokens/{token_address}")
async def get_token(token_address: str):
    """Landing page data for a deployed token."""
    token = token_storage.get_token(token_address)
    if token is None:
        raise HTTPException(status_code=404, detail="Token not found")
    data = token.model_dump(exclude={"client_token"})
    bot = bot_storage.get_bot(token.bot_id)
    if bot:
        data["bot"] = {
            "id": bot.id,
            "name": bot.name,
            "image_url": bot.image_url,
            "personality": bot.personality,
            "background": bot.background,
        }
    return data
