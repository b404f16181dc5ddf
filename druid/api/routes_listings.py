from fastapi import APIRouter, HTTPException

from ..bots import storage as bot_storage
from ..bots.storage import StorageError
from ..listings import latest_tokens

router = APIRouter(prefix="/api", tags=["listings"])


@router.get("/public-bots")
async def public_bots():
    try:
        bots = bot_storage.list_public_bots()
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to fetch public bots")
    return [b.model_dump(exclude={"client_token"}) for b in bots]


@router.get("/latest-tokens")
async def get_latest_tokens():
    try:
        tokens = await latest_tokens()
    except StorageError:
        raise HTTPException(status_code=500, detail="Failed to fetch tokens")
    return [tok.model_dump() for tok in tokens]
