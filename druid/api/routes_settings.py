from fastapi import APIRouter

from ..config import public_settings

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("/public")
async def get_public_settings():
    return public_settings()
