from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..persona import PersonaGenerationError, generate_persona

router = APIRouter(prefix="/api", tags=["persona"])


class AnalyzeImageRequest(BaseModel):
    image: str


@router.post("/analyze-image")
async def analyze_image(req: AnalyzeImageRequest):
    try:
        persona = await generate_persona(req.image)
    except PersonaGenerationError:
        raise HTTPException(status_code=500, detail="Failed to analyze image")
    return {"persona": persona.model_dump()}
