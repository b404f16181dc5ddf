import json
import logging
import re
from typing import Optional

from pydantic import BaseModel

from .config import get_config
from .llm.errors import ChatServiceError, InvalidResponse
from .llm.registry import get_vision_provider

logger = logging.getLogger(__name__)

PERSONA_PROMPT = (
    "You are an expert at identifying and naming subjects in images. Your task:\n\n"
    "1. FIRST, carefully check if the image contains any famous or well-known:\n"
    "   - People (celebrities, politicians, historical figures, etc.)\n"
    "   - Artworks\n"
    "   - NFTs\n"
    "   - Brands/logos\n"
    "   If you recognize any famous subject, you MUST use their real name/title.\n\n"
    "2. If no famous subject is found, analyze for:\n"
    "   - Non-famous people\n"
    "   - Animals\n"
    "   - Unknown artworks\n"
    "   - Objects/products\n"
    "   - Abstract art/patterns\n"
    "   - Landscapes/scenes\n\n"
    "3. Naming rules:\n"
    "   - Famous people: ALWAYS use real name (e.g., 'Elon Musk', 'Taylor Swift')\n"
    "   - Famous artworks: ALWAYS use real title and artist\n"
    "   - Non-famous people: Create fitting name based on appearance/vibe\n"
    "   - Animals: Create personality-matching name\n"
    "   - Unknown artworks: Create evocative title\n"
    "   - Objects: Give them character\n\n"
    "4. Return ONLY a JSON object with:\n"
    "   { name: string, personality: string, background: string }\n\n"
    "5. Context guidelines:\n"
    "   - Famous people/things: Use actual background and history\n"
    "   - Non-famous subjects: Create fitting fictional background\n\n"
    "No explanations or additional text - just the JSON object."
)

_FENCE_OPEN = re.compile(r"```json\n?")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class Persona(BaseModel):
    name: str
    personality: str
    background: str


FALLBACK_PERSONA = Persona(
    name="Unknown",
    personality="Mysteriously silent",
    background="Lost in translation",
)


class PersonaGenerationError(Exception):
    pass


def _strip_fences(text: str) -> str:
    cleaned = _FENCE_OPEN.sub("", text, count=1)
    return cleaned.replace("```", "", 1).strip()


def _to_persona(data) -> Persona:
    if not isinstance(data, dict):
        return FALLBACK_PERSONA.model_copy()
    fields = {}
    for key, default in FALLBACK_PERSONA.model_dump().items():
        value = data.get(key)
        fields[key] = default if value is None else str(value)
    return Persona(**fields)


def parse_persona(text: Optional[str]) -> Persona:
    """Best-effort parse of a generated persona.

    Whole text as JSON first, then the largest ``{...}`` span, then the
    first object that decodes on its own, then the fixed fallback persona.
    Never raises.
    """
    cleaned = _strip_fences(text or "{}")
    try:
        return _to_persona(json.loads(cleaned))
    except json.JSONDecodeError:
        logger.info("Persona response is not plain JSON, extracting object")

    match = _JSON_OBJECT.search(cleaned)
    if match:
        try:
            return _to_persona(json.loads(match.group(0)))
        except json.JSONDecodeError:
            logger.info("Widest {...} span is not valid JSON, scanning for an object")

    decoder = json.JSONDecoder()
    for i, ch in enumerate(cleaned):
        if ch != "{":
            continue
        try:
            data, _ = decoder.raw_decode(cleaned, i)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return _to_persona(data)

    logger.warning("No persona object found in response")
    return FALLBACK_PERSONA.model_copy()


def build_system_prompt(persona: Persona) -> str:
    return f"You are {persona.name}. {persona.personality} {persona.background}"


async def generate_persona(image: str) -> Persona:
    """Ask the vision model to name and describe the subject of *image*.

    *image* is an http(s) URL or a ``data:`` URL.  One attempt only.
    """
    config = get_config()
    messages = [{"role": "user", "content": PERSONA_PROMPT}]
    try:
        provider = get_vision_provider()
        raw = await provider.vision(
            messages,
            [image],
            config.llm.vision_model,
            max_tokens=500,
            temperature=0.7,
        )
    except InvalidResponse:
        # An empty completion is recovered like unparseable text
        raw = None
    except ChatServiceError as e:
        logger.error("Persona generation failed: %s", e)
        raise PersonaGenerationError(str(e)) from e
    return parse_persona(raw)
