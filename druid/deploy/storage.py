import json
import logging
import threading
from typing import Optional

from ..bots.storage import StorageError
from ..config import _config_dir, _ensure_config_dir
from .models import DeployedToken

logger = logging.getLogger(__name__)

_tokens_file = _config_dir / "tokens.json"
_lock = threading.Lock()


def _load_raw() -> list[dict]:
    _ensure_config_dir()
    if not _tokens_file.exists():
        return []
    try:
        return json.loads(_tokens_file.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Failed to load tokens.json: %s", e)
        raise StorageError("Failed to load tokens") from e


def record_token(token: DeployedToken) -> DeployedToken:
    with _lock:
        items = _load_raw()
        for i, item in enumerate(items):
            if item["token_address"] == token.token_address:
                items[i] = token.model_dump()
                break
        else:
            items.append(token.model_dump())
        try:
            _tokens_file.write_text(
                json.dumps(items, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        except OSError as e:
            logger.error("Failed to write tokens.json: %s", e)
            raise StorageError("Failed to save token") from e
    logger.info("Recorded token %s for bot %s", token.token_address, token.bot_id)
    return token


def list_tokens(limit: Optional[int] = None) -> list[DeployedToken]:
    """Deployed tokens, newest first."""
    tokens = [DeployedToken(**t) for t in reversed(_load_raw())]
    tokens.sort(key=lambda t: t.created_at, reverse=True)
    return tokens[:limit] if limit else tokens


def get_token(token_address: str) -> Optional[DeployedToken]:
    for t in _load_raw():
        if t["token_address"] == token_address:
            return DeployedToken(**t)
    return None
