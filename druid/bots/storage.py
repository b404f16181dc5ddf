import json
import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from ..config import _config_dir, _ensure_config_dir
from .models import Bot, BotFields

logger = logging.getLogger(__name__)

_bots_file = _config_dir / "bots.json"
_lock = threading.Lock()


class StorageError(Exception):
    pass


class BotNotFound(Exception):
    pass


class NotOwner(Exception):
    pass


def _load_raw() -> list[dict]:
    _ensure_config_dir()
    if not _bots_file.exists():
        return []
    try:
        return json.loads(_bots_file.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Failed to load bots.json: %s", e)
        raise StorageError("Failed to load bots") from e


def _save_raw(items: list[dict]) -> None:
    _ensure_config_dir()
    try:
        _bots_file.write_text(
            json.dumps(items, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
    except OSError as e:
        logger.error("Failed to write bots.json: %s", e)
        raise StorageError("Failed to save bots") from e


def _owned(items: list[dict], bot_id: str, client_token: str) -> int:
    """Index of *bot_id* in *items*, checking ownership."""
    for i, item in enumerate(items):
        if item["id"] == bot_id:
            if item["client_token"] != client_token:
                raise NotOwner(bot_id)
            return i
    raise BotNotFound(bot_id)


def list_bots(client_token: str) -> list[Bot]:
    """Bots created with *client_token*, newest first."""
    bots = [Bot(**b) for b in reversed(_load_raw()) if b["client_token"] == client_token]
    bots.sort(key=lambda b: b.created_at, reverse=True)
    return bots


def list_public_bots() -> list[Bot]:
    bots = [Bot(**b) for b in reversed(_load_raw()) if b.get("is_public")]
    bots.sort(key=lambda b: b.made_public_at or b.created_at, reverse=True)
    return bots


def get_bot(bot_id: str) -> Optional[Bot]:
    for b in _load_raw():
        if b["id"] == bot_id:
            return Bot(**b)
    return None


def create_bot(fields: BotFields, client_token: str, is_public: bool = False) -> Bot:
    data = fields.model_dump(exclude_none=True)
    bot = Bot(client_token=client_token, is_public=is_public, **data)
    if is_public:
        bot.made_public_at = bot.created_at
    with _lock:
        items = _load_raw()
        items.append(bot.model_dump())
        _save_raw(items)
    logger.info("Created bot %s (%s)", bot.id, bot.name)
    return bot


def update_bot(bot_id: str, fields: BotFields, client_token: str) -> Bot:
    with _lock:
        items = _load_raw()
        i = _owned(items, bot_id, client_token)
        items[i].update(fields.model_dump(exclude_none=True))
        items[i]["updated_at"] = datetime.now(timezone.utc).isoformat()
        _save_raw(items)
        return Bot(**items[i])


def set_visibility(bot_id: str, is_public: bool, client_token: str) -> Bot:
    with _lock:
        items = _load_raw()
        i = _owned(items, bot_id, client_token)
        now = datetime.now(timezone.utc).isoformat()
        if is_public and not items[i].get("is_public"):
            items[i]["made_public_at"] = now
        items[i]["is_public"] = is_public
        items[i]["updated_at"] = now
        _save_raw(items)
        return Bot(**items[i])


def delete_bot(bot_id: str, client_token: str) -> None:
    with _lock:
        items = _load_raw()
        i = _owned(items, bot_id, client_token)
        del items[i]
        _save_raw(items)
    logger.info("Deleted bot %s", bot_id)
