"""Append-only chat history, one JSON-lines file per bot.

Lines are only ever appended, so file order is insertion order.
"""

import json
import logging
import re
import threading

from ..bots.storage import StorageError
from ..config import _config_dir, _ensure_config_dir
from .models import Message

logger = logging.getLogger(__name__)

_messages_dir = _config_dir / "messages"
_lock = threading.Lock()

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def _messages_file(bot_id: str):
    if not _SAFE_ID.match(bot_id):
        raise ValueError(f"Invalid bot id: {bot_id!r}")
    return _messages_dir / f"{bot_id}.jsonl"


def append_message(bot_id: str, role: str, content: str) -> Message:
    message = Message(bot_id=bot_id, role=role, content=content)
    path = _messages_file(bot_id)
    _ensure_config_dir()
    with _lock:
        try:
            _messages_dir.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(message.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Failed to store message for bot %s: %s", bot_id, e)
            raise StorageError("Failed to store message") from e
    return message


def list_messages(bot_id: str) -> list[Message]:
    path = _messages_file(bot_id)
    if not path.exists():
        return []
    messages: list[Message] = []
    try:
        with path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(Message(**json.loads(line)))
                except (json.JSONDecodeError, ValueError):
                    logger.warning("Skipping corrupt message line for bot %s", bot_id)
    except OSError as e:
        logger.error("Failed to load messages for bot %s: %s", bot_id, e)
        raise StorageError("Failed to load messages") from e
    return messages
