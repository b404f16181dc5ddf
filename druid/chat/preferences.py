"""Per-client chat mode preferences.

Maps ``client_token -> bot_id -> mode``.  Uncensored mode is only ever
written after the wallet passed the balance gate, and is reverted when the
wallet disconnects or drops below the threshold.
"""

import json
import logging
import threading
from typing import Optional

from ..bots.storage import StorageError
from ..config import _config_dir, _ensure_config_dir, get_config
from ..solana.balance import has_uncensored_access
from ..solana.rpc import SolanaRPC
from .models import ChatMode

logger = logging.getLogger(__name__)

_prefs_file = _config_dir / "preferences.json"
_lock = threading.Lock()


class ModeNotAllowed(Exception):
    def __init__(self, required: float) -> None:
        super().__init__(f"Uncensored mode needs at least {required:,.0f} tokens")
        self.required = required


def _load_raw() -> dict:
    _ensure_config_dir()
    if _prefs_file.exists():
        try:
            return json.loads(_prefs_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to load preferences.json: %s", e)
    return {}


def _save_raw(data: dict) -> None:
    _ensure_config_dir()
    try:
        _prefs_file.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        logger.error("Failed to write preferences.json: %s", e)
        raise StorageError("Failed to save preferences") from e


def mode_for(client_token: str, bot_id: str) -> ChatMode:
    raw = _load_raw().get(client_token, {}).get(bot_id)
    try:
        return ChatMode(raw) if raw else ChatMode.NATURAL
    except ValueError:
        return ChatMode.NATURAL


def uncensored_bots(client_token: str) -> dict[str, bool]:
    """bot_id -> uncensored enabled, for every bot with a stored preference."""
    return {
        bot_id: mode == ChatMode.UNCENSORED.value
        for bot_id, mode in _load_raw().get(client_token, {}).items()
    }


def _set_mode(client_token: str, bot_id: str, mode: ChatMode) -> None:
    with _lock:
        data = _load_raw()
        data.setdefault(client_token, {})[bot_id] = mode.value
        _save_raw(data)


async def select_mode(
    client_token: str,
    bot_id: str,
    mode: ChatMode,
    wallet: Optional[str] = None,
    rpc: Optional[SolanaRPC] = None,
) -> ChatMode:
    """Switch *bot_id* to *mode*; uncensored is gated on the wallet balance.

    Raises ModeNotAllowed without touching the stored preference.
    """
    if mode == ChatMode.UNCENSORED and not await has_uncensored_access(wallet, rpc):
        raise ModeNotAllowed(get_config().solana.uncensored_min_balance)
    _set_mode(client_token, bot_id, mode)
    return mode


async def refresh_wallet(
    client_token: str,
    wallet: Optional[str],
    rpc: Optional[SolanaRPC] = None,
) -> list[str]:
    """Revert uncensored bots to natural if *wallet* no longer qualifies.

    Returns the ids of the bots that were reverted.
    """
    enabled = [b for b, on in uncensored_bots(client_token).items() if on]
    if not enabled or await has_uncensored_access(wallet, rpc):
        return []

    with _lock:
        data = _load_raw()
        bots = data.get(client_token, {})
        for bot_id in enabled:
            bots[bot_id] = ChatMode.NATURAL.value
        _save_raw(data)
    logger.info("Reverted %d bot(s) out of uncensored mode", len(enabled))
    return enabled
