"""At-rest encryption for secrets stored in ``config.json``.

API keys and the treasury signing key are encrypted with Fernet from the
``cryptography`` library.  Encrypted values carry an ``ENC:`` prefix, so a
hand-written plaintext config keeps working and is migrated on the next save.

The Fernet key is generated once and stored next to the config as ``.key``
with owner-only permissions.  Copying ``config.json`` to another host
without the key yields empty secrets rather than a crash.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from . import config as _config

logger = logging.getLogger(__name__)

_ENC_PREFIX = "ENC:"

_fernet: Optional[Fernet] = None


def _key_file() -> Path:
    return _config._config_dir / ".key"


def set_strict_permissions(filepath: Path) -> None:
    """chmod 600 *filepath*; failures are logged, not raised."""
    try:
        os.chmod(str(filepath), 0o600)
    except FileNotFoundError:
        logger.warning("Cannot set permissions: %s does not exist", filepath)
    except OSError as e:
        logger.warning("Failed to set permissions on %s: %s", filepath, e)


def _get_or_create_key() -> bytes:
    """Load the Fernet key from disk, or generate and persist a new one."""
    key_file = _key_file()
    key_file.parent.mkdir(parents=True, exist_ok=True)

    if key_file.exists():
        key = key_file.read_bytes().strip()
        try:
            Fernet(key)
            return key
        except ValueError:
            logger.warning("Existing .key file is invalid, generating a new key")

    key = Fernet.generate_key()
    key_file.write_bytes(key)
    set_strict_permissions(key_file)
    logger.info("Generated new encryption key at %s", key_file)
    return key


def _get_fernet() -> Fernet:
    global _fernet
    if _fernet is None:
        _fernet = Fernet(_get_or_create_key())
    return _fernet


def reset_fernet() -> None:
    """Drop the cached key, e.g. after the config directory moved."""
    global _fernet
    _fernet = None


def encrypt_value(plaintext: str) -> str:
    """Encrypt a non-empty string to ``"ENC:<fernet-token>"``."""
    if not plaintext:
        return plaintext
    token = _get_fernet().encrypt(plaintext.encode("utf-8"))
    return _ENC_PREFIX + token.decode("ascii")


def decrypt_value(ciphertext: str) -> str:
    """Decrypt an ``"ENC:..."`` string back to plaintext.

    Values without the prefix are returned unchanged.  A value that cannot
    be decrypted (rotated or missing key) comes back as ``""``.
    """
    if not ciphertext or not ciphertext.startswith(_ENC_PREFIX):
        return ciphertext
    token = ciphertext[len(_ENC_PREFIX):]
    try:
        return _get_fernet().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken:
        logger.warning(
            "Failed to decrypt a config value (key may have changed); "
            "treating it as empty"
        )
        return ""
