import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


class LLMConfig(BaseModel):
    openai_api_key: str = ""
    vision_model: str = "gpt-4o"
    natural_model: str = "gpt-4o-mini"
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"
    uncensored_api_key: str = ""
    uncensored_base_url: str = ""  # any OpenAI-compatible endpoint
    uncensored_model: str = ""
    max_tokens: int = 1000
    temperature: float = 0.8


class SolanaConfig(BaseModel):
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: str = "confirmed"
    treasury_address: str = "DruiDHCxP8pAVkST7pxBZokL9UkXj5393K5as3Kj9hi1"
    treasury_secret_key: str = ""  # base58 or JSON byte array, needed for refunds
    payment_lamports: int = 3 * LAMPORTS_PER_SOL // 100  # 0.03 SOL
    send_max_retries: int = 3
    confirm_timeout: float = 120.0
    confirm_poll_interval: float = 2.0
    gate_token_mint: str = "MLoYxeB1Xm4BZyuWLaM3K69LvMSm4TSPXWedF9Epump"
    uncensored_min_balance: float = 20_000


class DeployConfig(BaseModel):
    service_url: str = ""
    api_key: str = ""
    landing_page_prefix: str = "/token/"
    timeout: float = 90.0


class ListingConfig(BaseModel):
    dexscreener_url: str = "https://api.dexscreener.com/orders/v1/solana"
    latest_tokens_limit: int = 20
    refresh_interval: float = 30.0  # seconds, client polling
    carousel_interval: float = 7.5


class AppConfig(BaseModel):
    llm: LLMConfig = LLMConfig()
    solana: SolanaConfig = SolanaConfig()
    deploy: DeployConfig = DeployConfig()
    listings: ListingConfig = ListingConfig()
    language: str = "en"


_config_dir = Path(os.environ.get("DRUID_CONFIG_DIR", Path.home() / ".druid"))
_config_file = _config_dir / "config.json"

# Sensitive fields to encrypt at rest  (dot-path: "section.field")
SENSITIVE_FIELDS: list[str] = [
    "llm.openai_api_key",
    "llm.deepseek_api_key",
    "llm.uncensored_api_key",
    "solana.treasury_secret_key",
    "deploy.api_key",
]

# Environment variables that win over config.json when set
ENV_OVERRIDES: dict[str, str] = {
    "OPENAI_API_KEY": "llm.openai_api_key",
    "DEEPSEEK_API_KEY": "llm.deepseek_api_key",
    "UNCENSORED_API_KEY": "llm.uncensored_api_key",
    "SOLANA_RPC_URL": "solana.rpc_url",
    "TREASURY_SECRET_KEY": "solana.treasury_secret_key",
    "DEPLOY_SERVICE_URL": "deploy.service_url",
    "DEPLOY_API_KEY": "deploy.api_key",
}


def _encrypt_sensitive(data: dict) -> dict:
    """Encrypt sensitive fields in a config dict before writing to disk."""
    from .crypto import encrypt_value

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        if section in data and field in data[section]:
            data[section][field] = encrypt_value(data[section][field])
    return data


def _decrypt_sensitive(data: dict) -> dict:
    """Decrypt sensitive fields in a config dict after reading from disk."""
    from .crypto import decrypt_value

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        if section in data and field in data[section]:
            data[section][field] = decrypt_value(data[section][field])
    return data


def _needs_migration(data: dict) -> bool:
    """Return True if any sensitive field is non-empty plaintext (no ENC: prefix)."""
    from .crypto import _ENC_PREFIX

    for dotpath in SENSITIVE_FIELDS:
        section, field = dotpath.split(".", 1)
        val = data.get(section, {}).get(field, "")
        if val and not val.startswith(_ENC_PREFIX):
            return True
    return False


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    for env_name, dotpath in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        section, field = dotpath.split(".", 1)
        setattr(getattr(config, section), field, value)
    return config


def _ensure_config_dir() -> None:
    _config_dir.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    _ensure_config_dir()
    if _config_file.exists():
        data = json.loads(_config_file.read_text(encoding="utf-8"))

        migrate = _needs_migration(data)
        data = _decrypt_sensitive(data)
        config = AppConfig(**data)

        # Re-save with encryption on first load of a plaintext config
        if migrate:
            logger.info("Migrating config to encrypted storage")
            save_config(config)

        return _apply_env_overrides(config)
    return _apply_env_overrides(AppConfig())


def save_config(config: AppConfig) -> None:
    from .crypto import set_strict_permissions

    _ensure_config_dir()
    data = json.loads(config.model_dump_json(indent=2))
    data = _encrypt_sensitive(data)
    _config_file.write_text(
        json.dumps(data, indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    set_strict_permissions(_config_file)


_current_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    global _current_config
    if _current_config is None:
        _current_config = load_config()
    return _current_config


def update_config(config: AppConfig) -> AppConfig:
    global _current_config
    save_config(config)
    _current_config = config
    return _current_config


def public_settings(config: Optional[AppConfig] = None) -> dict:
    """Values the browser needs; never includes secrets."""
    if config is None:
        config = get_config()
    return {
        "payment_lamports": config.solana.payment_lamports,
        "payment_sol": config.solana.payment_lamports / LAMPORTS_PER_SOL,
        "treasury_address": config.solana.treasury_address,
        "commitment": config.solana.commitment,
        "gate_token_mint": config.solana.gate_token_mint,
        "uncensored_min_balance": config.solana.uncensored_min_balance,
        "refresh_interval": config.listings.refresh_interval,
        "carousel_interval": config.listings.carousel_interval,
        "language": config.language,
    }
