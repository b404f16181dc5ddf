import json

from druid import config
from druid.config import AppConfig, load_config, public_settings, save_config


def test_secrets_encrypted_at_rest(isolated_config_dir):
    cfg = AppConfig()
    cfg.llm.openai_api_key = "sk-test"
    cfg.solana.treasury_secret_key = "[1, 2, 3]"
    save_config(cfg)

    raw = json.loads((isolated_config_dir / "config.json").read_text(encoding="utf-8"))
    assert raw["llm"]["openai_api_key"].startswith("ENC:")
    assert raw["solana"]["treasury_secret_key"].startswith("ENC:")

    loaded = load_config()
    assert loaded.llm.openai_api_key == "sk-test"
    assert loaded.solana.treasury_secret_key == "[1, 2, 3]"


def test_plaintext_config_is_migrated(isolated_config_dir):
    path = isolated_config_dir / "config.json"
    path.write_text(json.dumps({"llm": {"deepseek_api_key": "ds-plain"}}), encoding="utf-8")

    loaded = load_config()

    assert loaded.llm.deepseek_api_key == "ds-plain"
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["llm"]["deepseek_api_key"].startswith("ENC:")


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SOLANA_RPC_URL", "https://rpc.example")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    loaded = load_config()
    assert loaded.solana.rpc_url == "https://rpc.example"
    assert loaded.llm.openai_api_key == "sk-env"


def test_update_config_replaces_current():
    cfg = AppConfig(language="ko")
    config.update_config(cfg)
    assert config.get_config().language == "ko"


def test_public_settings_hide_secrets():
    cfg = AppConfig()
    cfg.solana.treasury_secret_key = "secret"
    cfg.llm.openai_api_key = "sk-secret"
    settings = public_settings(cfg)

    assert settings["payment_sol"] == 0.03
    assert settings["uncensored_min_balance"] == 20_000
    assert "secret" not in json.dumps(settings)
