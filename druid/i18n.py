"""Simple dict-based i18n for user-facing chat and deployment messages."""

import json
from pathlib import Path

_locales_dir = Path(__file__).parent / "locales"
_cache: dict[str, dict[str, str]] = {}


def _load(lang: str) -> dict[str, str]:
    if lang not in _cache:
        path = _locales_dir / f"{lang}.json"
        if path.exists():
            _cache[lang] = json.loads(path.read_text(encoding="utf-8"))
        else:
            _cache[lang] = {}
    return _cache[lang]


LANG_NAMES: dict[str, str] = {
    "en": "English",
    "ko": "Korean",
}


def t(key: str, lang: str = "en", **kwargs: str) -> str:
    """Look up a translation key, with optional format kwargs.

    Falls back to English if the key is missing in the requested language,
    and to the key itself if English lacks it too.
    """
    strings = _load(lang)
    text = strings.get(key)
    if text is None:
        text = _load("en").get(key, key)
    if kwargs:
        text = text.format(**kwargs)
    return text
