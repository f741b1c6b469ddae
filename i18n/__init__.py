"""Translation catalogs for DR Detect.

Usage: from i18n import t; t("key", name=value)
Lookups fall back from the selected language to English, then to the raw key.
"""

import json
from collections import OrderedDict
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QSettings

from core.config import APP_NAME, ORGANIZATION

LANGUAGES = OrderedDict([
    ("en", {"name": "English", "native_name": "English"}),
    ("es", {"name": "Spanish", "native_name": "Español"}),
])

_translations: dict = {}
_fallback: dict = {}
_current_lang: str = "en"


def _load_json(lang_code: str) -> dict:
    """Load a translation JSON file."""
    path = Path(__file__).parent / f"{lang_code}.json"
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def init(language: Optional[str] = None, settings: Optional[QSettings] = None):
    """Load catalogs for ``language``, or the stored preference when omitted."""
    global _translations, _fallback, _current_lang
    if language is None:
        settings = settings or QSettings(ORGANIZATION, APP_NAME)
        language = settings.value("language", "en", type=str)
    _current_lang = language if language in LANGUAGES else "en"

    _fallback = _load_json("en")
    if _current_lang != "en":
        _translations = _load_json(_current_lang)
    else:
        _translations = _fallback


def t(key: str, **kwargs) -> str:
    """Translate a key with optional format arguments."""
    if not _fallback:
        init(language=_current_lang)
    text = _translations.get(key) or _fallback.get(key) or key
    if kwargs:
        try:
            return text.format(**kwargs)
        except (KeyError, IndexError, ValueError, TypeError):
            return text
    return text


def get_current_language() -> str:
    """Get the current language code."""
    return _current_lang


def set_language(code: str, settings: Optional[QSettings] = None):
    """Save language preference and switch catalogs immediately."""
    settings = settings or QSettings(ORGANIZATION, APP_NAME)
    settings.setValue("language", code)
    init(language=code)
