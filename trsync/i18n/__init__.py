"""Internationalization (i18n) support for trsync.

Catalogs are nested JSON files under ``locales/``; keys are dotted paths
such as ``errors.connectionLost``. Values may carry ``{0}``, ``{1}``
placeholders.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

# Default locale
DEFAULT_LOCALE = "en"

LOCALES_DIR = Path(__file__).parent / "locales"

# Translator instance (lazy-loaded)
_translator: Translator | None = None

logger = logging.getLogger(__name__)


def _normalize(locale_code: str) -> str:
    # 'ru_RU.UTF-8' -> 'ru'
    return locale_code.split(".")[0].split("_")[0].split("-")[0].lower()


def _is_valid_locale(locale_code: str, locales_dir: Path = LOCALES_DIR) -> bool:
    """Check if locale code is valid and a catalog is available.

    Args:
        locale_code: Locale code to validate
        locales_dir: Directory holding ``<code>.json`` catalogs

    Returns:
        True if locale is available, False otherwise

    """
    if not locale_code or not isinstance(locale_code, str):
        return False
    return (locales_dir / f"{_normalize(locale_code)}.json").exists()


def get_system_locale() -> str:
    """Return the language from ``LC_ALL``, ``LC_MESSAGES`` or ``LANG``.

    Falls back to ``DEFAULT_LOCALE`` when none is set or the language has
    no catalog.
    """
    for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
        value = os.environ.get(var, "")
        if value and value not in {"C", "POSIX"}:
            code = _normalize(value)
            if _is_valid_locale(code):
                return code
    return DEFAULT_LOCALE


class Translator:
    """Resolves dotted keys against nested JSON catalogs."""

    def __init__(self, locale: str = DEFAULT_LOCALE, locales_dir: Path = LOCALES_DIR):
        """Initialize translator.

        Args:
            locale: Language code; unknown languages use the fallback
            locales_dir: Directory holding ``<code>.json`` catalogs

        """
        self.locales_dir = Path(locales_dir)
        self._catalogs: dict[str, dict[str, Any]] = {}
        self.locale = DEFAULT_LOCALE
        self.set_locale(locale)

    def set_locale(self, locale: str) -> None:
        """Switch the active language."""
        code = _normalize(locale) if locale else DEFAULT_LOCALE
        if not _is_valid_locale(code, self.locales_dir):
            logger.warning(
                "Locale '%s' is not available, falling back to '%s'",
                code,
                DEFAULT_LOCALE,
            )
            code = DEFAULT_LOCALE
        self.locale = code

    def _catalog(self, locale: str) -> dict[str, Any]:
        if locale not in self._catalogs:
            path = self.locales_dir / f"{locale}.json"
            try:
                self._catalogs[locale] = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Failed to load translations for '%s': %s", locale, e)
                self._catalogs[locale] = {}
        return self._catalogs[locale]

    def _lookup(self, key: str, locale: str) -> str | None:
        node: Any = self._catalog(locale)
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node if isinstance(node, str) else None

    def translate(self, key: str, *args: Any) -> str:
        """Translate ``key``, substituting ``{0}``, ``{1}``, ... with ``args``.

        Missing keys fall back to the default locale, then to the key itself.
        A single-element list or tuple argument is unwrapped.
        """
        text = self._lookup(key, self.locale)
        if text is None and self.locale != DEFAULT_LOCALE:
            text = self._lookup(key, DEFAULT_LOCALE)
        if text is None:
            return key

        for i, arg in enumerate(args):
            if isinstance(arg, (list, tuple)) and len(arg) == 1:
                arg = arg[0]
            text = text.replace(f"{{{i}}}", str(arg))
        return text

    __call__ = translate


def _get_translator() -> Translator:
    global _translator

    if _translator is None:
        _translator = Translator(get_system_locale())
    return _translator


def get_locale() -> str:
    """Get the active locale of the default translator."""
    return _get_translator().locale


def set_locale(locale_code: str) -> None:
    """Set the locale of the default translator.

    Raises:
        ValueError: If locale code is empty

    """
    if not locale_code or not isinstance(locale_code, str):
        msg = f"Invalid locale code: {locale_code}"
        raise ValueError(msg)
    _get_translator().set_locale(locale_code)


def translate(key: str, *args: Any) -> str:
    """Translate with the default translator."""
    return _get_translator().translate(key, *args)


def _(key: str, *args: Any) -> str:
    """Shorthand for ``translate``."""
    return translate(key, *args)
