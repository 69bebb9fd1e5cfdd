"""Translation manager with configuration integration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from trsync.i18n import (
    DEFAULT_LOCALE,
    Translator,
    _is_valid_locale,
    get_system_locale,
)

if TYPE_CHECKING:
    from trsync.models import Config

logger = logging.getLogger(__name__)


class TranslationManager:
    """Builds a translator for a configuration snapshot."""

    def __init__(self, config: Config | None = None) -> None:
        """Initialize translation manager.

        Args:
            config: Optional config to read the language from

        """
        self.config = config
        self.translator = Translator(self._resolve_locale())

    def _resolve_locale(self) -> str:
        """Pick the locale.

        Precedence order:
        1. Config file (config.ui.language)
        2. System locale (LC_ALL, LC_MESSAGES, LANG)
        3. Default locale ('en')

        """
        if self.config is not None and self.config.ui.language:
            language = self.config.ui.language
            if _is_valid_locale(language):
                logger.debug("Locale set from config: %s", language)
                return language
            logger.warning(
                "Locale '%s' from config is not available. "
                "Falling back to system locale.",
                language,
            )
        final_locale = get_system_locale() or DEFAULT_LOCALE
        logger.debug("Using locale: %s", final_locale)
        return final_locale

    def update(self, config: Config) -> None:
        """Re-resolve the locale after the configuration changed."""
        self.config = config
        self.translator.set_locale(self._resolve_locale())
