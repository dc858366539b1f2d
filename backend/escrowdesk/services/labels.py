"""Label lookup for step titles and field captions.

Labels are display text only: a missing translation falls back to the
caller's default and never changes wizard behaviour.
"""

import logging
from typing import Iterable

logger = logging.getLogger(__name__)


class LabelCatalog:
    def __init__(self, default_language: str = "EN"):
        self.default_language = default_language.upper()
        # (config_id, language) → text
        self._labels: dict[tuple[str, str], str] = {}

    def load(self, entries: Iterable[dict]) -> int:
        """Load upstream label rows: ``{"configId", "configValue", "language"}``."""
        count = 0
        for entry in entries:
            config_id = entry.get("configId")
            value = entry.get("configValue")
            if not config_id or value is None:
                continue
            language = (entry.get("language") or self.default_language).upper()
            self._labels[(config_id, language)] = value
            count += 1
        logger.debug(f"Loaded {count} labels")
        return count

    def get_label(self, config_id: str, language_code: str | None, fallback: str) -> str:
        language = (language_code or self.default_language).upper()
        return (
            self._labels.get((config_id, language))
            or self._labels.get((config_id, self.default_language))
            or fallback
        )
