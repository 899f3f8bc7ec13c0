"""
Localized UI strings read from ``resources/lang.ini``.

One INI section per language code; keys are shared across sections. A
missing file, section or key resolves to the key itself.
"""

import configparser
import logging
from pathlib import Path
from typing import Optional, Union

from clipfilter.core import config

logger = logging.getLogger(__name__)


class Localizer:
    def __init__(self, path: Union[str, Path, None] = None, language: str = config.DEFAULT_LANGUAGE):
        self.path = Path(path) if path is not None else config.LANG_FILE_PATH
        self.language = language
        self._parser = configparser.ConfigParser(interpolation=None)
        self._parser.optionxform = str  # keys are case-sensitive
        try:
            read = self._parser.read(self.path, encoding="utf-8")
            if not read:
                logger.warning(f"Language file not found: {self.path}")
        except configparser.Error as e:
            logger.error(f"Language file {self.path} is malformed: {e}")
            self._parser = configparser.ConfigParser(interpolation=None)

    def languages(self):
        return self._parser.sections()

    def get(self, key: str, language: Optional[str] = None) -> str:
        section = language or self.language
        if self._parser.has_option(section, key):
            return self._parser.get(section, key)
        return key
