"""
API Key Protection
==================

Encrypts API keys before they are written to config.json.

Protected values are Fernet tokens prefixed with ``fernet:``. Values without
the prefix are legacy plaintext and pass through ``unprotect`` unchanged. The
Fernet key is generated on first use and kept in a key file beside the
configuration, readable only by the owner.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from clipfilter.core import config
from clipfilter.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class SecretStore:
    """
    protect/unprotect for stored API keys.

    Args:
        key_path: Key file location (defaults to ``~/.clipfilter/secret.key``)
    """

    PREFIX = config.SECRET_TOKEN_PREFIX

    def __init__(self, key_path: Union[str, Path, None] = None):
        self.key_path = Path(key_path) if key_path is not None else config.CONFIG_DIR / config.SECRET_KEY_FILE_NAME
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self, create: bool) -> Optional[Fernet]:
        """Return (and cache) the Fernet helper, creating the key file if asked."""
        if self._fernet is not None:
            return self._fernet
        try:
            if self.key_path.exists():
                key = self.key_path.read_bytes().strip()
            elif create:
                key = Fernet.generate_key()
                self.key_path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(str(self.key_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "wb") as f:
                    f.write(key)
                logger.info(f"Created secret key file {self.key_path}")
            else:
                return None
            self._fernet = Fernet(key)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"secret key unavailable ({self.key_path}): {e}") from e
        return self._fernet

    def is_protected(self, value: str) -> bool:
        return bool(value) and value.startswith(self.PREFIX)

    def protect(self, plaintext: str) -> str:
        """
        Encrypt a value.

        Returns:
            ``fernet:<token>``, or '' for an empty value

        Raises:
            PersistenceError: If the key file cannot be read or created
        """
        if not plaintext:
            return ""
        fernet = self._get_fernet(create=True)
        token = fernet.encrypt(plaintext.encode("utf-8"))
        return f"{self.PREFIX}{token.decode('ascii')}"

    def unprotect(self, value: str) -> str:
        """
        Decrypt a value produced by :meth:`protect`.

        Unprefixed values are returned unchanged. A token that cannot be
        decrypted (missing or different key, corrupted data) yields ''.
        """
        if not self.is_protected(value):
            return value or ""
        try:
            fernet = self._get_fernet(create=False)
        except PersistenceError as e:
            logger.warning(f"Cannot decrypt stored API key: {e}")
            return ""
        if fernet is None:
            logger.warning(f"Cannot decrypt stored API key: no key file at {self.key_path}")
            return ""
        try:
            return fernet.decrypt(value[len(self.PREFIX):].encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.warning("Failed to decrypt stored API key: invalid token or key mismatch")
            return ""
        except (ValueError, UnicodeError) as e:
            logger.warning(f"Failed to decrypt stored API key: {type(e).__name__}: {e}")
            return ""
