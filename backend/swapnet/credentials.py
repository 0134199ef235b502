import logging
import os
from typing import Optional, Sequence

from .config import CREDENTIAL_ENV_VARS, MANUAL_API_KEY_STORAGE_KEY
from .errors import InvalidCredentialError
from .storage import KeyValueStore

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Resolves the API key for outbound calls.

    Precedence: a manual override (persisted in the key-value store) beats the
    host environment default. `resolve` never raises; None means "cannot
    authenticate".

    The override is read from storage once at construction and written through
    on set/clear, so resolving never touches storage.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        *,
        env_vars: Sequence[str] = CREDENTIAL_ENV_VARS,
        storage_key: str = MANUAL_API_KEY_STORAGE_KEY,
    ):
        self.storage = storage
        self.env_vars = tuple(env_vars)
        self.storage_key = storage_key
        self._override_value: Optional[str] = None
        self.load()

    def load(self) -> None:
        try:
            value = self.storage.get(self.storage_key)
        except Exception as e:
            logger.warning(f"Could not read manual API key override, ignoring it: {e}")
            value = None
        self._override_value = value.strip() if value and value.strip() else None

    def _override(self) -> Optional[str]:
        return self._override_value

    def _environment_default(self) -> Optional[str]:
        for name in self.env_vars:
            value = os.getenv(name)
            if value and value.strip():
                return value.strip()
        return None

    def resolve(self) -> Optional[str]:
        return self._override() or self._environment_default()

    def has_override(self) -> bool:
        return self._override() is not None

    def set(self, value: str) -> None:
        if not value or not value.strip():
            raise InvalidCredentialError("API key must not be empty.")
        self.storage.set(self.storage_key, value.strip())
        self._override_value = value.strip()
        logger.info("Manual API key override saved")

    def clear(self) -> None:
        self.storage.delete(self.storage_key)
        self._override_value = None
        logger.info("Manual API key override cleared")
