import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from .config import SAVED_MODELS_STORAGE_KEY
from .models import ImageAsset
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

# Duplicates are detected on this many leading characters of the payload.
DEDUP_PREFIX_LENGTH = 100


class SavedModelLibrary:
    """
    Saved reference photos, newest first.

    Loaded once at construction and rewritten in full on every save/delete.
    """

    def __init__(self, storage: KeyValueStore, key: str = SAVED_MODELS_STORAGE_KEY):
        self.storage = storage
        self.key = key
        self._models: List[ImageAsset] = []
        self.load()

    def load(self) -> None:
        raw = self.storage.get(self.key)
        if not raw:
            self._models = []
            return
        try:
            entries = json.loads(raw)
            self._models = [ImageAsset.model_validate(entry) for entry in entries]
        except (ValueError, TypeError, ValidationError) as e:
            logger.error(f"Failed to parse saved models, starting with an empty library: {e}")
            self._models = []
            return
        logger.info(f"Loaded {len(self._models)} saved model(s)")

    def _persist(self) -> None:
        self.storage.set(self.key, json.dumps([m.to_storage() for m in self._models]))

    def list(self) -> List[ImageAsset]:
        return list(self._models)

    def get(self, asset_id: str) -> Optional[ImageAsset]:
        for model in self._models:
            if model.id == asset_id:
                return model
        return None

    def contains_payload(self, asset: ImageAsset) -> bool:
        prefix = asset.data[:DEDUP_PREFIX_LENGTH]
        return any(m.data[:DEDUP_PREFIX_LENGTH] == prefix for m in self._models)

    def save(self, asset: ImageAsset) -> bool:
        """Add asset at the front. Returns False (and changes nothing) for a duplicate."""
        if self.contains_payload(asset):
            logger.info(f"Model {asset.id} already saved, skipping")
            return False
        self._models = [asset] + self._models
        self._persist()
        return True

    def delete(self, asset_id: str) -> bool:
        remaining = [m for m in self._models if m.id != asset_id]
        if len(remaining) == len(self._models):
            return False
        self._models = remaining
        self._persist()
        return True

    def __len__(self) -> int:
        return len(self._models)
