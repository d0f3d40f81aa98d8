from __future__ import annotations
from typing import Optional
import logging

from pydantic import ValidationError

from timebill.config import SETTINGS_KEY
from timebill.models.settings import Settings
from timebill.services.errors import PersistenceFailure
from timebill.storage.json_repo import JsonStore

logger = logging.getLogger(__name__)


class SettingsService:
    def __init__(self, store: Optional[JsonStore] = None):
        self.store = store
        self.settings = self._load()

    def _load(self) -> Settings:
        if self.store is None:
            return Settings()
        raw = self.store.load(SETTINGS_KEY)
        if raw is None:
            return Settings()
        try:
            return Settings.model_validate(raw)
        except ValidationError as e:
            logger.warning("Invalid settings in '%s', using defaults: %s", SETTINGS_KEY, e)
            return Settings()

    def _save(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(SETTINGS_KEY, self.settings.model_dump(mode="json"))
        except PersistenceFailure as e:
            logger.error("Persistence failure (in-memory state kept): %s", e)

    @property
    def rounding_increment_minutes(self) -> int:
        return self.settings.rounding_increment_minutes

    def set_rounding_increment(self, minutes: int) -> Settings:
        # validate_assignment: out-of-range values raise ValidationError, model unchanged
        self.settings.rounding_increment_minutes = minutes
        self._save()
        return self.settings
