import logging
from typing import Any, Dict

from application.ports import PersistenceProvider
from core import PlannerSettings

logger = logging.getLogger("planner.store")

SETTINGS_KEY = "settings"


class SettingsStore:
    """Reads and writes the ``settings`` key of the shared persisted blob."""

    def __init__(self, persistence: PersistenceProvider):
        self.persistence = persistence

    async def load(self) -> PlannerSettings:
        raw = await self.persistence.load()
        data = raw.get(SETTINGS_KEY) if isinstance(raw, dict) else None
        return PlannerSettings.from_dict(data)

    async def save(self, settings: PlannerSettings) -> None:
        raw = await self.persistence.load()
        blob: Dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}
        blob[SETTINGS_KEY] = settings.to_dict()
        await self.persistence.save(blob)
        logger.debug("Saved settings (%d projects)", len(settings.projects))


__all__ = ["SettingsStore", "SETTINGS_KEY"]
