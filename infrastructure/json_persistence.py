import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger("planner.persistence")


class PersistenceError(RuntimeError):
    """The persisted blob exists but cannot be decoded."""


class JsonFilePersistence:
    """Persistence provider backed by a single pretty-printed JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    async def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            logger.error("Cannot read planner data %s: %s", self.path, exc)
            raise PersistenceError(f"invalid planner data file {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise PersistenceError(f"planner data file {self.path} must hold a JSON object")
        return raw

    async def save(self, blob: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(blob, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        tmp.replace(self.path)
        logger.debug("Saved planner data to %s", self.path)


__all__ = ["JsonFilePersistence", "PersistenceError"]
