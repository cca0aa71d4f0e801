from __future__ import annotations

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

CONFIG_ENV = "PLANNER_SYNC_CONFIG"
VAULT_ENV = "PLANNER_SYNC_VAULT"
DATA_FILE_ENV = "PLANNER_SYNC_DATA_FILE"

DEFAULT_CONFIG_PATH = Path.home() / ".planner_sync_config.yaml"
DEFAULT_VAULT_PATH = Path.home() / "PlannerVault"
DATA_FILE_NAME = "planner-data.json"


def user_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV, "").strip()
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def _load_config() -> Dict[str, Any]:
    path = user_config_path()
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def _save_config(data: Dict[str, Any]) -> None:
    path = user_config_path()
    if not data:
        if path.exists():
            path.unlink()
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")


def get_config_value(key: str, default: Any = None) -> Any:
    return _load_config().get(key, default)


def set_config_value(key: str, value: Any) -> None:
    data = _load_config()
    if isinstance(value, str):
        value = value.strip()
    if value is None or value == "":
        data.pop(key, None)
    else:
        data[key] = value
    _save_config(data)


def _number(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 0 else default


@dataclass
class SyncConfig:
    vault_path: Path
    data_file: Path
    suppression_window: float = 2.0
    created_read_delay: float = 1.0
    initial_sync_pause: float = 0.05
    initial_sync_cooldown: float = 300.0
    poll_interval: float = 1.0
    log_level: str = "INFO"
    log_file: Optional[Path] = None


def load_sync_config() -> SyncConfig:
    data = _load_config()
    vault = os.environ.get(VAULT_ENV, "").strip() or str(data.get("vault_path") or "").strip()
    vault_path = Path(vault).expanduser() if vault else DEFAULT_VAULT_PATH
    data_file = os.environ.get(DATA_FILE_ENV, "").strip() or str(data.get("data_file") or "").strip()
    defaults = SyncConfig(vault_path=vault_path, data_file=vault_path / DATA_FILE_NAME)
    log_file = str(data.get("log_file") or "").strip()
    return SyncConfig(
        vault_path=vault_path,
        data_file=Path(data_file).expanduser() if data_file else defaults.data_file,
        suppression_window=_number(data.get("suppression_window"), defaults.suppression_window),
        created_read_delay=_number(data.get("created_read_delay"), defaults.created_read_delay),
        initial_sync_pause=_number(data.get("initial_sync_pause"), defaults.initial_sync_pause),
        initial_sync_cooldown=_number(data.get("initial_sync_cooldown"), defaults.initial_sync_cooldown),
        poll_interval=_number(data.get("poll_interval"), defaults.poll_interval),
        log_level=str(data.get("log_level") or defaults.log_level).strip().upper(),
        log_file=Path(log_file).expanduser() if log_file else None,
    )
