"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import CONFIG_PATH, SYNC


logger = logging.getLogger("todo_companion.config")


@dataclass
class AppConfig:
    """User overrides for the sync defaults, persisted to ``config.json``."""

    max_attempts: int = SYNC.max_attempts
    stop_on_error: bool = False
    batch_limit: int = SYNC.batch_limit
    cleanup_max_age_hours: int = SYNC.cleanup_max_age_hours


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _coerce(name: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Config value %s=%r is not an integer; using %s", name, value, default)
        return default
    if number < 1:
        logger.warning("Config value %s=%r must be positive; using %s", name, value, default)
        return default
    return number


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    defaults = AppConfig()
    values = {}
    for f in fields(AppConfig):
        default = getattr(defaults, f.name)
        values[f.name] = _coerce(f.name, data[f.name], default) if f.name in data else default
    return AppConfig(**values)


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if not hasattr(cfg, key):
            raise KeyError(f"Unknown config key: {key}")
        setattr(cfg, key, _coerce(key, value, getattr(AppConfig(), key)))
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "load_config", "save_config", "update_config"]
