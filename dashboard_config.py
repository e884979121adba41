"""Persisted app list (``config.json``).

File layout (kept compatible with the web configurator's format):

    {
      "apps": [{"name": "Clock", "className": "Clock", "enabled": true}, ...],
      "currentApp": 0
    }

Only the enabled flags and the order matter to the dashboard. A missing or
unreadable file yields an empty config which ``merge_registered`` then fills
with every registered app.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:  # pragma: no cover
    from app_registry import AppRegistry

log = logging.getLogger(__name__)

CONFIG_FILE = "config.json"


@dataclass
class AppConfig:
    name: str
    class_name: str
    enabled: bool = True

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "className": self.class_name, "enabled": self.enabled}


@dataclass
class DashboardConfig:
    apps: List[AppConfig] = field(default_factory=list)
    current_app: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {"apps": [a.to_json() for a in self.apps], "currentApp": self.current_app}


def _parse(data: Any) -> DashboardConfig:
    if not isinstance(data, dict):
        raise ValueError("config root must be an object")
    apps: List[AppConfig] = []
    for entry in data.get("apps") or []:
        if not isinstance(entry, dict) or not entry.get("className"):
            log.warning("skipping malformed app entry %r", entry)
            continue
        class_name = str(entry["className"])
        apps.append(AppConfig(
            name=str(entry.get("name") or class_name),
            class_name=class_name,
            enabled=bool(entry.get("enabled", True)),
        ))
    try:
        current = int(data.get("currentApp") or 0)
    except (TypeError, ValueError):
        current = 0
    return DashboardConfig(apps=apps, current_app=current)


def load_config(path: str = CONFIG_FILE) -> DashboardConfig:
    if not os.path.exists(path):
        log.info("no config at %s, using defaults", path)
        return DashboardConfig()
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return _parse(json.load(fh))
    except (OSError, ValueError) as e:
        # json.JSONDecodeError is a ValueError
        log.error("error loading config %s: %s", path, e)
        return DashboardConfig()


def save_config(config: DashboardConfig, path: str = CONFIG_FILE) -> bool:
    """Write the config atomically (temp file + rename). Returns False on error."""
    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp = tempfile.mkstemp(prefix=".config-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(config.to_json(), fh, indent=2)
                fh.write("\n")
            os.replace(tmp, path)
        except BaseException:
            os.unlink(tmp)
            raise
    except OSError as e:
        log.error("error saving config %s: %s", path, e)
        return False
    return True


def merge_registered(config: DashboardConfig, registry: "AppRegistry") -> bool:
    """Append registered apps missing from the config. Returns True if anything was added."""
    known = {a.class_name for a in config.apps}
    changed = False
    for definition in registry.definitions():
        if definition.class_name in known:
            continue
        config.apps.append(AppConfig(definition.name, definition.class_name, definition.enabled))
        known.add(definition.class_name)
        changed = True
    return changed


def enabled_class_names(config: DashboardConfig) -> List[str]:
    return [a.class_name for a in config.apps if a.enabled]


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "DashboardConfig",
    "enabled_class_names",
    "load_config",
    "merge_registered",
    "save_config",
]
