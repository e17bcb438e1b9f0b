"""Persistent storage for user preferences.

Remembers the last used provider, and the last model chosen for each
provider, so later runs can default to them.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import orjson
import platformdirs

logger = logging.getLogger(__name__)

APP_NAME = "report-extractor"
PREFERENCES_FILE = "preferences.json"


def get_preferences_path() -> Path:
    """Preferences file in the platform-specific user config directory."""
    return Path(platformdirs.user_config_dir(APP_NAME, appauthor=False)) / PREFERENCES_FILE


class ConfigStore:
    """User preferences kept in a small JSON file.

    Keys use dot notation for nesting, e.g. ``models.gemini``. Failures to
    read or write the file are logged and never interrupt a run.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = path or get_preferences_path()
        self._data: dict[str, Any] = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = orjson.loads(self._path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable preferences {self._path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_bytes(orjson.dumps(self._data, option=orjson.OPT_INDENT_2))
        except OSError as e:
            logger.warning(f"Could not save preferences to {self._path}: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a preference by dotted key."""
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return default if node is None else node

    def set(self, key: str, value: Any) -> None:
        """Store a preference by dotted key and persist immediately."""
        *parents, leaf = key.split(".")
        node = self._data
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value
        self._write()

    def get_last_provider(self) -> Optional[str]:
        return self.get("last_provider")

    def get_last_model(self, provider: str) -> Optional[str]:
        """Model last used with a provider."""
        return self.get(f"models.{provider}")

    def remember_selection(self, provider: str, model: str) -> None:
        self._data["last_provider"] = provider
        self.set(f"models.{provider}", model)


_default_store: Optional[ConfigStore] = None


def get_config_store() -> ConfigStore:
    """Shared store for the default preferences file."""
    global _default_store
    if _default_store is None:
        _default_store = ConfigStore()
    return _default_store
