"""Persisted UI preference storage."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import structlog

from user_admin.config import get_settings
from user_admin.utils.exceptions import PreferenceError

logger = structlog.get_logger()

HIDE_DISABLED_KEY = "hideDisabled"


class PreferenceStore(Protocol):
    """Key-value store for boolean UI preferences."""

    def get_bool(self, key: str, default: bool) -> bool: ...

    def set_bool(self, key: str, value: bool) -> None: ...


class InMemoryPreferenceStore:
    """Preference store that lives for the process only."""

    def __init__(self, values: dict[str, bool] | None = None) -> None:
        self.values: dict[str, bool] = dict(values or {})

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.values.get(key)
        return value if isinstance(value, bool) else default

    def set_bool(self, key: str, value: bool) -> None:
        self.values[key] = bool(value)


class JsonFilePreferenceStore:
    """Preferences in a JSON file, namespaced per installation.

    File layout: ``{"<installation_id>": {"hideDisabled": true}}``. The file
    is rewritten atomically on every write.
    """

    def __init__(self, path: Path | None = None, installation_id: str | None = None) -> None:
        settings = get_settings()
        self.path = Path(path) if path is not None else settings.preferences.path
        self.installation_id = installation_id or settings.preferences.installation_id

    def _load(self) -> dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PreferenceError(f"Failed to read preferences: {e}", {"path": str(self.path)}) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt preferences file", path=str(self.path))
            return {}
        return data if isinstance(data, dict) else {}

    def get_bool(self, key: str, default: bool) -> bool:
        scope = self._load().get(self.installation_id)
        if not isinstance(scope, dict):
            return default
        value = scope.get(key)
        return value if isinstance(value, bool) else default

    def set_bool(self, key: str, value: bool) -> None:
        data = self._load()
        scope = data.get(self.installation_id)
        if not isinstance(scope, dict):
            scope = {}
            data[self.installation_id] = scope
        scope[key] = bool(value)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        except OSError as e:
            raise PreferenceError(f"Failed to write preferences: {e}", {"path": str(self.path)}) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as e:
            raise PreferenceError(f"Failed to write preferences: {e}", {"path": str(self.path)}) from e
        finally:
            # No-op after a successful replace
            Path(tmp_name).unlink(missing_ok=True)

        logger.debug("Preference saved", key=key, value=value, installation_id=self.installation_id)
