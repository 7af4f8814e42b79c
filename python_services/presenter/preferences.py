"""Durable operator preferences.

Persistence uses sqlitedict, one row per preference key, so a partially written
update never corrupts unrelated keys. Every read goes through the `Preferences`
model: missing keys fall back to defaults, legacy keys are migrated in memory.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlitedict import SqliteDict

from shared.models import ReplicationMode

from .errors import InvalidCommandError

logger = logging.getLogger(__name__)

DEFAULT_API_PORT = 9595
DEFAULT_WEB_UI_PORT = 80
PRESET_SLOTS = (1, 2, 3)
LEGACY_BACKUP_KEYS = ("backupIp1", "backupIp2", "backupIp3")
TABLE_NAME = "preferences"


def normalize_address_list(values: Any) -> List[str]:
    """Trim, drop empties and de-duplicate while keeping operator order."""
    if not isinstance(values, (list, tuple)):
        return []
    out: List[str] = []
    seen = set()
    for raw in values:
        value = str(raw or "").strip()
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


class Preferences(BaseModel):
    """Typed view over the stored key/value preferences (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    presentation_display_id: Optional[int] = Field(default=None, alias="presentationDisplayId")
    notes_display_id: Optional[int] = Field(default=None, alias="notesDisplayId")
    api_port: int = Field(default=DEFAULT_API_PORT, alias="apiPort")
    web_ui_port: int = Field(default=DEFAULT_WEB_UI_PORT, alias="webUiPort")
    mode: ReplicationMode = Field(default=ReplicationMode.STANDALONE, alias="primaryBackupMode")
    backup_ips: List[str] = Field(default_factory=list, alias="backupIps")
    backup_port: Optional[int] = Field(default=None, alias="backupPort")
    presentation1: str = ""
    presentation2: str = ""
    presentation3: str = ""
    controller_ips: List[str] = Field(default_factory=list, alias="controllerIps")
    verbose_logging: bool = Field(default=False, alias="verboseLogging")
    restore_slide_on_reload: bool = Field(default=True, alias="restoreSlideOnReload")
    stagetimer_room_id: Optional[str] = Field(default=None, alias="stagetimerRoomId")
    stagetimer_api_key: Optional[str] = Field(default=None, alias="stagetimerApiKey")
    stagetimer_enabled: bool = Field(default=True, alias="stagetimerEnabled")
    stagetimer_visible: bool = Field(default=True, alias="stagetimerVisible")

    @model_validator(mode="before")
    @classmethod
    def _merge_legacy_backups(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        legacy = [data.pop(key, None) for key in LEGACY_BACKUP_KEYS]
        current = data.get("backupIps", data.get("backup_ips"))
        merged = list(current) if isinstance(current, (list, tuple)) else []
        data["backupIps"] = merged + legacy
        data.pop("backup_ips", None)
        return data

    @field_validator("backup_ips", "controller_ips", mode="before")
    @classmethod
    def _normalize_lists(cls, value: Any) -> List[str]:
        return normalize_address_list(value)

    @field_validator("presentation_display_id", "notes_display_id", "backup_port", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        # The settings UI posts "" for "no selection"
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _unknown_mode_is_standalone(cls, value: Any) -> Any:
        if value in (None, ""):
            return ReplicationMode.STANDALONE
        return value

    @field_validator("presentation1", "presentation2", "presentation3", mode="before")
    @classmethod
    def _preset_text(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("stagetimer_room_id", "stagetimer_api_key", mode="before")
    @classmethod
    def _stagetimer_credential(cls, value: Any) -> Optional[str]:
        text = str(value or "").strip()
        return text or None

    @property
    def replication_port(self) -> int:
        return self.backup_port or DEFAULT_API_PORT

    @property
    def stagetimer_configured(self) -> bool:
        return bool(self.stagetimer_room_id and self.stagetimer_api_key)

    def preset_url(self, slot: int) -> str:
        if slot not in PRESET_SLOTS:
            return ""
        return getattr(self, f"presentation{slot}")

    def presets(self) -> Dict[str, str]:
        return {f"presentation{slot}": self.preset_url(slot) for slot in PRESET_SLOTS}

    def to_store(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class PreferencesStore:
    """Key/value preferences persisted across restarts."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: List[Callable[[Preferences], None]] = []

    @contextmanager
    def _table(self) -> Iterator[SqliteDict]:
        with SqliteDict(str(self.path), tablename=TABLE_NAME, autocommit=True) as db:
            yield db

    def _raw(self) -> Dict[str, Any]:
        with self._table() as db:
            return dict(db.items())

    def load(self) -> Preferences:
        raw = self._raw()
        try:
            return Preferences.model_validate(raw)
        except ValidationError as e:
            # Stored data is validated on write, so this only happens after manual edits
            logger.error(f"[Preferences] Stored preferences are invalid, using defaults: {e}")
            return Preferences()

    def get(self) -> Dict[str, Any]:
        """Return every preference, defaults filled in."""
        return self.load().to_store()

    def set(self, partial: Mapping[str, Any]) -> Preferences:
        """Merge `partial` into the stored preferences and persist the result."""
        merged = {**self._raw(), **dict(partial)}
        try:
            prefs = Preferences.model_validate(merged)
        except ValidationError as e:
            raise InvalidCommandError(f"Invalid preferences: {e.errors()[0].get('msg', str(e))}") from e

        data = prefs.to_store()
        with self._table() as db:
            for stale in [k for k in db.keys() if k not in data]:
                del db[stale]
            for key, value in data.items():
                db[key] = value
        logger.info("[Preferences] Preferences saved")
        logger.debug(f"[Preferences] Keys written: {sorted(data)}")

        for listener in list(self._listeners):
            try:
                listener(prefs)
            except Exception as e:  # noqa: BLE001
                logger.error(f"[Preferences] Change listener failed: {e}")
        return prefs

    def subscribe(self, listener: Callable[[Preferences], None]) -> None:
        self._listeners.append(listener)
