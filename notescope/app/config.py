from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SETTINGS_DIRNAME = ".notescope"
SETTINGS_FILENAME = "settings.json"

WEIGHT_MIN = 1
WEIGHT_MAX = 10

WEIGHT_FIELDS = (
    "file_name_weight",
    "directory_weight",
    "tag_weight",
    "heading1_weight",
    "heading2_weight",
    "heading3_weight",
    "heading4_weight",
    "content_weight",
    "quote_weight",
)
THRESHOLD_FIELDS = ("min_chinese_length", "min_english_length")


@dataclass
class Settings:
    file_name_weight: int = 10
    directory_weight: int = 9
    tag_weight: int = 8
    heading1_weight: int = 7
    heading2_weight: int = 6
    heading3_weight: int = 5
    heading4_weight: int = 4
    content_weight: int = 3
    quote_weight: int = 2
    excluded_folders: str = ""
    # Minutes between automatic reindex runs.
    cache_update_interval: float = 60
    auto_update_index: bool = True
    autocomplete_enabled: bool = True
    autocomplete_folders: str = ""
    min_chinese_length: int = 2
    min_english_length: int = 3
    write_block_anchors: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def settings_path_for(vault_root: Path) -> Path:
    return Path(vault_root) / SETTINGS_DIRNAME / SETTINGS_FILENAME


def parse_folder_list(raw: Optional[str]) -> list[str]:
    """Split a comma-separated folder list, dropping blank entries."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _coerce_int(value, low: int, high: Optional[int] = None) -> Optional[int]:
    # bool is an int subclass; a checkbox value is never a valid weight
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    elif isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int):
        return None
    if value < low or (high is not None and value > high):
        return None
    return value


def _coerce_interval(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if value != value or value <= 0:
        return None
    return value


def validate_setting(name: str, value):
    """Return the normalized value for a setting, or None when it must be rejected."""
    if name in WEIGHT_FIELDS:
        return _coerce_int(value, WEIGHT_MIN, WEIGHT_MAX)
    if name in THRESHOLD_FIELDS:
        return _coerce_int(value, 1)
    if name == "cache_update_interval":
        return _coerce_interval(value)
    if name in ("auto_update_index", "autocomplete_enabled", "write_block_anchors"):
        return value if isinstance(value, bool) else None
    if name in ("excluded_folders", "autocomplete_folders"):
        return value if isinstance(value, str) else None
    return None


class SettingsStore:
    """Flat key-value settings persisted as JSON and merged over the defaults."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else None
        self.settings = Settings()

    def _read(self) -> dict:
        """Return the parsed settings file, or an empty dict on error/missing."""
        if not self.path or not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self.path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def load(self) -> Settings:
        payload = self._read()
        merged = Settings()
        for item in fields(Settings):
            if item.name not in payload:
                continue
            value = validate_setting(item.name, payload[item.name])
            if value is not None:
                setattr(merged, item.name, value)
        self.settings = merged
        return merged

    def save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self.settings.to_dict(), indent=2), encoding="utf-8")

    def update(self, **changes) -> dict:
        """Apply valid changes and persist them. Returns the changes that were accepted."""
        accepted: dict = {}
        for name, raw in changes.items():
            value = validate_setting(name, raw)
            if value is None:
                logger.debug("Rejected setting %s=%r", name, raw)
                continue
            setattr(self.settings, name, value)
            accepted[name] = value
        if accepted:
            self.save()
        return accepted


def debug_enabled(var_name: str = "NOTESCOPE_DEBUG") -> bool:
    """Check if a debug flag is enabled."""
    return os.getenv(var_name, "0") not in ("0", "false", "False", "", None)
