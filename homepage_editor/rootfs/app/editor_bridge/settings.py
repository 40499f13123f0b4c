from __future__ import annotations

import os
from pathlib import Path


def _default_config_dir() -> Path:
    explicit = os.environ.get("EDITOR_CONFIG_DIR")
    if explicit:
        return Path(explicit)
    data_dir = os.environ.get("EDITOR_DATA_DIR")
    if data_dir:
        return Path(data_dir) / "config"
    return Path("/config")


CONFIG_DIR = _default_config_dir()
CONFIG_FILES = {
    "services": "services.yaml",
    "bookmarks": "bookmarks.yaml",
    "widgets": "widgets.yaml",
    "settings": "settings.yaml",
}
GROUP_DOCUMENTS = ("services", "bookmarks")
UNCATEGORIZED_GROUP = "Uncategorized"
DEFAULT_LAYOUT_ENTRY = {"header": True, "style": "row", "columns": 4}
STRICT_GROUP_SYNC = os.environ.get("EDITOR_STRICT_GROUP_SYNC", "").lower() in {"1", "true", "yes", "on"}
LOG_LEVEL = os.environ.get("EDITOR_LOG_LEVEL", "INFO").upper()
