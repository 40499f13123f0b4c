from __future__ import annotations

from typing import Any

from .config_store import ConfigStore, ConfigStoreError
from .groups import GroupsError


def _first_keys(groups: Any) -> set[str]:
    names: set[str] = set()
    if not isinstance(groups, list):
        return names
    for group in groups:
        if isinstance(group, dict) and group:
            name = str(next(iter(group)))
            if name:
                names.add(name)
    return names


def _layout_names(settings_data: Any) -> set[str]:
    if not isinstance(settings_data, dict):
        return set()
    layout = settings_data.get("layout")
    if isinstance(layout, list):
        return {entry["name"] for entry in layout if isinstance(entry, dict) and isinstance(entry.get("name"), str)}
    if isinstance(layout, dict):
        return {str(key) for key in layout}
    return set()


async def get_unified_group_names(store: ConfigStore) -> list[str]:
    """Sorted union of group names across services, bookmarks and the settings layout."""

    try:
        names = _first_keys(await store.read_services())
        names |= _first_keys(await store.read_bookmarks())
        names |= _layout_names(await store.read_settings())
    except (ConfigStoreError, OSError) as exc:
        store.logger.error(f"Error gathering unified group names: {exc}")
        raise GroupsError("Failed to gather unified group names.", status_code=500) from exc
    return sorted(names)
