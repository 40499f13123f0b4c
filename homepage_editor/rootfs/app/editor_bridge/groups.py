from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from . import settings
from .config_store import ConfigStore, ConfigStoreError

STEP_COMMITTED = "committed"
STEP_UNCHANGED = "unchanged"
STEP_SKIPPED_NOT_FOUND = "skipped_not_found"
STEP_SKIPPED_NO_ITEMS = "skipped_no_items"
STEP_FAILED = "failed"


class GroupsError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        report: GroupOperationReport | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.report = report

    def __str__(self) -> str:
        return self.message


@dataclass
class StepOutcome:
    target: str
    action: str
    status: str
    detail: str = ""


@dataclass
class GroupOperationReport:
    operation: str
    group: str
    new_name: str | None = None
    steps: list[StepOutcome] = field(default_factory=list)

    def record(self, target: str, action: str, status: str, detail: str = "") -> None:
        self.steps.append(StepOutcome(target=target, action=action, status=status, detail=detail))

    def step(self, target: str, action: str) -> StepOutcome | None:
        return next(
            (outcome for outcome in self.steps if outcome.target == target and outcome.action == action),
            None,
        )

    @property
    def failed_steps(self) -> list[StepOutcome]:
        return [outcome for outcome in self.steps if outcome.status == STEP_FAILED]

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["ok"] = not self.failed_steps
        return payload


def _require_name(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise GroupsError(f"{label} is required and cannot be empty.")
    return value


def _require_document(document: str) -> str:
    if document not in settings.GROUP_DOCUMENTS:
        raise GroupsError(f"Unsupported group document: {document}")
    return document


def _group_name(group: Any) -> str | None:
    if not isinstance(group, dict) or not group:
        return None
    return str(next(iter(group)))


def _matching_key(group: Any, name: str) -> Any:
    if not isinstance(group, dict):
        return None
    return next((key for key in group if str(key) == name), None)


def _find_group_index(groups: list[Any], name: str) -> int:
    return next(
        (index for index, group in enumerate(groups) if _matching_key(group, name) is not None),
        -1,
    )


async def _read_groups(store: ConfigStore, document: str) -> Any:
    return await store.read(_require_document(document))


async def _write_groups(store: ConfigStore, document: str, data: list[Any]) -> None:
    if document == "services":
        await store.write_services(data)
    else:
        await store.write_bookmarks(data)


# Settings layout (authoritative)


async def rename_group_in_settings(store: ConfigStore, old_name: str, new_name: str) -> bool:
    log = store.logger
    log.info(f"Attempting to rename group in settings: '{old_name}' -> '{new_name}'")
    settings_data = await store.read_settings()
    if not settings_data or not isinstance(settings_data.get("layout"), list):
        log.warning(f"Cannot rename group '{old_name}' in settings: layout data is missing or not a list.")
        return False

    layout = settings_data["layout"]
    index = next(
        (pos for pos, entry in enumerate(layout) if isinstance(entry, dict) and entry.get("name") == old_name),
        -1,
    )
    if index == -1:
        log.warning(f"Group '{old_name}' not found in settings layout.")
        return False
    if any(isinstance(entry, dict) and entry.get("name") == new_name for entry in layout):
        raise GroupsError(f"A group named '{new_name}' already exists in settings.yaml layout.", status_code=409)

    layout[index] = {**layout[index], "name": new_name}
    await store.write_settings(settings_data)
    log.info(f"Renamed group '{old_name}' to '{new_name}' in settings.yaml.")
    return True


async def delete_group_from_settings(store: ConfigStore, group_name: str) -> bool:
    log = store.logger
    log.info(f"Attempting to delete group from settings: '{group_name}'")
    settings_data = await store.read_settings()
    if not settings_data or not isinstance(settings_data.get("layout"), list):
        log.warning(f"Cannot delete group '{group_name}' from settings: layout data is missing or not a list.")
        return False

    layout = settings_data["layout"]
    remaining = [
        entry for entry in layout if not (isinstance(entry, dict) and entry.get("name") == group_name)
    ]
    if len(remaining) == len(layout):
        log.warning(f"Group '{group_name}' not found in settings layout for deletion.")
        return False

    settings_data["layout"] = remaining
    await store.write_settings(settings_data)
    log.info(f"Deleted group '{group_name}' from settings.yaml.")
    return True


async def ensure_uncategorized_layout(store: ConfigStore) -> bool:
    """Append the default Uncategorized layout entry if missing; True when it was added."""

    log = store.logger
    name = settings.UNCATEGORIZED_GROUP
    settings_data = await store.read_settings()
    if not settings_data or not isinstance(settings_data.get("layout"), list):
        raise GroupsError(f"Cannot add '{name}' layout: settings.yaml data or layout is invalid.", status_code=500)
    layout = settings_data["layout"]
    if any(isinstance(entry, dict) and entry.get("name") == name for entry in layout):
        log.info(f"'{name}' layout already exists in settings.yaml.")
        return False
    layout.append({"name": name, **settings.DEFAULT_LAYOUT_ENTRY})
    await store.write_settings(settings_data)
    log.info(f"Added '{name}' layout entry to settings.yaml.")
    return True


async def ensure_layout_entries(store: ConfigStore, groups_data: Any) -> list[str]:
    """Give every group in a services/bookmarks payload a settings layout entry."""

    if not isinstance(groups_data, list):
        raise GroupsError("Group data must be a list of single-key maps.")
    log = store.logger
    names = [name for name in (_group_name(group) for group in groups_data) if name]
    if not names:
        return []

    settings_data = await store.read_settings()
    if settings_data is None:
        raw = await store.read_raw(store.files["settings"])
        if raw is not None and raw.strip():
            log.warning("settings.yaml exists but could not be loaded; not adding layout entries.")
            return []
        settings_data = {}
    layout = settings_data.get("layout")
    if not isinstance(layout, list):
        layout = []

    existing = {entry.get("name") for entry in layout if isinstance(entry, dict)}
    added: list[str] = []
    for name in names:
        if name in existing:
            continue
        layout.append({"name": name, **settings.DEFAULT_LAYOUT_ENTRY})
        existing.add(name)
        added.append(name)
        log.info(f"Adding default layout settings for new group: {name}")

    if added:
        settings_data["layout"] = layout
        await store.write_settings(settings_data)
    return added


# Services and bookmarks (best-effort participants)


async def rename_group_in_document(store: ConfigStore, document: str, old_name: str, new_name: str) -> bool:
    log = store.logger
    filename = store.files[_require_document(document)]
    log.info(f"Attempting to rename group in {document}: '{old_name}' -> '{new_name}'")
    groups = await _read_groups(store, document)
    if not isinstance(groups, list):
        log.warning(f"Cannot rename group '{old_name}' in {document}: data is missing or not a list.")
        return False

    index = _find_group_index(groups, old_name)
    if index == -1:
        log.warning(f"Group '{old_name}' not found in {filename}.")
        return False

    group = groups[index]
    old_key = _matching_key(group, old_name)
    if len(group) > 1:
        extra = [str(key) for key in group if key != old_key]
        log.warning(f"Group '{old_name}' in {filename} had unexpected additional keys: {extra}")
    groups[index] = {(new_name if key == old_key else key): value for key, value in group.items()}
    await _write_groups(store, document, groups)
    log.info(f"Updated group references from '{old_name}' to '{new_name}' in {filename}.")
    return True


async def rename_group_in_services(store: ConfigStore, old_name: str, new_name: str) -> bool:
    return await rename_group_in_document(store, "services", old_name, new_name)


async def rename_group_in_bookmarks(store: ConfigStore, old_name: str, new_name: str) -> bool:
    return await rename_group_in_document(store, "bookmarks", old_name, new_name)


async def remove_group_items(store: ConfigStore, document: str, group_name: str) -> list[Any] | None:
    """Remove a group from services/bookmarks and return its items, or None if absent."""

    log = store.logger
    filename = store.files[_require_document(document)]
    groups = await _read_groups(store, document)
    if not isinstance(groups, list):
        log.warning(f"Cannot process group '{group_name}' in {document}: data is missing or not a list.")
        return None

    index = _find_group_index(groups, group_name)
    if index == -1:
        log.warning(f"Group '{group_name}' not found in {filename} for item extraction.")
        return None

    removed = groups.pop(index)
    items = removed[_matching_key(removed, group_name)]
    if not isinstance(items, list):
        if items is not None:
            log.warning(f"Group '{group_name}' in {filename} does not hold a list; treating it as empty.")
        items = []
    await _write_groups(store, document, groups)
    log.info(f"Removed group '{group_name}' ({len(items)} item(s)) from {filename}.")
    return items


async def add_items_to_uncategorized(store: ConfigStore, document: str, items: list[Any]) -> None:
    log = store.logger
    name = settings.UNCATEGORIZED_GROUP
    filename = store.files[_require_document(document)]
    if not items:
        log.info(f"No {document} items to add to {name} group.")
        return

    groups = await _read_groups(store, document)
    if groups is None:
        groups = []
    if not isinstance(groups, list):
        raise GroupsError(f"Invalid {filename} format: expected a list.", status_code=500)

    index = _find_group_index(groups, name)
    if index == -1:
        groups.append({name: list(items)})
        log.info(f"Created new {name} group in {filename}.")
    else:
        key = _matching_key(groups[index], name)
        existing = groups[index][key]
        if isinstance(existing, list):
            groups[index][key] = existing + list(items)
            log.info(f"Appended {len(items)} item(s) to existing {name} group in {filename}.")
        else:
            if existing is not None:
                log.warning(f"{name} group in {filename} is not a list; overwriting with moved items.")
            groups[index][key] = list(items)
    await _write_groups(store, document, groups)


async def reorder_groups(store: ConfigStore, document: str, ordered_names: Any) -> list[Any]:
    if not isinstance(ordered_names, list) or not all(isinstance(name, str) for name in ordered_names):
        raise GroupsError("Invalid data format. Expected an array of group names.")
    log = store.logger
    filename = store.files[_require_document(document)]
    groups = await _read_groups(store, document)
    if not isinstance(groups, list):
        raise GroupsError(f"{filename} not found or invalid.", status_code=404)

    by_name: dict[str, Any] = {}
    for group in groups:
        name = _group_name(group)
        if name is not None and name not in by_name:
            by_name[name] = group

    reordered: list[Any] = []
    for name in ordered_names:
        group = by_name.pop(name, None)
        if group is None:
            log.warning(f"Group '{name}' in order list not found in {filename}; ignoring.")
            continue
        reordered.append(group)
    placed = {id(group) for group in reordered}
    for group in groups:
        if id(group) in placed:
            continue
        if _group_name(group) in by_name:
            log.warning(f"Group '{_group_name(group)}' was not in the order list; appending.")
        reordered.append(group)

    await _write_groups(store, document, reordered)
    log.info(f"Reordered groups in {filename}.")
    return reordered


async def reorder_group_items(store: ConfigStore, document: str, group_name: str, items: Any) -> None:
    group_name = _require_name(group_name, "Group name")
    if not isinstance(items, list):
        raise GroupsError("Invalid data format. Expected { items: [...] }.")
    log = store.logger
    filename = store.files[_require_document(document)]
    groups = await _read_groups(store, document)
    if not isinstance(groups, list):
        raise GroupsError(f"{filename} not found or invalid.", status_code=404)
    index = next((pos for pos, group in enumerate(groups) if _group_name(group) == group_name), -1)
    if index == -1:
        raise GroupsError(f"Group \"{group_name}\" not found.", status_code=404)
    group = groups[index]
    group[next(iter(group))] = items
    await _write_groups(store, document, groups)
    log.info(f"Reordered items in group '{group_name}' of {filename}.")


# Sagas


def _finish(report: GroupOperationReport, strict: bool, log: Any) -> GroupOperationReport:
    failed = report.failed_steps
    if failed:
        targets = ", ".join(f"{outcome.target}:{outcome.action}" for outcome in failed)
        log.error(f"Group {report.operation} of '{report.group}' finished with failed steps: {targets}")
        if strict:
            raise GroupsError(
                f"Group {report.operation} of '{report.group}' committed in settings.yaml "
                f"but failed for: {targets}",
                status_code=502,
                report=report,
            )
    else:
        log.info(f"Completed group {report.operation} of '{report.group}'.")
    return report


async def rename_group(
    store: ConfigStore, old_name: str, new_name: str, strict: bool | None = None
) -> GroupOperationReport:
    """Rename a group in settings (mandatory), then services and bookmarks (best-effort)."""

    old_name = _require_name(old_name, "Old group name")
    new_name = _require_name(new_name, "New group name")
    if old_name == new_name:
        raise GroupsError("New group name cannot be the same as the old group name.")
    strict = settings.STRICT_GROUP_SYNC if strict is None else strict
    log = store.logger
    report = GroupOperationReport(operation="rename", group=old_name, new_name=new_name)
    log.info(f"Starting rename process for group: '{old_name}' -> '{new_name}'")

    try:
        renamed = await rename_group_in_settings(store, old_name, new_name)
    except (ConfigStoreError, OSError) as exc:
        log.error(f"Failed to rename group '{old_name}' in settings.yaml: {exc}")
        raise GroupsError(f"Failed to update settings.yaml during rename: {exc}", status_code=500) from exc
    if not renamed:
        message = f"Failed to rename group: Group '{old_name}' not found in settings.yaml layout."
        log.error(message)
        raise GroupsError(message, status_code=404)
    report.record("settings", "rename", STEP_COMMITTED)

    for document in settings.GROUP_DOCUMENTS:
        try:
            found = await rename_group_in_document(store, document, old_name, new_name)
        except Exception as exc:
            log.error(f"Error renaming group '{old_name}' in {document}: {exc}")
            report.record(document, "rename", STEP_FAILED, str(exc))
            continue
        report.record(document, "rename", STEP_COMMITTED if found else STEP_SKIPPED_NOT_FOUND)

    return _finish(report, strict, log)


async def delete_group(store: ConfigStore, group_name: str, strict: bool | None = None) -> GroupOperationReport:
    """Delete a group's layout entry and move its items to the Uncategorized group."""

    group_name = _require_name(group_name, "Group name")
    strict = settings.STRICT_GROUP_SYNC if strict is None else strict
    log = store.logger
    report = GroupOperationReport(operation="delete", group=group_name)
    log.info(f"Starting deletion process for group layout: '{group_name}'")

    try:
        deleted = await delete_group_from_settings(store, group_name)
    except (ConfigStoreError, OSError) as exc:
        log.error(f"Failed to delete group '{group_name}' from settings.yaml: {exc}")
        raise GroupsError(f"Failed to update settings.yaml during deletion: {exc}", status_code=500) from exc
    if not deleted:
        message = (
            f"Failed to delete group layout: Group '{group_name}' not found in settings.yaml "
            "layout or layout is invalid."
        )
        log.error(message)
        raise GroupsError(message, status_code=404)
    report.record("settings", "delete", STEP_COMMITTED)

    moved: dict[str, list[Any]] = {}
    for document in settings.GROUP_DOCUMENTS:
        moved[document] = []
        try:
            items = await remove_group_items(store, document, group_name)
        except Exception as exc:
            log.error(f"Error removing group '{group_name}' from {document}: {exc}")
            report.record(document, "remove", STEP_FAILED, str(exc))
            continue
        if items is None:
            report.record(document, "remove", STEP_SKIPPED_NOT_FOUND)
            continue
        moved[document] = items
        report.record(document, "remove", STEP_COMMITTED, f"{len(items)} item(s)")

    uncategorized = settings.UNCATEGORIZED_GROUP
    if any(moved.values()):
        try:
            added = await ensure_uncategorized_layout(store)
        except Exception as exc:
            log.error(f"Error ensuring '{uncategorized}' layout exists in settings.yaml: {exc}")
            report.record("settings", "ensure_uncategorized", STEP_FAILED, str(exc))
        else:
            report.record("settings", "ensure_uncategorized", STEP_COMMITTED if added else STEP_UNCHANGED)
    else:
        log.info(f"No items extracted from group '{group_name}'; skipping '{uncategorized}' layout check.")
        report.record("settings", "ensure_uncategorized", STEP_SKIPPED_NO_ITEMS)

    for document in settings.GROUP_DOCUMENTS:
        items = moved[document]
        if not items:
            report.record(document, "relocate", STEP_SKIPPED_NO_ITEMS)
            continue
        try:
            await add_items_to_uncategorized(store, document, items)
        except Exception as exc:
            log.error(f"Error moving items from deleted group '{group_name}' to {uncategorized} {document}: {exc}")
            report.record(document, "relocate", STEP_FAILED, str(exc))
            continue
        report.record(document, "relocate", STEP_COMMITTED, f"{len(items)} item(s)")

    return _finish(report, strict, log)
