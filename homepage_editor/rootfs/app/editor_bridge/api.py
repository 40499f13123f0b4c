from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from . import group_names, groups, settings
from .config_store import ConfigStore, ConfigStoreError
from .fs_utils import yaml_parse

logger = logging.getLogger(__name__)

LIST_DOCUMENTS = ("services", "bookmarks", "widgets")


def _http_error(exc: ConfigStoreError | groups.GroupsError) -> HTTPException:
    detail: Any = exc.message
    report = getattr(exc, "report", None)
    if report is not None:
        detail = {"error": exc.message, "report": report.as_dict()}
    return HTTPException(status_code=exc.status_code, detail=detail)


def _list_document(document: str) -> str:
    if document not in LIST_DOCUMENTS:
        raise HTTPException(status_code=404, detail=f"Unknown configuration: {document}")
    return document


def _group_document(document: str) -> str:
    if document not in settings.GROUP_DOCUMENTS:
        raise HTTPException(status_code=404, detail=f"Unknown group document: {document}")
    return document


def _known_filename(store: ConfigStore, filename: str) -> str:
    if filename not in store.files.values():
        raise HTTPException(status_code=404, detail=f"File not editable: {filename}")
    return filename


def create_app(config_dir: Path) -> FastAPI:
    """Build the editor API around a store rooted at `config_dir`."""

    store = ConfigStore(config_dir)
    app = FastAPI()
    app.state.store = store

    @app.get("/api/settings")
    async def api_settings() -> JSONResponse:
        try:
            settings_data = await store.read_settings()
            names = await group_names.get_unified_group_names(store)
        except (ConfigStoreError, groups.GroupsError) as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"settings": settings_data or {}, "groupNames": names})

    @app.post("/api/settings")
    async def api_update_settings(payload: Any = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Settings configuration must be an object.")
        try:
            await store.write_settings(payload)
        except ConfigStoreError as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"message": "Settings configuration updated successfully."})

    @app.get("/api/groups")
    async def api_groups() -> JSONResponse:
        try:
            names = await group_names.get_unified_group_names(store)
        except groups.GroupsError as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"groups": names})

    @app.put("/api/settings/groups/{old_name}/rename")
    async def api_rename_group(old_name: str, payload: dict[str, Any] = Body(...)) -> JSONResponse:
        new_name = payload.get("newName")
        try:
            report = await groups.rename_group(store, old_name, new_name)
        except groups.GroupsError as exc:
            raise _http_error(exc) from exc
        return JSONResponse(
            {
                "message": f"Group '{old_name}' successfully renamed to '{new_name}'.",
                "report": report.as_dict(),
            }
        )

    @app.delete("/api/settings/groups/{group_name}")
    async def api_delete_group(group_name: str) -> JSONResponse:
        try:
            report = await groups.delete_group(store, group_name)
        except groups.GroupsError as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"message": f"Group '{group_name}' successfully deleted.", "report": report.as_dict()})

    @app.put("/api/{document}/groups-order")
    async def api_reorder_groups(document: str, payload: dict[str, Any] = Body(...)) -> JSONResponse:
        document = _group_document(document)
        try:
            await groups.reorder_groups(store, document, payload.get("orderedGroupNames"))
        except (ConfigStoreError, groups.GroupsError) as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"message": f"{document.capitalize()} groups reordered successfully."})

    @app.put("/api/{document}/group/{group_name}/order")
    async def api_reorder_group_items(
        document: str, group_name: str, payload: dict[str, Any] = Body(...)
    ) -> JSONResponse:
        document = _group_document(document)
        try:
            await groups.reorder_group_items(store, document, group_name, payload.get("items"))
        except (ConfigStoreError, groups.GroupsError) as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"message": f"Items in group \"{group_name}\" reordered successfully."})

    @app.get("/api/files")
    async def api_files() -> JSONResponse:
        files = [
            {"name": name, "filename": filename, "exists": (store.config_dir / filename).exists()}
            for name, filename in store.files.items()
        ]
        return JSONResponse({"files": files})

    @app.get("/api/files/{filename}")
    async def api_read_file(filename: str) -> JSONResponse:
        filename = _known_filename(store, filename)
        content = await store.read_raw(filename)
        if content is None:
            raise HTTPException(status_code=404, detail=f"{filename} not found.")
        return JSONResponse({"filename": filename, "content": content})

    @app.put("/api/files/{filename}")
    async def api_write_file(filename: str, payload: dict[str, Any] = Body(...)) -> JSONResponse:
        filename = _known_filename(store, filename)
        content = payload.get("content")
        if not isinstance(content, str):
            raise HTTPException(status_code=400, detail="content must be a string.")
        try:
            yaml_parse(content)
        except yaml.YAMLError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid YAML: {exc}") from exc
        try:
            await store.write_raw(filename, content)
        except ConfigStoreError as exc:
            raise _http_error(exc) from exc
        except OSError as exc:
            logger.error(f"Failed to write raw file {filename}: {exc}")
            raise HTTPException(status_code=500, detail=f"Failed to write {filename}.") from exc
        return JSONResponse({"message": f"{filename} saved."})

    @app.get("/api/{document}")
    async def api_read_document(document: str) -> JSONResponse:
        document = _list_document(document)
        data = await store.read(document)
        return JSONResponse(data if data is not None else [])

    @app.post("/api/{document}")
    async def api_write_document(document: str, payload: Any = Body(...)) -> JSONResponse:
        document = _list_document(document)
        try:
            await store.write_list(document, payload)
        except ConfigStoreError as exc:
            raise _http_error(exc) from exc

        added: list[str] = []
        if document in settings.GROUP_DOCUMENTS:
            try:
                added = await groups.ensure_layout_entries(store, payload)
            except (ConfigStoreError, groups.GroupsError, OSError) as exc:
                logger.error(f"Error adding default layouts after saving {document}: {exc}")
        return JSONResponse(
            {"message": f"{document.capitalize()} configuration updated successfully.", "addedLayouts": added}
        )

    return app


app = create_app(settings.CONFIG_DIR)
