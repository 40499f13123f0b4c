from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable

import yaml

from . import settings
from .fs_utils import read_text, write_text, yaml_dump, yaml_parse
from .layout import fold_layout, reconstruct_layout

logger = logging.getLogger(__name__)


class ConfigStoreError(Exception):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class ConfigValidationError(ConfigStoreError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=400)


def _ensure_simple_filename(filename: Any) -> str:
    if not isinstance(filename, str) or not filename.strip():
        raise ConfigValidationError("Invalid filename provided.")
    candidate = filename.strip()
    if "/" in candidate or "\\" in candidate or candidate in {".", ".."}:
        raise ConfigValidationError("Filename must be a simple filename.")
    return candidate


class ConfigStore:
    """Reads and writes the dashboard YAML documents under one config directory.

    Missing, empty and unparsable documents read as None. Writes overwrite the whole
    file with no merge and no concurrency check.
    """

    def __init__(
        self,
        config_dir: Path,
        log: Any = None,
        files: dict[str, str] | None = None,
    ) -> None:
        self.config_dir = Path(config_dir)
        self.logger = log or logger
        self.files = dict(files or settings.CONFIG_FILES)

    def path_for(self, name: str) -> Path:
        filename = self.files.get(name)
        if not filename:
            self.logger.error(f"Invalid config name requested: {name}")
            raise ConfigStoreError(f"Invalid configuration name: {name}")
        return self.config_dir / filename

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(*args))

    def _load(self, name: str) -> tuple[Any, str | None]:
        path = self.path_for(name)
        try:
            text = read_text(path)
        except OSError as exc:
            self.logger.error(f"Error reading configuration file {path}: {exc}")
            raise
        if text is None:
            self.logger.info(f"Configuration file not found: {path}. Returning None.")
            return None, None
        if not text.strip():
            self.logger.info(f"Configuration file is empty: {path}")
            return None, text
        try:
            data = yaml_parse(text)
        except yaml.YAMLError as exc:
            self.logger.error(f"Invalid YAML syntax in file {path}: {exc}")
            return None, text
        if data is None:
            self.logger.warning(f"Parsed data for {path} is empty. Returning None.")
            return None, text
        return data, text

    def _dump(self, name: str, data: Any) -> None:
        path = self.path_for(name)
        try:
            rendered = yaml_dump(data)
        except yaml.YAMLError as exc:
            self.logger.error(f"Error serializing data to YAML for {path}: {exc}")
            raise ConfigStoreError(f"Failed to serialize {name} data to YAML.") from exc
        self.logger.debug(f"Writing {path}:\n{rendered}")
        try:
            write_text(path, rendered)
        except OSError as exc:
            self.logger.error(f"Error writing configuration file {path}: {exc}")
            raise ConfigStoreError(f"Failed to write {name} configuration file.") from exc
        self.logger.info(f"Configuration file written successfully: {path}")

    async def read(self, name: str) -> Any:
        data, _text = await self._run(self._load, name)
        return data

    async def write(self, name: str, data: Any) -> None:
        await self._run(self._dump, name, data)

    async def read_raw(self, filename: str) -> str | None:
        path = self.config_dir / _ensure_simple_filename(filename)
        return await self._run(read_text, path)

    async def write_raw(self, filename: str, content: str) -> None:
        path = self.config_dir / _ensure_simple_filename(filename)
        if not isinstance(content, str):
            raise ConfigValidationError("Raw content must be a string.")
        self.logger.info(f"Writing raw content to: {path}")
        try:
            await self._run(write_text, path, content)
        except OSError as exc:
            self.logger.error(f"Error writing raw configuration file {path}: {exc}")
            raise
        self.logger.info(f"Raw configuration file written successfully: {path}")

    async def write_list(self, name: str, data: Any) -> None:
        if not isinstance(data, list):
            self.logger.error(f"Invalid {name} data: must be a list, got {type(data).__name__}.")
            raise ConfigValidationError(f"Invalid {name} data: must be an array.")
        await self.write(name, data)

    async def read_services(self) -> Any:
        return await self.read("services")

    async def write_services(self, data: list[Any]) -> None:
        await self.write_list("services", data)

    async def read_bookmarks(self) -> Any:
        return await self.read("bookmarks")

    async def write_bookmarks(self, data: list[Any]) -> None:
        await self.write_list("bookmarks", data)

    async def read_widgets(self) -> Any:
        return await self.read("widgets")

    async def write_widgets(self, data: list[Any]) -> None:
        await self.write_list("widgets", data)

    async def read_settings(self) -> dict[str, Any] | None:
        data, text = await self._run(self._load, "settings")
        if data is None:
            return None
        if not isinstance(data, dict):
            self.logger.warning(f"Settings data in {self.path_for('settings')} is not a map. Returning None.")
            return None
        return reconstruct_layout(text or "", data, self.logger)

    async def write_settings(self, data: dict[str, Any]) -> None:
        if not isinstance(data, dict):
            self.logger.error("Invalid settings data provided: must be a map.")
            raise ConfigValidationError("Invalid settings data: must be an object.")
        prepared = dict(data)
        layout = prepared.get("layout")
        if isinstance(layout, list):
            prepared["layout"] = fold_layout(layout, self.logger)
        elif "layout" in prepared:
            self.logger.info("Layout data is not a list; writing as is.")
        await self.write("settings", prepared)
