import asyncio
import importlib.machinery
import importlib.util
import os
import sys
import uuid
from pathlib import Path

import pytest

yaml = pytest.importorskip("yaml")

REPO_ROOT = Path(__file__).resolve().parents[2]
APP_PATH = REPO_ROOT / "homepage_editor/rootfs/app/main.py"


def load_main(tmp_path: Path):
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    os.environ["EDITOR_CONFIG_DIR"] = str(config_dir)

    for module_name in list(sys.modules):
        if module_name.startswith("editor_bridge"):
            sys.modules.pop(module_name, None)

    module_name = f"homepage_editor_main_{uuid.uuid4().hex}"
    loader = importlib.machinery.SourceFileLoader(module_name, str(APP_PATH))
    spec = importlib.util.spec_from_loader(loader.name, loader)
    module = importlib.util.module_from_spec(spec)
    loader.exec_module(module)
    return module, config_dir


def get_store(config_dir: Path):
    config_store = sys.modules["editor_bridge.config_store"]
    return config_store.ConfigStore(config_dir)


def test_read_missing_empty_and_malformed_return_none(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)

    assert asyncio.run(store.read_services()) is None

    (config_dir / "services.yaml").write_text("  \n\n", encoding="utf-8")
    assert asyncio.run(store.read_services()) is None

    (config_dir / "bookmarks.yaml").write_text("- Dev: [unclosed\n", encoding="utf-8")
    assert asyncio.run(store.read_bookmarks()) is None

    (config_dir / "widgets.yaml").write_text("# only a comment\n", encoding="utf-8")
    assert asyncio.run(store.read_widgets()) is None


def test_read_io_failure_propagates(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    (config_dir / "services.yaml").mkdir()

    with pytest.raises(OSError):
        asyncio.run(store.read_services())


def test_unknown_document_name_is_rejected(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    config_store = sys.modules["editor_bridge.config_store"]

    with pytest.raises(config_store.ConfigStoreError):
        asyncio.run(store.read("docker"))


def test_write_keeps_key_order_and_emits_no_aliases(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    nested_dir = config_dir / "nested"
    store = get_store(nested_dir)

    shared = {"href": "http://plex.local", "description": "x" * 200}
    data = [{"Media": [{"Plex": shared}, {"Plex mirror": shared}]}, {"Admin": []}]
    asyncio.run(store.write_services(data))

    text = (nested_dir / "services.yaml").read_text(encoding="utf-8")
    assert "&" not in text
    assert "*" not in text
    assert text.index("Media") < text.index("Admin")
    assert text.index("href") < text.index("description")
    assert ("x" * 200) in text
    assert yaml.safe_load(text) == data


def test_list_writers_validate_before_io(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    config_store = sys.modules["editor_bridge.config_store"]

    with pytest.raises(config_store.ConfigValidationError) as exc:
        asyncio.run(store.write_services({"Media": []}))
    assert exc.value.status_code == 400
    assert not (config_dir / "services.yaml").exists()

    with pytest.raises(config_store.ConfigValidationError):
        asyncio.run(store.write_settings(["not", "a", "map"]))
    assert not (config_dir / "settings.yaml").exists()


def test_write_failure_raises_store_error(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = get_store(blocker / "config")
    config_store = sys.modules["editor_bridge.config_store"]

    with pytest.raises(config_store.ConfigStoreError) as exc:
        asyncio.run(store.write_bookmarks([]))
    assert "Failed to write bookmarks" in str(exc.value)


def test_write_raw_and_read_raw(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    config_store = sys.modules["editor_bridge.config_store"]

    asyncio.run(store.write_raw("custom.css", "body { color: red; }\n"))
    assert asyncio.run(store.read_raw("custom.css")) == "body { color: red; }\n"
    assert asyncio.run(store.read_raw("missing.yaml")) is None

    with pytest.raises(config_store.ConfigValidationError):
        asyncio.run(store.write_raw("../escape.yaml", "a: 1\n"))
    with pytest.raises(config_store.ConfigValidationError):
        asyncio.run(store.write_raw("", "a: 1\n"))


def test_write_settings_folds_layout_without_mutating_input(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)

    payload = {
        "title": "Home",
        "layout": [
            {"name": "Media", "header": True, "style": "row", "columns": 4},
            {"name": "Infra"},
        ],
    }
    asyncio.run(store.write_settings(payload))

    assert isinstance(payload["layout"], list)
    text = (config_dir / "settings.yaml").read_text(encoding="utf-8")
    assert text.startswith("title: Home\nlayout:\n  Media:\n    header: true\n")
    assert "name:" not in text
    on_disk = yaml.safe_load(text)
    assert list(on_disk["layout"]) == ["Media", "Infra"]
    assert on_disk["layout"]["Infra"] is None


def test_read_settings_without_layout_gets_empty_list(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    (config_dir / "settings.yaml").write_text("title: Home\ntheme: dark\n", encoding="utf-8")

    loaded = asyncio.run(store.read_settings())
    assert loaded == {"title": "Home", "theme": "dark", "layout": []}


def test_read_settings_rejects_non_map_document(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    (config_dir / "settings.yaml").write_text("- one\n- two\n", encoding="utf-8")

    assert asyncio.run(store.read_settings()) is None


def test_local_tags_survive_a_read_write_cycle(tmp_path: Path) -> None:
    _, config_dir = load_main(tmp_path)
    store = get_store(config_dir)
    yaml_tags = sys.modules["editor_bridge.yaml_tags"]
    (config_dir / "widgets.yaml").write_text(
        "- openmeteo:\n    label: !env WEATHER_LABEL\n    units: metric\n", encoding="utf-8"
    )

    data = asyncio.run(store.read_widgets())
    assert data[0]["openmeteo"]["label"] == yaml_tags.TaggedValue(tag="!env", value="WEATHER_LABEL")

    asyncio.run(store.write_widgets(data))
    text = (config_dir / "widgets.yaml").read_text(encoding="utf-8")
    assert "label: !env 'WEATHER_LABEL'" in text
    assert "units: metric" in text
    assert asyncio.run(store.read_widgets()) == data
