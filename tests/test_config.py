"""
Tests for configuration — stack file loading, metadata, global defaults.
"""

import json
import textwrap
from pathlib import Path

import pytest

from devx.core.config.global_config import GlobalConfig, load_global_config
from devx.core.config.loader import (
    find_stack_file,
    load_stack_config,
    parse_stack_file,
    validate_stack_data,
)
from devx.core.config.metadata import MetadataStore
from devx.core.errors import (
    ConfigError,
    ConfigInvalidError,
    ConfigNotFoundError,
    ConfigParseError,
    PersistenceWriteError,
)

# ── Stack file discovery ─────────────────────────────────────────────


class TestFindStackFile:
    def test_in_start_dir(self, project_dir: Path):
        assert find_stack_file(project_dir) == (project_dir / ".stack.yml").resolve()

    def test_walks_up(self, project_dir: Path):
        nested = project_dir / "a" / "b"
        nested.mkdir(parents=True)
        assert find_stack_file(nested) == (project_dir / ".stack.yml").resolve()

    def test_yml_preferred_over_json(self, project_dir: Path):
        (project_dir / ".stack.json").write_text('{"name": "other", "services": {}}')
        assert find_stack_file(project_dir).name == ".stack.yml"

    def test_not_found(self, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        # tmp_path's ancestors won't contain a .stack file
        assert find_stack_file(empty) is None


# ── Parsing and validation ───────────────────────────────────────────


class TestParseStackFile:
    def test_yaml(self, project_dir: Path):
        config = parse_stack_file(project_dir / ".stack.yml")
        assert config.name == "demo"
        assert config.service_names == ["web", "db"]

    def test_json(self, tmp_path: Path):
        path = tmp_path / "stack.json"
        path.write_text(json.dumps({"name": "j", "services": {"api": {"image": "x"}}}))
        assert parse_stack_file(path).name == "j"

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yml"
        path.write_text("name: [unclosed\n")
        with pytest.raises(ConfigParseError) as exc:
            parse_stack_file(path)
        assert exc.value.path == path

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ConfigParseError):
            parse_stack_file(path)

    def test_unsupported_extension(self, tmp_path: Path):
        path = tmp_path / "stack.toml"
        path.write_text("name = 'x'")
        with pytest.raises(ConfigParseError):
            parse_stack_file(path)

    def test_schema_violation_lists_paths(self, tmp_path: Path):
        path = tmp_path / "stack.yml"
        path.write_text(textwrap.dedent("""\
            name: demo
            services:
              web:
                ports:
                  - "not-a-port"
        """))
        with pytest.raises(ConfigInvalidError) as exc:
            parse_stack_file(path)
        assert any(v.startswith("services.web.ports") for v in exc.value.violations)

    def test_non_mapping(self):
        with pytest.raises(ConfigInvalidError) as exc:
            validate_stack_data(["a", "list"])
        assert exc.value.violations == ["root: expected a mapping, got list"]

    def test_missing_name(self):
        with pytest.raises(ConfigInvalidError) as exc:
            validate_stack_data({"services": {}})
        assert any(v.startswith("name") for v in exc.value.violations)

    @pytest.mark.parametrize("name", ["team/app", "../../x", "-dash", "with space", ".hidden"])
    def test_unsafe_name(self, name: str):
        with pytest.raises(ConfigInvalidError) as exc:
            validate_stack_data({"name": name, "services": {}})
        assert any(v.startswith("name") for v in exc.value.violations)

    @pytest.mark.parametrize("name", ["demo", "web_app-2", "v1.2"])
    def test_safe_name(self, name: str):
        assert validate_stack_data({"name": name, "services": {}}).name == name

    def test_errors_share_base(self):
        assert issubclass(ConfigInvalidError, ConfigError)
        assert issubclass(ConfigParseError, ConfigError)
        assert issubclass(ConfigNotFoundError, ConfigError)


# ── load_stack_config ────────────────────────────────────────────────


class TestLoadStackConfig:
    def test_search_from_dir(self, project_dir: Path):
        loaded = load_stack_config(search_dir=project_dir)
        assert loaded.name == "demo"
        assert loaded.config_path == (project_dir / ".stack.yml").resolve()
        assert loaded.project_path == project_dir.resolve()

    def test_explicit_path(self, project_dir: Path, tmp_path: Path):
        loaded = load_stack_config(str(project_dir / ".stack.yml"), search_dir=tmp_path)
        assert loaded.name == "demo"

    def test_relative_path(self, project_dir: Path):
        loaded = load_stack_config(".stack.yml", search_dir=project_dir)
        assert loaded.name == "demo"

    def test_wrong_extension(self, project_dir: Path):
        (project_dir / "notes.txt").write_text("hello")
        with pytest.raises(ConfigNotFoundError):
            load_stack_config("notes.txt", search_dir=project_dir)

    def test_records_metadata(self, project_dir: Path, devx_home: Path):
        load_stack_config(search_dir=project_dir)
        meta = MetadataStore().get("demo")
        assert meta is not None
        assert meta.config_path == str((project_dir / ".stack.yml").resolve())

    def test_load_by_name(self, project_dir: Path, tmp_path: Path):
        load_stack_config(search_dir=project_dir)
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        loaded = load_stack_config("demo", search_dir=elsewhere)
        assert loaded.config_path == (project_dir / ".stack.yml").resolve()

    def test_unknown_name(self, tmp_path: Path):
        with pytest.raises(ConfigNotFoundError):
            load_stack_config("nope", search_dir=tmp_path)

    def test_name_pointing_at_deleted_file(self, project_dir: Path, tmp_path: Path):
        load_stack_config(search_dir=project_dir)
        (project_dir / ".stack.yml").unlink()
        with pytest.raises(ConfigNotFoundError):
            load_stack_config("demo", search_dir=tmp_path)

    def test_nothing_found(self, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        with pytest.raises(ConfigNotFoundError):
            load_stack_config(search_dir=empty)

    def test_slash_in_name_writes_no_metadata(self, tmp_path: Path, devx_home: Path):
        path = tmp_path / "stack.yml"
        path.write_text("name: team/app\nservices: {}\n")
        with pytest.raises(ConfigInvalidError):
            load_stack_config(str(path), search_dir=tmp_path)
        assert not (devx_home / "stacks").exists()


# ── Metadata ─────────────────────────────────────────────────────────


class TestMetadataStore:
    def test_save_and_get(self, tmp_path: Path):
        store = MetadataStore(tmp_path / "stacks")
        store.save("demo", "/p/.stack.yml")
        meta = store.get("demo")
        assert meta.config_path == "/p/.stack.yml"
        assert meta.status == "loaded"
        assert (tmp_path / "stacks" / "demo.json").is_file()

    def test_get_missing(self, tmp_path: Path):
        assert MetadataStore(tmp_path).get("nope") is None

    def test_corrupt_file_ignored(self, tmp_path: Path):
        (tmp_path / "demo.json").write_text("{broken")
        assert MetadataStore(tmp_path).get("demo") is None

    def test_list_names(self, tmp_path: Path):
        store = MetadataStore(tmp_path / "stacks")
        assert store.list_names() == []
        store.save("b", "/b")
        store.save("a", "/a")
        assert store.list_names() == ["a", "b"]

    def test_update_status(self, tmp_path: Path):
        store = MetadataStore(tmp_path)
        assert store.update_status("demo", "running") is None
        store.save("demo", "/p")
        meta = store.update_status("demo", "error", error_message="boom")
        assert meta.status == "error"
        assert store.get("demo").error_message == "boom"

    def test_remove(self, tmp_path: Path):
        store = MetadataStore(tmp_path)
        store.save("demo", "/p")
        assert store.remove("demo") is True
        assert store.remove("demo") is False
        assert store.get("demo") is None

    def test_get_ignores_path_like_names(self, tmp_path: Path):
        (tmp_path / "outside.json").write_text(json.dumps({"config_path": "/p"}))
        store = MetadataStore(tmp_path / "stacks")
        assert store.get("../outside") is None

    def test_write_failure_is_persistence_error(self, tmp_path: Path):
        blocker = tmp_path / "stacks"
        blocker.write_text("not a directory")
        with pytest.raises(PersistenceWriteError):
            MetadataStore(blocker).save("demo", "/p")


# ── Global config ────────────────────────────────────────────────────


class TestGlobalConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_global_config(tmp_path / "missing.json")
        assert config.default_builder == "podman-compose"
        assert config.default_engine == "podman"

    def test_from_file(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"defaultBuilder": "docker-compose"}))
        config = load_global_config(path)
        assert config.default_builder == "docker-compose"
        assert config.default_engine == "podman"

    def test_home_location(self, devx_home: Path):
        devx_home.mkdir(parents=True, exist_ok=True)
        (devx_home / "config.json").write_text(json.dumps({"defaultEngine": "docker"}))
        assert load_global_config().default_engine == "docker"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"defaultBuilder": "from-file"}))
        monkeypatch.setenv("DEVX_DEFAULT_BUILDER", "from-env")
        assert load_global_config(path).default_builder == "from-env"

    def test_blank_means_no_default(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"defaultBuilder": "", "defaultEngine": None}))
        config = load_global_config(path)
        assert config.default_builder is None
        assert config.default_engine is None

    def test_corrupt_file_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text("not json")
        assert load_global_config(path) == GlobalConfig()
