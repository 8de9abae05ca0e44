"""Tests for configuration loading, environment overrides and the typed model."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiln.config import (
    DEFAULT_CONFIG,
    BundlerConfig,
    _try_parse_env_value,
    apply_env_overrides,
    find_config_file,
    get_config,
    merge_configs,
    parse_toml,
)
from kiln.errors import ConfigError


class TestParsing:
    def test_parse_toml(self):
        data = parse_toml('mode = "production"\n[output]\nfilename = "x.js"\n')
        assert data == {"mode": "production", "output": {"filename": "x.js"}}
        assert type(data["output"]) is dict

    def test_invalid_toml(self):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            parse_toml("[output\nfilename = 1")


class TestFindConfigFile:
    def test_walks_up(self, js_project):
        nested = js_project / "src" / "deep"
        nested.mkdir()
        assert find_config_file(nested) == js_project / ".kiln.toml"

    def test_none_when_absent(self, tmp_path):
        assert find_config_file(tmp_path) is None


class TestMerge:
    def test_nested_tables_merge(self):
        merged = merge_configs(DEFAULT_CONFIG, {"output": {"filename": "app.js"}})
        assert merged["output"]["filename"] == "app.js"
        assert merged["output"]["path"] == "dist"
        assert DEFAULT_CONFIG["output"]["filename"] == "bundle.js"

    def test_lists_replace(self):
        merged = merge_configs(DEFAULT_CONFIG, {"resolve": {"extensions": [".ts"]}})
        assert merged["resolve"]["extensions"] == [".ts"]


class TestEnvOverrides:
    def test_try_parse_env_value(self):
        assert _try_parse_env_value('[".js", ".jsx"]') == [".js", ".jsx"]
        assert _try_parse_env_value('{"@": "src"}') == {"@": "src"}
        assert _try_parse_env_value("TRUE") is True
        assert _try_parse_env_value("false") is False
        assert _try_parse_env_value("9000") == 9000
        assert _try_parse_env_value("0.25") == 0.25
        assert _try_parse_env_value("[broken") == "[broken"
        assert _try_parse_env_value("127.0.0.1") == "127.0.0.1"

    def test_section_keys(self):
        env = {
            "KILN_DEV_SERVER_PORT": "9000",
            "KILN_DEV_SERVER_HOT_RELOAD": "false",
            "KILN_OUTPUT_FILENAME": "main.js",
            "KILN_MODE": "production",
            "OTHER_MODE": "ignored",
        }
        result = apply_env_overrides(DEFAULT_CONFIG, env)
        assert result["dev_server"]["port"] == 9000
        assert result["dev_server"]["hot_reload"] is False
        assert result["output"]["filename"] == "main.js"
        assert result["mode"] == "production"
        assert DEFAULT_CONFIG["dev_server"]["port"] == 8080

    def test_unknown_keys_ignored(self):
        result = apply_env_overrides(DEFAULT_CONFIG, {"KILN_NOPE": "1", "KILN_": "x"})
        assert "nope" not in result

    def test_get_config_applies_env(self, js_project):
        data = get_config(
            config_path=js_project / ".kiln.toml",
            environ={"KILN_OUTPUT_PUBLIC_PATH": "assets"},
        )
        assert data["output"]["public_path"] == "assets"
        assert data["_base_dir"] == str(js_project)

    def test_non_list_features_from_env(self, js_project):
        data = get_config(
            config_path=js_project / ".kiln.toml",
            environ={"KILN_FEATURES": "5"},
        )
        assert data["features"] == 5
        with pytest.raises(ConfigError, match="features must be a list"):
            BundlerConfig.from_dict(data)


class TestGetConfig:
    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            get_config(config_path=tmp_path / "absent.toml", environ={})

    def test_defaults_without_file(self, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        data = get_config(start_dir=empty, environ={})
        assert data["_base_dir"] == str(empty.resolve())
        assert data["entry"]["path"] == "src/main.js"

    def test_discovers_from_start_dir(self, js_project):
        data = get_config(start_dir=js_project / "src", environ={})
        assert data["output"]["filename"] == "app.js"


class TestBundlerConfig:
    def test_from_project(self, bundler_config, js_project):
        assert bundler_config.root == js_project
        assert bundler_config.entry_path == js_project / "src" / "main.js"
        assert bundler_config.output_path == js_project / "public" / "dist"
        assert bundler_config.artifact_path == js_project / "public" / "dist" / "app.js"
        assert bundler_config.public_path == "/dist/"
        assert bundler_config.dev_server.content_base == js_project / "public"
        assert bundler_config.dev_server.port == 0
        assert not bundler_config.is_production

    def test_public_path_normalized(self, tmp_path):
        for raw, expected in [("", "/"), ("/", "/"), ("dist", "/dist/"), ("/a/b", "/a/b/")]:
            data = merge_configs(DEFAULT_CONFIG, {"output": {"public_path": raw}})
            assert BundlerConfig.from_dict(data, tmp_path).public_path == expected

    def test_aliases_are_absolute(self, tmp_path):
        data = merge_configs(DEFAULT_CONFIG, {"resolve": {"alias": {"@": "src/lib"}}})
        config = BundlerConfig.from_dict(data, tmp_path)
        assert config.aliases == {"@": tmp_path.resolve() / "src" / "lib"}

    def test_features(self, tmp_path):
        data = merge_configs(DEFAULT_CONFIG, {"features": ["clean"]})
        assert BundlerConfig.from_dict(data, tmp_path).has_feature("clean")

    @pytest.mark.parametrize(
        "override,message",
        [
            ({"mode": "fast"}, "Unknown mode"),
            ({"features": ["minify"]}, "Unknown feature"),
            ({"features": 5}, "features must be a list"),
            ({"features": [5]}, "Unknown feature"),
            ({"entry": {"path": ""}}, "entry.path is required"),
            ({"output": {"filename": "js/app.js"}}, "plain file name"),
            ({"resolve": {"extensions": ["js"]}}, "must start with '.'"),
            ({"resolve": {"alias": ["x"]}}, "must be a table"),
            ({"dev_server": {"port": "http"}}, "Invalid dev_server value"),
            ({"dev_server": {"port": 70000}}, "out of range"),
        ],
    )
    def test_invalid_values(self, tmp_path, override, message):
        data = merge_configs(DEFAULT_CONFIG, override)
        with pytest.raises(ConfigError, match=message):
            BundlerConfig.from_dict(data, tmp_path)

    def test_to_dict_round_trip(self, bundler_config):
        data = bundler_config.to_dict()
        assert data["output"]["public_path"] == "/dist/"
        rebuilt = BundlerConfig.from_dict(data, Path(data["root"]))
        assert rebuilt == bundler_config
