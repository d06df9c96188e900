from __future__ import annotations

from fill_calculator.config.app_config import CONFIG_ENV_VAR, build_app_config, load_app_config


def test_defaults_when_file_missing(tmp_path):
    config = load_app_config(tmp_path / "missing.toml")
    assert config.app.host == "127.0.0.1"
    assert config.app.port == 8000
    assert config.app.reload is False
    assert config.app.max_upload_bytes == 10 * 1024 * 1024
    assert config.app.max_sessions == 64
    assert config.selection.select_all_scope == "dataset"
    assert config.display.table_limit is None


def test_values_read_from_toml(tmp_path):
    path = tmp_path / "app.toml"
    path.write_text(
        '[app]\nport = 9001\nsession_cookie = "sid"\nmax_sessions = 8\n'
        '[selection]\nselect_all_scope = "VIEW"\n'
        "[display]\ntable_limit = 50\n",
        encoding="utf-8",
    )
    config = load_app_config(env={CONFIG_ENV_VAR: str(path)})
    assert config.app.port == 9001
    assert config.app.session_cookie == "sid"
    assert config.app.max_sessions == 8
    assert config.selection.select_all_scope == "view"
    assert config.display.table_limit == 50


def test_invalid_values_fall_back():
    config = build_app_config(
        {
            "app": {"port": "abc", "max_upload_bytes": -5, "max_sessions": 0},
            "selection": {"select_all_scope": "page"},
            "display": {"table_limit": "lots"},
        }
    )
    assert config.app.port == 8000
    assert config.app.max_sessions == 64
    assert config.app.max_upload_bytes == 10 * 1024 * 1024
    assert config.selection.select_all_scope == "dataset"
    assert config.display.table_limit is None


def test_non_table_sections_are_ignored():
    config = build_app_config({"app": "nope", "selection": 3})
    assert config.app.port == 8000
    assert config.selection.select_all_scope == "dataset"
