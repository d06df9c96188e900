from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib

from fill_calculator.selection import SCOPE_DATASET, SELECT_ALL_SCOPES

DEFAULT_CONFIG_PATH = Path("config/app.toml")
CONFIG_ENV_VAR = "FILL_CALCULATOR_CONFIG"


@dataclass(frozen=True)
class AppSettings:
    host: str
    port: int
    reload: bool
    session_cookie: str
    max_upload_bytes: int
    max_sessions: int


@dataclass(frozen=True)
class SelectionSettings:
    select_all_scope: str


@dataclass(frozen=True)
class DisplaySettings:
    table_limit: int | None


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    selection: SelectionSettings
    display: DisplaySettings


def load_app_config(
    path: Path | None = None, *, env: Mapping[str, str] | None = None
) -> AppConfig:
    config_path = path
    if config_path is None and env is not None and env.get(CONFIG_ENV_VAR):
        config_path = Path(env[CONFIG_ENV_VAR])
    config_path = config_path or DEFAULT_CONFIG_PATH

    raw: Mapping[str, Any] = {}
    if config_path.exists():
        raw = tomllib.loads(config_path.read_text(encoding="utf-8"))
    return build_app_config(raw)


def build_app_config(raw: Mapping[str, Any]) -> AppConfig:
    app_raw = _section(raw, "app")
    selection_raw = _section(raw, "selection")
    display_raw = _section(raw, "display")

    app = AppSettings(
        host=str(app_raw.get("host", "127.0.0.1")),
        port=_int_or_default(app_raw.get("port"), 8000),
        reload=bool(app_raw.get("reload", False)),
        session_cookie=str(app_raw.get("session_cookie", "fill_calculator_session")).strip()
        or "fill_calculator_session",
        max_upload_bytes=_int_or_default(app_raw.get("max_upload_bytes"), 10 * 1024 * 1024),
        max_sessions=_int_or_default(app_raw.get("max_sessions"), 64),
    )

    scope = str(selection_raw.get("select_all_scope", SCOPE_DATASET)).strip().lower()
    if scope not in SELECT_ALL_SCOPES:
        scope = SCOPE_DATASET
    selection = SelectionSettings(select_all_scope=scope)

    display = DisplaySettings(table_limit=_int_or_none(display_raw.get("table_limit")))

    return AppConfig(app=app, selection=selection, display=display)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _int_or_none(value: Any) -> int | None:
    if value in (None, "", 0):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _int_or_default(value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default
