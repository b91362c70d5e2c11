"""Settings loaded from a JSON config file with environment overrides.

The file is optional. Every option can also be supplied through an
environment variable, which wins over the file, e.g. ``READERS=nordigen``,
``WRITERS=ynab,json`` or ``NORDIGEN_BANKID=SANDBOXFINANCE_SFIN0000``.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from bank_ledger_sync.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("config") / "config.json"
MODES = ("once", "interval")
YNAB_CLEARED_VALUES = ("cleared", "uncleared", "reconciled")


@dataclass
class NordigenSettings:
    bank_id: str = ""
    secret_id: str = ""
    secret_key: str = ""
    requisition_file: str = ""
    requisition_hook: str = ""
    payee_strip: List[str] = field(default_factory=list)
    poll_interval: float = 60.0
    max_tries: int = 5


@dataclass
class YnabSettings:
    token: str = ""
    budget_id: str = ""
    account_map: Dict[str, str] = field(default_factory=dict)
    from_date: Optional[date] = None
    cleared: str = "uncleared"


@dataclass
class JsonSettings:
    path: str = ""


@dataclass
class SheetsSettings:
    spreadsheet_id: str = ""
    credentials_path: str = ""
    transactions_tab: str = "Transactions"


@dataclass
class Settings:
    readers: List[str] = field(default_factory=lambda: ["nordigen"])
    writers: List[str] = field(default_factory=lambda: ["ynab"])
    host: str = "0.0.0.0"
    port: int = 8080
    mode: str = "once"
    interval: float = 0.0
    detach: bool = False
    data_dir: str = "."
    debug: bool = False
    nordigen: NordigenSettings = field(default_factory=NordigenSettings)
    ynab: YnabSettings = field(default_factory=YnabSettings)
    json: JsonSettings = field(default_factory=JsonSettings)
    sheets: SheetsSettings = field(default_factory=SheetsSettings)


def load_config(path: str | Path) -> Dict:
    try:
        with open(path, "r", encoding="utf-8") as config_file:
            payload = json.load(config_file)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return payload


def load_settings(path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from the config file and the environment."""

    env = os.environ if environ is None else environ
    explicit = path or env.get("SYNC_CONFIG")
    config_path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH
    if config_path.exists():
        raw = load_config(config_path)
    elif explicit:
        raise ConfigError(f"config file not found: {config_path}")
    else:
        raw = {}

    nordigen_raw = _section(raw, "nordigen")
    ynab_raw = _section(raw, "ynab")
    json_raw = _section(raw, "json")
    sheets_raw = _section(raw, "sheets")

    settings = Settings(
        readers=_list(_pick(env, "READERS", raw.get("readers", ["nordigen"]))),
        writers=_list(_pick(env, "WRITERS", raw.get("writers", ["ynab"]))),
        host=str(_pick(env, "HOST", raw.get("host", "0.0.0.0"))),
        port=_int("port", _pick(env, "PORT", raw.get("port", 8080))),
        mode=str(_pick(env, "MODE", raw.get("mode", "once"))).lower(),
        interval=_float("interval", _pick(env, "INTERVAL", raw.get("interval", 0))),
        detach=_bool("detach", _pick(env, "DETACH", raw.get("detach", False))),
        data_dir=str(_pick(env, "DATA_DIR", raw.get("data_dir", "."))),
        debug=_bool("debug", _pick(env, "DEBUG", raw.get("debug", False))),
        nordigen=NordigenSettings(
            bank_id=str(_pick(env, "NORDIGEN_BANKID", nordigen_raw.get("bank_id", ""))),
            secret_id=str(_pick(env, "NORDIGEN_SECRET_ID", nordigen_raw.get("secret_id", ""))),
            secret_key=str(_pick(env, "NORDIGEN_SECRET_KEY", nordigen_raw.get("secret_key", ""))),
            requisition_file=str(
                _pick(env, "NORDIGEN_REQUISITION_FILE", nordigen_raw.get("requisition_file", ""))
            ),
            requisition_hook=str(
                _pick(env, "NORDIGEN_REQUISITION_HOOK", nordigen_raw.get("requisition_hook", ""))
            ),
            payee_strip=_list(_pick(env, "NORDIGEN_PAYEE_STRIP", nordigen_raw.get("payee_strip", []))),
            poll_interval=_float("nordigen.poll_interval", nordigen_raw.get("poll_interval", 60)),
            max_tries=_int("nordigen.max_tries", nordigen_raw.get("max_tries", 5)),
        ),
        ynab=YnabSettings(
            token=str(_pick(env, "YNAB_TOKEN", ynab_raw.get("token", ""))),
            budget_id=str(_pick(env, "YNAB_BUDGETID", ynab_raw.get("budget_id", ""))),
            account_map=_mapping("ynab.account_map", _pick(env, "YNAB_ACCOUNTMAP", ynab_raw.get("account_map", {}))),
            from_date=_date("ynab.from_date", _pick(env, "YNAB_FROM_DATE", ynab_raw.get("from_date"))),
            cleared=str(_pick(env, "YNAB_CLEARED", ynab_raw.get("cleared", "uncleared"))).lower(),
        ),
        json=JsonSettings(path=str(_pick(env, "JSON_PATH", json_raw.get("path", "")) or "")),
        sheets=SheetsSettings(
            spreadsheet_id=str(_pick(env, "SHEETS_SPREADSHEET_ID", sheets_raw.get("spreadsheet_id", ""))),
            credentials_path=str(
                _pick(env, "GOOGLE_APPLICATION_CREDENTIALS", sheets_raw.get("credentials_path", ""))
            ),
            transactions_tab=str(sheets_raw.get("transactions_tab", "Transactions")),
        ),
    )
    _validate(settings)
    return settings


def _validate(settings: Settings) -> None:
    if settings.mode not in MODES:
        raise ConfigError(f"mode must be one of {', '.join(MODES)}, got {settings.mode!r}")
    if settings.interval < 0:
        raise ConfigError("interval must not be negative")
    if not settings.readers:
        raise ConfigError("at least one reader must be configured")
    if not settings.writers:
        raise ConfigError("at least one writer must be configured")
    if settings.ynab.cleared not in YNAB_CLEARED_VALUES:
        raise ConfigError(f"ynab.cleared must be one of {', '.join(YNAB_CLEARED_VALUES)}")
    if settings.nordigen.max_tries < 1:
        raise ConfigError("nordigen.max_tries must be at least 1")


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"'{name}' must be an object")
    return section


def _pick(env: Mapping[str, str], name: str, default: Any) -> Any:
    value = env.get(name)
    return default if value in (None, "") else value


def _list(value: Any) -> List[str]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value or [])
    return [str(item).strip() for item in items if str(item).strip()]


def _int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _float(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _mapping(name: str, value: Any) -> Dict[str, str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{name} must be a JSON object: {exc}") from exc
    if not isinstance(value, Mapping):
        raise ConfigError(f"{name} must be an object")
    return {str(key): str(val) for key, val in value.items()}


def _date(name: str, value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ConfigError(f"{name} must be an ISO date, got {value!r}") from None
