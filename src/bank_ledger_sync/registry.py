"""Map configured source and sink names to their constructors."""
from __future__ import annotations

import logging
from typing import Callable, Dict, List

from bank_ledger_sync.authorization import RequisitionManager
from bank_ledger_sync.config import Settings
from bank_ledger_sync.errors import ConfigError, UnknownComponentError
from bank_ledger_sync.nordigen_client import NordigenClient
from bank_ledger_sync.requisition_store import RequisitionStore
from bank_ledger_sync.sheets_client import SheetsClient
from bank_ledger_sync.sinks import JsonSink, SheetsSink, Sink, YnabSink
from bank_ledger_sync.sources import NordigenSource, Source
from bank_ledger_sync.ynab_client import YnabClient

LOGGER = logging.getLogger(__name__)

SourceFactory = Callable[[Settings], Source]
SinkFactory = Callable[[Settings], Sink]


def _require(settings_section: object, *names: str) -> None:
    missing = [name for name in names if not getattr(settings_section, name)]
    if missing:
        section = type(settings_section).__name__.replace("Settings", "").lower()
        raise ConfigError(f"missing {section} setting(s): {', '.join(missing)}")


def nordigen_source(settings: Settings) -> NordigenSource:
    nordigen = settings.nordigen
    _require(nordigen, "secret_id", "secret_key")
    client = NordigenClient(secret_id=nordigen.secret_id, secret_key=nordigen.secret_key)
    manager = RequisitionManager(
        client,
        RequisitionStore(settings.data_dir, nordigen.requisition_file or None),
        default_bank_id=nordigen.bank_id,
        hook=nordigen.requisition_hook or None,
        poll_interval=nordigen.poll_interval,
        max_tries=nordigen.max_tries,
    )
    return NordigenSource(client, manager, payee_strip=nordigen.payee_strip)


def ynab_sink(settings: Settings) -> YnabSink:
    ynab = settings.ynab
    _require(ynab, "token", "budget_id")
    return YnabSink(
        YnabClient(token=ynab.token),
        budget_id=ynab.budget_id,
        account_map=ynab.account_map,
        from_date=ynab.from_date,
        cleared=ynab.cleared,
    )


def json_sink(settings: Settings) -> JsonSink:
    return JsonSink(settings.json.path or None)


def sheets_sink(settings: Settings) -> SheetsSink:
    sheets = settings.sheets
    _require(sheets, "spreadsheet_id", "credentials_path")
    return SheetsSink(
        SheetsClient(
            spreadsheet_id=sheets.spreadsheet_id,
            credentials_path=sheets.credentials_path,
            transactions_tab=sheets.transactions_tab,
        )
    )


SOURCES: Dict[str, SourceFactory] = {
    "nordigen": nordigen_source,
}

SINKS: Dict[str, SinkFactory] = {
    "ynab": ynab_sink,
    "json": json_sink,
    "sheets": sheets_sink,
}


def build_sources(settings: Settings) -> List[Source]:
    return [_lookup(SOURCES, "reader", name)(settings) for name in settings.readers]


def build_sinks(settings: Settings) -> List[Sink]:
    return [_lookup(SINKS, "writer", name)(settings) for name in settings.writers]


def _lookup(registry: Dict[str, Callable], kind: str, name: str) -> Callable:
    try:
        factory = registry[name.lower()]
    except KeyError:
        raise UnknownComponentError(
            f"Unknown {kind}: {name} (expected one of {', '.join(sorted(registry))})"
        ) from None
    LOGGER.debug("Configured %s %s", kind, name)
    return factory
