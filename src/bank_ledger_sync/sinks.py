"""Transaction sinks: destinations that record a batch of transactions."""
from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, TextIO

from bank_ledger_sync.models import Transaction, minor_unit_exponent
from bank_ledger_sync.sheets_client import SheetsClient
from bank_ledger_sync.ynab_client import YnabClient

LOGGER = logging.getLogger(__name__)

# YNAB limits; longer values are rejected by the API.
YNAB_PAYEE_MAX = 50
YNAB_MEMO_MAX = 200
YNAB_IMPORT_ID_PREFIX = "YBBR:"


class Sink(Protocol):
    """Durably records a whole batch of transactions."""

    def bulk(self, transactions: Sequence[Transaction]) -> None:
        ...


class JsonSink:
    """Writes the batch as a JSON array to a file, or to stdout."""

    name = "json"

    def __init__(self, path: Optional[str | Path] = None, *, stream: Optional[TextIO] = None) -> None:
        self._path = Path(path) if path else None
        self._stream = stream

    def bulk(self, transactions: Sequence[Transaction]) -> None:
        document = json.dumps([transaction.to_dict() for transaction in transactions], indent=2)
        if self._path is None:
            stream = self._stream or sys.stdout
            stream.write(document + "\n")
            stream.flush()
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(document + "\n", encoding="utf-8")
        LOGGER.info("Wrote %d transactions to %s", len(transactions), self._path)


def ynab_import_id(transaction: Transaction) -> str:
    """Return a stable YNAB ``import_id`` (at most 36 characters)."""

    digest = hashlib.sha256(f"{transaction.account}:{transaction.id}".encode("utf-8")).hexdigest()
    return YNAB_IMPORT_ID_PREFIX + digest[: 36 - len(YNAB_IMPORT_ID_PREFIX)]


def to_milliunits(transaction: Transaction) -> int:
    return transaction.amount * 10 ** (3 - minor_unit_exponent(transaction.currency))


class YnabSink:
    """Creates transactions in a YNAB budget.

    Transactions are routed to YNAB accounts through ``account_map`` (source
    account id -> YNAB account id). Unmapped accounts and transactions dated
    before ``from_date`` are skipped. Every transaction carries a stable
    ``import_id`` so re-delivering a batch does not create duplicates.
    """

    name = "ynab"

    def __init__(
        self,
        client: YnabClient,
        *,
        budget_id: str,
        account_map: Mapping[str, str],
        from_date: Optional[date] = None,
        cleared: str = "uncleared",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._budget_id = budget_id
        self._account_map = dict(account_map)
        self._from_date = from_date
        self._cleared = cleared
        self._logger = logger or LOGGER

    def bulk(self, transactions: Sequence[Transaction]) -> None:
        payload: List[Dict] = []
        skipped_accounts = set()
        for transaction in transactions:
            account_id = self._account_map.get(transaction.account)
            if not account_id:
                skipped_accounts.add(transaction.account)
                continue
            if self._from_date and transaction.date < self._from_date:
                continue
            payload.append(self._to_ynab(transaction, account_id))

        for account in sorted(skipped_accounts):
            self._logger.warning("No YNAB account mapped for %s, skipping its transactions", account)
        if not payload:
            self._logger.info("No transactions to send to YNAB")
            return

        self._client.create_transactions(self._budget_id, payload)
        self._logger.info("Sent %d transactions to YNAB budget %s", len(payload), self._budget_id)

    def _to_ynab(self, transaction: Transaction, account_id: str) -> Dict:
        return {
            "account_id": account_id,
            "date": transaction.date.isoformat(),
            "amount": to_milliunits(transaction),
            "payee_name": transaction.payee[:YNAB_PAYEE_MAX],
            "memo": transaction.memo[:YNAB_MEMO_MAX],
            "cleared": self._cleared,
            "approved": False,
            "import_id": ynab_import_id(transaction),
        }


class SheetsSink:
    """Appends transactions that are not yet present in a Google Sheet."""

    name = "sheets"

    def __init__(self, client: SheetsClient) -> None:
        self._client = client

    def bulk(self, transactions: Sequence[Transaction]) -> None:
        existing = self._client.fetch_transaction_ids()
        imported_at = datetime.now(timezone.utc)
        rows = [_to_row(txn, imported_at) for txn in transactions if txn.id not in existing]
        LOGGER.info("%d of %d transactions are new to the sheet", len(rows), len(transactions))
        self._client.append_transactions(rows)


def _to_row(transaction: Transaction, imported_at: datetime) -> List[str]:
    return [
        transaction.id,
        transaction.date.isoformat(),
        transaction.account,
        transaction.payee,
        _format_amount(transaction),
        transaction.currency,
        transaction.memo,
        imported_at.isoformat(),
    ]


def _format_amount(transaction: Transaction) -> str:
    exponent = minor_unit_exponent(transaction.currency)
    return f"{Decimal(transaction.amount).scaleb(-exponent):.{exponent}f}"
