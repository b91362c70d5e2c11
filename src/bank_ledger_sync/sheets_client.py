"""Google Sheets helper utilities."""
from __future__ import annotations

import logging
from typing import Iterable, List, Set

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

LOGGER = logging.getLogger(__name__)

TRANSACTION_HEADERS = [
    "id",
    "date",
    "account",
    "payee",
    "amount",
    "currency",
    "memo",
    "imported_at",
]


class SheetsClient:
    def __init__(
        self,
        *,
        spreadsheet_id: str,
        credentials_path: str,
        transactions_tab: str = "Transactions",
    ) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._transactions_tab = transactions_tab
        credentials = Credentials.from_service_account_file(
            credentials_path, scopes=["https://www.googleapis.com/auth/spreadsheets"]
        )
        self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)

    def fetch_transaction_ids(self) -> Set[str]:
        range_name = f"{self._transactions_tab}!A2:A"
        response = self._service.spreadsheets().values().get(
            spreadsheetId=self._spreadsheet_id, range=range_name
        ).execute()
        return {row[0] for row in response.get("values", []) if row and row[0]}

    def append_transactions(self, rows: Iterable[List[str]]) -> None:
        rows = list(rows)
        if not rows:
            return
        range_name = f"{self._transactions_tab}!A:H"
        LOGGER.info("Appending %s new transactions", len(rows))
        self._service.spreadsheets().values().append(
            spreadsheetId=self._spreadsheet_id,
            range=range_name,
            valueInputOption="USER_ENTERED",
            body={"values": rows},
        ).execute()
