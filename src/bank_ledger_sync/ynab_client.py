"""Client utilities for the YNAB API."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.ynab.com/v1"


class YnabClient:
    """Minimal HTTP client for the YNAB API."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def create_transactions(self, budget_id: str, transactions: List[Dict]) -> Dict:
        """Create transactions in bulk; YNAB skips ones with a known ``import_id``."""

        payload = self._request("POST", f"/budgets/{budget_id}/transactions", json={"transactions": transactions})
        data = payload.get("data") or {}
        duplicates = data.get("duplicate_import_ids") or []
        if duplicates:
            LOGGER.info("YNAB skipped %d already imported transactions", len(duplicates))
        return data

    def _request(self, method: str, path: str, *, json: Optional[Dict] = None) -> Dict:
        url = f"{self._base_url}{path}"
        headers = {"Authorization": f"Bearer {self._token}"}
        LOGGER.debug("YNAB request %s %s", method, url)
        response = self._session.request(method, url, headers=headers, json=json, timeout=self._timeout)
        response.raise_for_status()
        return response.json()
