"""Client utilities for the GoCardless Bank Account Data (Nordigen) API."""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import requests

from bank_ledger_sync.models import Requisition, Transaction, minor_unit_exponent

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://bankaccountdata.gocardless.com/api/v2"


def transaction_from_payload(payload: Dict, *, account: str) -> Transaction:
    """Create a :class:`Transaction` from a booked transaction payload."""

    amount_payload = payload.get("transactionAmount") or {}
    currency = str(amount_payload.get("currency") or "")
    amount = _to_minor_units(amount_payload.get("amount"), currency)
    memo = _remittance(payload)
    if amount < 0:
        payee = payload.get("creditorName") or ""
    else:
        payee = payload.get("debtorName") or ""
    return Transaction(
        id=_transaction_id(payload),
        account=account,
        payee=(payee or memo).strip(),
        amount=amount,
        date=_parse_date(payload.get("bookingDate") or payload.get("valueDate")),
        currency=currency,
        memo=memo,
        raw=payload,
    )


def _transaction_id(payload: Dict) -> str:
    explicit = payload.get("transactionId") or payload.get("internalTransactionId")
    if explicit:
        return str(explicit)
    # Some banks omit both ids; fall back to a digest of the payload so the id
    # is stable across runs.
    digest = hashlib.sha1(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
    return f"sha1-{digest}"


def _remittance(payload: Dict) -> str:
    text = payload.get("remittanceInformationUnstructured")
    if text:
        return str(text).strip()
    parts = payload.get("remittanceInformationUnstructuredArray") or []
    return " ".join(str(part).strip() for part in parts if part).strip()


def _to_minor_units(raw: Optional[str], currency: str) -> int:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"invalid transaction amount: {raw!r}") from None
    scaled = value.scaleb(minor_unit_exponent(currency))
    if not scaled.is_finite() or scaled != scaled.to_integral_value():
        raise ValueError(f"amount {raw!r} is not a whole number of {currency or 'minor'} units")
    return int(scaled)


def _parse_date(raw: Optional[str]) -> date:
    if not raw:
        raise ValueError("transaction has no booking or value date")
    if len(raw) == 10:
        return date.fromisoformat(raw)
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()


class NordigenClient:
    """Minimal HTTP client for the Bank Account Data API."""

    def __init__(
        self,
        *,
        secret_id: str,
        secret_key: str,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self._secret_id = secret_id
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout
        self._access_token: Optional[str] = None

    def create_requisition(
        self,
        *,
        institution_id: str,
        redirect: str,
        reference: str,
        agreement: str = "",
    ) -> Requisition:
        body = {"institution_id": institution_id, "redirect": redirect, "reference": reference}
        if agreement:
            body["agreement"] = agreement
        payload = self._request("POST", "/requisitions/", json=body)
        requisition = Requisition.from_dict(payload)
        LOGGER.info("Created requisition %s for %s", requisition.id, institution_id)
        return requisition

    def get_requisition(self, requisition_id: str) -> Requisition:
        return Requisition.from_dict(self._request("GET", f"/requisitions/{requisition_id}/"))

    def get_booked_transactions(self, account_id: str) -> List[Dict]:
        """Return the booked transactions of an account; pending ones are not synced."""

        payload = self._request("GET", f"/accounts/{account_id}/transactions/")
        transactions = payload.get("transactions") or {}
        return list(transactions.get("booked") or [])

    def _token(self) -> str:
        if self._access_token is None:
            url = f"{self._base_url}/token/new/"
            response = self._session.request(
                "POST",
                url,
                json={"secret_id": self._secret_id, "secret_key": self._secret_key},
                timeout=self._timeout,
            )
            response.raise_for_status()
            self._access_token = response.json()["access"]
            LOGGER.debug("Obtained new access token")
        return self._access_token

    def _request(self, method: str, path: str, *, params: Optional[Dict] = None, json: Optional[Dict] = None) -> Dict:
        url = f"{self._base_url}{path}"
        LOGGER.debug("Nordigen request %s %s params=%s", method, url, params)
        response = self._send(method, url, params=params, json=json)
        if response.status_code == 401:
            # Access tokens are short lived; retry once with a fresh one.
            LOGGER.info("Access token rejected, requesting a new one")
            self._access_token = None
            response = self._send(method, url, params=params, json=json)
        response.raise_for_status()
        return response.json()

    def _send(self, method: str, url: str, *, params: Optional[Dict], json: Optional[Dict]) -> requests.Response:
        headers = {"Authorization": f"Bearer {self._token()}", "Accept": "application/json"}
        return self._session.request(method, url, headers=headers, params=params, json=json, timeout=self._timeout)
