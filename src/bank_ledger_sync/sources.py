"""Transaction sources."""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable, List, Optional, Protocol, Sequence

from bank_ledger_sync.authorization import RequisitionManager
from bank_ledger_sync.errors import RequisitionNotAuthorizedError
from bank_ledger_sync.models import Transaction
from bank_ledger_sync.nordigen_client import NordigenClient, transaction_from_payload

LOGGER = logging.getLogger(__name__)


class Source(Protocol):
    """Fetches every available transaction for a bank connection."""

    def bulk(self, bank_id: str) -> List[Transaction]:
        ...


class NordigenSource:
    """Reads booked transactions for every account of a requisition."""

    name = "nordigen"

    def __init__(
        self,
        client: NordigenClient,
        manager: RequisitionManager,
        *,
        payee_strip: Sequence[str] = (),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._manager = manager
        self._payee_strip = _build_strip_pattern(payee_strip)
        self._logger = logger or LOGGER

    def bulk(self, bank_id: str) -> List[Transaction]:
        requisition = self._manager.obtain(bank_id)
        if not requisition.is_authorized:
            raise RequisitionNotAuthorizedError(requisition)

        transactions: List[Transaction] = []
        for account_id in requisition.accounts:
            booked = self._client.get_booked_transactions(account_id)
            self._logger.info("Account %s returned %d booked transactions", account_id, len(booked))
            for payload in booked:
                transactions.append(self._map(payload, account_id))
        return transactions

    def _map(self, payload: dict, account_id: str) -> Transaction:
        transaction = transaction_from_payload(payload, account=account_id)
        if self._payee_strip is None:
            return transaction
        payee = " ".join(self._payee_strip.sub("", transaction.payee).split())
        return replace(transaction, payee=payee)


def _build_strip_pattern(words: Iterable[str]):
    words = [word for word in words if word]
    if not words:
        return None
    return re.compile("|".join(re.escape(word) for word in words), re.IGNORECASE)
