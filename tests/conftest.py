from datetime import date

import pytest

from bank_ledger_sync.models import Requisition, Transaction


@pytest.fixture
def make_transaction():
    def factory(txn_id: str, *, account: str = "acc-1", amount: int = -1234, payee: str = "Countdown", **kwargs):
        return Transaction(
            id=txn_id,
            account=account,
            payee=payee,
            amount=amount,
            date=kwargs.pop("date", date(2023, 9, 2)),
            currency=kwargs.pop("currency", "EUR"),
            **kwargs,
        )

    return factory


@pytest.fixture
def make_requisition():
    def factory(status: str, *, requisition_id: str = "req-1", institution_id: str = "SANDBOX", **kwargs):
        return Requisition(
            id=requisition_id,
            institution_id=institution_id,
            status=status,
            link=kwargs.pop("link", f"https://ob.example/{requisition_id}"),
            accounts=kwargs.pop("accounts", ["acc-1"]),
            **kwargs,
        )

    return factory
