"""Value objects shared by sources, sinks and the requisition lifecycle."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping


# ISO 4217 exponents that differ from 2; everything else uses cents.
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "ISK", "KRW", "CLP", "HUF"})
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"})


def minor_unit_exponent(currency: str) -> int:
    code = (currency or "").upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


class RequisitionState(str, enum.Enum):
    """Normalised view of the aggregator's requisition status codes."""

    PENDING_CONSENT = "pending-consent"
    AUTHORIZED = "authorized"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


_STATUS_STATES = {
    "LN": RequisitionState.AUTHORIZED,
    "EX": RequisitionState.EXPIRED,
    "CR": RequisitionState.PENDING_CONSENT,
    "GC": RequisitionState.PENDING_CONSENT,
    "UA": RequisitionState.PENDING_CONSENT,
    "SA": RequisitionState.PENDING_CONSENT,
    "GA": RequisitionState.PENDING_CONSENT,
}


def requisition_state(status: str | None) -> RequisitionState:
    return _STATUS_STATES.get((status or "").upper(), RequisitionState.UNKNOWN)


@dataclass
class Requisition:
    """A consent record granting read access to one bank connection."""

    id: str
    institution_id: str
    status: str
    link: str = ""
    reference: str = ""
    redirect: str = ""
    agreement: str = ""
    accounts: List[str] = field(default_factory=list)

    @property
    def state(self) -> RequisitionState:
        return requisition_state(self.status)

    @property
    def is_authorized(self) -> bool:
        return self.state is RequisitionState.AUTHORIZED

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Requisition":
        """Build a :class:`Requisition` from an API payload or a stored document.

        Raises ``KeyError``, ``TypeError`` or ``ValueError`` for payloads that
        are not requisitions.
        """

        if not isinstance(payload, Mapping):
            raise TypeError(f"expected a mapping, got {type(payload).__name__}")
        accounts = payload.get("accounts") or []
        if not isinstance(accounts, list):
            raise ValueError("accounts must be a list")
        return cls(
            id=str(payload["id"]),
            institution_id=str(payload.get("institution_id") or ""),
            status=str(payload.get("status") or ""),
            link=str(payload.get("link") or ""),
            reference=str(payload.get("reference") or ""),
            redirect=str(payload.get("redirect") or ""),
            agreement=str(payload.get("agreement") or ""),
            accounts=[str(account) for account in accounts],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "institution_id": self.institution_id,
            "status": self.status,
            "link": self.link,
            "reference": self.reference,
            "redirect": self.redirect,
            "agreement": self.agreement,
            "accounts": list(self.accounts),
        }


@dataclass(frozen=True)
class Transaction:
    """A single booked bank transaction.

    ``amount`` is a signed integer in minor currency units (cents for EUR),
    negative for outflows.
    """

    id: str
    account: str
    payee: str
    amount: int
    date: date
    currency: str = ""
    memo: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "account": self.account,
            "payee": self.payee,
            "amount": self.amount,
            "date": self.date.isoformat(),
            "currency": self.currency,
            "memo": self.memo,
        }
