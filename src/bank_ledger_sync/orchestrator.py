"""Fan a single sync run out over every configured source and sink."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from bank_ledger_sync.errors import SyncError
from bank_ledger_sync.models import Transaction
from bank_ledger_sync.sinks import Sink
from bank_ledger_sync.sources import Source

LOGGER = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one successful run."""

    bank_id: str
    transactions: List[Transaction] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration(self) -> timedelta:
        if self.started_at is None or self.finished_at is None:
            return timedelta(0)
        return self.finished_at - self.started_at


class Orchestrator:
    """Reads from every source, then writes the combined batch to every sink.

    The first failing source aborts the run before any sink is touched. The
    first failing sink aborts the remaining sinks; sinks that already ran
    keep what they wrote.
    """

    def __init__(
        self,
        sources: Sequence[Source],
        sinks: Sequence[Sink],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.sources = list(sources)
        self.sinks = list(sinks)
        self._logger = logger or LOGGER

    def run(self, bank_id: str) -> SyncResult:
        result = SyncResult(bank_id=bank_id, started_at=datetime.now(timezone.utc))

        for source in self.sources:
            try:
                batch = source.bulk(bank_id)
            except Exception as exc:
                raise SyncError("reading", exc) from exc
            self._logger.info("Read %d transactions from %s", len(batch), _name(source))
            result.transactions.extend(batch)

        for sink in self.sinks:
            try:
                sink.bulk(list(result.transactions))
            except Exception as exc:
                raise SyncError("writing", exc) from exc
            self._logger.info("Wrote %d transactions to %s", len(result.transactions), _name(sink))

        result.finished_at = datetime.now(timezone.utc)
        return result


def run(sources: Sequence[Source], sinks: Sequence[Sink], bank_id: str) -> SyncResult:
    return Orchestrator(sources, sinks).run(bank_id)


def _name(component: object) -> str:
    return getattr(component, "name", None) or type(component).__name__
