"""File persistence for requisitions, one JSON document per bank."""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from bank_ledger_sync.errors import CorruptRequisitionError, StoreError
from bank_ledger_sync.models import Requisition

LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_name(name: str) -> str:
    """Return ``name`` reduced to a single, harmless file name component."""

    cleaned = _UNSAFE_CHARS.sub("_", name).lstrip(".")
    return cleaned or "_"


class RequisitionStore:
    """Loads and saves requisitions under ``data_dir``.

    The file name is ``override_name`` when one is configured, otherwise the
    bank id, so several banks can share a data directory while a single
    fixed file can still be pinned for deployments with one connection.
    """

    def __init__(
        self,
        data_dir: str | Path,
        override_name: Optional[str] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._override_name = override_name or None
        self._logger = logger or LOGGER
        self._locks: Dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, bank_id: str) -> Path:
        name = self._override_name or bank_id
        cleaned = safe_name(name)
        if cleaned != name:
            # Distinct keys can collapse to the same file once cleaned.
            self._logger.warning("Requisition key %r stored as %r", name, cleaned)
        return Path(os.path.normpath(self._data_dir / f"{cleaned}.json"))

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(path, threading.Lock())

    def load(self, bank_id: str) -> Optional[Requisition]:
        """Return the stored requisition, or ``None`` when there is none.

        Raises :class:`CorruptRequisitionError` when the file cannot be parsed
        and :class:`StoreError` for any other read failure.
        """

        path = self.path_for(bank_id)
        with self._lock_for(path):
            try:
                raw = path.read_bytes()
            except FileNotFoundError:
                self._logger.debug("No requisition stored at %s", path)
                return None
            except OSError as exc:
                raise StoreError(f"reading {path}: {exc}") from exc

        try:
            return Requisition.from_dict(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise CorruptRequisitionError(f"parsing {path}: {exc}") from exc

    def save(self, bank_id: str, requisition: Requisition) -> Path:
        path = self.path_for(bank_id)
        payload = json.dumps(requisition.to_dict(), indent=2)
        with self._lock_for(path):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        handle.write(payload)
                    os.replace(tmp_name, path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except OSError as exc:
                raise StoreError(f"writing {path}: {exc}") from exc
        self._logger.info("Stored requisition %s at %s", requisition.id, path)
        return path
