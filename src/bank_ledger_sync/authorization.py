"""Obtain and maintain requisitions for bank connections."""
from __future__ import annotations

import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Protocol

import requests

from bank_ledger_sync.errors import AuthorizationError, CorruptRequisitionError, StoreError
from bank_ledger_sync.models import Requisition, RequisitionState
from bank_ledger_sync.requisition_store import RequisitionStore

LOGGER = logging.getLogger(__name__)

REQUISITION_REDIRECT = "https://raw.githubusercontent.com/martinohansen/ynabber/main/ok.html"
HOOK_TIMEOUT_SECONDS = 60


class RequisitionClient(Protocol):
    def create_requisition(self, *, institution_id: str, redirect: str, reference: str) -> Requisition:
        ...

    def get_requisition(self, requisition_id: str) -> Requisition:
        ...


def run_requisition_hook(
    hook: Optional[str],
    requisition: Requisition,
    *,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Execute ``hook`` with the requisition status and link as arguments.

    The hook is fire-and-forget: failures are logged and never raised.
    """

    logger = logger or LOGGER
    if not hook:
        return
    try:
        completed = subprocess.run(
            [hook, requisition.status, requisition.link],
            capture_output=True,
            text=True,
            timeout=HOOK_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.error("Failed to run requisition hook %s: %s", hook, exc)
        return
    output = (completed.stdout or "") + (completed.stderr or "")
    if completed.returncode != 0:
        logger.error("Requisition hook exited with %d, output: %s", completed.returncode, output.strip())
    else:
        logger.info("Requisition hook succeeded, output: %s", output.strip())


class RequisitionManager:
    """Turns "no usable consent" into an authorized requisition.

    Stored requisitions that are linked are returned straight away. Anything
    else results in a new requisition whose link is handed to the hook, after
    which the aggregator is polled a bounded number of times while the user
    grants access.
    """

    def __init__(
        self,
        client: RequisitionClient,
        store: RequisitionStore,
        *,
        default_bank_id: str = "",
        hook: Optional[str] = None,
        redirect: str = REQUISITION_REDIRECT,
        poll_interval: float = 60,
        max_tries: int = 5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._default_bank_id = default_bank_id
        self._hook = hook
        self._redirect = redirect
        self._poll_interval = poll_interval
        self._max_tries = max_tries
        self._sleep = sleep
        self._clock = clock
        self._logger = logger or LOGGER
        self._locks: Dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, bank_id: str) -> threading.Lock:
        # Banks sharing a requisition file share its lock.
        path = self._store.path_for(bank_id)
        with self._locks_guard:
            return self._locks.setdefault(path, threading.Lock())

    def obtain(self, bank_id: str = "") -> Requisition:
        """Return the requisition for ``bank_id``, creating one if needed.

        The returned requisition may still be unauthorized when the user did
        not grant access before polling gave up; callers check
        :attr:`Requisition.is_authorized`.
        """

        bank_id = bank_id or self._default_bank_id
        with self._lock_for(bank_id):
            try:
                requisition = self._store.load(bank_id)
            except CorruptRequisitionError as exc:
                self._logger.warning("Failed to parse stored requisition, creating a new one: %s", exc)
                return self._create(bank_id)

            if requisition is None:
                self._logger.info("Requisition for %s is not found", bank_id)
                return self._create(bank_id)

            state = requisition.state
            if state is RequisitionState.AUTHORIZED:
                return requisition
            if state is RequisitionState.PENDING_CONSENT:
                self._logger.info("Requisition %s is awaiting consent, resuming", requisition.id)
                try:
                    return self._finish(bank_id, self._poll(requisition))
                except AuthorizationError as exc:
                    self._logger.warning("Could not resume requisition %s: %s", requisition.id, exc)
                    return self._create(bank_id)
            if state is RequisitionState.EXPIRED:
                self._logger.info("Requisition %s is expired", requisition.id)
            else:
                self._logger.warning("Unsupported requisition status: %s", requisition.status)
            return self._create(bank_id)

    def _create(self, bank_id: str) -> Requisition:
        institution_id = bank_id or self._default_bank_id
        try:
            requisition = self._client.create_requisition(
                institution_id=institution_id,
                redirect=self._redirect,
                reference=str(int(self._clock())),
            )
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise AuthorizationError(f"creating requisition for {institution_id}: {exc}") from exc

        run_requisition_hook(self._hook, requisition, logger=self._logger)
        self._logger.info("Initiate requisition by going to: %s", requisition.link)
        return self._finish(bank_id, self._poll(requisition))

    def _poll(self, requisition: Requisition) -> Requisition:
        for attempt in range(1, self._max_tries + 1):
            if requisition.is_authorized:
                break
            self._sleep(self._poll_interval)
            try:
                requisition = self._client.get_requisition(requisition.id)
            except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
                raise AuthorizationError(f"fetching requisition {requisition.id}: {exc}") from exc
            self._logger.debug(
                "Requisition %s status %s (attempt %d/%d)", requisition.id, requisition.status, attempt, self._max_tries
            )
        if not requisition.is_authorized:
            self._logger.warning(
                "Requisition %s still %s after %d attempts", requisition.id, requisition.state.value, self._max_tries
            )
        return requisition

    def _finish(self, bank_id: str, requisition: Requisition) -> Requisition:
        try:
            self._store.save(bank_id, requisition)
        except StoreError as exc:
            self._logger.error("Failed to write requisition to disk: %s", exc)
        return requisition
