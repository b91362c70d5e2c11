"""HTTP trigger surface for sync runs."""
from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Query
from fastapi.responses import PlainTextResponse

from bank_ledger_sync import __version__
from bank_ledger_sync.errors import BankSyncError, SyncError
from bank_ledger_sync.orchestrator import Orchestrator, SyncResult

LOGGER = logging.getLogger(__name__)


class Mode(str, enum.Enum):
    ONCE = "once"
    INTERVAL = "interval"


class SyncService:
    """Runs the orchestrator on behalf of a trigger.

    In ``once`` mode the first successful run calls ``on_complete``, which the
    server wires to its own shutdown, so the process exits from the serving
    loop rather than from inside a request handler.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        default_bank_id: str = "",
        mode: Mode | str = Mode.ONCE,
        interval: float = 0.0,
        detach: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self.default_bank_id = default_bank_id
        self.mode = Mode(mode)
        self.interval = interval
        self.detach = detach
        self.on_complete: Optional[Callable[[], None]] = None
        self.logger = logger or LOGGER

    def resolve_bank_id(self, bank_id: Optional[str] = None) -> str:
        return bank_id or self.default_bank_id

    def trigger(self, bank_id: Optional[str] = None) -> SyncResult:
        """Run once for ``bank_id`` (or the default); raises :class:`SyncError`."""

        effective = self.resolve_bank_id(bank_id)
        self.logger.info("Starting run for %s", effective or "<default>")
        result = self._orchestrator.run(effective)
        self.logger.info(
            "Run succeeded in %.1fs with %d transactions", result.duration.total_seconds(), len(result.transactions)
        )
        if self.mode is Mode.ONCE and self.on_complete is not None:
            self.on_complete()
        return result

    def trigger_detached(self, bank_id: Optional[str] = None) -> threading.Thread:
        """Start a run on its own thread and return immediately.

        The thread is not tied to any request, so a client disconnecting does
        not cancel the run. Failures are only logged.
        """

        thread = threading.Thread(target=self._run_logged, args=(bank_id,), name="sync-run", daemon=False)
        thread.start()
        return thread

    def _run_logged(self, bank_id: Optional[str]) -> None:
        try:
            self.trigger(bank_id)
        except BankSyncError as exc:
            self.logger.error("Run failed: %s", exc)


class IntervalScheduler:
    """Triggers the default bank every ``interval`` seconds until stopped."""

    def __init__(self, service: SyncService, interval: float, *, logger: Optional[logging.Logger] = None) -> None:
        self._service = service
        self._interval = interval
        self._logger = logger or service.logger
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._thread = threading.Thread(target=self._loop, name="sync-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def tick(self) -> bool:
        try:
            self._service.trigger()
        except BankSyncError as exc:
            self._logger.error("Scheduled run failed: %s", exc)
            return False
        return True

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._logger.info("Next run in %.0fs", self._interval)
            if self._stop.wait(self._interval):
                break


def create_app(service: SyncService) -> FastAPI:
    app = FastAPI(title="bank-ledger-sync", version=__version__)
    app.state.service = service

    @app.get("/run", response_class=PlainTextResponse)
    def run(bank_id: Optional[str] = Query(default=None, alias="bankID")) -> PlainTextResponse:
        if service.detach:
            service.trigger_detached(bank_id)
            return PlainTextResponse("Run started", status_code=202)
        try:
            service.trigger(bank_id)
        except SyncError as exc:
            service.logger.error("Run failed: %s", exc)
            return PlainTextResponse(str(exc), status_code=500)
        return PlainTextResponse("Run succeeded")

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


def serve(service: SyncService, *, host: str = "0.0.0.0", port: int = 8080) -> None:
    """Serve the trigger endpoint until shut down."""

    server = uvicorn.Server(uvicorn.Config(create_app(service), host=host, port=port, log_config=None))

    def shutdown() -> None:
        service.logger.info("Single run completed, shutting down")
        server.should_exit = True

    service.on_complete = shutdown
    scheduler: Optional[IntervalScheduler] = None
    if service.mode is Mode.INTERVAL and service.interval > 0:
        scheduler = IntervalScheduler(service, service.interval)
        scheduler.start()

    service.logger.info("Server running on %s:%d (mode %s)", host, port, service.mode.value)
    try:
        server.run()
    finally:
        if scheduler is not None:
            scheduler.stop(timeout=5)
