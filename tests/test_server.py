import logging
import threading

import pytest
from fastapi.testclient import TestClient

import bank_ledger_sync.server as server_module
from bank_ledger_sync.errors import SyncError
from bank_ledger_sync.orchestrator import SyncResult
from bank_ledger_sync.server import IntervalScheduler, Mode, SyncService, create_app, serve


class FakeOrchestrator:
    def __init__(self, error=None):
        self._error = error
        self.bank_ids = []
        self.ran = threading.Event()

    def run(self, bank_id):
        self.bank_ids.append(bank_id)
        self.ran.set()
        if self._error:
            raise SyncError("reading", self._error)
        return SyncResult(bank_id=bank_id)


class Completion:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


def make_client(orchestrator, **kwargs):
    service = SyncService(orchestrator, default_bank_id="DEFAULT", **kwargs)
    service.on_complete = Completion()
    return service, TestClient(create_app(service))


def test_run_uses_default_bank_id():
    orchestrator = FakeOrchestrator()
    _, client = make_client(orchestrator, mode=Mode.INTERVAL)

    response = client.get("/run")

    assert response.status_code == 200
    assert response.text == "Run succeeded"
    assert orchestrator.bank_ids == ["DEFAULT"]


def test_run_query_parameter_overrides_default():
    orchestrator = FakeOrchestrator()
    _, client = make_client(orchestrator, mode=Mode.INTERVAL)

    client.get("/run", params={"bankID": "OTHER"})

    assert orchestrator.bank_ids == ["OTHER"]


def test_run_failure_returns_500_with_error_text():
    _, client = make_client(FakeOrchestrator(error=ConnectionError("network down")))

    response = client.get("/run")

    assert response.status_code == 500
    assert response.text == "reading: network down"


def test_once_mode_completes_after_first_success():
    service, client = make_client(FakeOrchestrator(), mode=Mode.ONCE)
    client.get("/run")
    assert service.on_complete.calls == 1


def test_once_mode_keeps_serving_after_failure():
    service, client = make_client(FakeOrchestrator(error=ConnectionError("down")), mode="once")
    client.get("/run")
    client.get("/run")
    assert service.on_complete.calls == 0


def test_interval_mode_never_completes():
    service, client = make_client(FakeOrchestrator(), mode=Mode.INTERVAL)
    client.get("/run")
    client.get("/run")
    assert service.on_complete.calls == 0


def test_detached_run_acknowledges_immediately():
    orchestrator = FakeOrchestrator()
    _, client = make_client(orchestrator, mode=Mode.INTERVAL, detach=True)

    response = client.get("/run", params={"bankID": "OTHER"})

    assert response.status_code == 202
    assert orchestrator.ran.wait(5)
    assert orchestrator.bank_ids == ["OTHER"]


def test_detached_run_failure_is_only_logged(caplog):
    orchestrator = FakeOrchestrator(error=ConnectionError("network down"))
    service = SyncService(orchestrator, detach=True)

    with caplog.at_level(logging.ERROR):
        service.trigger_detached("BANK").join(5)

    assert "network down" in caplog.text


def test_health():
    _, client = make_client(FakeOrchestrator())
    assert client.get("/health").json() == {"status": "ok"}


def test_scheduler_tick_swallows_failures():
    scheduler = IntervalScheduler(SyncService(FakeOrchestrator(error=ConnectionError("down"))), 60)
    assert scheduler.tick() is False
    assert IntervalScheduler(SyncService(FakeOrchestrator()), 60).tick() is True


def test_scheduler_logs_to_the_service_logger(caplog):
    logger = logging.getLogger("tests.sync-service")
    service = SyncService(FakeOrchestrator(error=ConnectionError("down")), logger=logger)

    with caplog.at_level(logging.ERROR):
        IntervalScheduler(service, 60).tick()

    [record] = [r for r in caplog.records if "Scheduled run failed" in r.getMessage()]
    assert record.name == "tests.sync-service"


def test_scheduler_runs_until_stopped():
    orchestrator = FakeOrchestrator()
    scheduler = IntervalScheduler(SyncService(orchestrator, default_bank_id="DEFAULT", mode=Mode.INTERVAL), 60)

    scheduler.start()
    assert orchestrator.ran.wait(5)
    scheduler.stop(timeout=5)

    assert orchestrator.bank_ids == ["DEFAULT"]


def test_invalid_mode_is_rejected():
    with pytest.raises(ValueError):
        SyncService(FakeOrchestrator(), mode="sometimes")


def test_serve_shuts_down_after_single_run(monkeypatch):
    servers = []

    class FakeServer:
        def __init__(self, config):
            self.config = config
            self.should_exit = False
            servers.append(self)

        def run(self):
            TestClient(self.config.app).get("/run")

    monkeypatch.setattr(server_module.uvicorn, "Server", FakeServer)
    service = SyncService(FakeOrchestrator(), mode=Mode.ONCE)

    serve(service, host="127.0.0.1", port=9999)

    assert servers[0].should_exit is True
    assert servers[0].config.port == 9999
