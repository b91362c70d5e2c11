import pytest

from bank_ledger_sync.errors import SyncError
from bank_ledger_sync.orchestrator import Orchestrator, run


class FakeSource:
    def __init__(self, transactions=None, error=None):
        self._transactions = transactions or []
        self._error = error
        self.calls = []

    def bulk(self, bank_id):
        self.calls.append(bank_id)
        if self._error:
            raise self._error
        return list(self._transactions)


class FakeSink:
    def __init__(self, error=None):
        self._error = error
        self.received = []

    def bulk(self, transactions):
        self.received.append(transactions)
        if self._error:
            raise self._error


def test_run_concatenates_sources_in_order(make_transaction):
    t1, t2, t3 = make_transaction("T1"), make_transaction("T2"), make_transaction("T3")
    sinks = [FakeSink(), FakeSink()]

    result = run([FakeSource([t1, t2]), FakeSource([t3])], sinks, "SANDBOX")

    assert result.transactions == [t1, t2, t3]
    for sink in sinks:
        assert sink.received == [[t1, t2, t3]]


def test_run_passes_bank_id_to_every_source():
    sources = [FakeSource(), FakeSource()]
    Orchestrator(sources, [FakeSink()]).run("BANK")
    assert [source.calls for source in sources] == [["BANK"], ["BANK"]]


def test_run_does_not_deduplicate(make_transaction):
    txn = make_transaction("T1")
    sink = FakeSink()
    run([FakeSource([txn]), FakeSource([txn])], [sink], "SANDBOX")
    assert sink.received == [[txn, txn]]


def test_source_error_aborts_before_sinks(make_transaction):
    failing = FakeSource(error=ConnectionError("network down"))
    later = FakeSource([make_transaction("T1")])
    sink = FakeSink()

    with pytest.raises(SyncError) as excinfo:
        run([failing, later], [sink], "SANDBOX")

    assert excinfo.value.stage == "reading"
    assert "reading" in str(excinfo.value)
    assert "network down" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert later.calls == []
    assert sink.received == []


def test_sink_error_aborts_remaining_sinks(make_transaction):
    t1, t2 = make_transaction("T1"), make_transaction("T2")
    first, failing, last = FakeSink(), FakeSink(error=RuntimeError("quota exceeded")), FakeSink()

    with pytest.raises(SyncError) as excinfo:
        run([FakeSource([t1]), FakeSource([t2])], [first, failing, last], "SANDBOX")

    assert excinfo.value.stage == "writing"
    assert str(excinfo.value) == "writing: quota exceeded"
    assert first.received == [[t1, t2]]
    assert failing.received == [[t1, t2]]
    assert last.received == []


def test_sinks_get_independent_lists(make_transaction):
    class MutatingSink(FakeSink):
        def bulk(self, transactions):
            super().bulk(transactions)
            transactions.clear()

    txn = make_transaction("T1")
    after = FakeSink()
    run([FakeSource([txn])], [MutatingSink(), after], "SANDBOX")
    assert after.received == [[txn]]


def test_result_records_duration():
    result = run([FakeSource()], [FakeSink()], "SANDBOX")
    assert result.bank_id == "SANDBOX"
    assert result.duration.total_seconds() >= 0
