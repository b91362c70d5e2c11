import json
import logging
from pathlib import Path

import pytest

from bank_ledger_sync.errors import CorruptRequisitionError, StoreError
from bank_ledger_sync.requisition_store import RequisitionStore, safe_name


def test_path_defaults_to_bank_id():
    store = RequisitionStore(".")
    assert str(store.path_for("foo")) == "foo.json"


def test_path_is_under_data_dir(tmp_path):
    store = RequisitionStore(tmp_path)
    assert store.path_for("foo") == tmp_path / "foo.json"


def test_override_name_ignores_bank_id(tmp_path):
    store = RequisitionStore(tmp_path, "mine")
    assert store.path_for("foo") == tmp_path / "mine.json"
    assert store.path_for("bar") == tmp_path / "mine.json"


def test_path_is_sanitized(tmp_path):
    store = RequisitionStore(tmp_path)
    path = store.path_for("../etc/passwd")
    assert path.parent == tmp_path
    assert path.name == "_etc_passwd.json"


def test_safe_name_never_empty():
    assert safe_name("") == "_"
    assert safe_name("...") == "_"
    assert safe_name("SANDBOXFINANCE_SFIN0000") == "SANDBOXFINANCE_SFIN0000"


def test_load_missing_returns_none(tmp_path):
    assert RequisitionStore(tmp_path).load("foo") is None


def test_save_and_load(tmp_path, make_requisition):
    store = RequisitionStore(tmp_path / "nested")
    requisition = make_requisition("LN", reference="1700000000")
    path = store.save("foo", requisition)

    assert path == tmp_path / "nested" / "foo.json"
    assert json.loads(path.read_text())["status"] == "LN"
    assert store.load("foo") == requisition


def test_save_overwrites_previous(tmp_path, make_requisition):
    store = RequisitionStore(tmp_path)
    store.save("foo", make_requisition("EX", requisition_id="old"))
    store.save("foo", make_requisition("LN", requisition_id="new"))

    assert store.load("foo").id == "new"
    assert [p.name for p in tmp_path.iterdir()] == ["foo.json"]


@pytest.mark.parametrize("content", ["not json", "[]", '{"status": "LN"}', '{"id": "x", "accounts": "acc"}'])
def test_load_unparseable_raises_corrupt(tmp_path, content):
    (tmp_path / "foo.json").write_text(content)
    with pytest.raises(CorruptRequisitionError):
        RequisitionStore(tmp_path).load("foo")


def test_load_read_error_raises_store_error(tmp_path):
    (tmp_path / "foo.json").mkdir()
    with pytest.raises(StoreError) as excinfo:
        RequisitionStore(tmp_path).load("foo")
    assert not isinstance(excinfo.value, CorruptRequisitionError)


def test_save_error_raises_store_error(tmp_path, make_requisition):
    blocker = tmp_path / "data"
    blocker.write_text("")
    with pytest.raises(StoreError):
        RequisitionStore(blocker).save("foo", make_requisition("LN"))


def test_load_does_not_create_files(tmp_path):
    RequisitionStore(tmp_path / "missing").load("foo")
    assert not Path(tmp_path / "missing").exists()


def test_load_non_utf8_raises_corrupt(tmp_path):
    (tmp_path / "foo.json").write_bytes(b"\xff\xfe{garbage")
    with pytest.raises(CorruptRequisitionError):
        RequisitionStore(tmp_path).load("foo")


def test_sanitized_key_is_logged(tmp_path, caplog):
    store = RequisitionStore(tmp_path)
    with caplog.at_level(logging.WARNING):
        assert store.path_for("a/b") == store.path_for("a_b")
    assert "'a/b' stored as 'a_b'" in caplog.text
    assert caplog.text.count("stored as") == 1
