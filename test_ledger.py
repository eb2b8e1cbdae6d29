import json

from gitcore.ledger import STATUS_FAILED, STATUS_SUCCESS, LedgerEntry, UndoLedger


def test_missing_file_is_empty(tmp_path):
    ledger = UndoLedger(tmp_path / "ledger.json")
    assert ledger.read_all() == []
    assert ledger.last_entry() is None


def test_round_trip_preserves_order_and_fields(tmp_path):
    ledger = UndoLedger(tmp_path / "ledger.json")
    supplied = [
        ("commit work", 'git commit -m "a"', STATUS_SUCCESS, "git reset --soft HEAD~1"),
        ("stage", "git add .", STATUS_SUCCESS, None),
        ("push", "git push", STATUS_FAILED, None),
        ("merge", "git merge feature", STATUS_SUCCESS, "git reflog"),
    ]
    for desc, cmd, status, rev in supplied:
        ledger.append(desc, cmd, status, rev)

    entries = ledger.read_all()
    assert [(e.description, e.command, e.status, e.reversal_command) for e in entries] == supplied
    assert all(e.id and e.timestamp for e in entries)


def test_ids_are_unique_and_increasing(tmp_path):
    ledger = UndoLedger(tmp_path / "ledger.json")
    for i in range(20):
        ledger.append("step", f"git status {i}", STATUS_SUCCESS)
    ids = [int(e.id) for e in ledger.read_all()]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_last_entry_and_recent(tmp_path):
    ledger = UndoLedger(tmp_path / "ledger.json")
    ledger.append("one", "git add a", STATUS_SUCCESS)
    ledger.append("two", "git add b", STATUS_SUCCESS)
    ledger.append("three", "git add c", STATUS_FAILED)

    assert ledger.last_entry().command == "git add c"
    assert [e.command for e in ledger.recent(2)] == ["git add c", "git add b"]
    assert ledger.recent(0) == []


def test_file_format_uses_camel_case_keys(tmp_path):
    path = tmp_path / "ledger.json"
    UndoLedger(path).append("commit", "git commit -m x", STATUS_SUCCESS, "git reset --soft HEAD~1")
    data = json.loads(path.read_text(encoding="utf-8"))
    assert isinstance(data, list) and len(data) == 1
    assert set(data[0]) == {"id", "timestamp", "description", "command", "status", "reversalCommand"}
    assert data[0]["reversalCommand"] == "git reset --soft HEAD~1"


def test_reads_existing_file_from_older_tool(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps([
        {"id": "1700000000000", "timestamp": "2023-11-14T22:13:20.000Z",
         "description": "undo my last commit", "command": "git reset --soft HEAD~1",
         "status": "success", "reversalCommand": "git commit"},
    ]), encoding="utf-8")
    entry = UndoLedger(path).last_entry()
    assert entry == LedgerEntry(
        id="1700000000000", timestamp="2023-11-14T22:13:20.000Z",
        description="undo my last commit", command="git reset --soft HEAD~1",
        status="success", reversal_command="git commit",
    )


def test_malformed_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text("{not json", encoding="utf-8")
    ledger = UndoLedger(path)
    assert ledger.read_all() == []

    ledger.append("after", "git status", STATUS_SUCCESS)
    assert [e.command for e in ledger.read_all()] == ["git status"]


def test_non_utf8_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_bytes(b'[{"command": "git add \xff\xfe"}]')
    ledger = UndoLedger(path)
    assert ledger.read_all() == []
    assert ledger.last_entry() is None
    assert ledger.recent(5) == []

    ledger.append("after", "git status", STATUS_SUCCESS)
    assert [e.command for e in ledger.read_all()] == ["git status"]


def test_non_array_and_non_object_items(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps({"entries": []}), encoding="utf-8")
    assert UndoLedger(path).read_all() == []

    path.write_text(json.dumps(["junk", 3, {"command": "git add x", "status": "success"}]), encoding="utf-8")
    assert [e.command for e in UndoLedger(path).read_all()] == ["git add x"]


def test_write_failure_is_swallowed(tmp_path):
    # путь - каталог: запись невозможна, но append не падает
    path = tmp_path / "ledger_dir"
    path.mkdir()
    entry = UndoLedger(path).append("x", "git status", STATUS_SUCCESS)
    assert entry.command == "git status"
    assert entry.status == STATUS_SUCCESS


def test_default_path_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("GITEASE_LEDGER", str(tmp_path / "custom.json"))
    ledger = UndoLedger()
    ledger.append("x", "git status", STATUS_SUCCESS)
    assert (tmp_path / "custom.json").exists()
