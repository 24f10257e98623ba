"""Tests for run_log.py — the SQLite run log."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from run_log import DB_NAME, RETAIN_DAYS, RunLog


@pytest.fixture
def db(tmp_path):
    log = RunLog(str(tmp_path), transforms_folder="/some/transforms")
    yield log
    log.stop()


def _count(path, table):
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


def test_creates_database_in_folder(db, tmp_path):
    assert db.db_path == str(tmp_path / DB_NAME)
    assert (tmp_path / DB_NAME).exists()


def test_reading_leaves_no_session(tmp_path):
    reader = RunLog(str(tmp_path))
    assert reader.entries() == []
    assert reader.runs() == []
    assert reader.sessions() == []
    reader.stop()
    assert _count(tmp_path / DB_NAME, "sessions") == 0


def test_first_write_starts_session(db):
    db.log("hello")
    db.flush()
    sessions = db.sessions()
    assert len(sessions) == 1
    assert sessions[0]["id"] == db.session_id
    assert sessions[0]["transforms_folder"] == "/some/transforms"


def test_log_lines(db):
    db.log("first", "info")
    db.log("second", "err", transform_name="upper_template")
    db.flush()

    entries = db.entries()
    assert [e["message"] for e in entries] == ["first", "second"]
    assert entries[1]["transform_name"] == "upper_template"
    assert [e["message"] for e in db.entries(tag="err")] == ["second"]


def test_entries_limit_keeps_newest(db):
    for i in range(5):
        db.log(f"msg {i}")
    db.flush()
    assert [e["message"] for e in db.entries(limit=2)] == ["msg 3", "msg 4"]


def test_record_runs(db):
    db.record_run("greeting", ["upper_template", "capitalize_first"], "stdin",
                  "words", True, 14, 10)
    db.record_run("upper_template", ["upper_template"], "clipboard",
                  "first", False, 3, error="upper_template: boom")
    db.flush()

    ok, failed = db.runs()
    assert ok["target"] == "greeting"
    assert ok["steps"] == "upper_template,capitalize_first"
    assert ok["source"] == "stdin"
    assert ok["mode"] == "words"
    assert ok["dry_run"] == 1
    assert (ok["chars_in"], ok["chars_out"]) == (14, 10)
    assert ok["status"] == "ok"

    assert failed["status"] == "err"
    assert failed["chars_out"] is None
    assert failed["error"] == "upper_template: boom"
    assert [r["target"] for r in db.runs(status="err")] == ["upper_template"]


def test_sessions_count_runs_and_errors(db):
    db.record_run("a", ["a"], "stdin", "", True, 1, 1)
    db.record_run("a", ["a"], "stdin", "", True, 1, error="a: bad")
    db.flush()
    session = db.sessions()[0]
    assert session["run_count"] == 2
    assert session["error_count"] == 1


def test_filter_by_session(tmp_path):
    first = RunLog(str(tmp_path))
    first.log("from first")
    first.record_run("a", ["a"], "stdin", "", True, 1, 1)
    first.flush()
    first.stop()

    second = RunLog(str(tmp_path))
    second.log("from second")
    second.flush()
    try:
        mine = second.entries(session_id=second.session_id)
        assert [e["message"] for e in mine] == ["from second"]
        assert len(second.entries()) == 2
        assert second.runs(session_id=second.session_id) == []
        assert len(second.runs(session_id=first.session_id)) == 1
    finally:
        second.stop()


def test_old_rows_purged_on_first_write(tmp_path):
    old = (datetime.now() - timedelta(days=RETAIN_DAYS + 1)).isoformat()
    RunLog(str(tmp_path)).stop()
    conn = sqlite3.connect(str(tmp_path / DB_NAME))
    with conn:
        conn.execute(
            "INSERT INTO log_entries(session_id, timestamp, tag, message, transform_name)"
            " VALUES(?,?,?,?,?)",
            ("oldsess", old, "info", "ancient", ""),
        )
        conn.execute(
            "INSERT INTO runs(session_id, timestamp, target, steps, source, mode,"
            " dry_run, chars_in, chars_out, status, error)"
            " VALUES(?,?,?,?,?,?,?,?,?,?,?)",
            ("oldsess", old, "a", "a", "stdin", "", 1, 1, 1, "ok", ""),
        )
        conn.execute("INSERT INTO sessions(id, started_at) VALUES(?,?)", ("oldsess", old))
    conn.close()

    log = RunLog(str(tmp_path))
    try:
        assert len(log.entries()) == 1
        log.log("fresh")
        log.flush()
        assert [e["message"] for e in log.entries()] == ["fresh"]
        assert log.runs() == []
        assert [s["id"] for s in log.sessions()] == [log.session_id]
    finally:
        log.stop()
