"""Tests for per-session stream logs."""
from __future__ import annotations

from pathlib import Path

from agentrelay.engine.log_store import LogStore, log_path_for, read_log_tail
from agentrelay.engine.models import SessionKey, TerminalMarker


KEY = SessionKey("claude", "ws1")


def test_log_path_layout(tmp_path):
    assert log_path_for(tmp_path, KEY) == tmp_path / "agent" / "claude" / "ws1" / "stream.log"


def test_path_segments_cannot_escape_base_dir(tmp_path):
    path = log_path_for(tmp_path, SessionKey("claude", "../../etc"))
    assert path.parent.parent.parent == tmp_path / "agent"
    assert ".." not in path.relative_to(tmp_path).parts


def test_ensure_is_idempotent_while_open(tmp_path, monkeypatch):
    store = LogStore(tmp_path)
    first = store.ensure(KEY)
    assert first.exists()

    mkdir_calls = []
    original = Path.mkdir

    def _counting_mkdir(self, *args, **kwargs):
        mkdir_calls.append(self)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", _counting_mkdir)
    assert store.ensure(KEY) == first
    assert mkdir_calls == []


def test_append_without_ensure_is_silent(tmp_path):
    store = LogStore(tmp_path)
    store.append(KEY, "dropped")
    store.append_line(KEY, "dropped too")
    assert not store.is_open(KEY)
    assert not store.path_for(KEY).exists()


def test_header_output_and_marker(tmp_path):
    store = LogStore(tmp_path)
    store.ensure(KEY)
    store.write_header(KEY, "Fix the bug")
    store.append(KEY, "partial ")
    store.append(KEY, "tokens")
    store.append_line(KEY, "Assistant says hi")
    assert store.finalize(KEY, TerminalMarker.complete(0)) is True

    content = store.path_for(KEY).read_text()
    assert content == (
        "Provider: claude\n"
        "Workspace: ws1\n"
        "Message: Fix the bug\n"
        "\n"
        "partial tokens\n"
        "Assistant says hi\n"
        "[COMPLETE] exit code 0\n"
    )


def test_append_after_finalize_is_ignored(tmp_path):
    store = LogStore(tmp_path)
    store.ensure(KEY)
    store.finalize(KEY, TerminalMarker.cancelled())
    before = store.path_for(KEY).read_text()

    store.append(KEY, "late output\n")
    assert store.finalize(KEY, TerminalMarker.complete(0)) is False
    assert store.path_for(KEY).read_text() == before
    assert before.endswith("[CANCELLED]\n")


def test_error_marker_stays_on_one_line(tmp_path):
    store = LogStore(tmp_path)
    store.ensure(KEY)
    store.finalize(KEY, TerminalMarker.failed("spawn failed:\n  no such file"))
    assert store.path_for(KEY).read_text().splitlines() == [
        "[ERROR] spawn failed: no such file",
    ]


def test_new_session_truncates_previous_log(tmp_path):
    store = LogStore(tmp_path)
    store.ensure(KEY)
    store.write_header(KEY, "first")
    store.finalize(KEY, TerminalMarker.complete(0))

    store.ensure(KEY)
    store.write_header(KEY, "second")
    content = store.path_for(KEY).read_text()
    assert "Message: second" in content
    assert "first" not in content


def test_tail_is_bounded_and_carries_start_time(tmp_path):
    store = LogStore(tmp_path)
    store.ensure(KEY)
    store.append(KEY, "x" * 100 + "END")

    tail = store.tail(KEY, 10)
    assert tail.content == "xxxxxxxEND"
    assert tail.started_at is not None

    store.finalize(KEY, TerminalMarker.complete(0))
    assert store.started_at(KEY) is None


def test_read_log_tail_missing_file(tmp_path):
    assert read_log_tail(tmp_path / "nope.log", 1024) == ""
