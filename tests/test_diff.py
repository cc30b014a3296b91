"""Tests for the diff recorder and artifact storage."""

import itertools
import json
import tempfile
from pathlib import Path

import pytest

from flowsync.models.decisions import Decision, SyncAction
from flowsync.models.resources import ResourceKey, ResourceKind
from flowsync.sync.diff import DiffRecord, DiffRecorder, read_diff, render, render_rows
from flowsync.sync.storage import LocalArtifactStorage


def _decisions() -> list:
    return [
        Decision(ResourceKey("company", "b", ResourceKind.DEFINITION), "company/flows/b.yaml", SyncAction.ADDED),
        Decision(ResourceKey("company", "x", ResourceKind.DEFINITION), None, SyncAction.UNCHANGED),
        Decision(ResourceKey("company", "a", ResourceKind.DEFINITION), "company/flows/a.yaml", SyncAction.UPDATED_TO_TREE),
        Decision(ResourceKey("", "overview", ResourceKind.DASHBOARD), None, SyncAction.DELETED_FROM_INSTANCE),
    ]


# --- Render Tests ---


def test_render_line_format():
    decision = Decision(ResourceKey("company.team", "a", ResourceKind.DEFINITION), "company.team/flows/a.yaml", SyncAction.ADDED)
    data = render([decision])
    assert data == (
        b'{"file":"company.team/flows/a.yaml","key":"company.team:a","kind":"DEFINITION","action":"ADDED"}\n'
    )


def test_render_orders_by_file_with_nulls_last():
    lines = render(_decisions()).decode("utf-8").splitlines()
    files = [json.loads(line)["file"] for line in lines]
    keys = [json.loads(line)["key"] for line in lines]

    assert files == ["company/flows/a.yaml", "company/flows/b.yaml", None, None]
    assert keys[2:] == ["company:x", "overview"]


def test_render_null_file_is_json_null():
    decision = Decision(ResourceKey("company", "x", ResourceKind.FILE), None, SyncAction.UNCHANGED)
    row = json.loads(render([decision]))
    assert row["file"] is None
    assert list(row) == ["file", "key", "kind", "action"]


def test_render_is_independent_of_input_order():
    decisions = _decisions()
    expected = render(decisions)
    for permutation in itertools.permutations(decisions):
        assert render(permutation) == expected


def test_render_empty():
    assert render([]) == b""


def test_render_keeps_unicode():
    decision = Decision(ResourceKey("company", "résumé.txt", ResourceKind.FILE), "company/files/résumé.txt", SyncAction.ADDED)
    assert "résumé".encode("utf-8") in render([decision])


def test_render_rows_keeps_given_order():
    data = render_rows([{"file": "b", "additions": 1}, {"file": "a", "additions": 2}])
    assert data == b'{"file":"b","additions":1}\n{"file":"a","additions":2}\n'


# --- Recorder Tests ---


def test_recorder_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = LocalArtifactStorage(tmpdir)
        handle = DiffRecorder(storage).record(_decisions())

        assert handle.startswith("file://")
        records = read_diff(storage, handle)
        assert [r.file for r in records] == ["company/flows/a.yaml", "company/flows/b.yaml", None, None]
        assert records[0] == DiffRecord("company/flows/a.yaml", "company:a", "DEFINITION", "UPDATED_TO_TREE")


def test_recorder_is_content_addressed():
    with tempfile.TemporaryDirectory() as tmpdir:
        recorder = DiffRecorder(LocalArtifactStorage(tmpdir))
        first = recorder.record(_decisions())
        second = recorder.record(list(reversed(_decisions())))
        assert first == second
        assert len(list(Path(tmpdir).iterdir())) == 1


def test_read_diff_skips_blank_lines():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = LocalArtifactStorage(tmpdir)
        handle = storage.put("diff.jsonl", b'\n{"file":null,"key":"k","kind":"FILE","action":"ADDED"}\n\n')
        assert read_diff(storage, handle) == [DiffRecord(None, "k", "FILE", "ADDED")]


# --- Storage Tests ---


def test_storage_resolves_handles():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = LocalArtifactStorage(tmpdir)
        handle = storage.put("diff.jsonl", b"data")
        path = storage.resolve(handle)

        assert path.read_bytes() == b"data"
        assert path.name.endswith("-diff.jsonl")
        assert storage.get(str(path)) == b"data"
        assert storage.get(path.name) == b"data"


def test_storage_missing_handle_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = LocalArtifactStorage(tmpdir)
        with pytest.raises(FileNotFoundError):
            storage.get("nope.jsonl")


def test_storage_creates_base_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = LocalArtifactStorage(Path(tmpdir) / "nested" / "artifacts")
        storage.put("diff.jsonl", b"")
        assert (Path(tmpdir) / "nested" / "artifacts").is_dir()
