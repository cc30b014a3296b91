"""Tests for end-to-end sync runs with a fake version-control client."""

import json
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from flowsync.config import GitSettings, SyncConfig
from flowsync.models.decisions import SyncAction
from flowsync.models.resources import ResourceKind
from flowsync.resources.instance import InMemoryResourceStore
from flowsync.resources.strategy import DEFAULT_STRATEGIES
from flowsync.sync.diff import read_diff
from flowsync.sync.errors import ConfigurationError, ConflictError, NoChangesError
from flowsync.sync.history import RunHistory
from flowsync.sync.orchestrator import RunState, SyncOrchestrator
from flowsync.sync.policy import SourceOfTruth, SyncPolicy, WhenMissingInSource
from flowsync.sync.storage import LocalArtifactStorage
from flowsync.vcs.git_client import FileStat

NS = "company.team"
REPO_URL = "git@github.com:acme/flows.git"


def _flow(flow_id: str, ns: str = NS, message: str = "hello") -> str:
    return (
        f"id: {flow_id}\n"
        f"namespace: {ns}\n"
        "tasks:\n"
        "  - id: log\n"
        "    type: io.kestra.plugin.core.log.Log\n"
        f"    message: {message}\n"
    )


@dataclass
class FakeTree:
    path: Path
    cleaned: bool = False

    def cleanup(self):
        self.cleaned = True


@dataclass
class FakeVcs:
    """Records calls instead of talking to a repository."""

    workdir: Path
    has_changes: bool = True
    calls: list = field(default_factory=list)
    tree: FakeTree | None = None

    def checkout(self, url, branch, workdir=None, depth=None):
        self.calls.append(("checkout", url, branch))
        self.tree = FakeTree(self.workdir)
        return self.tree

    def stage_all(self, tree, pattern="."):
        self.calls.append(("stage_all", pattern))

    def diff_stats(self, tree, cached=True):
        self.calls.append(("diff_stats",))
        if not self.has_changes:
            return []
        return [FileStat(file=f"{NS}/flows/b.yaml", additions=6, deletions=0, changes=0)]

    def commit(self, tree, message, author=None):
        self.calls.append(("commit", message, author))
        if not self.has_changes:
            raise NoChangesError("No changes to commit.")
        return "0123456789abcdef"

    def push(self, tree):
        self.calls.append(("push",))

    def names(self) -> list:
        return [c[0] for c in self.calls]


def _config(policy: SyncPolicy | None = None, **kwargs) -> SyncConfig:
    values = dict(
        git=GitSettings(url=REPO_URL, branch="main"),
        scope=NS,
        policy=policy or SyncPolicy(protected_scopes=frozenset({"system"})),
    )
    values.update(kwargs)
    return SyncConfig(**values)


def _stores() -> dict:
    return {kind: InMemoryResourceStore(strategy) for kind, strategy in DEFAULT_STRATEGIES.items()}


def _seed(tmpdir: str):
    """A tree with a stale and an orphaned definition, an instance with a new one."""
    work = Path(tmpdir) / "work"
    (work / NS / "flows").mkdir(parents=True)
    (work / NS / "flows/a.yaml").write_text(_flow("a", message="old"), encoding="utf-8")
    (work / NS / "flows/c.yaml").write_text(_flow("c"), encoding="utf-8")
    stores = _stores()
    stores[ResourceKind.DEFINITION].write(NS, "a", _flow("a", message="rev2"))
    stores[ResourceKind.DEFINITION].write(NS, "b", _flow("b"))
    return work, stores


def _orchestrator(tmpdir: str, config: SyncConfig, vcs, stores) -> SyncOrchestrator:
    artifacts = Path(tmpdir) / "artifacts"
    return SyncOrchestrator(
        config,
        vcs,
        stores,
        LocalArtifactStorage(artifacts),
        history=RunHistory(artifacts),
    )


# --- Run Tests ---


def test_run_applies_commits_and_records():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        vcs = FakeVcs(work)
        orchestrator = _orchestrator(tmpdir, _config(), vcs, stores)

        result = orchestrator.run()

        assert (work / NS / "flows/a.yaml").read_text(encoding="utf-8") == _flow("a", message="rev2")
        assert (work / NS / "flows/b.yaml").is_file()
        assert not (work / NS / "flows/c.yaml").exists()
        assert vcs.names() == ["checkout", "stage_all", "diff_stats", "commit", "push"]
        assert vcs.calls[1] == ("stage_all", ".")
        assert vcs.calls[3] == ("commit", "Namespace sync", ("flowsync", "flowsync@localhost"))
        assert vcs.tree.cleaned

        assert result.commit_id == "0123456789abcdef"
        assert result.commit_url == "https://github.com/acme/flows/commit/0123456789abcdef"
        assert result.states == [
            RunState.INIT,
            RunState.ACQUIRE_TREE,
            RunState.READ_BOTH,
            RunState.PLAN,
            RunState.APPLY,
            RunState.COMMIT_PUSH,
            RunState.RECORD_DIFF,
            RunState.DONE,
        ]
        assert result.applied.written == 2
        assert result.applied.deleted == 1

        storage = LocalArtifactStorage(Path(tmpdir) / "artifacts")
        records = read_diff(storage, result.diff_handle)
        assert [(r.key, r.action) for r in records] == [
            ("company.team:a", "UPDATED_TO_TREE"),
            ("company.team:b", "ADDED"),
            ("company.team:c", "DELETED_FROM_TREE"),
        ]
        stats = storage.get(result.stats_handle).decode("utf-8").splitlines()
        assert json.loads(stats[0]) == {"file": f"{NS}/flows/b.yaml", "additions": 6, "deletions": 0, "changes": 0}

        latest = RunHistory(Path(tmpdir) / "artifacts").get_latest(NS)
        assert latest.commit_id == "0123456789abcdef"
        assert latest.diff_handle == result.diff_handle


def test_dry_run_touches_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        vcs = FakeVcs(work)
        config = _config().with_dry_run(True)

        result = _orchestrator(tmpdir, config, vcs, stores).run()

        assert vcs.names() == ["checkout"]
        assert (work / NS / "flows/a.yaml").read_text(encoding="utf-8") == _flow("a", message="old")
        assert (work / NS / "flows/c.yaml").is_file()
        assert result.dry_run
        assert result.commit_id is None
        assert result.applied is None
        assert RunState.APPLY not in result.states
        assert RunState.COMMIT_PUSH not in result.states
        assert result.drift.has_drift
        assert len(read_diff(LocalArtifactStorage(Path(tmpdir) / "artifacts"), result.diff_handle)) == 3


def test_dry_run_and_wet_run_record_same_diff():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        dry = _orchestrator(tmpdir, _config().with_dry_run(True), FakeVcs(work), stores).run()
        wet = _orchestrator(tmpdir, _config(), FakeVcs(work), stores).run()
        assert dry.diff_handle == wet.diff_handle


def test_second_run_is_unchanged():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        _orchestrator(tmpdir, _config(), FakeVcs(work), stores).run()

        vcs = FakeVcs(work, has_changes=False)
        result = _orchestrator(tmpdir, _config(), vcs, stores).run()

        assert all(d.action is SyncAction.UNCHANGED for d in result.decisions)
        assert result.commit_id is None
        assert result.stats_handle is None
        assert "push" not in vcs.names()
        assert not result.drift.has_drift
        assert result.states[-1] is RunState.DONE


def test_tree_prefix_is_staged():
    with tempfile.TemporaryDirectory() as tmpdir:
        work = Path(tmpdir) / "work"
        (work / "kestra").mkdir(parents=True)
        stores = _stores()
        stores[ResourceKind.DEFINITION].write(NS, "b", _flow("b"))
        vcs = FakeVcs(work)
        config = _config(git=GitSettings(url=REPO_URL, branch="main", directory="/kestra/"))

        _orchestrator(tmpdir, config, vcs, stores).run()

        assert (work / "kestra" / NS / "flows/b.yaml").is_file()
        assert vcs.calls[1] == ("stage_all", "kestra")


def test_tree_source_pushes_to_instance():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        policy = SyncPolicy(source_of_truth=SourceOfTruth.TREE)

        result = _orchestrator(tmpdir, _config(policy), FakeVcs(work), stores).run()

        definitions = stores[ResourceKind.DEFINITION]
        assert definitions.get(NS, "a") == _flow("a", message="old")
        assert definitions.get(NS, "c") == _flow("c")
        assert definitions.get(NS, "b") is None
        assert result.drift.drift_types == ["instance_behind", "orphaned"]


def test_protected_scope_is_never_deleted():
    with tempfile.TemporaryDirectory() as tmpdir:
        work = Path(tmpdir) / "work"
        (work / "system" / "flows").mkdir(parents=True)
        (work / "system" / "flows/keep.yaml").write_text(_flow("keep", ns="system"), encoding="utf-8")
        config = _config(scope="system")

        result = _orchestrator(tmpdir, config, FakeVcs(work), _stores()).run()

        assert (work / "system" / "flows/keep.yaml").is_file()
        assert [d.action for d in result.decisions] == [SyncAction.SKIPPED_PROTECTED]
        assert len(result.plan.violations) == 1


def test_all_scopes_reads_dashboards_once():
    with tempfile.TemporaryDirectory() as tmpdir:
        work = Path(tmpdir) / "work"
        work.mkdir()
        stores = _stores()
        stores[ResourceKind.DEFINITION].write("a.one", "f", _flow("f", ns="a.one"))
        stores[ResourceKind.FILE].write("b.two", "x.txt", b"x")
        stores[ResourceKind.DASHBOARD].write("", "overview", "id: overview\ntitle: Overview\n")
        config = _config(scope=None, all_scopes=True)

        result = _orchestrator(tmpdir, config, FakeVcs(work), stores).run()

        assert result.scope == "*"
        assert sorted(d.key.identity for d in result.decisions) == ["a.one:f", "b.two:x.txt", "overview"]
        assert (work / "_global/dashboards/overview.yaml").is_file()
        assert (work / "b.two/files/x.txt").read_bytes() == b"x"


# --- Failure Tests ---


def test_missing_branch_fails_before_checkout():
    with tempfile.TemporaryDirectory() as tmpdir:
        vcs = FakeVcs(Path(tmpdir))
        config = _config(git=GitSettings(url=REPO_URL, branch=""))
        orchestrator = _orchestrator(tmpdir, config, vcs, _stores())

        with pytest.raises(ConfigurationError):
            orchestrator.run()

        assert vcs.calls == []
        assert orchestrator.states == [RunState.INIT, RunState.FAILED]


def test_missing_store_is_configuration_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        vcs = FakeVcs(Path(tmpdir))
        stores = {ResourceKind.DEFINITION: InMemoryResourceStore(DEFAULT_STRATEGIES[ResourceKind.DEFINITION])}
        with pytest.raises(ConfigurationError):
            _orchestrator(tmpdir, _config(), vcs, stores).run()
        assert vcs.calls == []


def test_fail_policy_aborts_without_side_effects():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        vcs = FakeVcs(work)
        policy = SyncPolicy(when_missing_in_source=WhenMissingInSource.FAIL)
        orchestrator = _orchestrator(tmpdir, _config(policy), vcs, stores)

        with pytest.raises(ConflictError):
            orchestrator.run()

        assert vcs.names() == ["checkout"]
        assert vcs.tree.cleaned
        assert orchestrator.states[-1] is RunState.FAILED
        assert not (Path(tmpdir) / "artifacts").exists()
        assert (work / NS / "flows/c.yaml").is_file()


# --- Lifecycle Tests ---


@dataclass
class KeyedVcs(FakeVcs):
    """Writes a credential file on checkout, like an SSH-key client."""

    key_file: Path | None = None

    def checkout(self, url, branch, workdir=None, depth=None):
        self.key_file = self.workdir.parent / "flowsync-key"
        self.key_file.write_text("-----BEGIN KEY-----\n", encoding="utf-8")
        return super().checkout(url, branch, workdir, depth)

    def close(self):
        if self.key_file is not None and self.key_file.exists():
            self.key_file.unlink()


class ClosingStore(InMemoryResourceStore):
    def __init__(self, strategy):
        super().__init__(strategy)
        self.close_calls = 0

    def close(self):
        self.close_calls += 1


def test_key_file_removed_after_run():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        vcs = KeyedVcs(work)

        _orchestrator(tmpdir, _config(), vcs, stores).run()

        assert vcs.key_file is not None
        assert not vcs.key_file.exists()


def test_key_file_removed_after_failed_run():
    with tempfile.TemporaryDirectory() as tmpdir:
        work, stores = _seed(tmpdir)
        vcs = KeyedVcs(work)
        policy = SyncPolicy(when_missing_in_source=WhenMissingInSource.FAIL)

        with pytest.raises(ConflictError):
            _orchestrator(tmpdir, _config(policy), vcs, stores).run()

        assert not vcs.key_file.exists()


def test_context_manager_closes_shared_stores_once():
    with tempfile.TemporaryDirectory() as tmpdir:
        work = Path(tmpdir) / "work"
        work.mkdir()
        shared = ClosingStore(DEFAULT_STRATEGIES[ResourceKind.DEFINITION])
        files = ClosingStore(DEFAULT_STRATEGIES[ResourceKind.FILE])
        stores = {ResourceKind.DEFINITION: shared, ResourceKind.FILE: files, ResourceKind.DASHBOARD: shared}

        with _orchestrator(tmpdir, _config(), FakeVcs(work), stores) as orchestrator:
            orchestrator.run()
            assert shared.close_calls == 0

        assert shared.close_calls == 1
        assert files.close_calls == 1
