"""Orchestrator: one end-to-end reconciliation run.

INIT -> ACQUIRE_TREE -> READ_BOTH -> PLAN -> APPLY -> COMMIT_PUSH -> RECORD_DIFF -> DONE

APPLY and COMMIT_PUSH are skipped on a dry run. Any fatal error moves the run
to FAILED and propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Protocol

from flowsync.config import SyncConfig
from flowsync.models.decisions import Decision, Plan
from flowsync.models.resources import Origin, ResourceKey, ResourceKind, ResourceRecord
from flowsync.resources.instance import InstanceResourceSet, InstanceResourceStore
from flowsync.resources.strategy import DEFAULT_STRATEGIES, KindStrategy
from flowsync.resources.tree import TreeResourceSet
from flowsync.sync.applier import ApplyReport, ChangeApplier
from flowsync.sync.diff import STATS_ARTIFACT, DiffRecorder, render_rows
from flowsync.sync.drift import DriftReport, drift_report
from flowsync.sync.errors import ConfigurationError, NoChangesError
from flowsync.sync.history import RunHistory, RunRecord
from flowsync.sync.planner import plan
from flowsync.sync.policy import SourceOfTruth
from flowsync.sync.storage import ArtifactStorage
from flowsync.utils.ignore import IgnoreRules
from flowsync.vcs.urls import commit_url, http_url

log = logging.getLogger(__name__)


class RunState(Enum):
    INIT = "init"
    ACQUIRE_TREE = "acquire_tree"
    READ_BOTH = "read_both"
    PLAN = "plan"
    APPLY = "apply"
    COMMIT_PUSH = "commit_push"
    RECORD_DIFF = "record_diff"
    DONE = "done"
    FAILED = "failed"


class VersionControlClient(Protocol):
    def checkout(self, url: str, branch: str, workdir: Any = None, depth: int | None = None) -> Any: ...

    def stage_all(self, tree: Any, pattern: str = ".") -> None: ...

    def commit(self, tree: Any, message: str, author: tuple[str, str] | None = None) -> str: ...

    def push(self, tree: Any) -> None: ...

    def diff_stats(self, tree: Any, cached: bool = True) -> list: ...


@dataclass
class SyncResult:
    """What a run produced."""

    diff_handle: str
    scope: str
    dry_run: bool
    commit_id: str | None = None
    commit_url: str | None = None
    decisions: list[Decision] = field(default_factory=list)
    file_stats: list = field(default_factory=list)
    stats_handle: str | None = None
    states: list[RunState] = field(default_factory=list)
    plan: Plan | None = None
    applied: ApplyReport | None = None
    drift: DriftReport | None = None


class SyncOrchestrator:
    """Sequences checkout, read, plan, apply, commit and record for one run."""

    def __init__(
        self,
        config: SyncConfig,
        vcs: VersionControlClient,
        stores: Mapping[ResourceKind, InstanceResourceStore],
        storage: ArtifactStorage,
        strategies: Mapping[ResourceKind, KindStrategy] = DEFAULT_STRATEGIES,
        history: RunHistory | None = None,
    ):
        self.config = config
        self.vcs = vcs
        self.stores = stores
        self.storage = storage
        self.strategies = strategies
        self.history = history
        self.states: list[RunState] = []

    def __enter__(self) -> SyncOrchestrator:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Release the version-control client and every instance store."""
        self._release_vcs()
        closed: set[int] = set()
        for store in self.stores.values():
            close = getattr(store, "close", None)
            if close is None or id(store) in closed:
                continue
            closed.add(id(store))
            close()

    def _release_vcs(self) -> None:
        close = getattr(self.vcs, "close", None)
        if close is not None:
            close()

    def _enter(self, state: RunState):
        self.states.append(state)
        log.debug("Sync state -> %s", state.value)

    def run(self) -> SyncResult:
        """Execute the run.

        Raises:
            ConfigurationError: Required settings are missing (before any I/O).
            ResolutionError: The tree cannot be checked out.
            ConflictError: A FAIL missing-in-source policy tripped or the push was rejected.
            ValidationError: Invalid content under a FAIL invalid-content policy.
            ApplyError: A write or delete failed mid-apply.
        """
        self.states = []
        self._enter(RunState.INIT)
        tree = None
        try:
            config = self.config
            config.validate()
            kinds = config.resource_kinds
            missing = [k.value for k in kinds if k not in self.stores]
            if missing:
                raise ConfigurationError(f"No instance store configured for: {', '.join(missing)}")
            policy = config.policy
            scope_strategy = config.scope_strategy()

            self._enter(RunState.ACQUIRE_TREE)
            tree = self.vcs.checkout(config.git.url, config.git.branch, config.workdir, config.git.depth)
            base_dir = Path(tree.path) / config.tree_prefix if config.tree_prefix else Path(tree.path)

            self._enter(RunState.READ_BOTH)
            ignore = IgnoreRules.load(base_dir)
            sides: dict[tuple[ResourceKind, Origin], Any] = {}
            for kind in kinds:
                strategy = self.strategies[kind]
                sides[(kind, Origin.TREE)] = TreeResourceSet(base_dir, strategy, ignore)
                sides[(kind, Origin.INSTANCE)] = InstanceResourceSet(self.stores[kind], strategy)

            scopes = scope_strategy.resolve(base_dir, lambda: self._instance_scopes(kinds), policy)
            log.info("Reconciling %s across %d scope(s)", ", ".join(k.value for k in kinds), len(scopes))
            tree_map, instance_map = self._read_both(kinds, sides, scopes)

            self._enter(RunState.PLAN)
            result_plan = plan(tree_map, instance_map, policy, self.strategies)
            log.info("Plan: %s", _format_counts(result_plan.counts()))

            applied = None
            commit_id = None
            web_commit_url = None
            file_stats: list = []
            if not policy.dry_run:
                self._enter(RunState.APPLY)
                applied = ChangeApplier(sides, policy).apply(result_plan.actions)

                self._enter(RunState.COMMIT_PUSH)
                self.vcs.stage_all(tree, config.tree_prefix or ".")
                file_stats = self.vcs.diff_stats(tree, cached=True)
                try:
                    commit_id = self.vcs.commit(
                        tree, config.git.commit_message, (config.git.author_name, config.git.author_email)
                    )
                except NoChangesError:
                    log.info("No changes to commit.")
                else:
                    self.vcs.push(tree)
                    web_commit_url = commit_url(http_url(config.git.url), config.git.branch, commit_id)

            self._enter(RunState.RECORD_DIFF)
            diff_handle = DiffRecorder(self.storage).record(result_plan.decisions)
            stats_handle = None
            if file_stats:
                stats_handle = self.storage.put(STATS_ARTIFACT, render_rows(s.to_dict() for s in file_stats))

            added_to = Origin.TREE if policy.source_of_truth is SourceOfTruth.INSTANCE else Origin.INSTANCE
            drift = drift_report(scope_strategy.label, result_plan.decisions, added_to)
            self._enter(RunState.DONE)
        except Exception as e:
            self._enter(RunState.FAILED)
            log.error("Sync failed: %s", e)
            raise
        finally:
            if tree is not None and hasattr(tree, "cleanup"):
                tree.cleanup()
            # Removes any private key file written for this run
            self._release_vcs()

        result = SyncResult(
            diff_handle=diff_handle,
            scope=scope_strategy.label,
            dry_run=policy.dry_run,
            commit_id=commit_id,
            commit_url=web_commit_url,
            decisions=list(result_plan.decisions),
            file_stats=file_stats,
            stats_handle=stats_handle,
            states=list(self.states),
            plan=result_plan,
            applied=applied,
            drift=drift,
        )
        if self.history is not None:
            self.history.record(
                RunRecord(
                    scope=result.scope,
                    source_of_truth=policy.source_of_truth.value,
                    dry_run=policy.dry_run,
                    diff_handle=diff_handle,
                    commit_id=commit_id or "",
                    commit_url=web_commit_url or "",
                    counts=result_plan.counts(),
                )
            )
        return result

    def _instance_scopes(self, kinds: list[ResourceKind]) -> list[str]:
        scopes: set[str] = set()
        for kind in kinds:
            if self.strategies[kind].global_scope:
                continue
            list_scopes = getattr(self.stores[kind], "list_scopes", None)
            if list_scopes is not None:
                scopes.update(list_scopes())
        return sorted(scopes)

    def _read_both(self, kinds, sides, scopes):
        tree_map: dict[ResourceKey, ResourceRecord] = {}
        instance_map: dict[ResourceKey, ResourceRecord] = {}
        for kind in kinds:
            read_scopes = [""] if self.strategies[kind].global_scope else scopes
            for scope in read_scopes:
                tree_map.update(sides[(kind, Origin.TREE)].read(scope))
                instance_map.update(sides[(kind, Origin.INSTANCE)].read(scope))
        log.debug("Read %d tree and %d instance records", len(tree_map), len(instance_map))
        return tree_map, instance_map


def _format_counts(counts: dict[str, int]) -> str:
    if not counts:
        return "nothing to reconcile"
    return ", ".join(f"{action}={n}" for action, n in sorted(counts.items()))


def build_orchestrator(config: SyncConfig) -> SyncOrchestrator:
    """Wire the git client, HTTP stores and local artifact storage for ``config``.

    The stores share one HTTP client; use the result as a context manager (or
    call ``close()``) to release it.
    """
    from flowsync.resources.http_store import (
        HttpDashboardStore,
        HttpDefinitionStore,
        HttpFileStore,
        InstanceClientConfig,
    )
    from flowsync.sync.storage import LocalArtifactStorage
    from flowsync.vcs.git_client import GitCredentials, GitVersionControlClient
    from flowsync.vcs.transport import transport_config

    ca_pem = None
    if config.git.trusted_ca_pem_path:
        path = Path(config.git.trusted_ca_pem_path)
        if not path.is_file():
            raise ConfigurationError(f"Trusted CA file not found: {path}")
        ca_pem = path.read_text(encoding="utf-8")
    transport = transport_config(ca_pem)

    vcs = GitVersionControlClient(
        GitCredentials(
            username=config.git.username,
            password=config.git.password,
            private_key=config.git.private_key,
            passphrase=config.git.passphrase,
        ),
        transport=transport,
        git_config=config.git.config,
    )

    client_config = InstanceClientConfig(
        url=config.instance.url,
        tenant=config.instance.tenant,
        username=config.instance.username,
        password=config.instance.password,
        verify=transport.ssl_context or True,
    )
    client = client_config.build_client()
    stores = {
        ResourceKind.DEFINITION: HttpDefinitionStore(client_config, client),
        ResourceKind.FILE: HttpFileStore(client_config, client),
        ResourceKind.DASHBOARD: HttpDashboardStore(client_config, client),
    }
    return SyncOrchestrator(
        config,
        vcs,
        stores,
        LocalArtifactStorage(config.artifacts_dir),
        history=RunHistory(config.artifacts_dir),
    )
