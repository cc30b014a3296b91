"""Reconciliation planner: decide an action for every resource key.

Planning is a pure function of the two snapshots and the policy. It performs
no I/O; the actions it emits are executed later by the applier, in the order
they were emitted (shallow tree paths first).
"""

from __future__ import annotations

import logging
from typing import Mapping

from flowsync.models.decisions import Decision, DeleteAction, Plan, SyncAction, WriteAction
from flowsync.models.resources import Origin, ResourceKey, ResourceKind, ResourceRecord
from flowsync.resources.strategy import DEFAULT_STRATEGIES, KindStrategy
from flowsync.sync.errors import ConflictError, ProtectionViolation, ValidationError
from flowsync.sync.policy import OnInvalidContent, SourceOfTruth, SyncPolicy, WhenMissingInSource

log = logging.getLogger(__name__)

RecordMap = Mapping[ResourceKey, ResourceRecord]


def plan(
    tree_map: RecordMap,
    instance_map: RecordMap,
    policy: SyncPolicy,
    strategies: Mapping[ResourceKind, KindStrategy] = DEFAULT_STRATEGIES,
) -> Plan:
    """Compute decisions and pending actions for the union of both maps.

    Raises:
        ConflictError: A key exists only on the non-authoritative side and
            the missing-in-source policy is FAIL.
        ValidationError: Content headed for the instance is invalid and the
            invalid-content policy is FAIL.
    """
    result = Plan()
    keys = set(tree_map) | set(instance_map)

    def order(key: ResourceKey):
        path = _tree_path(key, tree_map, strategies)
        return (path.count("/"), path, key.identity, key.kind.value)

    for key in sorted(keys, key=order):
        strategy = strategies.get(key.kind) or DEFAULT_STRATEGIES[key.kind]
        tree = tree_map.get(key)
        instance = instance_map.get(key)

        if tree is not None and instance is None:
            _plan_tree_only(result, tree, policy, strategy)
        elif instance is not None and tree is None:
            _plan_instance_only(result, instance, policy, strategy)
        else:
            _plan_both(result, tree, instance, policy, strategy)

    log.debug("Planned %d decisions, %d actions", len(result.decisions), len(result.actions))
    return result


def _plan_tree_only(result: Plan, tree: ResourceRecord, policy: SyncPolicy, strategy: KindStrategy):
    key = tree.key
    path = tree.path or strategy.tree_path(key)

    if policy.source_of_truth is SourceOfTruth.TREE:
        if not _content_ok(result, key, tree.content, policy, strategy):
            return
        result.decisions.append(Decision(key, path, SyncAction.ADDED))
        result.actions.append(WriteAction(key, tree.content, Origin.INSTANCE, path))
        return

    missing = policy.when_missing_in_source
    if missing is WhenMissingInSource.KEEP:
        result.decisions.append(Decision(key, path, SyncAction.UNCHANGED))
    elif missing is WhenMissingInSource.DELETE:
        if _protected(result, key, path, policy):
            return
        result.decisions.append(Decision(key, path, SyncAction.DELETED_FROM_TREE))
        result.actions.append(DeleteAction(key, Origin.TREE, path))
    else:
        raise ConflictError(f"{key} exists only in the tree and missing resources are set to fail")


def _plan_instance_only(result: Plan, instance: ResourceRecord, policy: SyncPolicy, strategy: KindStrategy):
    key = instance.key

    if policy.source_of_truth is SourceOfTruth.INSTANCE:
        path = strategy.tree_path(key)
        result.decisions.append(Decision(key, path, SyncAction.ADDED))
        result.actions.append(WriteAction(key, instance.content, Origin.TREE, path))
        return

    missing = policy.when_missing_in_source
    if missing is WhenMissingInSource.KEEP:
        result.decisions.append(Decision(key, None, SyncAction.UNCHANGED))
    elif missing is WhenMissingInSource.DELETE:
        if _protected(result, key, None, policy):
            return
        result.decisions.append(Decision(key, None, SyncAction.DELETED_FROM_INSTANCE))
        result.actions.append(DeleteAction(key, Origin.INSTANCE))
    else:
        raise ConflictError(f"{key} exists only in the instance and missing resources are set to fail")


def _plan_both(
    result: Plan,
    tree: ResourceRecord,
    instance: ResourceRecord,
    policy: SyncPolicy,
    strategy: KindStrategy,
):
    key = tree.key
    path = tree.path or strategy.tree_path(key)

    if strategy.same_content(tree.content, instance.content):
        result.decisions.append(Decision(key, path, SyncAction.UNCHANGED))
        return

    if policy.source_of_truth is SourceOfTruth.TREE:
        if not _content_ok(result, key, tree.content, policy, strategy):
            return
        result.decisions.append(Decision(key, path, SyncAction.UPDATED_TO_INSTANCE))
        result.actions.append(WriteAction(key, tree.content, Origin.INSTANCE, path))
    else:
        result.decisions.append(Decision(key, path, SyncAction.UPDATED_TO_TREE))
        result.actions.append(WriteAction(key, instance.content, Origin.TREE, path))


def _protected(result: Plan, key: ResourceKey, path: str | None, policy: SyncPolicy) -> bool:
    """Record a skipped delete when ``key`` sits in a protected scope."""
    entry = policy.protecting_scope(key.scope)
    if entry is None:
        return False
    violation = ProtectionViolation(key, entry)
    log.warning("%s", violation)
    result.violations.append(violation)
    result.decisions.append(Decision(key, path, SyncAction.SKIPPED_PROTECTED))
    return True


def _content_ok(
    result: Plan,
    key: ResourceKey,
    content: str | bytes,
    policy: SyncPolicy,
    strategy: KindStrategy,
) -> bool:
    """Validate content headed for the instance; False means leave it undecided."""
    if strategy.validator is None:
        return True
    outcome = strategy.validate(content, key)
    if outcome.passed:
        return True

    mode = policy.on_invalid_content
    if mode is OnInvalidContent.FAIL:
        raise ValidationError(f"Invalid content for {key}: {outcome.summary()}", key=key, issues=outcome.issues)
    if mode is OnInvalidContent.WARN:
        log.warning("Invalid content for %s, syncing anyway: %s", key, outcome.summary())
        return True
    log.info("Skipping %s, invalid content: %s", key, outcome.summary())
    result.skipped.append(key)
    return False


def _tree_path(key: ResourceKey, tree_map: RecordMap, strategies: Mapping[ResourceKind, KindStrategy]) -> str:
    record = tree_map.get(key)
    if record is not None and record.path:
        return record.path
    strategy = strategies.get(key.kind) or DEFAULT_STRATEGIES[key.kind]
    return strategy.tree_path(key)
