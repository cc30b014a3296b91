"""Reconciliation engine between a Git tree and an orchestration instance.

This package provides:
- Policy: which side wins, what happens to orphans, which scopes are protected
- Planning: a pure decision per resource plus the actions that realise it
- Applying: sequential execution of pending actions against either side
- Recording: a deterministic line-delimited diff of every decision
- Orchestration: the end-to-end run from checkout to push
"""
