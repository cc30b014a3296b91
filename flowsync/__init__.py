"""flowsync: reconcile workflow definitions, namespace files and dashboards
between a Git tree and a live orchestration instance."""

__version__ = "0.1.0"
