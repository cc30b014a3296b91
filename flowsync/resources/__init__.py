"""Resource sides: the checked-out tree and the instance resource store.

Both sides expose the same small interface (read, write, delete, validate) so
the planner and applier never need to know which side they are talking to.
"""

from flowsync.resources.strategy import (
    DASHBOARDS,
    DEFAULT_STRATEGIES,
    DEFINITIONS,
    FILES,
    KindStrategy,
)

__all__ = ["DASHBOARDS", "DEFAULT_STRATEGIES", "DEFINITIONS", "FILES", "KindStrategy"]
