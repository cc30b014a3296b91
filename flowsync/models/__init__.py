"""Value types shared by readers, planner, applier and diff recorder."""
