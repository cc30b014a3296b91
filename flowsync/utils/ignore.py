"""Ignore rules: decide which tree files are never treated as resources."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path

IGNORE_FILE = ".flowsyncignore"

# Directories to always skip
SKIP_DIRS = {".git"}


@dataclass(frozen=True)
class IgnorePattern:
    pattern: str
    negated: bool = False
    directory_only: bool = False
    anchored: bool = False


@dataclass
class IgnoreRules:
    """Gitignore-like patterns read from ``.flowsyncignore``.

    Supports comments, blank lines, ``!`` negation, a trailing ``/`` for
    directory-only patterns and a leading ``/`` to anchor a pattern at the
    tree base. The last matching pattern wins.
    """

    patterns: list[IgnorePattern] = field(default_factory=list)

    @classmethod
    def from_lines(cls, lines) -> IgnoreRules:
        patterns = []
        for raw in lines:
            line = raw.rstrip("\n").rstrip()
            if not line or line.startswith("#"):
                continue
            negated = line.startswith("!")
            if negated:
                line = line[1:]
            directory_only = line.endswith("/")
            line = line.rstrip("/")
            anchored = line.startswith("/") or "/" in line
            line = line.lstrip("/")
            if line:
                patterns.append(IgnorePattern(line, negated, directory_only, anchored))
        return cls(patterns)

    @classmethod
    def load(cls, base_dir: str | Path) -> IgnoreRules:
        """Read the ignore file at ``base_dir``; no file means no patterns."""
        path = Path(base_dir) / IGNORE_FILE
        if not path.is_file():
            return cls()
        return cls.from_lines(path.read_text(encoding="utf-8").splitlines())

    def is_ignored(self, relative: str) -> bool:
        """Check a tree-relative POSIX file path against the rules."""
        parts = relative.split("/")
        if any(part in SKIP_DIRS for part in parts):
            return True

        ignored = False
        for pattern in self.patterns:
            if _matches(pattern, parts):
                ignored = not pattern.negated
        return ignored


def _matches(pattern: IgnorePattern, parts: list[str]) -> bool:
    # Every directory prefix of the path is a candidate, the full path only
    # for patterns that may match files.
    candidates = ["/".join(parts[: i + 1]) for i in range(len(parts) - 1)]
    if not pattern.directory_only:
        candidates.append("/".join(parts))

    for candidate in candidates:
        if pattern.anchored:
            if fnmatch.fnmatchcase(candidate, pattern.pattern):
                return True
        elif fnmatch.fnmatchcase(candidate.rsplit("/", 1)[-1], pattern.pattern):
            return True
    return False
