"""
Ignore pattern matching for repo-bundler.

Patterns use a restricted glob syntax:

- `**` matches any characters, including `/`
- `*` matches any characters except `/`
- everything else is literal

A pattern containing `*` is anchored at both ends against the forward-slash
relative path. A pattern with no `*` is a plain substring test, so `tests`
excludes every path containing `tests`. This asymmetry is intentional and
matches the behaviour of the external packaging tool. Character classes,
negation and brace expansion are not supported; their characters match
literally.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from .config import DEFAULT_IGNORE_PATTERNS, IGNORE_FILE_NAME
from .utils import normalize_path

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob-like pattern into an anchored regular expression.

    Args:
        pattern: Pattern containing at least one `*`.

    Returns:
        Compiled regex anchored at both ends.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def matches(relative_path: str, pattern: str) -> bool:
    """Test a relative path against a single ignore pattern.

    Args:
        relative_path: Root-relative path (any separator style).
        pattern: Glob-like pattern.

    Returns:
        True if the path matches the pattern.
    """
    path = normalize_path(relative_path)
    if "*" not in pattern:
        return pattern in path
    return compile_pattern(pattern).match(path) is not None


def normalize_ignore_line(line: str) -> str | None:
    """Normalize a single ignore-file line.

    Blank lines and `#` comments yield None. A trailing `/*` or `/` becomes `/**`.
    """
    pattern = line.strip()
    if not pattern or pattern.startswith("#"):
        return None
    if pattern.endswith("/*") and not pattern.endswith("/**"):
        return pattern[:-1] + "**"
    if pattern.endswith("/"):
        return pattern + "**"
    return pattern


def load_ignore_file(root: Path, file_name: str = IGNORE_FILE_NAME) -> list[str] | None:
    """Load ignore patterns from the repository-local ignore file.

    Args:
        root: Repository root directory.
        file_name: Ignore file name inside `root`.

    Returns:
        The normalized patterns, or None if the file is absent or unreadable.
    """
    ignore_path = root / file_name
    if not ignore_path.is_file():
        return None

    try:
        lines = ignore_path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        logger.warning("Failed to read %s: %s", ignore_path, e)
        return None

    patterns = [p for p in (normalize_ignore_line(line) for line in lines) if p]
    logger.info("Loaded %d ignore patterns from %s", len(patterns), file_name)
    return patterns


@dataclass(frozen=True)
class IgnoreSpec:
    """Ordered, immutable list of ignore patterns for one packaging run."""

    patterns: tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        excludes: Iterable[str] | None = None,
        ignore_file_patterns: Iterable[str] | None = None,
        use_defaults: bool = True,
    ) -> IgnoreSpec:
        """Merge pattern sources in precedence order.

        Repository ignore-file patterns come first, then caller excludes, then the
        built-in defaults. Duplicates are dropped, keeping the first occurrence.
        """
        merged: list[str] = []
        seen: set[str] = set()
        sources: list[Iterable[str]] = [ignore_file_patterns or (), excludes or ()]
        if use_defaults:
            sources.append(DEFAULT_IGNORE_PATTERNS)
        for source in sources:
            for pattern in source:
                pattern = pattern.strip()
                if pattern and pattern not in seen:
                    seen.add(pattern)
                    merged.append(pattern)
        return cls(tuple(merged))

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> str | None:
        """Return the first pattern matching `relative_path`, or None.

        Directories are also tested with a trailing slash so `dir/**` prunes `dir`
        itself before it is descended.
        """
        path = normalize_path(relative_path)
        candidates = (path, path + "/") if is_dir else (path,)
        for pattern in self.patterns:
            if any(matches(candidate, pattern) for candidate in candidates):
                return pattern
        return None

    def __len__(self) -> int:
        return len(self.patterns)
