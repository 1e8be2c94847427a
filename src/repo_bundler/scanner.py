"""
Directory scanner for repo-bundler.

Walks a repository breadth-first, pruning ignored directories before descending,
and collects `FileRecord`s under the configured resource ceilings. Also renders
the plain-text directory structure used by callers that only need an overview.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pathspec

from .config import (
    DEFAULT_INCLUDE_EXTENSIONS,
    KNOWN_EXTENSIONLESS,
    FileRecord,
    ScanLimits,
    ScanResult,
)
from .errors import InvalidRootError
from .ignore import IgnoreSpec, load_ignore_file, matches
from .utils import normalize_path

logger = logging.getLogger(__name__)


class GitIgnoreParser:
    """
    Parser for .gitignore files.

    Supports nested .gitignore files in subdirectories. Nested files are only
    discovered in directories the scanner actually visits, so ignored subtrees are
    never walked just to find their .gitignore.
    """

    def __init__(self, root_path: Path):
        """
        Initialize the parser.

        Args:
            root_path: Root directory of the repository
        """
        self.root_path = root_path.resolve()
        self._specs: dict[Path, pathspec.PathSpec] = {}
        self.load_directory(self.root_path)

    def load_directory(self, directory: Path) -> None:
        """Load `directory/.gitignore` if present."""
        gitignore_path = directory / ".gitignore"
        if not gitignore_path.is_file():
            return
        try:
            with open(gitignore_path, encoding="utf-8", errors="replace") as f:
                lines = f.read().splitlines()
        except OSError as e:
            logger.debug("Unreadable .gitignore %s: %s", gitignore_path, e)
            return

        patterns = [p.strip() for p in lines if p.strip() and not p.strip().startswith("#")]
        if patterns:
            self._specs[directory.resolve()] = pathspec.PathSpec.from_lines(
                pathspec.patterns.GitWildMatchPattern, patterns
            )

    def is_ignored(self, file_path: Path, is_dir: bool = False) -> bool:
        """
        Check if a path is ignored by any loaded .gitignore.

        Args:
            file_path: Absolute path to the file or directory
            is_dir: Whether the path is a directory

        Returns:
            True if the path should be ignored
        """
        file_path = file_path.resolve()

        # Most specific .gitignore first
        for base_path, spec in sorted(
            self._specs.items(), key=lambda x: len(x[0].parts), reverse=True
        ):
            try:
                rel_path = file_path.relative_to(base_path).as_posix()
            except ValueError:
                continue
            if spec.match_file(rel_path):
                return True
            if is_dir and spec.match_file(rel_path + "/"):
                return True

        return False


def validate_root(root: Path | str) -> Path:
    """Resolve and validate a root directory.

    Raises:
        InvalidRootError: If the path does not exist or is not a directory.
    """
    resolved = Path(root).resolve()
    if not resolved.exists():
        raise InvalidRootError(f"Path does not exist: {resolved}")
    if not resolved.is_dir():
        raise InvalidRootError(f"Path is not a directory: {resolved}")
    return resolved


class DirectoryScanner:
    """
    Breadth-first scanner with pruning and resource ceilings.

    Entries of each directory are processed in name order, so two scans of the
    same tree return the same files in the same order.
    """

    def __init__(
        self,
        root_path: Path,
        ignore_spec: IgnoreSpec | None = None,
        limits: ScanLimits | None = None,
        include_patterns: Iterable[str] | None = None,
        respect_gitignore: bool = True,
        base_path: Path | None = None,
    ):
        """
        Initialize the scanner.

        Args:
            root_path: Directory where traversal starts
            ignore_spec: Patterns excluding paths (defaults only when None)
            limits: Resource ceilings
            include_patterns: If given, files must match one of these patterns
            respect_gitignore: Whether to honour .gitignore files
            base_path: Directory relative paths are computed against (defaults to root)
        """
        self.root_path = validate_root(root_path)
        self.base_path = base_path.resolve() if base_path else self.root_path
        self.ignore_spec = ignore_spec if ignore_spec is not None else IgnoreSpec.build()
        self.limits = limits or ScanLimits()
        self.include_patterns = [p for p in (include_patterns or []) if p]
        self._gitignore = GitIgnoreParser(self.base_path) if respect_gitignore else None

    def _relative(self, path: Path) -> str:
        return normalize_path(os.path.relpath(path, self.base_path))

    def _should_include(self, rel_path: str, name: str) -> bool:
        if self.include_patterns:
            return any(matches(rel_path, pattern) for pattern in self.include_patterns)
        ext = os.path.splitext(name)[1].lower()
        if not ext:
            return name.lower() in KNOWN_EXTENSIONLESS
        return ext in DEFAULT_INCLUDE_EXTENSIONS

    def _limit_reached(self, result: ScanResult) -> bool:
        return (
            len(result.files) >= self.limits.max_files
            or result.total_bytes >= self.limits.max_total_bytes
        )

    def scan(self) -> ScanResult:
        """
        Scan the tree.

        Returns:
            A `ScanResult`. Hitting a ceiling stops traversal early and sets
            `truncated`; this is not an error.
        """
        result = ScanResult()
        queue: deque[tuple[Path, int]] = deque([(self.root_path, 0)])

        while queue:
            current_dir, depth = queue.popleft()

            if self._gitignore is not None and current_dir != self.base_path:
                self._gitignore.load_directory(current_dir)

            try:
                with os.scandir(current_dir) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                logger.debug("Error reading directory %s: %s", current_dir, e)
                result.unreadable.append(self._relative(current_dir))
                continue

            for entry in entries:
                if self._limit_reached(result):
                    result.truncated = True
                    logger.info(
                        "Scan stopped early at %d files (%d bytes)",
                        len(result.files),
                        result.total_bytes,
                    )
                    return result

                entry_path = Path(entry.path)
                rel_path = self._relative(entry_path)

                try:
                    if entry.is_symlink():
                        continue
                    is_dir = entry.is_dir()
                    is_file = not is_dir and entry.is_file()
                except OSError as e:
                    logger.debug("Error inspecting %s: %s", entry_path, e)
                    result.unreadable.append(rel_path)
                    continue

                if is_dir:
                    if self.ignore_spec.is_ignored(rel_path, is_dir=True) or (
                        self._gitignore is not None
                        and self._gitignore.is_ignored(entry_path, is_dir=True)
                    ):
                        result.directories_pruned += 1
                        continue
                    if depth + 1 > self.limits.max_depth:
                        result.truncated = True
                        continue
                    result.directories.append(rel_path)
                    queue.append((entry_path, depth + 1))
                elif is_file:
                    self._visit_file(entry, entry_path, rel_path, result)

        logger.info(
            "Scan complete: %d files, %d directories, %d bytes",
            len(result.files),
            len(result.directories),
            result.total_bytes,
        )
        return result

    def _visit_file(
        self, entry: os.DirEntry[str], entry_path: Path, rel_path: str, result: ScanResult
    ) -> None:
        if self.ignore_spec.is_ignored(rel_path) or (
            self._gitignore is not None and self._gitignore.is_ignored(entry_path)
        ):
            result.files_skipped_ignored += 1
            return

        if not self._should_include(rel_path, entry.name):
            result.files_skipped_include += 1
            return

        try:
            size = entry.stat().st_size
        except OSError as e:
            logger.debug("Error getting stats for file %s: %s", entry_path, e)
            result.unreadable.append(rel_path)
            return

        if size > self.limits.max_file_bytes:
            logger.debug("Skipping large file: %s (%dKB)", rel_path, size // 1024)
            result.files_skipped_size += 1
            return

        if result.total_bytes + size > self.limits.max_total_bytes:
            logger.debug("Skipping %s: total byte ceiling reached", rel_path)
            result.truncated = True
            return

        result.files.append(FileRecord(path=entry_path, relative_path=rel_path, size_bytes=size))
        result.total_bytes += size


def scan_directory(
    root_path: Path,
    ignore_spec: IgnoreSpec | None = None,
    limits: ScanLimits | None = None,
    include_patterns: Iterable[str] | None = None,
    respect_gitignore: bool = True,
    base_path: Path | None = None,
) -> ScanResult:
    """
    Convenience function to scan a directory tree.

    Returns:
        The `ScanResult` of a `DirectoryScanner` run.
    """
    scanner = DirectoryScanner(
        root_path=root_path,
        ignore_spec=ignore_spec,
        limits=limits,
        include_patterns=include_patterns,
        respect_gitignore=respect_gitignore,
        base_path=base_path,
    )
    return scanner.scan()


def build_path_tree(paths: Iterable[str]) -> dict[str, Any]:
    """Group relative paths into a nested dict; files map to None."""
    tree: dict[str, Any] = {}
    for path in paths:
        parts = [p for p in normalize_path(path).split("/") if p]
        if not parts:
            continue
        current = tree
        for part in parts[:-1]:
            node = current.get(part)
            if node is None:
                node = current[part] = {}
            current = node
        current.setdefault(parts[-1], None)
    return tree


def format_path_tree(tree: dict[str, Any]) -> list[str]:
    """Render a nested path tree, directories first, alphabetical within a level."""
    lines: list[str] = []

    def _sorted(node: dict[str, Any]) -> list[str]:
        return sorted(node, key=lambda name: (node[name] is None, name))

    def _walk(node: dict[str, Any], indent: int) -> None:
        for name in _sorted(node):
            child = node[name]
            prefix = "  " * indent
            if child is None:
                lines.append(f"{prefix}├── {name}")
            else:
                lines.append(f"{prefix}├── {name}/")
                _walk(child, indent + 1)

    for name in _sorted(tree):
        child = tree[name]
        if child is None:
            lines.append(name)
        else:
            lines.append(f"{name}/")
            _walk(child, 1)
    return lines


def render_structure(scan_result: ScanResult, max_depth: int = 5, max_entries: int = 200) -> str:
    """
    Render a scan result as a plain-text directory structure.

    Args:
        scan_result: Result of `scan_directory`
        max_depth: Paths with more components than this are omitted
        max_entries: Maximum number of files rendered

    Returns:
        The rendering, ending with a file/directory count summary
    """
    shown_dirs = [d for d in scan_result.directories if len(d.split("/")) <= max_depth]
    shown_files = [
        f.relative_path
        for f in scan_result.files[:max_entries]
        if len(f.relative_path.split("/")) <= max_depth
    ]

    tree = build_path_tree(shown_files)
    for directory in shown_dirs:
        current = tree
        for part in directory.split("/"):
            node = current.get(part)
            if node is None:
                node = current[part] = {}
            current = node

    lines = ["Directory Structure:", *format_path_tree(tree), ""]
    lines.append(
        f"Total files: {scan_result.file_count}, "
        f"Total directories: {len(scan_result.directories)}"
    )
    return "\n".join(lines) + "\n"


def extract_structure(
    root_path: Path,
    exclude: Iterable[str] | None = None,
    limits: ScanLimits | None = None,
    max_depth: int = 5,
    max_entries: int = 200,
    respect_gitignore: bool = True,
) -> str:
    """
    Scan a repository and render its directory structure.

    The repository's ignore file is honoured the same way as during packaging.
    """
    root = validate_root(root_path)
    ignore_spec = IgnoreSpec.build(excludes=exclude, ignore_file_patterns=load_ignore_file(root))
    result = scan_directory(
        root,
        ignore_spec=ignore_spec,
        limits=limits or ScanLimits(max_depth=max_depth),
        respect_gitignore=respect_gitignore,
    )
    return render_structure(result, max_depth=max_depth, max_entries=max_entries)
