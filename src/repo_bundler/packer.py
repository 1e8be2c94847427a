"""
Budget-constrained bundle assembly.

A single greedy pass over score-ordered files: critical files first, then the
rest, each included whole or skipped whole depending on whether its estimated
size still fits the character budget. File contents are read one at a time,
only for files that passed the estimate.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from pathlib import Path

from .config import (
    DEFAULT_PER_FILE_OVERHEAD_TOKENS,
    FileRecord,
    PackageResult,
    PackagingMethod,
)
from .scanner import build_path_tree, format_path_tree
from .utils import DEFAULT_CHARS_PER_TOKEN, estimate_tokens, is_binary_file, read_file_safe

logger = logging.getLogger(__name__)

BUNDLE_TITLE = "# Repository Content"
BUNDLE_INTRO = (
    "This file is a merged representation of the repository content, "
    "structured for AI analysis."
)

_FILE_BLOCK = re.compile(r'<file path="([^"]+)">\n(.*?)\n</file>', re.DOTALL)
_FILE_MARKER = re.compile(r"<file\s")


def render_file_block(relative_path: str, content: str) -> str:
    """Render one tagged file block."""
    return f'\n<file path="{relative_path}">\n{content}\n</file>\n'


def render_summary(included: int, total: int, tokens: int) -> str:
    """Render the trailing summary line."""
    return (
        f"\n# Summary\n\nIncluded {included} files out of {total} total files. "
        f"Estimated token count: {tokens}.\n"
    )


def render_directory_structure(relative_paths: Sequence[str]) -> str:
    """Render the fenced directory tree embedded in the bundle header."""
    lines = format_path_tree(build_path_tree(relative_paths))
    return "## Directory Structure\n\n```\n" + "".join(line + "\n" for line in lines) + "```\n\n"


def parse_bundle(text: str) -> list[tuple[str, str]]:
    """Recover `(relative_path, content)` pairs from a bundle.

    Lossless for any file whose content does not itself contain the block
    delimiter syntax.
    """
    return [(m.group(1), m.group(2)) for m in _FILE_BLOCK.finditer(text)]


def count_file_blocks(text: str) -> int:
    """Count `<file ...>` markers in bundle text produced by any strategy."""
    return len(_FILE_MARKER.findall(text))


class BundleAssembler:
    """
    Greedy, single-pass bundle assembler.

    The character budget is `max_tokens * chars_per_token`. The header and a
    reserve for the summary are charged first; each file is then charged its
    block delimiters, its size in bytes and `per_file_overhead_tokens` worth of
    characters. Byte size is an upper bound on decoded characters, so a bundle
    assembled within budget never exceeds it.
    """

    def __init__(
        self,
        chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
        per_file_overhead_tokens: int = DEFAULT_PER_FILE_OVERHEAD_TOKENS,
    ):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token
        self.per_file_overhead_tokens = per_file_overhead_tokens

    def render_header(self, files: Sequence[FileRecord], component_path: str | None = None) -> str:
        header = f"{BUNDLE_TITLE}\n\n{BUNDLE_INTRO}\n\n"
        if component_path:
            header += f"## Component: {component_path}\n\n"
        return header + render_directory_structure([f.relative_path for f in files])

    def framing_chars(self, files: Sequence[FileRecord], component_path: str | None = None) -> int:
        """Characters charged before any file: the header plus the summary reserve."""
        reserve = len(render_summary(len(files), len(files), 10**12))
        return len(self.render_header(files, component_path)) + reserve

    def estimate_file_chars(self, file: FileRecord) -> int:
        """Upper-bound estimate of the characters a file adds to the bundle."""
        delimiters = len(render_file_block(file.relative_path, ""))
        return delimiters + file.size_bytes + self.per_file_overhead_tokens * self.chars_per_token

    def order_for_inclusion(self, files: Sequence[FileRecord]) -> list[FileRecord]:
        """Critical files first, each group keeping its incoming (score) order."""
        critical = [f for f in files if f.is_critical]
        rest = [f for f in files if not f.is_critical]
        return critical + rest

    def assemble(
        self,
        files: Sequence[FileRecord],
        root: Path,
        max_tokens: int,
        component_path: str | None = None,
        method: PackagingMethod = PackagingMethod.FALLBACK,
    ) -> PackageResult:
        """
        Assemble a bundle from files sorted by score, highest first.

        Args:
            files: Candidate files, sorted by relevance descending
            root: Repository root (used for log messages only; records hold absolute paths)
            max_tokens: Token budget
            component_path: Optional component sub-path shown in the header
            method: Strategy recorded in the result

        Returns:
            The assembled `PackageResult`. Running out of budget is not an error; it
            simply yields fewer files.
        """
        max_chars = max_tokens * self.chars_per_token
        header = self.render_header(files, component_path)
        used = self.framing_chars(files, component_path)

        parts = [header]
        included = 0
        total_bytes = 0
        skipped_budget = 0

        for file in self.order_for_inclusion(files):
            estimate = self.estimate_file_chars(file)
            if used + estimate > max_chars:
                skipped_budget += 1
                logger.debug(
                    "Skipping %s: needs %d chars, %d remaining",
                    file.relative_path,
                    estimate,
                    max(0, max_chars - used),
                )
                continue

            if is_binary_file(file.path):
                logger.debug("Skipping binary file: %s", file.relative_path)
                continue
            try:
                content, _ = read_file_safe(file.path)
            except OSError as e:
                logger.debug("Error reading file %s: %s", file.path, e)
                continue

            parts.append(render_file_block(file.relative_path, content))
            used += estimate
            included += 1
            total_bytes += file.size_bytes

        if skipped_budget:
            logger.info(
                "Included %d files; %d skipped to stay within %d tokens (%s)",
                included,
                skipped_budget,
                max_tokens,
                root,
            )

        body = "".join(parts)
        summary = render_summary(included, len(files), self._final_tokens(body, included, files))
        text = body + summary

        return PackageResult(
            bundle_text=text,
            file_count=included,
            total_bytes=total_bytes,
            estimated_tokens=estimate_tokens(text, self.chars_per_token),
            method_used=method,
            total_candidates=len(files),
        )

    def _final_tokens(self, body: str, included: int, files: Sequence[FileRecord]) -> int:
        # The summary states the token count of the finished bundle, itself included
        tokens = estimate_tokens(body, self.chars_per_token)
        for _ in range(3):
            summary = render_summary(included, len(files), tokens)
            updated = math.ceil((len(body) + len(summary)) / self.chars_per_token)
            if updated == tokens:
                break
            tokens = updated
        return tokens
