"""
Relevance scoring for candidate files.

The score is a sum of independent signals: keyword matches in the path and
content, a proximity bonus for keywords that occur close together, analysis-type
affinity, a critical-file bonus, and type/size/depth shaping. It is clamped at
zero.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Sequence
from itertools import combinations

from .config import (
    ANALYSIS_TYPE_PATTERNS,
    DOC_CONFIG_EXTENSIONS,
    SOURCE_EXTENSIONS,
    AnalysisType,
    FileRecord,
    ScoringWeights,
    is_critical_file,
)
from .utils import read_file_safe

logger = logging.getLogger(__name__)

ContentReader = Callable[[FileRecord], "str | None"]


def keyword_positions(content: str, keyword: str) -> list[int]:
    """Start offsets of every case-insensitive, non-overlapping occurrence of `keyword`."""
    if not keyword:
        return []
    pattern = re.compile(re.escape(keyword), re.IGNORECASE)
    return [m.start() for m in pattern.finditer(content)]


def min_distance(a: Sequence[int], b: Sequence[int]) -> int:
    """Minimum absolute distance between two sorted position lists."""
    i = j = 0
    best = math.inf
    while i < len(a) and j < len(b):
        d = a[i] - b[j]
        best = min(best, abs(d))
        if d < 0:
            i += 1
        else:
            j += 1
    return int(best) if best != math.inf else -1


def resolve_analysis_type(value: AnalysisType | str | None) -> AnalysisType | None:
    """Coerce a hint string to `AnalysisType`; unknown values yield None."""
    if value is None or isinstance(value, AnalysisType):
        return value
    try:
        return AnalysisType(value.strip().lower())
    except ValueError:
        logger.debug("Unknown analysis type hint: %s", value)
        return None


class RelevanceScorer:
    """
    Additive heuristic scorer.

    All weights come from `ScoringWeights` so they can be tuned from a project
    config file.
    """

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights()

    def path_score(self, relative_path: str, keywords: Sequence[str]) -> float:
        """Score keyword matches against the path.

        An exact `/`-component match (or a component starting with `keyword.`)
        beats a substring match anywhere in the path.
        """
        path = relative_path.lower()
        components = path.split("/")
        score = 0.0
        for keyword in keywords:
            kw = keyword.lower()
            if any(c == kw or c.startswith(kw + ".") for c in components):
                score += self.weights.path_exact
            elif kw in path:
                score += self.weights.path_partial
        return score

    def content_score(self, content: str, keywords: Sequence[str]) -> float:
        """Score keyword occurrences in the content, plus the proximity bonus."""
        positions: dict[str, list[int]] = {}
        score = 0.0
        for keyword in dict.fromkeys(k.lower() for k in keywords):
            found = keyword_positions(content, keyword)
            if found:
                positions[keyword] = found
                score += len(found) * self.weights.content_per_occurrence
        return score + self.proximity_bonus(positions)

    def proximity_bonus(self, positions: dict[str, list[int]]) -> float:
        """Bonus for pairs of keywords that occur close to each other.

        For each pair, the minimum distance `d` between occurrences earns
        `w * (exp(-d / decay) - exp(-cutoff / decay))` when `d < cutoff`. The bonus
        is strictly decreasing in `d` and reaches zero at the cutoff.
        """
        if len(positions) < 2:
            return 0.0
        w = self.weights
        floor = math.exp(-w.proximity_cutoff / w.proximity_decay)
        bonus = 0.0
        for a, b in combinations(positions.values(), 2):
            d = min_distance(a, b)
            if 0 <= d < w.proximity_cutoff:
                bonus += w.proximity_weight * (math.exp(-d / w.proximity_decay) - floor)
        return bonus

    def shape_score(self, file: FileRecord) -> float:
        """Type, size and depth shaping independent of the query."""
        w = self.weights
        score = 0.0

        if file.extension in SOURCE_EXTENSIONS:
            score += w.source_bonus
        elif file.extension in DOC_CONFIG_EXTENSIONS:
            score += w.doc_config_bonus

        size = file.size_bytes
        if size < w.small_file_bytes:
            score += w.small_file_bonus
        if size > w.large_file_bytes:
            score -= min(w.large_file_max_penalty, size // w.large_file_step)
        if size > w.huge_file_bytes:
            score -= (size - w.huge_file_bytes) // w.huge_file_step

        score -= w.depth_penalty * file.depth
        return score

    def score(
        self,
        file: FileRecord,
        content: str | None,
        keywords: Sequence[str],
        analysis_type: AnalysisType | str | None = None,
    ) -> float:
        """
        Compute the relevance score of one file.

        Args:
            file: File to score
            content: File content, or None when unavailable
            keywords: Keywords extracted from the query
            analysis_type: Optional analysis-type hint

        Returns:
            Non-negative score
        """
        score = self.path_score(file.relative_path, keywords)

        if content and keywords:
            score += self.content_score(content, keywords)

        hint = resolve_analysis_type(analysis_type)
        patterns = ANALYSIS_TYPE_PATTERNS.get(hint) if hint else None
        if patterns and any(p.search(file.relative_path) for p in patterns):
            score += self.weights.analysis_type_bonus

        if is_critical_file(file.relative_path):
            score += self.weights.critical_bonus

        score += self.shape_score(file)
        return max(0.0, score)

    def read_content(self, file: FileRecord) -> str | None:
        """Read content for scoring, skipping files above the content cap."""
        if file.size_bytes > self.weights.max_content_bytes:
            return None
        try:
            content, _ = read_file_safe(file.path)
        except OSError as e:
            logger.debug("Cannot read %s for scoring: %s", file.relative_path, e)
            return None
        return content

    def rank_files(
        self,
        files: Sequence[FileRecord],
        keywords: Sequence[str],
        analysis_type: AnalysisType | str | None = None,
        read_content: ContentReader | None = None,
    ) -> list[FileRecord]:
        """
        Score every file and return them sorted by score descending.

        Ties are broken by relative path so the order is deterministic. Content is
        only read when there are keywords to look for, one file at a time.

        Args:
            files: Candidate files (their `relevance_score` is assigned in place)
            keywords: Keywords extracted from the query
            analysis_type: Optional analysis-type hint
            read_content: Override for how content is loaded

        Returns:
            New list of the same records, highest score first
        """
        reader = read_content or self.read_content
        for file in files:
            content = reader(file) if keywords else None
            file.relevance_score = self.score(file, content, keywords, analysis_type)
        ranked = sorted(files, key=lambda f: (-(f.relevance_score or 0.0), f.relative_path))
        if ranked:
            logger.debug(
                "Top ranked files: %s",
                [f"{f.relative_path} ({f.relevance_score:.2f})" for f in ranked[:10]],
            )
        return ranked
