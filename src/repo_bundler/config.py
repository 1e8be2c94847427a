"""
Configuration models and defaults for repo-bundler.

Holds the data model shared by every packaging strategy (`FileRecord`,
`ScanResult`, `PackageResult`), the tunable limits and scoring weights, and the
static tables used by the scanner and scorer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .utils import DEFAULT_CHARS_PER_TOKEN

# Per-repository ignore file, one pattern per line
IGNORE_FILE_NAME = ".repomixignore"

DEFAULT_MAX_TOKENS = 100_000
DEFAULT_PER_FILE_OVERHEAD_TOKENS = 100


class AnalysisType(str, Enum):
    """Analysis-type hint supplied by the caller."""

    GENERAL = "general"
    SECURITY = "security"
    PERFORMANCE = "performance"
    ARCHITECTURE = "architecture"
    DOCUMENTATION = "documentation"
    TESTING = "testing"


class PackagingMethod(str, Enum):
    """Packaging strategies, in the order they are attempted."""

    PLUGIN = "plugin"
    CLI = "cli"
    FALLBACK = "fallback"


class StrategyState(str, Enum):
    """Lifecycle of a single strategy attempt."""

    NOT_ATTEMPTED = "not_attempted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _anywhere(patterns: list[str]) -> list[str]:
    """Expand `**/x` patterns so they also match `x` at the repository root."""
    expanded: list[str] = []
    for pattern in patterns:
        expanded.append(pattern)
        if pattern.startswith("**/"):
            expanded.append(pattern[3:])
    return expanded


# Default patterns to ignore in repositories
DEFAULT_IGNORE_PATTERNS: list[str] = _anywhere([
    # Dependencies and package management
    "**/node_modules/**",
    "**/.yarn/**",
    "**/vendor/**",
    "**/bower_components/**",
    "**/.venv/**",
    "**/venv/**",
    "**/__pycache__/**",
    "**/.tox/**",
    # Build artifacts and output
    "**/dist/**",
    "**/build/**",
    "**/out/**",
    "**/target/**",
    "**/bin/**",
    "**/obj/**",
    "**/.next/**",
    "**/.nuxt/**",
    "**/.svelte-kit/**",
    # Version control
    "**/.git/**",
    "**/.hg/**",
    "**/.svn/**",
    "**/.terraform/**",
    # Test coverage and caches
    "**/coverage/**",
    "**/.cache/**",
    "**/.pytest_cache/**",
    "**/.mypy_cache/**",
    "**/.ruff_cache/**",
    # Lock files and local environment
    "**/*.lock",
    "**/*.lockb",
    "**/package-lock.json",
    "**/pnpm-lock.yaml",
    "**/go.sum",
    "**/*.env",
    "**/*.env.local",
    "**/*.tsbuildinfo",
    # Editor and IDE files
    "**/.idea/**",
    "**/.vscode/**",
    "**/.vs/**",
    # System files
    "**/.DS_Store",
    "**/Thumbs.db",
    # Minified and generated files
    "**/*.min.js",
    "**/*.min.css",
    "**/*.map",
    # Binary and media files
    "**/*.jpg",
    "**/*.jpeg",
    "**/*.png",
    "**/*.gif",
    "**/*.bmp",
    "**/*.ico",
    "**/*.webp",
    "**/*.pdf",
    "**/*.zip",
    "**/*.tar",
    "**/*.gz",
    "**/*.7z",
    "**/*.mp3",
    "**/*.mp4",
    "**/*.wav",
    "**/*.exe",
    "**/*.dll",
    "**/*.so",
    "**/*.o",
    "**/*.class",
    "**/*.pyc",
    "**/*.pyo",
])

# Default file extensions to include when no include patterns are given
DEFAULT_INCLUDE_EXTENSIONS: set[str] = {
    # Python
    ".py", ".pyi",
    # JavaScript/TypeScript
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
    # Compiled languages
    ".go", ".java", ".kt", ".rs", ".c", ".h", ".cpp", ".hpp", ".cc", ".cs", ".swift", ".scala",
    # Scripting
    ".rb", ".php", ".sh", ".bash",
    # Documentation
    ".md", ".rst", ".txt",
    # Config
    ".yaml", ".yml", ".toml", ".json", ".ini", ".cfg",
    # Web
    ".html", ".css", ".scss", ".vue", ".svelte",
    # Misc
    ".sql", ".graphql", ".proto",
}

KNOWN_EXTENSIONLESS: set[str] = {
    "makefile", "dockerfile", "rakefile", "gemfile", "procfile", "jenkinsfile",
}

# Manifests, readmes and entry points that are always worth including
CRITICAL_FILE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(^|/)package\.json$",
        r"(^|/)readme\.md$",
        r"(^|/)\.env\.example$",
        r"(^|/)tsconfig\.json$",
        r"(^|/)manifest\.json$",
        r"(^|/)config\.(js|ts)$",
        r"(^|/)index\.(js|ts)$",
        r"(^|/)main\.(js|ts|py)$",
        r"(^|/)__main__\.py$",
        r"(^|/)pyproject\.toml$",
        r"(^|/)setup\.py$",
        r"(^|/)cargo\.toml$",
        r"(^|/)go\.mod$",
    )
]

# Path fragments that signal affinity with an analysis type
ANALYSIS_TYPE_PATTERNS: dict[AnalysisType, list[re.Pattern[str]]] = {
    analysis_type: [re.compile(p, re.IGNORECASE) for p in patterns]
    for analysis_type, patterns in {
        AnalysisType.SECURITY: [
            r"auth", r"login", r"password", r"crypt", r"secur",
            r"token", r"permission", r"access", r"validat",
        ],
        AnalysisType.PERFORMANCE: [
            r"perf", r"optimi", r"cache", r"speed", r"benchmark",
            r"profil", r"memory", r"cpu", r"efficient",
        ],
        AnalysisType.ARCHITECTURE: [
            r"component", r"service", r"model", r"controller", r"router",
            r"manager", r"factory", r"provider", r"config", r"setup",
        ],
        AnalysisType.DOCUMENTATION: [
            r"doc", r"readme", r"manual", r"guide", r"tutorial",
            r"example", r"sample", r"demo", r"usage", r"api",
        ],
        AnalysisType.TESTING: [
            r"test", r"spec", r"mock", r"stub", r"fixture",
            r"assert", r"expect", r"should", r"case", r"scenario",
        ],
    }.items()
}

SOURCE_EXTENSIONS: set[str] = {
    ".js", ".ts", ".jsx", ".tsx", ".py", ".java", ".rb", ".go", ".rs", ".c", ".cpp",
    ".h", ".hpp", ".cs", ".kt", ".swift", ".php", ".scala",
}

DOC_CONFIG_EXTENSIONS: set[str] = {".json", ".yaml", ".yml", ".md", ".toml"}


def is_critical_file(relative_path: str) -> bool:
    """Return whether a repo-relative path names a critical file."""
    return any(pattern.search(relative_path) for pattern in CRITICAL_FILE_PATTERNS)


@dataclass
class ScanLimits:
    """Resource ceilings enforced while scanning.

    Attributes:
        max_files: Stop traversal once this many files have been collected.
        max_depth: Do not descend into directories deeper than this.
        max_file_bytes: Skip individual files larger than this.
        max_total_bytes: Stop traversal once collected files reach this total.
    """

    max_files: int = 5000
    max_depth: int = 10
    max_file_bytes: int = 5 * 1024 * 1024  # 5 MB
    max_total_bytes: int = 100 * 1024 * 1024  # 100 MB


@dataclass
class ScoringWeights:
    """Weights for the additive relevance score.

    Unknown keys in config files are ignored for forwards compatibility.
    """

    path_exact: float = 30.0
    path_partial: float = 15.0
    content_per_occurrence: float = 2.0
    proximity_weight: float = 5.0
    proximity_decay: float = 50.0
    proximity_cutoff: int = 100
    analysis_type_bonus: float = 40.0
    critical_bonus: float = 50.0
    source_bonus: float = 20.0
    doc_config_bonus: float = 15.0
    small_file_bytes: int = 1024
    small_file_bonus: float = 5.0
    large_file_bytes: int = 10_000
    large_file_step: int = 10_000
    large_file_max_penalty: float = 30.0
    huge_file_bytes: int = 100_000
    huge_file_step: int = 20_000
    depth_penalty: float = 2.0
    max_content_bytes: int = 256 * 1024

    def to_dict(self) -> dict[str, float]:
        """Convert weights to a plain dictionary."""
        return {name: getattr(self, name) for name in self.__dataclass_fields__}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoringWeights:
        """Create weights from config data, overriding only known numeric fields."""
        weights = cls()
        for key, value in data.items():
            if key in cls.__dataclass_fields__ and isinstance(value, (int, float)):
                current = getattr(weights, key)
                setattr(weights, key, type(current)(value))
        return weights


@dataclass
class BundlerConfig:
    """Main configuration for a `Packager`.

    Attributes:
        max_tokens: Default token budget for a bundle.
        chars_per_token: Fixed divisor used for every token estimate.
        per_file_overhead_tokens: Formatting slack reserved per included file.
        limits: Scan ceilings.
        weights: Relevance scoring weights.
        include: Default include patterns (empty means the extension allow-list).
        exclude: Extra exclude patterns added ahead of the built-in defaults.
        respect_gitignore: Whether the in-process scanner honours `.gitignore`.
        cli_command: Command used by the CLI strategy.
        cli_timeout_seconds: Timeout for the external CLI tool.
        retry_attempts: Attempts for the in-process strategy on transient I/O errors.
        retry_initial_delay: Initial backoff delay in seconds.
    """

    max_tokens: int = DEFAULT_MAX_TOKENS
    chars_per_token: int = DEFAULT_CHARS_PER_TOKEN
    per_file_overhead_tokens: int = DEFAULT_PER_FILE_OVERHEAD_TOKENS
    limits: ScanLimits = field(default_factory=ScanLimits)
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    respect_gitignore: bool = True
    cli_command: list[str] = field(default_factory=lambda: ["npx", "-y", "repomix"])
    cli_timeout_seconds: float = 120.0
    retry_attempts: int = 3
    retry_initial_delay: float = 0.5

    def __post_init__(self) -> None:
        """Validate numeric invariants.

        Raises:
            ValueError: If a budget or divisor is not positive.
        """
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if self.chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        if self.per_file_overhead_tokens < 0:
            raise ValueError("per_file_overhead_tokens must not be negative")


@dataclass
class FileRecord:
    """A file discovered during a scan.

    Attributes:
        path: Absolute path to the file on disk.
        relative_path: Root-relative path using forward slashes.
        size_bytes: File size in bytes.
        relevance_score: Score assigned once per packaging run (None until ranked).
    """

    path: Path
    relative_path: str
    size_bytes: int
    relevance_score: float | None = None

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    @property
    def depth(self) -> int:
        """Number of `/` separators in the relative path."""
        return self.relative_path.count("/")

    @property
    def is_critical(self) -> bool:
        return is_critical_file(self.relative_path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.relative_path,
            "relevance_score": (
                round(self.relevance_score, 3) if self.relevance_score is not None else None
            ),
            "size_bytes": self.size_bytes,
        }


@dataclass
class ScanResult:
    """Result of scanning a directory tree.

    Attributes:
        files: Collected files, in breadth-first discovery order.
        directories: Root-relative paths of visited directories.
        total_bytes: Sum of `size_bytes` over `files`.
        truncated: True when a ceiling stopped the traversal early.
        files_skipped_ignored: Files excluded by ignore patterns or `.gitignore`.
        files_skipped_size: Files larger than the per-file ceiling.
        files_skipped_include: Files not matching the include filter.
        directories_pruned: Directories excluded before descending.
        unreadable: Paths that could not be listed or stat'ed.
    """

    files: list[FileRecord] = field(default_factory=list)
    directories: list[str] = field(default_factory=list)
    total_bytes: int = 0
    truncated: bool = False
    files_skipped_ignored: int = 0
    files_skipped_size: int = 0
    files_skipped_include: int = 0
    directories_pruned: int = 0
    unreadable: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)


@dataclass
class StrategyAttempt:
    """Audit record for one packaging strategy."""

    method: PackagingMethod
    state: StrategyState = StrategyState.NOT_ATTEMPTED
    error: str | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method.value,
            "state": self.state.value,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class PackageResult:
    """Uniform result returned by every packaging strategy.

    `estimated_tokens` is always derived from `len(bundle_text)` with the
    configured characters-per-token divisor.

    Attributes:
        bundle_text: The assembled bundle.
        file_count: Number of files included in the bundle.
        total_bytes: Sum of the sizes of the included files.
        estimated_tokens: Character-based token estimate for `bundle_text`.
        method_used: Strategy that produced the bundle.
        fallback_error: Message of the last failed higher-priority strategy.
        total_candidates: Number of candidate files considered (if known).
        output_path: Where the bundle was written, if it was written.
        attempts: Per-strategy audit trail.
    """

    bundle_text: str
    file_count: int
    total_bytes: int
    estimated_tokens: int
    method_used: PackagingMethod
    fallback_error: str | None = None
    total_candidates: int | None = None
    output_path: Path | None = None
    attempts: list[StrategyAttempt] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary (without the bundle text)."""
        return {
            "attempts": [a.to_dict() for a in self.attempts],
            "estimated_tokens": self.estimated_tokens,
            "fallback_error": self.fallback_error,
            "file_count": self.file_count,
            "method_used": self.method_used.value,
            "output_path": str(self.output_path) if self.output_path else None,
            "total_bytes": self.total_bytes,
            "total_candidates": self.total_candidates,
        }
