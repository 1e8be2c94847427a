"""
Project configuration files for repo-bundler.

A repository may carry one of `.repo-bundler.toml`, `repo-bundler.toml`,
`.repo-bundler.yml` or `.repo-bundler.yaml` at its root. Values may sit at the
top level or under a `[repo-bundler]` table. Command-line flags take
precedence over anything read here.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .config import BundlerConfig, ScanLimits, ScoringWeights

logger = logging.getLogger(__name__)

# tomllib joined the standard library in 3.11; older interpreters use tomli.
tomllib: Any
try:
    tomllib = importlib.import_module("tomllib")
except ImportError:
    tomllib = importlib.import_module("tomli")


# First match wins
CONFIG_FILE_NAMES = [
    ".repo-bundler.toml",
    "repo-bundler.toml",
    ".repo-bundler.yml",
    ".repo-bundler.yaml",
]

SECTION_NAME = "repo-bundler"

_INT_KEYS = ("max_tokens", "chars_per_token", "per_file_overhead_tokens", "retry_attempts")
_FLOAT_KEYS = ("cli_timeout_seconds", "retry_initial_delay")
_LIMIT_KEYS = ("max_files", "max_depth", "max_file_bytes", "max_total_bytes")


@dataclass
class ProjectConfig:
    """Values read from a project config file.

    `None` means the file did not set the key, so the command line or the
    built-in default decides.
    """

    # Token budget
    max_tokens: int | None = None
    chars_per_token: int | None = None
    per_file_overhead_tokens: int | None = None

    # Scan ceilings
    max_files: int | None = None
    max_depth: int | None = None
    max_file_bytes: int | None = None
    max_total_bytes: int | None = None

    # File filtering
    include: list[str] | None = None
    exclude: list[str] | None = None
    respect_gitignore: bool | None = None

    # Strategy behaviour
    cli_timeout_seconds: float | None = None
    retry_attempts: int | None = None
    retry_initial_delay: float | None = None

    # Scoring weight overrides ([scoring] table)
    scoring: dict[str, Any] = field(default_factory=dict)

    # Where the values came from
    _config_file: Path | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert the values that were set to a JSON-serializable dictionary.

        Output is deterministic: keys are sorted.
        """
        result: dict[str, Any] = {}
        for key in (*_INT_KEYS, *_FLOAT_KEYS, *_LIMIT_KEYS, "respect_gitignore"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.include is not None:
            result["include"] = list(self.include)
        if self.exclude is not None:
            result["exclude"] = list(self.exclude)
        if self.scoring:
            result["scoring"] = dict(sorted(self.scoring.items()))
        if self._config_file is not None:
            result["_loaded_from"] = str(self._config_file)
        return dict(sorted(result.items()))


def find_config_file(repo_root: Path) -> Path | None:
    """Return the first config file present in `repo_root`, if any."""
    for name in CONFIG_FILE_NAMES:
        candidate = repo_root / name
        if candidate.is_file():
            return candidate
    return None


def _unwrap_section(data: dict[str, Any]) -> dict[str, Any]:
    section = data.get(SECTION_NAME)
    if isinstance(section, dict):
        return dict(section)
    return data


def _read_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as fh:
        return _unwrap_section(tomllib.load(fh))


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as fh:
        loaded = yaml.safe_load(fh)
    # An empty document or a bare scalar configures nothing
    if not isinstance(loaded, dict):
        return {}
    return _unwrap_section(dict(loaded))


_READERS = {".toml": _read_toml, ".yml": _read_yaml, ".yaml": _read_yaml}


def _normalize_patterns(patterns: Any) -> list[str] | None:
    """Normalize pattern input to an ordered, de-duplicated list.

    Args:
        patterns: Patterns from config/CLI (comma-separated string, list, or None).

    Returns:
        A list of patterns, or None if unset/invalid.
    """
    if patterns is None:
        return None

    if isinstance(patterns, str):
        patterns = patterns.split(",")

    if not isinstance(patterns, (list, tuple, set)):
        return None

    result = [str(p).strip() for p in patterns if p is not None and str(p).strip()]
    return list(dict.fromkeys(result)) or None


def load_config(repo_root: Path, config_path: Path | None = None) -> ProjectConfig:
    """Read the project config for `repo_root`.

    Args:
        repo_root: Repository root searched for `CONFIG_FILE_NAMES`.
        config_path: Use this file instead of searching.

    Returns:
        The parsed `ProjectConfig`. Missing, unparsable or invalid files are
        logged and produce an empty config rather than an error.
    """
    if config_path is None:
        config_path = find_config_file(repo_root)

    if config_path is None or not config_path.is_file():
        return ProjectConfig()

    reader = _READERS.get(config_path.suffix.lower())
    if reader is None:
        logger.warning("Unsupported config file type: %s", config_path)
        return ProjectConfig()
    try:
        data = reader(config_path)
    except Exception as e:
        logger.warning("Ignoring unreadable config file %s: %s", config_path, e)
        return ProjectConfig()

    config = ProjectConfig(_config_file=config_path)
    try:
        for key in (*_INT_KEYS, *_LIMIT_KEYS):
            if key in data:
                setattr(config, key, int(data[key]))
        for key in _FLOAT_KEYS:
            if key in data:
                setattr(config, key, float(data[key]))
    except (TypeError, ValueError) as e:
        logger.warning("Ignoring invalid value in %s: %s", config_path, e)
        return ProjectConfig()

    if "respect_gitignore" in data:
        config.respect_gitignore = bool(data["respect_gitignore"])
    config.include = _normalize_patterns(data.get("include"))
    config.exclude = _normalize_patterns(data.get("exclude"))

    scoring = data.get("scoring") or data.get("weights") or {}
    if isinstance(scoring, dict):
        config.scoring = dict(scoring)

    logger.debug("Loaded config from %s", config_path)
    return config


def merge_cli_with_config(
    config: ProjectConfig,
    *,
    max_tokens: int | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    no_gitignore: bool = False,
    base: BundlerConfig | None = None,
) -> BundlerConfig:
    """Combine file values and command-line flags into a `BundlerConfig`.

    Flags win over the file, and the file wins over `base`.

    Args:
        config: Values read by `load_config`.
        max_tokens: Token budget flag.
        include: CLI include patterns (optional, replace the file's).
        exclude: CLI exclude patterns (optional, added after the file's).
        no_gitignore: Stop honouring `.gitignore` files.
        base: Defaults to start from (a fresh `BundlerConfig` when None).

    Returns:
        The effective `BundlerConfig`.

    Raises:
        ValueError: If the merged values are invalid (e.g. a non-positive budget).
    """
    base = base or BundlerConfig()

    def pick(cli_value: Any, file_value: Any, default: Any) -> Any:
        if cli_value is not None:
            return cli_value
        if file_value is not None:
            return file_value
        return default

    limits = ScanLimits(
        max_files=pick(None, config.max_files, base.limits.max_files),
        max_depth=pick(None, config.max_depth, base.limits.max_depth),
        max_file_bytes=pick(None, config.max_file_bytes, base.limits.max_file_bytes),
        max_total_bytes=pick(None, config.max_total_bytes, base.limits.max_total_bytes),
    )

    weights = base.weights
    if config.scoring:
        weights = ScoringWeights.from_dict({**base.weights.to_dict(), **config.scoring})

    excludes = [*(config.exclude or base.exclude), *(exclude or [])]
    respect_gitignore = (
        False if no_gitignore else pick(None, config.respect_gitignore, base.respect_gitignore)
    )

    return replace(
        base,
        max_tokens=pick(max_tokens, config.max_tokens, base.max_tokens),
        chars_per_token=pick(None, config.chars_per_token, base.chars_per_token),
        per_file_overhead_tokens=pick(
            None, config.per_file_overhead_tokens, base.per_file_overhead_tokens
        ),
        limits=limits,
        weights=weights,
        include=list(pick(include or None, config.include, base.include)),
        exclude=list(dict.fromkeys(excludes)),
        respect_gitignore=respect_gitignore,
        cli_timeout_seconds=pick(None, config.cli_timeout_seconds, base.cli_timeout_seconds),
        retry_attempts=pick(None, config.retry_attempts, base.retry_attempts),
        retry_initial_delay=pick(None, config.retry_initial_delay, base.retry_initial_delay),
    )
