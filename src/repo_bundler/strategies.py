"""
Packaging strategies.

Three interchangeable ways to produce a bundle, tried in order by the
orchestrator: a plugin registered by another package, the external `repomix`
command-line tool, and the in-process scanner/scorer/packer pipeline.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from importlib.metadata import EntryPoint, entry_points
from pathlib import Path
from typing import Protocol

from .config import (
    AnalysisType,
    BundlerConfig,
    PackageResult,
    PackagingMethod,
)
from .errors import InvalidRootError, StrategyError, StrategyUnavailableError
from .ignore import IgnoreSpec
from .keywords import extract_keywords
from .packer import BundleAssembler, count_file_blocks
from .scanner import scan_directory
from .scorer import RelevanceScorer
from .utils import estimate_tokens, retry_with_backoff

logger = logging.getLogger(__name__)

PLUGIN_ENTRY_POINT_GROUP = "repo_bundler.packagers"
CLI_OUTPUT_NAME = "repomix-output.xml"


@dataclass
class PackageRequest:
    """Everything a strategy needs for one packaging run.

    Attributes:
        root: Resolved repository root.
        scan_root: Directory actually packaged (the component directory, or root).
        ignore_spec: Merged ignore patterns shared by every strategy.
        work_dir: Private temporary directory owned by this run.
        config: Effective configuration.
        query: Natural-language query, if any.
        analysis_type: Analysis-type hint, if any.
        max_tokens: Token budget.
        include: Include patterns (empty means the default allow-list).
        exclude: Caller exclude patterns.
        component_path: Component sub-path relative to root, if any.
        ignore_file: Path of the repository ignore file, if present.
    """

    root: Path
    scan_root: Path
    ignore_spec: IgnoreSpec
    work_dir: Path
    config: BundlerConfig
    query: str | None = None
    analysis_type: AnalysisType | None = None
    max_tokens: int = 0
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    component_path: str | None = None
    ignore_file: Path | None = None


class PackagingStrategy(Protocol):
    """A way of turning a `PackageRequest` into a `PackageResult`."""

    method: PackagingMethod

    def run(self, request: PackageRequest) -> PackageResult: ...


def result_from_text(text: str, method: PackagingMethod, chars_per_token: int) -> PackageResult:
    """Build a `PackageResult` from bundle text produced outside the packer.

    Counts are derived from the text itself; nothing reported by an external
    tool is trusted.
    """
    return PackageResult(
        bundle_text=text,
        file_count=count_file_blocks(text),
        total_bytes=len(text.encode("utf-8")),
        estimated_tokens=estimate_tokens(text, chars_per_token),
        method_used=method,
    )


def check_budget(result: PackageResult, max_tokens: int) -> PackageResult:
    """Reject a bundle whose estimate exceeds `max_tokens`.

    Raises:
        StrategyError: So the orchestrator moves on to the next strategy.
    """
    if max_tokens and result.estimated_tokens > max_tokens:
        raise StrategyError(
            f"{result.method_used.value} bundle exceeds budget: "
            f"{result.estimated_tokens} > {max_tokens} tokens"
        )
    return result


PluginCallable = Callable[[PackageRequest], str]


def _entry_points(group: str) -> list[EntryPoint]:
    eps = entry_points()
    if hasattr(eps, "select"):
        return list(eps.select(group=group))
    return list(eps.get(group, ()))


class PluginStrategy:
    """Delegates packaging to a plugin callable.

    The callable is either injected directly or loaded from the first entry
    point registered under `repo_bundler.packagers`. It receives the request
    and returns bundle text.
    """

    method = PackagingMethod.PLUGIN

    def __init__(self, plugin: PluginCallable | None = None, group: str = PLUGIN_ENTRY_POINT_GROUP):
        self._plugin = plugin
        self.group = group

    def resolve(self) -> PluginCallable:
        if self._plugin is not None:
            return self._plugin
        eps = _entry_points(self.group)
        if not eps:
            raise StrategyUnavailableError(f"No packaging plugin registered in '{self.group}'")
        entry = eps[0]
        try:
            plugin = entry.load()
        except Exception as e:
            raise StrategyUnavailableError(f"Failed to load plugin {entry.name}: {e}", e) from e
        if not callable(plugin):
            raise StrategyUnavailableError(f"Plugin {entry.name} is not callable")
        logger.debug("Using packaging plugin %s", entry.name)
        return plugin

    def run(self, request: PackageRequest) -> PackageResult:
        plugin = self.resolve()
        try:
            text = plugin(request)
        except (InvalidRootError, StrategyError):
            raise
        except Exception as e:
            raise StrategyError(f"Plugin packaging failed: {e}", e) from e
        if not isinstance(text, str) or not text.strip():
            raise StrategyError("Plugin returned no bundle text")
        result = result_from_text(text, self.method, request.config.chars_per_token)
        return check_budget(result, request.max_tokens)


class RepomixCliStrategy:
    """Runs the external `repomix` tool and reads back its XML output."""

    method = PackagingMethod.CLI

    def __init__(self, command: list[str] | None = None, timeout: float | None = None):
        self.command = command
        self.timeout = timeout

    def build_command(self, request: PackageRequest, output_path: Path) -> list[str]:
        cmd = [
            *(self.command or request.config.cli_command),
            str(request.scan_root),
            "-o",
            str(output_path),
            "--style",
            "xml",
        ]
        if request.max_tokens:
            cmd += ["--max-tokens", str(request.max_tokens)]
        if request.include:
            cmd += ["--include", ",".join(request.include)]
        if request.exclude:
            cmd += ["--ignore", ",".join(request.exclude)]
        if request.ignore_file is not None:
            cmd += ["--ignore-file", str(request.ignore_file)]
        return cmd

    def run(self, request: PackageRequest) -> PackageResult:
        output_path = request.work_dir / CLI_OUTPUT_NAME
        cmd = self.build_command(request, output_path)
        timeout = self.timeout if self.timeout is not None else request.config.cli_timeout_seconds
        logger.debug("Running: %s", " ".join(cmd))

        try:
            proc = subprocess.run(
                cmd,
                cwd=str(request.root),
                check=False,
                text=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise StrategyUnavailableError(f"Missing tool: {cmd[0]}", e) from e
        except subprocess.TimeoutExpired as e:
            raise StrategyError(f"{cmd[0]} timed out after {timeout:g}s", e) from e

        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip().splitlines()
            tail = detail[-1] if detail else "no output"
            raise StrategyError(f"{cmd[0]} exited with code {proc.returncode}: {tail}")

        if not output_path.is_file():
            raise StrategyError(f"{cmd[0]} produced no output file")
        text = output_path.read_text(encoding="utf-8", errors="replace")
        if not text.strip():
            raise StrategyError(f"{cmd[0]} produced an empty bundle")

        result = result_from_text(text, self.method, request.config.chars_per_token)
        return check_budget(result, request.max_tokens)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, OSError)


class FallbackStrategy:
    """In-process scan, rank and assemble, retried on transient I/O errors."""

    method = PackagingMethod.FALLBACK

    def package(self, request: PackageRequest) -> PackageResult:
        """Run the pipeline once, without retries."""
        config = request.config
        scan = scan_directory(
            request.scan_root,
            ignore_spec=request.ignore_spec,
            limits=config.limits,
            include_patterns=request.include,
            respect_gitignore=config.respect_gitignore,
            base_path=request.root,
        )
        if scan.truncated:
            logger.warning(
                "Scan of %s hit a resource ceiling; results are partial", request.scan_root
            )

        keywords = extract_keywords(request.query) if request.query else []
        ranked = RelevanceScorer(config.weights).rank_files(
            scan.files, keywords, request.analysis_type
        )

        assembler = BundleAssembler(config.chars_per_token, config.per_file_overhead_tokens)
        return assembler.assemble(
            ranked,
            request.root,
            request.max_tokens,
            component_path=request.component_path,
            method=self.method,
        )

    def run(self, request: PackageRequest) -> PackageResult:
        return retry_with_backoff(
            lambda: self.package(request),
            attempts=request.config.retry_attempts,
            initial_delay=request.config.retry_initial_delay,
            should_retry=_is_transient,
            label="fallback",
        )


def default_strategies() -> list[PackagingStrategy]:
    """The standard fallback chain: plugin, then CLI, then in-process."""
    return [PluginStrategy(), RepomixCliStrategy(), FallbackStrategy()]
