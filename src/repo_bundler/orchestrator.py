"""
Packaging orchestrator.

Drives the fallback chain `PLUGIN -> CLI -> FALLBACK`. Strategies run strictly
in order; the first success wins, a failure is logged and recorded before the
next strategy is tried, and only when every strategy has failed does the caller
see an error.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
from collections.abc import Sequence
from pathlib import Path

from .config import (
    IGNORE_FILE_NAME,
    AnalysisType,
    BundlerConfig,
    PackageResult,
    StrategyAttempt,
    StrategyState,
)
from .errors import AllStrategiesFailedError, InvalidRootError
from .ignore import IgnoreSpec, load_ignore_file
from .scanner import validate_root
from .scorer import resolve_analysis_type
from .strategies import PackageRequest, PackagingStrategy, check_budget, default_strategies

logger = logging.getLogger(__name__)

BUNDLE_FILE_NAME = "bundle.xml"


class Packager:
    """
    Packages a repository into a bundle using an ordered list of strategies.

    A `Packager` holds no per-run state, so one instance can serve concurrent
    runs: every call builds its own request, ignore spec and temporary directory.
    """

    def __init__(
        self,
        config: BundlerConfig | None = None,
        strategies: Sequence[PackagingStrategy] | None = None,
    ):
        """
        Initialize the packager.

        Args:
            config: Effective configuration (defaults when None)
            strategies: Strategies in priority order (plugin, CLI, in-process by default)
        """
        self.config = config or BundlerConfig()
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        if not self.strategies:
            raise ValueError("At least one packaging strategy is required")

    def _transition(self, attempt: StrategyAttempt, state: StrategyState) -> None:
        logger.debug(
            "Strategy %s: %s -> %s", attempt.method.value, attempt.state.value, state.value
        )
        attempt.state = state

    def build_request(
        self,
        root: Path | str,
        work_dir: Path,
        query: str | None = None,
        analysis_type: AnalysisType | str | None = None,
        max_tokens: int | None = None,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
        component_path: str | None = None,
    ) -> PackageRequest:
        """Validate inputs and build the request shared by every strategy.

        Raises:
            InvalidRootError: If the root or the component directory is invalid.
            ValueError: If the token budget is not positive.
        """
        resolved = validate_root(root)
        scan_root = resolved
        if component_path:
            scan_root = validate_root(resolved / component_path)

        budget = max_tokens if max_tokens is not None else self.config.max_tokens
        if budget <= 0:
            raise ValueError("max_tokens must be positive")

        ignore_patterns = load_ignore_file(resolved)
        excludes = [*self.config.exclude, *(exclude or [])]
        ignore_spec = IgnoreSpec.build(excludes=excludes, ignore_file_patterns=ignore_patterns)

        return PackageRequest(
            root=resolved,
            scan_root=scan_root,
            ignore_spec=ignore_spec,
            work_dir=work_dir,
            config=self.config,
            query=query,
            analysis_type=resolve_analysis_type(analysis_type),
            max_tokens=budget,
            include=list(include) if include is not None else list(self.config.include),
            exclude=excludes,
            component_path=component_path,
            ignore_file=resolved / IGNORE_FILE_NAME if ignore_patterns is not None else None,
        )

    def package(
        self,
        root: Path | str,
        query: str | None = None,
        analysis_type: AnalysisType | str | None = None,
        max_tokens: int | None = None,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
        component_path: str | None = None,
        output_file: Path | None = None,
    ) -> PackageResult:
        """
        Package a repository.

        Args:
            root: Repository root directory
            query: Natural-language query used to rank files
            analysis_type: Analysis-type hint (`AnalysisType` or its value)
            max_tokens: Token budget (config default when None)
            include: Include patterns (config default when None)
            exclude: Extra exclude patterns, merged ahead of the defaults
            component_path: Package only this sub-directory of root
            output_file: Copy the bundle here when given

        Returns:
            The result of the first strategy that succeeded

        Raises:
            InvalidRootError: If the root or component path is invalid
            AllStrategiesFailedError: If every strategy failed
        """
        with tempfile.TemporaryDirectory(prefix="repo-bundler-") as tmp:
            request = self.build_request(
                root,
                Path(tmp),
                query=query,
                analysis_type=analysis_type,
                max_tokens=max_tokens,
                include=include,
                exclude=exclude,
                component_path=component_path,
            )
            logger.info(
                "Packaging %s (budget %d tokens, %d ignore patterns)",
                request.scan_root,
                request.max_tokens,
                len(request.ignore_spec),
            )

            attempts = [StrategyAttempt(method=s.method) for s in self.strategies]
            errors: list[str] = []
            last_exc: Exception | None = None

            for strategy, attempt in zip(self.strategies, attempts):
                self._transition(attempt, StrategyState.RUNNING)
                start = time.perf_counter()
                try:
                    result = check_budget(strategy.run(request), request.max_tokens)
                except InvalidRootError:
                    attempt.duration_seconds = time.perf_counter() - start
                    self._transition(attempt, StrategyState.FAILED)
                    raise
                except Exception as e:
                    attempt.duration_seconds = time.perf_counter() - start
                    attempt.error = str(e)
                    self._transition(attempt, StrategyState.FAILED)
                    logger.warning("Packaging with %s failed: %s", strategy.method.value, e)
                    errors.append(str(e))
                    last_exc = e
                    continue

                attempt.duration_seconds = time.perf_counter() - start
                self._transition(attempt, StrategyState.SUCCEEDED)
                result.method_used = strategy.method
                result.fallback_error = errors[-1] if errors else None
                result.attempts = attempts
                if output_file is not None:
                    result.output_path = self._write_output(result, request.work_dir, output_file)
                logger.info(
                    "Packaged %d files (~%d tokens) with %s",
                    result.file_count,
                    result.estimated_tokens,
                    strategy.method.value,
                )
                return result

        raise AllStrategiesFailedError(errors[0], errors[-1], attempts, cause=last_exc)

    def _write_output(self, result: PackageResult, work_dir: Path, output_file: Path) -> Path:
        staged = work_dir / BUNDLE_FILE_NAME
        staged.write_text(result.bundle_text, encoding="utf-8")
        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(staged, output_file)
        return output_file

    async def package_async(
        self,
        root: Path | str,
        query: str | None = None,
        analysis_type: AnalysisType | str | None = None,
        max_tokens: int | None = None,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
        component_path: str | None = None,
        output_file: Path | None = None,
    ) -> PackageResult:
        """Run `package` in a worker thread so an event loop is never blocked."""
        return await asyncio.to_thread(
            self.package,
            root,
            query=query,
            analysis_type=analysis_type,
            max_tokens=max_tokens,
            include=include,
            exclude=exclude,
            component_path=component_path,
            output_file=output_file,
        )


def package_repository(
    root: Path | str,
    query: str | None = None,
    analysis_type: AnalysisType | str | None = None,
    max_tokens: int | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
    component_path: str | None = None,
    output_file: Path | None = None,
    config: BundlerConfig | None = None,
    strategies: Sequence[PackagingStrategy] | None = None,
) -> PackageResult:
    """
    Convenience function to package a repository.

    Returns:
        The `PackageResult` of a fresh `Packager` run.
    """
    packager = Packager(config=config, strategies=strategies)
    return packager.package(
        root,
        query=query,
        analysis_type=analysis_type,
        max_tokens=max_tokens,
        include=include,
        exclude=exclude,
        component_path=component_path,
        output_file=output_file,
    )
