"""
Exception types for repo-bundler.

Caller errors (`InvalidRootError`) propagate unchanged and never trigger a
fallback. Strategy errors are recovered by the orchestrator and only surface,
aggregated, when every strategy has failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from repo_bundler.config import StrategyAttempt


class BundlerError(Exception):
    """Base error for repo-bundler, with optional cause tracking."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvalidRootError(BundlerError, ValueError):
    """The root directory (or component path) does not exist or is not a directory."""

    pass


class StrategyError(BundlerError):
    """A packaging strategy failed; the next strategy may still succeed."""

    pass


class StrategyUnavailableError(StrategyError):
    """A packaging strategy cannot run at all (tool or plugin missing)."""

    pass


class AllStrategiesFailedError(BundlerError):
    """Every packaging strategy failed.

    Attributes:
        primary_error: Message of the first strategy failure (the root cause).
        fallback_error: Message of the last strategy failure.
        attempts: Audit trail of every strategy attempt.
    """

    def __init__(
        self,
        primary_error: str,
        fallback_error: str,
        attempts: list[StrategyAttempt],
        cause: BaseException | None = None,
    ) -> None:
        message = (
            "Repository packaging failed with all available methods. "
            f"Original error: {primary_error}. Last error: {fallback_error}"
        )
        super().__init__(message, cause)
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        self.attempts = attempts
