"""
Utility functions for repo-bundler.

Includes character-based token estimation, encoding detection, binary sniffing,
path normalization and a small retry-with-backoff helper.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import chardet

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default heuristic divisor used everywhere a token count is estimated.
DEFAULT_CHARS_PER_TOKEN = 4


def estimate_tokens(text: str, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> int:
    """Estimate the token count of a string from its length.

    Token counts are never measured with a real tokenizer; every count in a
    `PackageResult` comes from this function so results are comparable across
    packaging strategies.

    Args:
        text: Input text.
        chars_per_token: Fixed character-per-token divisor.

    Returns:
        `ceil(len(text) / chars_per_token)`.
    """
    if chars_per_token <= 0:
        raise ValueError("chars_per_token must be positive")
    return math.ceil(len(text) / chars_per_token)


def detect_encoding(file_path: Path, sample_size: int = 8192) -> str:
    """Detect a likely text encoding for a file.

    The implementation deliberately prefers UTF-8 and only uses `chardet` when strict UTF-8
    decoding fails. This reduces false positives where UTF-8 is misdetected as Latin-1/CP1252.

    Args:
        file_path: Path to the file to inspect.
        sample_size: Number of bytes to sample from the start of the file.

    Returns:
        A normalized encoding label (e.g., `"utf-8"`, `"utf-8-sig"`, `"utf-16-le"`).
    """
    try:
        with open(file_path, "rb") as f:
            sample = f.read(sample_size)
    except OSError:
        return "utf-8"

    if not sample:
        return "utf-8"

    # Check for BOM markers first (most reliable)
    if sample.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if sample.startswith(b"\xff\xfe"):
        return "utf-16-le"
    if sample.startswith(b"\xfe\xff"):
        return "utf-16-be"

    try:
        sample.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass

    result = chardet.detect(sample)
    encoding_any = result.get("encoding")

    if not isinstance(encoding_any, str) or not encoding_any:
        return "utf-8"

    encoding = encoding_any.lower()
    if encoding in ("ascii", "utf-8", "utf8"):
        return "utf-8"

    return encoding


def is_binary_file(file_path: Path, sample_size: int = 8192) -> bool:
    """Heuristically determine whether a file is binary.

    Uses a fast null-byte check first, then falls back to a ratio of printable ASCII bytes.
    Unreadable files are treated as binary so they are skipped rather than crashing the
    packaging run.

    Args:
        file_path: Path to the file to test.
        sample_size: Number of bytes to sample from the file start.

    Returns:
        True if the file is likely binary, otherwise False.
    """
    try:
        with open(file_path, "rb") as f:
            sample = f.read(sample_size)
    except OSError:
        return True

    if not sample:
        return False

    if b"\x00" in sample:
        return True

    # Text files typically have >70% printable ASCII
    printable_count = sum(1 for b in sample if 32 <= b <= 126 or b in (9, 10, 13))
    if printable_count / len(sample) >= 0.70:
        return False

    # Non-ASCII text (e.g. CJK in UTF-8) is still text if it decodes cleanly
    try:
        sample.decode("utf-8")
        return False
    except UnicodeDecodeError as e:
        # A multi-byte sequence may be cut at the sample boundary
        return e.start < len(sample) - 4


def read_file_safe(file_path: Path, encoding: str | None = None) -> tuple[str, str]:
    """Read a file robustly with encoding detection.

    Strategy:
    - If `encoding` is explicitly provided, use it.
    - Otherwise, try strict UTF-8 first.
    - If UTF-8 fails, detect the encoding and retry using `errors="replace"`.

    Args:
        file_path: Path to the file to read.
        encoding: Optional explicit encoding (None enables auto-detection).

    Returns:
        A tuple `(content, encoding_used)`.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    if encoding is not None:
        try:
            with open(file_path, encoding=encoding, errors="replace") as f:
                return f.read(), encoding
        except LookupError:
            # Unknown encoding, fall through to auto-detect
            pass

    try:
        with open(file_path, encoding="utf-8", errors="strict") as f:
            return f.read(), "utf-8"
    except UnicodeDecodeError:
        pass

    detected = detect_encoding(file_path)
    try:
        with open(file_path, encoding=detected, errors="replace") as f:
            return f.read(), detected
    except LookupError:
        with open(file_path, encoding="utf-8", errors="replace") as f:
            return f.read(), "utf-8"


def normalize_path(path: str) -> str:
    """Normalize a path for consistent cross-platform comparisons.

    Args:
        path: Path string that may contain platform-specific separators.

    Returns:
        Normalized path using forward slashes, without a leading `./`.
    """
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def retry_with_backoff(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    initial_delay: float = 0.5,
    should_retry: Callable[[BaseException], bool] = lambda e: True,
    label: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run `operation`, retrying with exponential backoff.

    The delay doubles after every failed attempt. Errors rejected by
    `should_retry` are re-raised immediately, and the last error is re-raised
    once attempts are exhausted.

    Args:
        operation: Zero-argument callable to run.
        attempts: Total number of attempts (at least 1).
        initial_delay: Delay in seconds before the first retry.
        should_retry: Predicate deciding whether an error is transient.
        label: Name used in log messages.
        sleep: Sleep function (injectable for tests).

    Returns:
        The value returned by the first successful attempt.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as e:
            if attempt >= attempts or not should_retry(e):
                raise
            delay = initial_delay * (2 ** (attempt - 1))
            logger.info(
                "[%s] Retry %d/%d after %.2fs due to: %s", label, attempt, attempts - 1, delay, e
            )
            sleep(delay)
    raise AssertionError("unreachable")
