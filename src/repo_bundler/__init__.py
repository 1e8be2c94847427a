"""
repo-bundler: Package repositories into LLM-ready bundles.

Scans a source tree under ignore/include rules, ranks files by relevance to a
natural-language query and assembles the best of them into one text bundle that
stays under a token budget. Packaging falls back from a registered plugin to the
external `repomix` tool to an in-process implementation.
"""

__version__ = "0.1.0"

from .config import AnalysisType, BundlerConfig, FileRecord, PackageResult, PackagingMethod
from .errors import (
    AllStrategiesFailedError,
    BundlerError,
    InvalidRootError,
    StrategyError,
    StrategyUnavailableError,
)
from .orchestrator import Packager, package_repository
from .scanner import extract_structure

__all__ = [
    "__version__",
    "AllStrategiesFailedError",
    "AnalysisType",
    "BundlerConfig",
    "BundlerError",
    "FileRecord",
    "InvalidRootError",
    "PackageResult",
    "Packager",
    "PackagingMethod",
    "StrategyError",
    "StrategyUnavailableError",
    "extract_structure",
    "package_repository",
]
