"""Tests for the strategies module."""

import math
import subprocess

import pytest

from repo_bundler import strategies
from repo_bundler.config import BundlerConfig, PackagingMethod
from repo_bundler.errors import InvalidRootError, StrategyError, StrategyUnavailableError
from repo_bundler.ignore import IgnoreSpec
from repo_bundler.strategies import (
    FallbackStrategy,
    PackageRequest,
    PluginStrategy,
    RepomixCliStrategy,
    check_budget,
    result_from_text,
)

SAMPLE_BUNDLE = (
    '<file path="a.py">\nprint(1)\n</file>\n'
    '<file path="b.py">\nprint(2)\n</file>\n'
)


@pytest.fixture
def request_for(tmp_path):
    """Build a PackageRequest rooted at a small repository."""
    (tmp_path / "repo").mkdir()
    (tmp_path / "repo" / "main.py").write_text("print('hello')\n")
    work_dir = tmp_path / "work"
    work_dir.mkdir()

    def _build(**overrides):
        values = dict(
            root=tmp_path / "repo",
            scan_root=tmp_path / "repo",
            ignore_spec=IgnoreSpec.build(),
            work_dir=work_dir,
            config=BundlerConfig(retry_initial_delay=0.0),
            max_tokens=10_000,
        )
        values.update(overrides)
        return PackageRequest(**values)

    return _build


class TestResultFromText:
    """Tests for result_from_text."""

    def test_counts_derived_from_text(self):
        result = result_from_text(SAMPLE_BUNDLE, PackagingMethod.CLI, 4)

        assert result.file_count == 2
        assert result.estimated_tokens == math.ceil(len(SAMPLE_BUNDLE) / 4)
        assert result.total_bytes == len(SAMPLE_BUNDLE.encode())
        assert result.method_used is PackagingMethod.CLI


class TestPluginStrategy:
    """Tests for PluginStrategy."""

    def test_injected_plugin(self, request_for):
        seen = []

        def plugin(request):
            seen.append(request.root)
            return SAMPLE_BUNDLE

        result = PluginStrategy(plugin).run(request_for())

        assert result.method_used is PackagingMethod.PLUGIN
        assert result.file_count == 2
        assert seen == [request_for().root]

    def test_no_plugin_registered(self, request_for, monkeypatch):
        monkeypatch.setattr(strategies, "_entry_points", lambda group: [])

        with pytest.raises(StrategyUnavailableError, match="No packaging plugin"):
            PluginStrategy().run(request_for())

    def test_plugin_failure_wrapped(self, request_for):
        def plugin(request):
            raise RuntimeError("plugin exploded")

        with pytest.raises(StrategyError, match="plugin exploded"):
            PluginStrategy(plugin).run(request_for())

    def test_empty_output_rejected(self, request_for):
        with pytest.raises(StrategyError, match="no bundle text"):
            PluginStrategy(lambda request: "  ").run(request_for())

    def test_bundle_over_budget_rejected(self, request_for):
        big = '<file path="a.py">\n' + "x" * 4000 + "\n</file>\n"

        with pytest.raises(StrategyError, match="exceeds budget: 1007 > 500 tokens"):
            PluginStrategy(lambda request: big).run(request_for(max_tokens=500))


class TestCheckBudget:
    """Tests for check_budget."""

    def test_within_budget_passes_through(self):
        result = result_from_text(SAMPLE_BUNDLE, PackagingMethod.PLUGIN, 4)

        assert check_budget(result, result.estimated_tokens) is result

    def test_over_budget_raises(self):
        result = result_from_text(SAMPLE_BUNDLE, PackagingMethod.CLI, 4)

        with pytest.raises(StrategyError, match="cli bundle exceeds budget"):
            check_budget(result, result.estimated_tokens - 1)


class TestRepomixCliStrategy:
    """Tests for RepomixCliStrategy."""

    def test_build_command(self, request_for, tmp_path):
        ignore_file = tmp_path / "repo" / ".repomixignore"
        request = request_for(
            include=["src/**"], exclude=["dist", "*.log"], ignore_file=ignore_file
        )
        output = tmp_path / "out.xml"

        cmd = RepomixCliStrategy().build_command(request, output)

        assert cmd[:3] == ["npx", "-y", "repomix"]
        assert cmd[3] == str(request.scan_root)
        assert cmd[4:8] == ["-o", str(output), "--style", "xml"]
        assert cmd[cmd.index("--include") + 1] == "src/**"
        assert cmd[cmd.index("--ignore") + 1] == "dist,*.log"
        assert cmd[cmd.index("--ignore-file") + 1] == str(ignore_file)
        assert cmd[cmd.index("--max-tokens") + 1] == "10000"

    def test_missing_tool(self, request_for):
        strategy = RepomixCliStrategy(command=["repo-bundler-test-no-such-tool"])

        with pytest.raises(StrategyUnavailableError, match="Missing tool"):
            strategy.run(request_for())

    def test_nonzero_exit(self, request_for, monkeypatch):
        def fake_run(cmd, **kwargs):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="warming up\nboom\n")

        monkeypatch.setattr(strategies.subprocess, "run", fake_run)

        with pytest.raises(StrategyError, match="exited with code 1: boom"):
            RepomixCliStrategy().run(request_for())

    def test_timeout(self, request_for, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(strategies.subprocess, "run", fake_run)

        with pytest.raises(StrategyError, match="timed out"):
            RepomixCliStrategy(timeout=1).run(request_for())

    def test_missing_output(self, request_for, monkeypatch):
        monkeypatch.setattr(
            strategies.subprocess,
            "run",
            lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, stdout="", stderr=""),
        )

        with pytest.raises(StrategyError, match="no output file"):
            RepomixCliStrategy().run(request_for())

    def test_success_reads_output(self, request_for, monkeypatch):
        def fake_run(cmd, **kwargs):
            output = cmd[cmd.index("-o") + 1]
            with open(output, "w", encoding="utf-8") as f:
                f.write(SAMPLE_BUNDLE)
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        monkeypatch.setattr(strategies.subprocess, "run", fake_run)

        result = RepomixCliStrategy().run(request_for())

        assert result.method_used is PackagingMethod.CLI
        assert result.bundle_text == SAMPLE_BUNDLE
        assert result.file_count == 2

    def test_output_over_budget_rejected(self, request_for, monkeypatch):
        def fake_run(cmd, **kwargs):
            output = cmd[cmd.index("-o") + 1]
            with open(output, "w", encoding="utf-8") as f:
                f.write(SAMPLE_BUNDLE * 50)
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        monkeypatch.setattr(strategies.subprocess, "run", fake_run)

        with pytest.raises(StrategyError, match="exceeds budget"):
            RepomixCliStrategy().run(request_for(max_tokens=50))


class TestFallbackStrategy:
    """Tests for FallbackStrategy."""

    def test_packages_in_process(self, request_for):
        result = FallbackStrategy().run(request_for(query="hello"))

        assert result.method_used is PackagingMethod.FALLBACK
        assert result.file_count == 1
        assert '<file path="main.py">' in result.bundle_text

    def test_retries_transient_io_errors(self, request_for, monkeypatch):
        calls = []
        real_package = FallbackStrategy.package

        def flaky(self, request):
            calls.append(1)
            if len(calls) < 3:
                raise OSError("disk hiccup")
            return real_package(self, request)

        monkeypatch.setattr(FallbackStrategy, "package", flaky)

        result = FallbackStrategy().run(request_for())

        assert len(calls) == 3
        assert result.file_count == 1

    def test_gives_up_after_configured_attempts(self, request_for, monkeypatch):
        calls = []

        def broken(self, request):
            calls.append(1)
            raise OSError("disk gone")

        monkeypatch.setattr(FallbackStrategy, "package", broken)
        request = request_for(config=BundlerConfig(retry_attempts=2, retry_initial_delay=0.0))

        with pytest.raises(OSError, match="disk gone"):
            FallbackStrategy().run(request)
        assert len(calls) == 2

    def test_invalid_root_not_retried(self, request_for, monkeypatch):
        calls = []

        def invalid(self, request):
            calls.append(1)
            raise InvalidRootError("Path does not exist: /nowhere")

        monkeypatch.setattr(FallbackStrategy, "package", invalid)

        with pytest.raises(InvalidRootError):
            FallbackStrategy().run(request_for())
        assert len(calls) == 1
