"""Tests for the command line interface."""

import pytest
from typer.testing import CliRunner

from repo_bundler import __version__, cli
from repo_bundler.cli import app, parse_globs
from repo_bundler.config import PackagingMethod, StrategyAttempt, StrategyState
from repo_bundler.errors import AllStrategiesFailedError
from repo_bundler.packer import parse_bundle

runner = CliRunner()


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "README.md").write_text("# Demo\n")
    (root / "src" / "auth.py").write_text("def login(): return 'auth'\n")
    (root / "src" / "util.py").write_text("def helper(): pass\n")
    return root


def test_parse_globs() -> None:
    assert parse_globs("dist/**, *.log,,dist/**") == ["dist/**", "*.log"]
    assert parse_globs(None) == []


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"repo-bundler version {__version__}" in result.stdout


def test_pack_writes_bundle(repo, tmp_path) -> None:
    output = tmp_path / "bundle.xml"

    result = runner.invoke(
        app, ["pack", str(repo), "--fallback-only", "-q", "auth", "-o", str(output)]
    )

    assert result.exit_code == 0, result.stdout
    assert "Bundle complete" in result.stdout
    paths = [p for p, _ in parse_bundle(output.read_text(encoding="utf-8"))]
    assert paths[0] == "README.md"
    assert set(paths) == {"README.md", "src/auth.py", "src/util.py"}


def test_pack_respects_exclude_and_budget_flags(repo, tmp_path) -> None:
    output = tmp_path / "bundle.xml"

    result = runner.invoke(
        app,
        [
            "pack", str(repo), "--fallback-only",
            "-e", "util", "--max-tokens", "100000", "-o", str(output),
        ],
    )

    assert result.exit_code == 0, result.stdout
    paths = {p for p, _ in parse_bundle(output.read_text(encoding="utf-8"))}
    assert paths == {"README.md", "src/auth.py"}


def test_pack_reads_project_config(repo, tmp_path) -> None:
    (repo / ".repo-bundler.toml").write_text("include = ['src/**']\n")
    output = tmp_path / "bundle.xml"

    result = runner.invoke(app, ["pack", str(repo), "--fallback-only", "-o", str(output)])

    assert result.exit_code == 0, result.stdout
    paths = {p for p, _ in parse_bundle(output.read_text(encoding="utf-8"))}
    assert paths == {"src/auth.py", "src/util.py"}


def test_pack_missing_component(repo, tmp_path) -> None:
    result = runner.invoke(
        app,
        [
            "pack", str(repo), "--fallback-only",
            "--component", "nope", "-o", str(tmp_path / "b.xml"),
        ],
    )

    assert result.exit_code == 2
    assert "does not exist" in result.stdout


def test_pack_nonexistent_path(tmp_path) -> None:
    result = runner.invoke(app, ["pack", str(tmp_path / "missing")])

    assert result.exit_code != 0


def test_pack_all_strategies_failed(repo, tmp_path, monkeypatch) -> None:
    class BrokenPackager:
        def __init__(self, config, strategies=None):
            pass

        def package(self, root, **kwargs):
            attempts = [
                StrategyAttempt(PackagingMethod.PLUGIN, StrategyState.FAILED, "no plugin"),
                StrategyAttempt(PackagingMethod.FALLBACK, StrategyState.FAILED, "disk gone"),
            ]
            raise AllStrategiesFailedError("no plugin", "disk gone", attempts)

    monkeypatch.setattr(cli, "Packager", BrokenPackager)

    result = runner.invoke(app, ["pack", str(repo), "-o", str(tmp_path / "b.xml")])

    assert result.exit_code == 1
    assert "failed with all available methods" in result.stdout
    assert "disk gone" in result.stdout


def test_tree(repo) -> None:
    result = runner.invoke(app, ["tree", str(repo)])

    assert result.exit_code == 0
    assert "Directory Structure:" in result.stdout
    assert "auth.py" in result.stdout
    assert "Total files: 3, Total directories: 1" in result.stdout


def test_tree_exclude(repo) -> None:
    result = runner.invoke(app, ["tree", str(repo), "-e", "src/**"])

    assert result.exit_code == 0
    assert "auth.py" not in result.stdout


def test_tree_honours_project_config_exclude(repo) -> None:
    (repo / ".repo-bundler.toml").write_text("exclude = ['src/util.py']\n")

    result = runner.invoke(app, ["tree", str(repo)])

    assert result.exit_code == 0
    assert "auth.py" in result.stdout
    assert "util.py" not in result.stdout


def test_tree_honours_project_config_gitignore_setting(repo) -> None:
    (repo / ".gitignore").write_text("src/auth.py\n")
    (repo / ".repo-bundler.toml").write_text("respect_gitignore = false\n")

    result = runner.invoke(app, ["tree", str(repo)])

    assert result.exit_code == 0
    assert "auth.py" in result.stdout
