"""Tests for the packer module."""

import math

import pytest

from repo_bundler.config import FileRecord, PackagingMethod
from repo_bundler.packer import (
    BUNDLE_TITLE,
    BundleAssembler,
    count_file_blocks,
    parse_bundle,
    render_file_block,
)


def write_files(root, files):
    """Write `{relative_path: content}` under root and return FileRecords in that order."""
    records = []
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        records.append(FileRecord(path=path, relative_path=rel, size_bytes=len(content.encode())))
    return records


class TestBundleFormat:
    """Tests for the bundle text format."""

    def test_file_block(self):
        expected = '\n<file path="src/a.py">\nx = 1\n</file>\n'
        assert render_file_block("src/a.py", "x = 1") == expected

    def test_header_and_summary(self, tmp_path):
        records = write_files(tmp_path, {"src/a.py": "a = 1\n", "README.md": "# Demo\n"})

        result = BundleAssembler().assemble(records, tmp_path, max_tokens=10_000)
        text = result.bundle_text

        assert text.startswith(BUNDLE_TITLE + "\n")
        assert "## Directory Structure\n\n```\nsrc/\n  ├── a.py\nREADME.md\n```\n" in text
        assert text.endswith(
            "\n# Summary\n\nIncluded 2 files out of 2 total files. "
            f"Estimated token count: {result.estimated_tokens}.\n"
        )

    def test_component_header(self, tmp_path):
        records = write_files(tmp_path, {"api/a.py": "a = 1\n"})

        result = BundleAssembler().assemble(records, tmp_path, 10_000, component_path="api")

        assert "## Component: api\n" in result.bundle_text

    def test_round_trip(self, tmp_path):
        files = {
            "src/a.py": "def f():\n    return 1\n",
            "docs/guide.md": "# Guide\n\n<b>markup</b> is fine\n",
            "empty.txt": "",
        }
        records = write_files(tmp_path, files)

        result = BundleAssembler().assemble(records, tmp_path, max_tokens=10_000)

        assert dict(parse_bundle(result.bundle_text)) == files
        assert count_file_blocks(result.bundle_text) == 3


class TestAssemble:
    """Tests for greedy budgeted assembly."""

    def test_budget_includes_two_of_three(self, tmp_path):
        """Three 50-char files in a 120-char slot budget: exactly two fit."""
        records = write_files(tmp_path, {f"f{i}.txt": "x" * 50 for i in range(3)})
        assembler = BundleAssembler(chars_per_token=1, per_file_overhead_tokens=0)
        delimiters = len(render_file_block("f0.txt", ""))
        max_tokens = assembler.framing_chars(records) + 2 * delimiters + 120

        result = assembler.assemble(records, tmp_path, max_tokens)

        assert result.file_count == 2
        assert result.estimated_tokens <= max_tokens
        assert [p for p, _ in parse_bundle(result.bundle_text)] == ["f0.txt", "f1.txt"]

    def test_skips_rather_than_truncates(self, tmp_path):
        """A file that does not fit is skipped; a later smaller one can still fit."""
        records = write_files(
            tmp_path, {"big.txt": "b" * 400, "small.txt": "s" * 10, "mid.txt": "m" * 60}
        )
        assembler = BundleAssembler(chars_per_token=1, per_file_overhead_tokens=0)
        delimiters = len(render_file_block("mid.txt", ""))
        max_tokens = assembler.framing_chars(records) + 2 * delimiters + 80

        result = assembler.assemble(records, tmp_path, max_tokens)
        included = dict(parse_bundle(result.bundle_text))

        assert set(included) == {"small.txt", "mid.txt"}
        assert included["mid.txt"] == "m" * 60
        assert "b" * 10 not in result.bundle_text

    def test_critical_files_first(self, tmp_path):
        records = write_files(
            tmp_path, {"src/app.py": "print('hi')\n", "package.json": '{"name": "x"}'}
        )

        result = BundleAssembler().assemble(records, tmp_path, max_tokens=10_000)

        assert [p for p, _ in parse_bundle(result.bundle_text)] == ["package.json", "src/app.py"]

    def test_critical_file_preferred_under_tight_budget(self, tmp_path):
        records = write_files(tmp_path, {"src/app.py": "a" * 40, "README.md": "r" * 40})
        assembler = BundleAssembler(chars_per_token=1, per_file_overhead_tokens=0)
        delimiters = len(render_file_block("README.md", ""))
        max_tokens = assembler.framing_chars(records) + delimiters + 40

        result = assembler.assemble(records, tmp_path, max_tokens)

        assert [p for p, _ in parse_bundle(result.bundle_text)] == ["README.md"]

    def test_per_file_overhead_counts(self, tmp_path):
        records = write_files(tmp_path, {"a.txt": "a", "b.txt": "b"})
        assembler = BundleAssembler(chars_per_token=4, per_file_overhead_tokens=100)
        per_file = assembler.estimate_file_chars(records[0])
        max_tokens = math.ceil((assembler.framing_chars(records) + per_file) / 4)

        result = assembler.assemble(records, tmp_path, max_tokens)

        assert result.file_count == 1

    def test_budget_exhaustion_is_not_an_error(self, tmp_path):
        records = write_files(tmp_path, {"a.txt": "a" * 100})

        result = BundleAssembler().assemble(records, tmp_path, max_tokens=1)

        assert result.file_count == 0
        assert "Included 0 files out of 1 total files." in result.bundle_text

    def test_binary_and_missing_files_skipped(self, tmp_path):
        records = write_files(tmp_path, {"ok.txt": "fine"})
        blob = tmp_path / "blob.txt"
        blob.write_bytes(b"\x00\x01\x02binary")
        records.append(FileRecord(path=blob, relative_path="blob.txt", size_bytes=9))
        records.append(
            FileRecord(path=tmp_path / "gone.txt", relative_path="gone.txt", size_bytes=4)
        )

        result = BundleAssembler().assemble(records, tmp_path, max_tokens=10_000)

        assert [p for p, _ in parse_bundle(result.bundle_text)] == ["ok.txt"]
        assert result.file_count == 1
        assert result.total_bytes == 4

    def test_result_fields(self, tmp_path):
        records = write_files(tmp_path, {"a.py": "x = 1\n"})

        result = BundleAssembler().assemble(records, tmp_path, max_tokens=10_000)

        assert result.method_used is PackagingMethod.FALLBACK
        assert result.total_candidates == 1
        assert result.estimated_tokens == math.ceil(len(result.bundle_text) / 4)

    def test_invalid_chars_per_token(self):
        with pytest.raises(ValueError):
            BundleAssembler(chars_per_token=0)
