"""Tests for the keywords module."""

from repo_bundler.keywords import (
    extract_keywords,
    extract_phrases,
    naive_stem,
    strip_code_fragments,
)


class TestNaiveStem:
    """Tests for naive_stem."""

    def test_common_suffixes(self):
        assert naive_stem("loading") == "load"
        assert naive_stem("parsed") == "pars"
        assert naive_stem("files") == "file"

    def test_double_s_kept(self):
        assert naive_stem("class") == "class"

    def test_no_suffix(self):
        assert naive_stem("auth") == "auth"


class TestStripCodeFragments:
    """Tests for strip_code_fragments."""

    def test_removes_code_shaped_spans(self):
        text = strip_code_fragments("see `run()` in src/main and config.yaml at https://x.io/a")

        assert "run" not in text
        assert "src/main" not in text
        assert "config.yaml" not in text
        assert "https" not in text
        assert "see" in text

    def test_removes_bracketed_spans(self):
        text = strip_code_fragments("call handler(args) with [items] and {opts}")

        assert "args" not in text
        assert "items" not in text
        assert "opts" not in text


class TestExtractPhrases:
    """Tests for extract_phrases."""

    def test_quoted_phrases(self):
        assert extract_phrases('find "Login Flow" and "rate limiter"') == [
            "login flow",
            "rate limiter",
        ]

    def test_short_phrases_dropped(self):
        assert extract_phrases('"ab" "abc"') == ["abc"]


class TestExtractKeywords:
    """Tests for extract_keywords."""

    def test_reference_query(self):
        keywords = extract_keywords('fix the auth bug in auth.py "login flow"')

        assert keywords[0] == "auth"
        assert "login flow" in keywords
        assert "fix" not in keywords
        assert "the" not in keywords
        assert "bug" not in keywords

    def test_empty_query(self):
        assert extract_keywords("") == []
        assert extract_keywords("   ") == []

    def test_ordered_by_frequency(self):
        assert extract_keywords("alpha beta beta gamma gamma gamma") == [
            "gamma",
            "beta",
            "alpha",
        ]

    def test_ties_keep_first_appearance(self):
        assert extract_keywords("zeta alpha omega") == ["zeta", "alpha", "omega"]

    def test_stem_group_uses_most_frequent_form(self):
        keywords = extract_keywords("render rendering rendered rendering widget")

        assert keywords == ["rendering", "widget"]

    def test_programming_terms_filtered(self):
        keywords = extract_keywords("how does the database connection pool function")

        assert keywords == ["pool"]

    def test_programming_terms_kept_when_unfiltered(self):
        keywords = extract_keywords("database pool", filter_common_terms=False)

        assert keywords == ["database", "pool"]

    def test_short_words_dropped(self):
        assert extract_keywords("go to db io layer") == ["layer"]

    def test_max_keywords(self):
        query = " ".join(f"word{chr(97 + i)}" for i in range(20))

        keywords = extract_keywords(query, max_keywords=5)

        assert keywords == ["worda", "wordb", "wordc", "wordd", "worde"]

    def test_phrases_appended_after_limit(self):
        keywords = extract_keywords('alpha beta "the flow"', max_keywords=1)

        assert keywords == ["alpha", "the flow"]
