"""
Keyword extraction for query-driven file ranking.

Turns a natural-language query into a short list of discriminative keywords:
code-shaped fragments are stripped, stopwords and generic programming
vocabulary are dropped, surface forms are grouped by a naive stem, and any
double-quoted phrases are appended verbatim.
"""

from __future__ import annotations

import logging
import re
from collections import Counter

logger = logging.getLogger(__name__)

# English stopwords and request verbs that carry no signal about files
ENGLISH_STOPWORDS: frozenset[str] = frozenset({
    "a", "an", "the", "and", "or", "but", "for", "nor", "on", "at", "to", "from",
    "by", "about", "in", "of", "with", "this", "that", "these", "those", "is",
    "are", "was", "were", "be", "been", "being", "have", "has", "had", "do",
    "does", "did", "can", "could", "would", "should", "will", "shall", "may",
    "might", "must", "how", "what", "when", "where", "who", "which", "why",
    "not", "all", "any", "some", "into", "its", "our", "your", "their", "there",
    "then", "than", "also", "just", "only", "very", "out", "over", "under",
    "please", "help", "need", "want", "show", "find", "explain", "tell", "look",
    "analysis", "analyze", "understand", "describe", "give", "make", "fix",
})

# Generic programming vocabulary: matches too many files to be discriminative
COMMON_PROGRAMMING_TERMS: frozenset[str] = frozenset({
    # General programming terms
    "function", "class", "variable", "method", "interface", "type", "module",
    "import", "export", "return", "public", "private", "protected", "static",
    "const", "let", "var", "void", "null", "undefined", "object", "array",
    "string", "number", "boolean", "true", "false", "async", "await", "promise",
    "try", "catch", "finally", "throw", "error", "exception", "event", "callback",
    # Common data structures
    "list", "map", "set", "dictionary", "tree", "graph", "queue", "stack",
    # Common operations
    "add", "remove", "delete", "update", "get", "create", "init", "start",
    "stop", "pause", "resume", "load", "save", "read", "write", "open", "close",
    # Common programming concepts
    "algorithm", "api", "bug", "cache", "code", "compiler", "debug", "feature",
    "framework", "implementation", "library", "package", "pattern", "performance",
    "programming", "reference", "software", "solution", "source", "syntax", "system",
    "repository", "repo", "project", "codebase",
    # Common file types
    "file", "files", "folder", "directory", "path", "extension", "json", "xml",
    "html", "css", "java", "cpp", "txt",
    # Common UI terms
    "button", "input", "form", "field", "label", "select", "option", "checkbox",
    "radio", "dropdown", "menu", "navigation", "sidebar", "header", "footer", "modal",
    # Common database terms
    "database", "table", "column", "row", "query", "schema", "index",
    "record", "primary", "foreign", "key", "value", "relation",
    # Common web terms
    "http", "https", "url", "uri", "request", "response", "client", "server",
    "browser", "cookie", "session", "token", "body", "param", "endpoint",
    # Common networking terms
    "network", "socket", "protocol", "tcp", "udp", "dns", "port", "host",
    "domain", "ssl", "tls", "connection", "packet", "firewall", "proxy",
})

STOPWORDS: frozenset[str] = ENGLISH_STOPWORDS | COMMON_PROGRAMMING_TERMS

# Code-shaped substrings removed before tokenizing, applied in order
_CODE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"`[^`]+`"),  # backtick spans
    re.compile(r"\([^)]*\)"),  # parenthesized spans
    re.compile(r"\[[^\]]*\]"),  # bracketed spans
    re.compile(r"\{[^}]*\}"),  # braced spans
    re.compile(r"https?://\S+"),  # URLs
    re.compile(r"[a-z0-9_-]+\.[a-z0-9_-]+"),  # file.ext
    re.compile(r"[a-z0-9_-]+/[a-z0-9_-]+"),  # dir/file
]

_PUNCTUATION = re.compile(r"[^\w\s]")
_QUOTED_PHRASE = re.compile(r'"([^"]+)"')


def strip_code_fragments(text: str) -> str:
    """Remove code-shaped substrings (spans, URLs, dotted/slashed tokens)."""
    for pattern in _CODE_PATTERNS:
        text = pattern.sub(" ", text)
    return text


def naive_stem(word: str) -> str:
    """Strip one common suffix: `ing`, `ed`, a lone `s`, or `es`."""
    if word.endswith("ing"):
        return word[:-3]
    if word.endswith("ed"):
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    if word.endswith("es"):
        return word[:-2]
    return word


def extract_phrases(query: str, min_length: int = 3) -> list[str]:
    """Return double-quoted phrases from the query, lowercased, in order."""
    phrases: list[str] = []
    for match in _QUOTED_PHRASE.finditer(query):
        phrase = match.group(1).strip().lower()
        if len(phrase) >= min_length and phrase not in phrases:
            phrases.append(phrase)
    return phrases


def extract_keywords(
    query: str,
    min_word_length: int = 3,
    max_keywords: int = 15,
    filter_common_terms: bool = True,
) -> list[str]:
    """Extract ranked keywords from a natural-language query.

    Keywords are ordered by descending aggregate frequency (first appearance
    breaks ties). Quoted phrases are appended after the top `max_keywords`
    and bypass stopword filtering.

    Args:
        query: Natural-language query.
        min_word_length: Minimum token length kept.
        max_keywords: Maximum number of single-word keywords.
        filter_common_terms: Whether to drop stopwords and generic programming terms.

    Returns:
        Keywords followed by quoted phrases.
    """
    if not query or not query.strip():
        return []

    cleaned = strip_code_fragments(query.lower())
    words = [
        w for w in _PUNCTUATION.sub(" ", cleaned).split() if len(w) >= min_word_length
    ]
    if filter_common_terms:
        words = [w for w in words if w not in STOPWORDS]

    counts = Counter(words)  # preserves first-appearance order

    # Group surface forms by stem; the most frequent form represents the group
    groups: dict[str, list[str]] = {}
    for word in counts:
        groups.setdefault(naive_stem(word), []).append(word)

    representatives: list[tuple[str, int]] = []
    for members in groups.values():
        best = max(members, key=lambda w: counts[w])  # first wins on ties
        representatives.append((best, sum(counts[w] for w in members)))

    representatives.sort(key=lambda item: item[1], reverse=True)
    keywords = [word for word, _ in representatives[:max_keywords]]

    for phrase in extract_phrases(query, min_word_length):
        if phrase not in keywords:
            keywords.append(phrase)

    logger.debug("Extracted %d keywords from query: %s", len(keywords), keywords)
    return keywords
