"""Keyword and phrase extraction from a user question (reported with each answer)."""

from __future__ import annotations

import re

_STOP_WORDS: frozenset[str] = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were be
    been being have has had do does did will would could should may might must
    can this that these those what which who whom whose where when why how
    about into onto upon
    """.split()
)

_PUNCT_RE = re.compile(r"[^\w\s]")
_MAX_PHRASES = 5
_MAX_TERMS = 8


def extract_keywords(question: str) -> list[str]:
    """Lower-cased words longer than 2 chars, stop words removed, first occurrence order."""
    words = _PUNCT_RE.sub(" ", question.lower()).split()
    seen: dict[str, None] = {}
    for word in words:
        if len(word) > 2 and word not in _STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)


def extract_phrases(question: str) -> list[str]:
    """Two-word phrases from adjacent keywords (at most 5)."""
    keywords = extract_keywords(question)
    phrases = [f"{a} {b}" for a, b in zip(keywords, keywords[1:])]
    return phrases[:_MAX_PHRASES]


def important_terms(question: str) -> list[str]:
    """Phrases and keywords, longest (most specific) first; at most 8."""
    terms = extract_phrases(question) + extract_keywords(question)
    return sorted(terms, key=len, reverse=True)[:_MAX_TERMS]
