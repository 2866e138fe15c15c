"""Shared text primitives for the analyzers — fragments, numbers, vocabularies."""

from __future__ import annotations

import re

SENTENCE_SPLIT = re.compile(r"[.!?]+")
NON_WORD = re.compile(r"[^\w\s]")
NUMBER = re.compile(r"\d+\.?\d*")


def fragments(text: str, min_length: int = 10) -> list[str]:
    """Sentence fragments longer than *min_length* characters, trimmed."""
    return [s.strip() for s in SENTENCE_SPLIT.split(text) if len(s.strip()) > min_length]


def normalize(fragment: str) -> str:
    return NON_WORD.sub("", fragment.lower()).strip()


def extract_numbers(text: str) -> list[float]:
    return [float(m) for m in NUMBER.findall(text)]


def word_set(text: str, min_length: int = 3) -> set[str]:
    """Lowercased whitespace tokens longer than *min_length*."""
    return {w for w in text.lower().split() if len(w) > min_length}


def vocabulary(text: str) -> set[str]:
    """Every lowercased whitespace token, regardless of length."""
    return set(text.lower().split())


def jaccard(a: set[str], b: set[str]) -> float:
    """Jaccard similarity; 0.0 when both sets are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)
