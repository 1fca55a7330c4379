"""Lexical anti-repetition: pick the candidate least like recent lines"""

import re
from collections.abc import Sequence

MIN_CANDIDATE_LENGTH = 6

# Anything that is not a letter, digit or whitespace (underscore included)
_PUNCT_RE = re.compile(r"[^\w\s]|_")
_SPACE_RE = re.compile(r"\s+")


def normalize_line(text: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace"""
    text = _PUNCT_RE.sub(" ", text.lower())
    return _SPACE_RE.sub(" ", text).strip()


def _word_set(text: str) -> set[str]:
    normalized = normalize_line(text)
    return set(normalized.split(" ")) if normalized else set()


def jaccard(a: str, b: str) -> float:
    """Word-set intersection over union; 0 when either side is empty"""
    words_a = _word_set(a)
    words_b = _word_set(b)
    if not words_a or not words_b:
        return 0.0
    inter = len(words_a & words_b)
    return inter / (len(words_a) + len(words_b) - inter)


def similarity_to_recent(candidate: str, recent: Sequence[str]) -> float:
    return max((jaccard(candidate, r) for r in recent), default=0.0)


def pick_dissimilar(candidates: Sequence[str], recent: Sequence[str]) -> str:
    """Return the usable candidate with the lowest max-Jaccard score.

    Candidates shorter than ``MIN_CANDIDATE_LENGTH`` normalized characters
    are ignored. Ties keep the earliest candidate. Returns ``""`` when no
    candidate is usable.
    """
    pool = [c.strip() for c in candidates if c and len(normalize_line(c)) >= MIN_CANDIDATE_LENGTH]
    if not pool:
        return ""

    best = pool[0]
    best_score = similarity_to_recent(best, recent)
    for candidate in pool[1:]:
        score = similarity_to_recent(candidate, recent)
        if score < best_score:
            best, best_score = candidate, score
    return best
