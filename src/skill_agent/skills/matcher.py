"""Deterministic query-to-skill matching.

Every candidate is scored on five independent signals and the best one wins:

=====================  =====================================================
exact trigger          1.0 (short-circuits)
partial trigger        0.8 substring, 0.72 when all trigger tokens are present
name                   0.7 substring either way, 0.63 when all name tokens are present
description keywords   0.5 * (0.5 + 0.5 * overlap ratio)
tag                    0.4
=====================  =====================================================
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from .models import SkillMetadata

EXACT_TRIGGER_SCORE = 1.0
PARTIAL_TRIGGER_SCORE = 0.8
NAME_MATCH_SCORE = 0.7
DESCRIPTION_MATCH_SCORE = 0.5
TAG_MATCH_SCORE = 0.4
TOKEN_SUBSET_FACTOR = 0.9

DEFAULT_MIN_SCORE = 0.3
DEFAULT_LIMIT = 5

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can", "need", "to", "of",
        "in", "for", "on", "with", "at", "by", "from", "as", "into", "and", "or",
    }
)  # fmt: skip

# CJK ideographs, Hiragana/Katakana and Hangul are written without spaces
_DENSE_CHAR = "\u4e00-\u9fff\u3040-\u30ff\uac00-\ud7af"
_WORD_RE = re.compile(rf"[\w{_DENSE_CHAR}]+")
_DENSE_RE = re.compile(rf"[{_DENSE_CHAR}]")
_NAME_SEPARATOR_RE = re.compile(r"[-_]")


def tokenize(text: str) -> list[str]:
    """Split text into word tokens.

    A run that contains dense-script characters is emitted whole, followed by
    each of its characters and each adjacent character pair, so that substring
    matching works without a dictionary.
    """
    tokens: list[str] = []
    for word in _WORD_RE.findall(text):
        tokens.append(word)
        if not _DENSE_RE.search(word):
            continue
        for i, char in enumerate(word):
            tokens.append(char)
            if i + 1 < len(word):
                tokens.append(word[i : i + 2])
    return tokens


def extract_keywords(text: str) -> set[str]:
    """Content words of ``text``: tokens longer than two characters, minus stop words."""
    return {w for w in tokenize(text.lower()) if len(w) > 2 and w not in STOP_WORDS}


@dataclass(frozen=True, slots=True)
class MatchResult:
    """A scored candidate."""

    metadata: SkillMetadata
    score: float
    matched_by: str


class SkillMatcher:
    """Scores free-text queries against skill metadata."""

    def __init__(self, min_score: float = DEFAULT_MIN_SCORE) -> None:
        self.min_score = min_score

    def score(self, query: str, metadata: SkillMetadata) -> float | None:
        """Best score in ``(0, 1]`` for ``metadata``, or None when nothing matches."""
        result = self._score_match(query.lower().strip(), metadata)
        return result.score if result else None

    def match_results(
        self,
        query: str,
        candidates: Sequence[SkillMetadata],
        limit: int = DEFAULT_LIMIT,
    ) -> list[MatchResult]:
        """Rank candidates by score, dropping those under ``min_score``.

        Ties keep the order of the candidates.
        """
        query_lower = query.lower().strip()
        results: list[MatchResult] = []
        for metadata in candidates:
            result = self._score_match(query_lower, metadata)
            if result is not None and result.score >= self.min_score:
                results.append(result)
        results.sort(key=lambda r: r.score, reverse=True)
        return results[: max(limit, 0)]

    def match(
        self,
        query: str,
        candidates: Sequence[SkillMetadata],
        limit: int = DEFAULT_LIMIT,
    ) -> list[SkillMetadata]:
        return [r.metadata for r in self.match_results(query, candidates, limit)]

    def find_best_match(
        self, query: str, candidates: Sequence[SkillMetadata]
    ) -> SkillMetadata | None:
        matches = self.match(query, candidates, limit=1)
        return matches[0] if matches else None

    def _score_match(self, query_lower: str, metadata: SkillMetadata) -> MatchResult | None:
        if not query_lower:
            return None

        best_score = 0.0
        matched_by = ""
        query_words = set(tokenize(query_lower))

        def consider(score: float, reason: str) -> None:
            nonlocal best_score, matched_by
            if score > best_score:
                best_score = score
                matched_by = reason

        for trigger in metadata.triggers:
            trigger_lower = trigger.lower().strip()
            if not trigger_lower:
                continue
            if trigger_lower == query_lower:
                return MatchResult(metadata, EXACT_TRIGGER_SCORE, f"exact trigger: {trigger}")
            if trigger_lower in query_lower:
                consider(PARTIAL_TRIGGER_SCORE, f"partial trigger: {trigger}")
            trigger_words = set(tokenize(trigger_lower))
            if trigger_words and trigger_words <= query_words:
                consider(
                    PARTIAL_TRIGGER_SCORE * TOKEN_SUBSET_FACTOR, f"trigger words: {trigger}"
                )

        name_lower = _NAME_SEPARATOR_RE.sub(" ", metadata.name.lower()).strip()
        name_words = set(tokenize(name_lower))
        if name_lower and (name_lower in query_lower or query_lower in name_lower):
            consider(NAME_MATCH_SCORE, f"name: {metadata.name}")
        elif name_words and name_words <= query_words:
            consider(NAME_MATCH_SCORE * TOKEN_SUBSET_FACTOR, f"name words: {metadata.name}")

        description_words = extract_keywords(metadata.description)
        common = sorted(description_words & query_words)
        if common:
            ratio = len(common) / max(len(description_words), 1)
            consider(
                DESCRIPTION_MATCH_SCORE * (0.5 + ratio * 0.5),
                f"description keywords: {', '.join(common)}",
            )

        for tag in metadata.tags:
            tag_lower = tag.lower().strip()
            if tag_lower and tag_lower in query_lower:
                consider(TAG_MATCH_SCORE, f"tag: {tag}")

        if best_score > 0:
            return MatchResult(metadata, best_score, matched_by)
        return None
