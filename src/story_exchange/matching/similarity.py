"""
Similarity Engine

Scores candidate stories against a query embedding and picks the one to
deliver.

Scoring
-------
- Base score is the cosine similarity of the two vectors. It is 0 whenever
  the comparison is undefined (empty vectors, zero norm, length mismatch).
- A candidate sharing the query's archetype gains ``archetype_boost``; one
  sharing its emotion tone gains ``emotion_boost``. Boosts are added before
  ranking.
- Ranking is descending by boosted score. The sort is stable, so equal
  scores keep candidate order (callers pass candidates oldest first).
- A candidate is eligible only when its boosted score is strictly above
  ``similarity_threshold``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..config import MatchingConfig


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Candidate:
    """A stored story eligible for comparison."""
    story_id: uuid.UUID
    vector: Sequence[float]
    archetype: Optional[str] = None
    emotion_tone: Optional[str] = None
    text: str = ""
    language: str = ""


@dataclass(frozen=True)
class RankedMatch:
    candidate: Candidate
    base_score: float
    score: float

    @property
    def story_id(self) -> uuid.UUID:
        return self.candidate.story_id


# ---------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, or 0.0 when it is undefined.
    """
    if a is None or b is None:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.ndim != 1 or va.shape != vb.shape or va.size == 0:
        return 0.0

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))


def _same_label(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.strip().casefold() == right.strip().casefold()


def boosted_score(
    query_vector: Sequence[float],
    candidate: Candidate,
    query_archetype: Optional[str],
    query_emotion_tone: Optional[str],
    config: MatchingConfig,
) -> RankedMatch:
    base = cosine_similarity(query_vector, candidate.vector)
    score = base
    if _same_label(candidate.archetype, query_archetype):
        score += config.archetype_boost
    if _same_label(candidate.emotion_tone, query_emotion_tone):
        score += config.emotion_boost
    return RankedMatch(candidate=candidate, base_score=base, score=score)


def rank(
    query_vector: Sequence[float],
    candidates: Sequence[Candidate],
    query_archetype: Optional[str],
    query_emotion_tone: Optional[str],
    config: MatchingConfig,
) -> List[RankedMatch]:
    """
    Score and order candidates, best first.

    Returns an empty list when there are no candidates.
    """
    scored = [
        boosted_score(query_vector, c, query_archetype, query_emotion_tone, config)
        for c in candidates
    ]
    # sorted() is stable: ties keep input order
    return sorted(scored, key=lambda m: -m.score)


def select_match(
    ranked: Sequence[RankedMatch],
    config: MatchingConfig,
) -> Optional[RankedMatch]:
    """
    Return the best ranked match above the acceptance threshold, if any.
    """
    if not ranked:
        return None
    best = ranked[0]
    if best.score > config.similarity_threshold:
        return best
    return None
