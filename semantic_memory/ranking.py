"""Hybrid Ranking Engine: similarity, lexical and fused search with recency decay.

Every result carries the undecayed ``raw_score``, the memory's age in days
since its reference time (last validation, else creation), the
exponential half-life ``decay_factor`` and the final
``score = raw_score * decay_factor`` used for ordering.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from .errors import ConfigError, DatabaseError
from .models import MatchType, SearchResult
from .store import Candidate, RecordStore
from .utils import utcnow

SECONDS_PER_DAY = 86400.0
RRF_K = 60


def compute_decay(reference: datetime, now: datetime, half_life_days: float) -> tuple[float, float]:
    """Return (age_days, decay_factor) for a memory anchored at reference.

    Age is clamped at 0 so a reference time in the future (clock skew)
    never yields a factor above 1.
    """
    age_days = max(0.0, (now - reference).total_seconds() / SECONDS_PER_DAY)
    return age_days, 0.5 ** (age_days / half_life_days)


def _rrf_fusion(
    vector_ranked: list[Candidate], fts_ranked: list[Candidate], fts_weight: float, k: int = RRF_K
) -> list[Candidate]:
    """Weighted Reciprocal Rank Fusion of two raw-ranked candidate lists."""
    scores: dict[str, float] = {}
    memories = {}

    vector_weight = 1 - fts_weight
    for rank, (memory, _) in enumerate(vector_ranked):
        scores[memory.id] = scores.get(memory.id, 0) + vector_weight / (k + rank + 1)
        memories[memory.id] = memory

    for rank, (memory, _) in enumerate(fts_ranked):
        scores[memory.id] = scores.get(memory.id, 0) + fts_weight / (k + rank + 1)
        memories.setdefault(memory.id, memory)

    return [(memories[mid], score) for mid, score in scores.items()]


class RankingEngine:
    """Runs queries against a RecordStore and ranks matches by decayed score.

    The half-life is fixed at construction so every query path scores
    with the same configured value.
    """

    def __init__(
        self,
        store: RecordStore,
        half_life_days: float = 90.0,
        fts_weight: float = 0.3,
        clock: Callable[[], datetime] = utcnow,
    ):
        if half_life_days <= 0:
            raise ConfigError(f"half_life_days must be positive, got {half_life_days}")
        self.store = store
        self.half_life_days = half_life_days
        self.fts_weight = fts_weight
        self._clock = clock

    def _rank(self, candidates: list[Candidate], match_type: MatchType, limit: int) -> list[SearchResult]:
        now = self._clock()
        results = []
        for memory, raw_score in candidates:
            age_days, decay_factor = compute_decay(memory.reference_time, now, self.half_life_days)
            results.append(
                SearchResult(
                    memory=memory,
                    raw_score=raw_score,
                    age_days=age_days,
                    decay_factor=decay_factor,
                    score=raw_score * decay_factor,
                    match_type=match_type,
                )
            )
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    @staticmethod
    def _check_limit(limit: int) -> DatabaseError | None:
        if limit <= 0:
            return DatabaseError(f"limit must be positive, got {limit}")
        return None

    def search(
        self,
        query_embedding: list[float],
        limit: int = 10,
        threshold: float = 0.3,
        collection: str | None = None,
    ) -> tuple[list[SearchResult], DatabaseError | None]:
        """Similarity search.

        The threshold filters on the raw similarity, not the decayed
        score, so a strong but old match survives while still ranking
        below fresher ones.
        """
        error = self._check_limit(limit)
        if error:
            return [], error
        candidates, error = self.store.vector_candidates(query_embedding, collection)
        if error:
            return [], error
        kept = [(memory, raw) for memory, raw in candidates if raw >= threshold]
        return self._rank(kept, "vector", limit), None

    def fts_search(
        self, query: str, limit: int = 10, collection: str | None = None
    ) -> tuple[list[SearchResult], DatabaseError | None]:
        """Lexical (BM25) search; no threshold since only matching rows come back."""
        error = self._check_limit(limit)
        if error:
            return [], error
        if not query.strip():
            return [], None
        candidates, error = self.store.lexical_candidates(query, collection)
        if error:
            return [], error
        return self._rank(candidates, "fts", limit), None

    def hybrid_search(
        self,
        query: str,
        query_embedding: list[float],
        limit: int = 10,
        threshold: float = 0.3,
        collection: str | None = None,
    ) -> tuple[list[SearchResult], DatabaseError | None]:
        """Vector + BM25 fused by weighted RRF, then decayed like the other paths."""
        error = self._check_limit(limit)
        if error:
            return [], error
        vector_candidates, error = self.store.vector_candidates(query_embedding, collection)
        if error:
            return [], error
        fts_candidates: list[Candidate] = []
        if query.strip():
            fts_candidates, error = self.store.lexical_candidates(query, collection)
            if error:
                return [], error

        vector_ranked = sorted(
            ((m, raw) for m, raw in vector_candidates if raw >= threshold),
            key=lambda c: c[1],
            reverse=True,
        )
        fts_ranked = sorted(fts_candidates, key=lambda c: c[1], reverse=True)
        fused = _rrf_fusion(vector_ranked, fts_ranked, self.fts_weight)
        return self._rank(fused, "hybrid", limit), None
