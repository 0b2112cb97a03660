"""Reinforcement Operator: resets a memory's decay clock."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from .errors import MemoryNotFoundError, MemoryStoreError
from .store import RecordStore
from .utils import utcnow


class ReinforcementOperator:
    def __init__(self, store: RecordStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self._clock = clock

    def validate(self, memory_id: str) -> MemoryStoreError | None:
        """Mark a memory as confirmed now.

        Only last_validated_at moves; content, metadata, collection and
        embedding are untouched. Scores already handed out are not revised.
        """
        memory, error = self.store.get(memory_id)
        if error:
            return error
        if memory is None:
            return MemoryNotFoundError(memory_id)
        return self.store.mark_validated(memory_id, self._clock())
