# capability_adapter/services/invocation_tracker.py
from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from capability_adapter.models.invocation import InvocationRecord

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvocationTracker:
    """
    Append-only log of completed operation calls for one tracking session.

    Ordinals start at 0 and grow by one per record; ``clear`` ends the session
    and the next record starts again at 0. Arguments and results are copied on
    record so later mutation by the caller cannot rewrite history.
    """

    def __init__(self, environment: Optional[str] = None, *, clock: Callable[[], datetime] = _utcnow):
        self.environment = environment
        self._clock = clock
        self._records: List[InvocationRecord] = []
        self._next_ordinal = 0

    def record(self, operation_name: str, args: Optional[Dict[str, Any]], result: Any) -> InvocationRecord:
        rec = InvocationRecord(
            operation_name=operation_name,
            arguments=copy.deepcopy(dict(args or {})),
            result=copy.deepcopy(result),
            timestamp=self._clock(),
            ordinal=self._next_ordinal,
            environment=self.environment,
        )
        self._records.append(rec)
        self._next_ordinal += 1
        log.info("[tracker:%s] recorded %s (#%d)", self.environment or "-", operation_name, rec.ordinal)
        return rec

    def drain(self) -> Tuple[InvocationRecord, ...]:
        """Every record so far, in ordinal order. Does not clear."""
        return tuple(self._records)

    def clear(self) -> int:
        n = len(self._records)
        self._records = []
        self._next_ordinal = 0
        log.info("[tracker:%s] cleared %d records", self.environment or "-", n)
        return n

    @property
    def count(self) -> int:
        return len(self._records)

    def has_records(self) -> bool:
        return bool(self._records)

    def __len__(self) -> int:
        return len(self._records)
