# capability_adapter/models/invocation.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvocationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    operation_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)
    ordinal: int = Field(ge=0)
    environment: Optional[str] = None


class SyncItemResult(BaseModel):
    record: InvocationRecord
    target_operation: str
    success: bool
    skipped: bool = False
    error: Optional[Dict[str, Any]] = None
    result: Any = None


class SyncReport(BaseModel):
    source_environment: Optional[str] = None
    target_environment: str
    success: bool
    total: int = 0
    applied: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[SyncItemResult] = []
    errors: List[str] = []
