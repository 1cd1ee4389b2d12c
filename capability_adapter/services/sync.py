# capability_adapter/services/sync.py
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Union

from capability_adapter.errors import GenerationError
from capability_adapter.models.capability import Environment
from capability_adapter.models.invocation import InvocationRecord, SyncItemResult, SyncReport
from capability_adapter.results import Err, Ok, Result
from .operation_factory import OperationFactory

log = logging.getLogger(__name__)


def _identity(name: str) -> str:
    return name


class ReplayService:
    """
    Re-issues tracked invocations against another environment.

    Records are applied one at a time in ordinal order, through the target's
    own validators and breaker, so a replay sees exactly what a live caller
    would. A name missing from the target counts as a failed item.
    """

    def __init__(
        self,
        factory: OperationFactory,
        target_environment: Union[Environment, str],
        *,
        name_mapper: Callable[[str], str] = _identity,
        stop_on_failure: bool = False,
    ):
        self._factory = factory
        self.target_environment = target_environment
        self._name_mapper = name_mapper
        self.stop_on_failure = stop_on_failure

    async def apply(
        self,
        records: Iterable[InvocationRecord],
        *,
        source_environment: Optional[str] = None,
    ) -> Result[SyncReport, GenerationError]:
        target = getattr(self.target_environment, "value", self.target_environment)
        ordered = sorted(records, key=lambda r: r.ordinal)

        ops_r = await self._factory.get_operations(self.target_environment)
        if not ops_r.ok:
            log.warning("[sync] cannot load operations for %s: %s", target, ops_r.error.message)
            return ops_r
        ops = ops_r.value

        results: List[SyncItemResult] = []
        errors: List[str] = []
        halted = False
        for rec in ordered:
            name = self._name_mapper(rec.operation_name)
            if halted:
                results.append(SyncItemResult(record=rec, target_operation=name, success=False, skipped=True))
                continue

            op = ops.get(name)
            if op is None:
                msg = f"#{rec.ordinal} {name}: not available in {target}"
                errors.append(msg)
                results.append(SyncItemResult(
                    record=rec,
                    target_operation=name,
                    success=False,
                    error={"code": "unknown_operation", "message": msg},
                ))
                halted = self.stop_on_failure
                continue

            outcome = await op.invoke(rec.arguments)
            if outcome.ok:
                results.append(SyncItemResult(record=rec, target_operation=name, success=True, result=outcome.value))
            else:
                errors.append(f"#{rec.ordinal} {name}: {outcome.error.message}")
                results.append(SyncItemResult(
                    record=rec, target_operation=name, success=False, error=outcome.error.to_dict(),
                ))
                halted = self.stop_on_failure

        applied = sum(1 for r in results if r.success)
        skipped = sum(1 for r in results if r.skipped)
        failed = len(results) - applied - skipped
        report = SyncReport(
            source_environment=source_environment,
            target_environment=target,
            success=failed == 0 and skipped == 0,
            total=len(results),
            applied=applied,
            failed=failed,
            skipped=skipped,
            results=results,
            errors=errors,
        )
        log.info("[sync] %s -> %s: %d/%d applied, %d failed, %d skipped",
                 source_environment or "-", target, applied, len(results), failed, skipped)
        return Ok(report)
