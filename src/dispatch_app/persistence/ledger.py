"""Audit trail of optimization runs."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from supabase import Client

from ..config import Settings
from ..db.supabase import get_supabase_client
from ..errors import PersistenceError
from ..models.domain import OptimizationRunRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OptimizationLedger:
    """Writes one row per optimization run: inserted at begin, updated once at the end.

    A run that was never begun, or that already finished, cannot be finished
    again. Every write raises ``PersistenceError`` on failure; callers decide
    whether that may affect the response. When Supabase is not configured
    the ledger only logs.
    """

    def __init__(self, client: Client | None, table: str = "optimization_logs") -> None:
        self.client = client
        self.table = table
        self._open_runs: dict[str, OptimizationRunRecord] = {}

    @classmethod
    def from_settings(cls, config: Settings) -> "OptimizationLedger":
        return cls(get_supabase_client(), table=config.optimization_log_table)

    def _write(self, query: Any, run_id: str, action: str) -> None:
        try:
            query.execute()
        except Exception as exc:
            raise PersistenceError(f"Failed to {action} optimization run {run_id}: {exc}") from exc

    def begin(self, run_id: str, params: dict[str, Any]) -> OptimizationRunRecord:
        if run_id in self._open_runs:
            raise PersistenceError(f"Optimization run {run_id} has already begun")
        record = OptimizationRunRecord(run_id=run_id, input_parameters=dict(params), created_at=_utcnow())
        self._open_runs[run_id] = record
        if self.client is None:
            logger.info("Supabase not configured - optimization run %s will not be recorded", run_id)
            return record
        query = self.client.table(self.table).insert(
            {
                "log_id": record.run_id,
                "optimization_type": record.optimization_type,
                "input_parameters": record.input_parameters,
                "created_at": record.created_at.isoformat(),
            }
        )
        self._write(query, run_id, "record start of")
        return record

    def _close(self, run_id: str) -> OptimizationRunRecord:
        record = self._open_runs.pop(run_id, None)
        if record is None:
            raise PersistenceError(f"Optimization run {run_id} is not open")
        record.completed_at = _utcnow()
        return record

    def _finish(self, record: OptimizationRunRecord, action: str) -> OptimizationRunRecord:
        if self.client is None:
            logger.info("Optimization run %s finished with status %s (not recorded)", record.run_id, record.status)
            return record
        query = (
            self.client.table(self.table)
            .update(
                {
                    "completed_at": record.completed_at.isoformat(),
                    "duration_ms": record.duration_ms,
                    "output": record.output,
                    "error_message": record.error_message,
                    "status": record.status,
                }
            )
            .eq("log_id", record.run_id)
        )
        self._write(query, record.run_id, action)
        return record

    def complete(self, run_id: str, duration_ms: int, output: dict[str, Any]) -> OptimizationRunRecord:
        record = self._close(run_id)
        record.duration_ms = duration_ms
        record.status = "SUCCESS"
        record.output = output
        return self._finish(record, "record completion of")

    def fail(self, run_id: str, duration_ms: int, error_message: str) -> OptimizationRunRecord:
        record = self._close(run_id)
        record.duration_ms = duration_ms
        record.status = "ERROR"
        record.error_message = error_message
        return self._finish(record, "record failure of")
