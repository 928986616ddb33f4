"""Typed outcomes for sync runs.

``SyncStatus`` separates "completed" from "failed" and "cancelled", and the
per-phase results keep the skip counters so callers can tell a safe partial run
(units or records skipped) from an aborted one.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation pass."""

    keys: int = 0
    delete_batches: int = 0
    rows_deleted: int = 0
    rows_inserted: int = 0


class EntitySyncResult(BaseModel):
    """Outcome of one paginated entity sync."""

    phase_id: str
    status: SyncStatus = SyncStatus.COMPLETED
    units_total: int = 0
    units_completed: int = 0
    pairs_skipped: int = 0
    pages_fetched: int = 0
    records_skipped: int = 0
    rows_written: int = 0
    rows_cleared: int = 0


class PhaseResult(BaseModel):
    """Outcome of one coordinator phase."""

    phase_id: str
    status: SyncStatus
    rows_written: int = 0
    units_skipped: int = 0
    records_skipped: int = 0
    error: str | None = None


class SyncReport(BaseModel):
    """Final outcome of a sync session."""

    status: SyncStatus
    started_at: str
    completed_at: str | None = None
    phases: list[PhaseResult] = Field(default_factory=list)
    error: str | None = None

    @property
    def units_skipped(self) -> int:
        return sum(p.units_skipped for p in self.phases)

    @property
    def records_skipped(self) -> int:
        return sum(p.records_skipped for p in self.phases)

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.COMPLETED

    def get_phase(self, phase_id: str) -> PhaseResult | None:
        for phase in self.phases:
            if phase.phase_id == phase_id:
                return phase
        return None
