"""ADLEDGER — ETL Result Models."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# ─────────────────────────────────────────────
# VALIDATION
# ─────────────────────────────────────────────


class QualityWarning(BaseModel):
    """Non-blocking data quality finding on an accepted record."""

    code: str
    message: str
    ad_id: str = ""
    date: str = ""
    details: Dict[str, Any] = {}


class ValidationResult(BaseModel):
    """Outcome of validating one fact record.

    `errors` decide `valid`; `warnings` never do.
    """

    valid: bool
    errors: List[str] = []
    warnings: List[QualityWarning] = []


class DroppedRecord(BaseModel):
    """A record excluded from a batch, with the stage and reason."""

    ad_id: str = ""
    date: str = ""
    stage: str  # "transform" | "validate"
    reason: str


class BatchResult(BaseModel):
    """What a batch of raw rows turned into."""

    input_count: int = 0
    records: List[Any] = []  # DailyInsight, kept untyped for pydantic
    dropped: List[DroppedRecord] = []
    warnings: List[QualityWarning] = []

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)

    @property
    def output_count(self) -> int:
        return len(self.records)


# ─────────────────────────────────────────────
# SYNC REPORT
# ─────────────────────────────────────────────


class AccountSyncResult(BaseModel):
    """Per-account outcome of one sync cycle."""

    account_id: str
    account_name: str = ""
    status: str = "pending"
    source_level: Optional[str] = None  # ad | campaign | account
    date_start: str = ""
    date_stop: str = ""
    entities_processed: int = 0
    records_fetched: int = 0
    records_persisted: int = 0
    records_dropped: int = 0
    other_level_rows_deleted: int = 0
    rates_backfilled: int = 0
    warnings: int = 0
    errors: List[str] = []
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: float = 0.0


class SyncReport(BaseModel):
    """Final report of a multi-account sync, produced even on partial failure."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    accounts: List[AccountSyncResult] = Field(default_factory=list)
    stopped_early: bool = False

    @property
    def accounts_succeeded(self) -> int:
        return sum(1 for a in self.accounts if a.status == "completed")

    @property
    def accounts_failed(self) -> int:
        return sum(1 for a in self.accounts if a.status == "failed")

    @property
    def entities_processed(self) -> int:
        return sum(a.entities_processed for a in self.accounts)

    @property
    def records_processed(self) -> int:
        return sum(a.records_persisted for a in self.accounts)

    @property
    def errors_encountered(self) -> int:
        return sum(len(a.errors) for a in self.accounts)

    def summary(self) -> Dict[str, Any]:
        """Flat totals for logging and API responses."""
        return {
            "accounts_total": len(self.accounts),
            "accounts_succeeded": self.accounts_succeeded,
            "accounts_failed": self.accounts_failed,
            "entities_processed": self.entities_processed,
            "records_processed": self.records_processed,
            "errors_encountered": self.errors_encountered,
            "stopped_early": self.stopped_early,
        }
