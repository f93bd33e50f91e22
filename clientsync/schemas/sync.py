"""
Reconciliation pass results.
"""
from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_ERROR_LOG = 10


class SyncKind:
    FULL = "full"
    IMPORT = "import"
    EXPORT = "export"


class SyncResult(BaseModel):
    """Counts and bounded error log for one pass."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: str = SyncKind.FULL
    success: bool = True
    message: str = ""
    imported: int = 0
    updated: int = 0
    errors: int = 0
    synced_to_sheet: int = 0
    skipped: int = 0
    duration_ms: int = 0
    error_log: list[str] = Field(default_factory=list)
    already_running: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def record_error(self, message: str) -> None:
        self.errors += 1
        self.error_log.append(message)
        del self.error_log[:-MAX_ERROR_LOG]

    def finish(self, message: Optional[str] = None) -> "SyncResult":
        self.finished_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.finished_at - self.started_at).total_seconds() * 1000)
        if message is not None:
            self.message = message
        elif not self.message:
            self.message = self.summary()
        return self

    def fail(self, message: str) -> "SyncResult":
        self.success = False
        self.error_log.append(message)
        del self.error_log[:-MAX_ERROR_LOG]
        return self.finish(message)

    def absorb(self, other: "SyncResult") -> None:
        """Fold a sub-pass into this result (used by full sync)."""
        self.imported += other.imported
        self.updated += other.updated
        self.skipped += other.skipped
        self.synced_to_sheet += other.synced_to_sheet
        self.errors += other.errors
        self.error_log.extend(other.error_log)
        del self.error_log[:-MAX_ERROR_LOG]
        if not other.success:
            self.success = False

    def summary(self) -> str:
        return (
            f"{self.kind} sync: {self.imported} imported, {self.updated} updated, "
            f"{self.synced_to_sheet} synced to sheet, {self.errors} errors"
        )

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
