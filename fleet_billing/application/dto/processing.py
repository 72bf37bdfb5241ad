"""Data transfer objects for installment collection."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class InstallmentResult:
    installment_id: str
    success: bool
    processor_ref: Optional[str] = None
    error: Optional[str] = None
    pending: bool = False

    def to_dict(self) -> dict:
        data = {"installmentId": self.installment_id, "success": self.success}
        if self.processor_ref:
            data["processorRef"] = self.processor_ref
        if self.error:
            data["error"] = self.error
        if self.pending:
            data["pending"] = True
        return data


@dataclass(frozen=True)
class ProcessingSummary:
    """Outcome of one due-installment run."""

    due_count: int
    retry_count: int
    results: List[InstallmentResult] = field(default_factory=list)
    stale_count: int = 0

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success and not r.pending)

    @property
    def pending(self) -> int:
        return sum(1 for r in self.results if r.pending)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "pending": self.pending,
            "dueCount": self.due_count,
            "retryCount": self.retry_count,
            "staleCount": self.stale_count,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class EarlyPaymentResponse:
    installment_id: str
    payment_id: str
    amount_cents: int
    processor_ref: Optional[str]


@dataclass(frozen=True)
class PayoffResponse:
    plan_id: str
    payment_id: str
    amount_cents: int
    installments_paid: int
    plan_status: str
    processor_ref: Optional[str]


@dataclass(frozen=True)
class ReminderSummary:
    due_date: str
    candidates: int
    sent: int
    skipped: int
    failed: int
