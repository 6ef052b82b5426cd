"""
Per-item outcomes and their fold into a strategy result.

Items may finish in any order under parallel fan-out; outcomes are merged in
input order so counts, error lists and conflict lists are deterministic.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from offersync.core.exceptions import ConcurrentUpdateError, MarketplaceAPIError


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"  # unchanged; counted as processed and successful
    FAILED = "failed"
    NEEDS_REVIEW = "needs_review"


@dataclass
class ItemOutcome:
    key: str
    kind: OutcomeKind
    error: Optional[str] = None
    retryable: bool = False
    conflict: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, key) -> "ItemOutcome":
        return cls(key=str(key), kind=OutcomeKind.SUCCESS)

    @classmethod
    def skipped(cls, key) -> "ItemOutcome":
        return cls(key=str(key), kind=OutcomeKind.SKIPPED)

    @classmethod
    def failed(cls, key, exc: BaseException) -> "ItemOutcome":
        retryable = isinstance(exc, (MarketplaceAPIError, ConcurrentUpdateError))
        message = str(exc) or exc.__class__.__name__
        return cls(key=str(key), kind=OutcomeKind.FAILED, error=message, retryable=retryable)

    @classmethod
    def needs_review(cls, key, conflict: Dict[str, Any]) -> "ItemOutcome":
        return cls(key=str(key), kind=OutcomeKind.NEEDS_REVIEW, conflict=conflict)


@dataclass
class StrategyResult:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    needs_review: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    conflicts: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, outcome: ItemOutcome) -> None:
        if outcome.kind == OutcomeKind.NEEDS_REVIEW:
            # Conflicts sit outside processed/successful/failed
            self.needs_review += 1
            self.conflicts.append(outcome.conflict or {"item": outcome.key})
            return

        self.processed += 1
        if outcome.kind == OutcomeKind.FAILED:
            self.failed += 1
            self.errors.append({
                "item": outcome.key,
                "error": outcome.error,
                "retryable": outcome.retryable,
            })
        else:
            self.successful += 1
            if outcome.kind == OutcomeKind.SKIPPED:
                self.skipped += 1

    def extend(self, outcomes: Iterable[ItemOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def as_counts(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "needs_review": self.needs_review,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "conflicts": list(self.conflicts),
        }
