import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from playgen.domain.errors import MalformedResponse, NotFound, TransportFailure


class EntryStatus(str, Enum):
    """Outcome of dispatching a top-level playlist entry."""

    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"
    MALFORMED = "malformed"
    ERROR = "error"


def status_for_error(error: Exception) -> EntryStatus:
    """Map a resolution failure to a report status."""
    if isinstance(error, NotFound):
        return EntryStatus.NOT_FOUND
    if isinstance(error, TransportFailure):
        return EntryStatus.TRANSPORT_ERROR
    if isinstance(error, MalformedResponse):
        return EntryStatus.MALFORMED
    return EntryStatus.ERROR


@dataclass
class ReportHeader:
    """Header information for a dispatch report."""

    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    source: str = ""
    ordering: str = "none"
    grouping: str = "none"
    deduplicate: bool = True

    def to_json(self) -> Dict[str, Any]:
        """Serialize header to JSON."""
        return {
            "runId": self.run_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "source": self.source,
            "ordering": self.ordering,
            "grouping": self.grouping,
            "deduplicate": self.deduplicate,
        }


@dataclass
class EntryResult:
    """Result of dispatching one entry."""

    entry: str
    kind: str
    status: EntryStatus
    reason: Optional[str] = None
    track_count: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {
            "entry": self.entry,
            "kind": self.kind,
            "status": self.status.value,
            "reason": self.reason,
            "trackCount": self.track_count,
        }


def _count_tracks(value: Any) -> int:
    # A dispatched entry yields a track or an arbitrarily nested queue of tracks
    if hasattr(value, "to_list"):
        return sum(_count_tracks(item) for item in value.to_list())
    return 1


@dataclass
class DispatchReport:
    """Collects per-entry outcomes while a playlist is dispatched.

    Resolution failures never change the generated playlist; this report is the
    side channel that tells which entries were dropped and why.
    """

    header: ReportHeader
    entries: List[EntryResult] = field(default_factory=list)
    output_count: int = 0

    def record_success(self, entry: Any, value: Any) -> None:
        self.entries.append(EntryResult(
            entry=getattr(entry, "entry", str(entry)),
            kind=type(entry).__name__.lower(),
            status=EntryStatus.RESOLVED,
            track_count=_count_tracks(value),
        ))

    def record_failure(self, entry: Any, error: Exception) -> None:
        self.entries.append(EntryResult(
            entry=getattr(entry, "entry", str(entry)),
            kind=type(entry).__name__.lower(),
            status=status_for_error(error),
            reason=str(error) or type(error).__name__,
        ))

    def finish(self, output_count: int) -> None:
        self.output_count = output_count
        self.header.finished_at = datetime.now(timezone.utc)

    def totals(self) -> Dict[str, int]:
        """Number of entries per status."""
        counts = {status.value: 0 for status in EntryStatus}
        for result in self.entries:
            counts[result.status.value] += 1
        return counts

    def dropped(self) -> List[EntryResult]:
        return [r for r in self.entries if r.status is not EntryStatus.RESOLVED]

    def to_json(self) -> Dict[str, Any]:
        return {
            "header": self.header.to_json(),
            "totals": self.totals(),
            "outputCount": self.output_count,
            "entries": [r.to_json() for r in self.entries],
        }

    def save(self, report_path: str) -> str:
        """Write the report as JSON into `report_path` and return the file name."""
        os.makedirs(report_path, exist_ok=True)
        report_file = os.path.join(report_path, f"dispatch_report_{self.header.run_id}.json")
        with open(report_file, "w") as f:
            json.dump(self.to_json(), f, indent=2, ensure_ascii=False)
        return report_file


def create_dispatch_report(run_id: str, source: str = "") -> DispatchReport:
    """Create an empty report for a new run."""
    return DispatchReport(header=ReportHeader(
        run_id=run_id,
        started_at=datetime.now(timezone.utc),
        source=source,
    ))
