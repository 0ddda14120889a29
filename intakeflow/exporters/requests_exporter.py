"""CSV export of feature requests (full list or the backlog view)."""

import csv
import io
from datetime import datetime

from ..config import BACKLOG_STATUSES, RequestStatus
from ..models import FeatureRequest
from ..persistence.store import InMemoryStore

REQUEST_COLUMNS: tuple[str, ...] = (
    "Title",
    "Status",
    "Priority Score",
    "Quality Score",
    "Complexity",
    "Tags",
    "Created At",
    "Updated At",
)

# Backlog export also includes finished work
BACKLOG_EXPORT_STATUSES: tuple[RequestStatus, ...] = (*BACKLOG_STATUSES, RequestStatus.COMPLETED)


def _score(value: float | int | None) -> str:
    return "" if value is None else f"{value:g}"


def request_row(request: FeatureRequest) -> list[str]:
    return [
        request.title,
        request.status.value,
        _score(request.priority_score),
        _score(request.quality_score),
        request.complexity.value if request.complexity else "",
        "; ".join(request.tags),
        request.created_at.isoformat(),
        request.updated_at.isoformat(),
    ]


def export_requests_csv(requests: list[FeatureRequest]) -> str:
    """
    Render requests as CSV.

    Cells containing commas, quotes or newlines are quoted; rows end in CRLF.
    """
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\r\n")
    writer.writerow(REQUEST_COLUMNS)
    writer.writerows(request_row(r) for r in requests)
    return output.getvalue()


def export_organization_requests(
    store: InMemoryStore, organization_id: str, backlog_only: bool = False
) -> str:
    """All of an organization's requests (newest first), or only the backlog."""
    statuses = BACKLOG_EXPORT_STATUSES if backlog_only else None
    return export_requests_csv(store.list_requests(organization_id, statuses=statuses))


def export_filename(kind: str = "requests", when: datetime | None = None) -> str:
    """e.g. ``requests-2026-01-31.csv`` or ``backlog-2026-01-31.csv``."""
    when = when or datetime.now()
    return f"{kind}-{when.date().isoformat()}.csv"
