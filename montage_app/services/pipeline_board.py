"""
Pipeline Board Projection

Groups montages into ordered stage columns. There is one column per status
option, even when it is empty. A montage whose status is outside the option
subset (removed from the catalog, or hidden by a view filter that still let
the row through) lands in a synthetic ``__unknown__`` bucket. Nothing is
dropped.

Usage:
    from montage_app.services.pipeline_board import project_board
    board = project_board(montages, ["new_lead", "quote_sent"], summarize=lambda m: m.to_summary())
    board.to_dict()
"""

from __future__ import annotations

from dataclasses import dataclass, field

from montage_app.services.stage_catalog import UNKNOWN_STAGE_LABEL, stage_label

UNKNOWN_BUCKET = "__unknown__"


@dataclass
class BoardColumn:
    status: str
    label: str
    items: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "label": self.label,
            "count": len(self.items),
            "items": self.items,
        }


@dataclass
class BoardProjection:
    columns: list[BoardColumn]
    unknown: BoardColumn

    @property
    def total(self) -> int:
        return sum(len(c.items) for c in self.columns) + len(self.unknown.items)

    def column(self, status: str) -> BoardColumn | None:
        if status == UNKNOWN_BUCKET:
            return self.unknown
        for col in self.columns:
            if col.status == status:
                return col
        return None

    def to_dict(self) -> dict:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "unknown": self.unknown.to_dict(),
            "total": self.total,
        }


def project_board(projects, status_options, summarize=None, stages=None) -> BoardProjection:
    """Bucket ``projects`` by status into the columns named by ``status_options``.

    Args:
        projects: Iterable of montages, already sorted; column order keeps it.
        status_options: Column statuses in display order. Duplicates collapse.
        summarize: Callable producing the card payload; identity when None.
        stages: Stage catalog for labels (built-in catalog when None).
    """
    summarize = summarize or (lambda p: p)

    columns: dict[str, BoardColumn] = {}
    for status in status_options:
        if status not in columns:
            columns[status] = BoardColumn(status=status, label=stage_label(status, stages))
    unknown = BoardColumn(status=UNKNOWN_BUCKET, label=UNKNOWN_STAGE_LABEL)

    for project in projects:
        target = columns.get(project.status, unknown)
        target.items.append(summarize(project))

    return BoardProjection(columns=list(columns.values()), unknown=unknown)
