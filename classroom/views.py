"""
classroom.views — Serializable chart view state and pure view transforms.

Chart selection (which countries, which metrics, how to sort) lives in an
explicit ViewState value rather than in component fields. Every transform
returns a new value; nothing here mutates its input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from classroom.constants import MAX_SELECTED_COUNTRIES, WELLBEING_METRICS

SORT_ORDERS: frozenset[str] = frozenset({"asc", "desc"})


@dataclass(frozen=True, slots=True)
class ViewState:
    selected: tuple[str, ...] = ()
    metrics: tuple[str, ...] = WELLBEING_METRICS
    sort_by: str | None = None
    sort_order: str = "asc"
    max_selected: int = MAX_SELECTED_COUNTRIES

    def __post_init__(self) -> None:
        if self.sort_order not in SORT_ORDERS:
            raise ValueError(f"sort_order must be 'asc' or 'desc', got '{self.sort_order}'.")
        if self.max_selected < 1:
            raise ValueError(f"max_selected must be positive, got {self.max_selected}.")

    def toggle_entity(self, key: str) -> ViewState:
        """Select or deselect an entity. Selecting past max_selected is a no-op."""
        if key in self.selected:
            return replace(self, selected=tuple(k for k in self.selected if k != key))
        if len(self.selected) >= self.max_selected:
            return self
        return replace(self, selected=self.selected + (key,))

    def toggle_metric(self, metric: str) -> ViewState:
        if metric in self.metrics:
            return replace(self, metrics=tuple(m for m in self.metrics if m != metric))
        return replace(self, metrics=self.metrics + (metric,))

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": list(self.selected),
            "metrics": list(self.metrics),
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            "max_selected": self.max_selected,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ViewState:
        return cls(
            selected=tuple(data.get("selected", ())),
            metrics=tuple(data.get("metrics", WELLBEING_METRICS)),
            sort_by=data.get("sort_by"),
            sort_order=data.get("sort_order", "asc"),
            max_selected=int(data.get("max_selected", MAX_SELECTED_COUNTRIES)),
        )


def filter_entities(
    rows: Sequence[Mapping[str, Any]],
    selected: Iterable[str],
    key: str = "country",
) -> list[Mapping[str, Any]]:
    """Keep rows whose key is selected. An empty selection keeps everything."""
    wanted = frozenset(selected)
    if not wanted:
        return list(rows)
    return [row for row in rows if row.get(key) in wanted]


def sort_by_metric(
    rows: Sequence[Mapping[str, Any]],
    metric: str | None,
    order: str = "asc",
) -> list[Mapping[str, Any]]:
    """Stable sort on one metric. None values always go last, whatever the order."""
    if metric is None:
        return list(rows)
    if order not in SORT_ORDERS:
        raise ValueError(f"order must be 'asc' or 'desc', got '{order}'.")
    present = [r for r in rows if r.get(metric) is not None]
    absent = [r for r in rows if r.get(metric) is None]
    present.sort(key=lambda r: r[metric], reverse=(order == "desc"))
    return present + absent


def project_metrics(
    rows: Sequence[Mapping[str, Any]],
    metrics: Iterable[str],
    key: str = "country",
) -> list[dict[str, Any]]:
    """Reduce each row to its key plus the chosen metrics."""
    metrics = tuple(metrics)
    return [{key: row.get(key), **{m: row.get(m) for m in metrics}} for row in rows]


def apply_view(
    rows: Sequence[Mapping[str, Any]],
    state: ViewState,
    key: str = "country",
) -> list[dict[str, Any]]:
    """Filter, sort (on any metric, selected or not), then project."""
    filtered = filter_entities(rows, state.selected, key)
    ordered = sort_by_metric(filtered, state.sort_by, state.sort_order)
    return project_metrics(ordered, state.metrics, key)


def resource_gap(high: float | None, low: float | None) -> float | None:
    """High-ESCS minus low-ESCS math score; None if either side is missing."""
    if high is None or low is None:
        return None
    return high - low
