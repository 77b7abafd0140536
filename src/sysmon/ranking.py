"""Ranking of derived process views for display."""

from collections.abc import Callable, Iterable

from sysmon.models import ProcessView, SortMode

_SORT_KEYS: dict[SortMode, Callable[[ProcessView], tuple[float, float]]] = {
    SortMode.CPU: lambda view: (view.cpu_percent, view.mem_percent),
    SortMode.MEM: lambda view: (view.mem_percent, view.cpu_percent),
}


def rank(
    views: Iterable[ProcessView],
    mode: SortMode,
    limit: int | None = None,
) -> list[ProcessView]:
    """
    Order views descending by the mode's metric, the other metric breaking ties.

    The sort is stable, so rows that tie on both metrics keep their input
    order and do not jump around between ticks.

    Args:
        views: Derived process views.
        mode: Primary sort key.
        limit: Number of rows that fit on screen. None means no limit.
    """
    ranked = sorted(views, key=_SORT_KEYS[mode], reverse=True)
    if limit is None:
        return ranked
    return ranked[: max(limit, 0)]
