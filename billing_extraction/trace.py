"""Append-only trace accumulator threaded through each lane."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .models import TraceEntry


class Trace:
    """Collects :class:`TraceEntry` values in wall-clock order.

    The orchestrator hands each lane a fresh instance and keeps a separate
    one for the job.  A lane returns a copy of its entries in its result;
    if the lane is cut short, the orchestrator reads the entries recorded
    so far from the instance it handed over.
    """

    def __init__(self) -> None:
        self._entries: list[TraceEntry] = []

    def add(self, step: str, **data: Any) -> TraceEntry:
        entry = TraceEntry(step=step, data=data or None)
        self._entries.append(entry)
        return entry

    def extend(self, entries: Iterable[TraceEntry]) -> None:
        self._entries.extend(entries)

    @property
    def entries(self) -> list[TraceEntry]:
        return list(self._entries)

    @property
    def steps(self) -> list[str]:
        return [e.step for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
