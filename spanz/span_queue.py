"""A fixed-size sample of spans, addressable by span context."""

from __future__ import annotations

from collections.abc import Iterator

from .model import SpanContext, SpanData


class SpanQueue:
    """Bounded queue of spans that overwrites its oldest slot when full.

    Spans are indexed by their context so that removal is constant time.
    ``count`` tracks every push and removal, not only the spans still held.
    """

    def __init__(self, max_len: int) -> None:
        if max_len < 1:
            raise ValueError("max_len must be at least 1")
        self._queue: list[SpanData] = []
        self._map: dict[SpanContext, int] = {}
        self._next_idx = 0
        self._capacity = max_len
        self._count = 0

    def push_back(self, value: SpanData) -> None:
        """Append a span, replacing the slot at the cursor once the queue is full."""
        self._next_idx %= self._capacity
        self._map[value.span_context] = self._next_idx
        if self._next_idx < len(self._queue):
            evicted = self._queue[self._next_idx]
            self._map.pop(evicted.span_context, None)
            self._queue[self._next_idx] = value
        else:
            self._queue.append(value)
        self._count += 1
        self._next_idx += 1

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self) -> Iterator[SpanData]:
        return iter(list(self._queue))

    def count(self) -> int:
        """Total spans pushed minus spans removed, never below zero."""
        return self._count

    def remove(self, span_context: SpanContext) -> SpanData | None:
        """Remove the span with this context, returning it if it was held."""
        self._count = max(self._count - 1, 0)
        idx = self._map.get(span_context)
        if idx is None:
            return None
        last = len(self._queue) - 1
        self._next_idx = last
        del self._map[span_context]
        if idx == last:
            return self._queue.pop()
        moved = self._queue.pop()
        removed = self._queue[idx]
        self._queue[idx] = moved
        self._map[moved.span_context] = idx
        return removed

    def spans(self) -> list[SpanData]:
        """All spans currently held, in slot order."""
        return list(self._queue)

    def copy(self) -> SpanQueue:
        clone = SpanQueue(self._capacity)
        clone._queue = list(self._queue)
        clone._map = dict(self._map)
        clone._next_idx = self._next_idx
        clone._count = self._count
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SpanQueue):
            return NotImplemented
        return self._queue == other._queue and self._next_idx == other._next_idx

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"SpanQueue(len={len(self._queue)}, capacity={self._capacity}, "
            f"count={self._count})"
        )