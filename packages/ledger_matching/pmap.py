"""Bounded fan-out over ``ThreadPoolExecutor`` in the spirit of ``p-map``.

``p_map`` runs ``mapper`` over the input with at most ``concurrency`` calls in
flight and returns results in input order. The first mapper error propagates
and work that has not started yet is cancelled; callers that need isolation
(the analyzer runner) catch inside their mapper.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = list(iterable)
    if not items:
        return []
    results: dict[int, OutT] = {}

    pending = iter(enumerate(items))
    with ThreadPoolExecutor(max_workers=min(concurrency, len(items))) as pool:
        in_flight: dict[Future[OutT], int] = {}

        def _top_up() -> None:
            while len(in_flight) < concurrency:
                try:
                    idx, item = next(pending)
                except StopIteration:
                    return
                in_flight[pool.submit(mapper, item)] = idx

        _top_up()
        while in_flight:
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = in_flight.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
            _top_up()

    return [results[i] for i in range(len(items))]


__all__ = ["p_map"]
