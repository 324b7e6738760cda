"""
Fan-out/fan-in over fixed-size batches.

Each task is tagged with its source index and results are re-sorted by
that index, so callers see input order whatever order tasks finish in.
Batches run one after another; only tasks inside a batch overlap.
"""

import asyncio
from typing import Awaitable, Callable, List, Sequence, Tuple, TypeVar

from tqdm import tqdm

In = TypeVar("In")
Out = TypeVar("Out")


async def _tagged(index: int, coro: Awaitable[Out]) -> Tuple[int, Out]:
    return index, await coro


async def run_in_batches(
    inputs: Sequence[In],
    worker: Callable[[In, int], Awaitable[Out]],
    batch_size: int = 20,
    desc: str = "Processing",
    unit: str = "item",
    disable_tqdm: bool = True,
) -> List[Out]:
    """
    Run ``worker(value, index)`` for every input, *batch_size* at a time.

    An exception from any task propagates once its batch has been
    gathered; later batches are not started.

    Returns:
        Worker results in input order.
    """
    size = max(1, batch_size)
    results: List[Tuple[int, Out]] = []

    with tqdm(total=len(inputs), desc=desc, unit=unit, disable=disable_tqdm) as pbar:
        for start in range(0, len(inputs), size):
            batch = inputs[start : start + size]
            done = await asyncio.gather(
                *(_tagged(start + i, worker(value, start + i)) for i, value in enumerate(batch))
            )
            results.extend(done)
            pbar.update(len(batch))

    results.sort(key=lambda pair: pair[0])
    return [value for _, value in results]
