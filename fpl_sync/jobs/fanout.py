"""Bounded-concurrency fan-out over independent items.

Used wherever one sync turns into many upstream calls (e.g. one picks request
per tournament entry). Every item ends in exactly one outcome:

    synced   handler returned a value
    skipped  handler returned None, or failed with not_found anywhere in its
             error chain (the upstream resource does not exist)
    error    any other exception; logged and recorded, never re-raised

Cancellation is not an outcome: it propagates to the caller.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from fpl_sync.errors import ErrorKind, find_in_chain
from fpl_sync.monitoring import get_logger

T = TypeVar("T")
R = TypeVar("R")

log = get_logger()


class ItemStatus(str, Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class ItemOutcome:
    item: Any
    status: ItemStatus
    value: Any = None
    error: BaseException | None = None


@dataclass
class SyncTally:
    """Per-item outcome counts of one fan-out.

    Attributes:
        synced / skipped / errors: Outcome counts
        failures: (item, message) of every errored item
        max_in_flight: Highest number of handlers running at once
    """

    synced: int = 0
    skipped: int = 0
    errors: int = 0
    failures: list[tuple[Any, str]] = field(default_factory=list)
    max_in_flight: int = 0

    @property
    def total(self) -> int:
        return self.synced + self.skipped + self.errors

    def add(self, outcome: ItemOutcome) -> None:
        if outcome.status is ItemStatus.SYNCED:
            self.synced += 1
        elif outcome.status is ItemStatus.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1
            self.failures.append((outcome.item, str(outcome.error)))

    def to_dict(self) -> dict:
        return {"synced": self.synced, "skipped": self.skipped, "errors": self.errors, "total": self.total}


async def map_bounded(
    items: Iterable[T],
    handler: Callable[[T], Awaitable[R | None]],
    concurrency: int,
    label: str = "fanout",
) -> tuple[list[ItemOutcome], SyncTally]:
    """Run handler over items with at most ``concurrency`` in flight.

    Args:
        items: Items to process
        handler: Coroutine function called once per item
        concurrency: Maximum handlers running at once (>= 1)
        label: Name used in log events

    Returns:
        Outcomes in item order, and their tally
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    semaphore = asyncio.Semaphore(concurrency)
    tally = SyncTally()
    in_flight = 0

    async def run(item: T) -> ItemOutcome:
        nonlocal in_flight
        async with semaphore:
            in_flight += 1
            tally.max_in_flight = max(tally.max_in_flight, in_flight)
            try:
                value = await handler(item)
            except Exception as e:
                if find_in_chain(e, ErrorKind.NOT_FOUND):
                    log.info(f"{label}_item_skipped", item=item, reason="not_found")
                    return ItemOutcome(item, ItemStatus.SKIPPED, error=e)
                log.warning(f"{label}_item_failed", item=item, error=str(e), error_type=type(e).__name__)
                return ItemOutcome(item, ItemStatus.ERROR, error=e)
            finally:
                in_flight -= 1
        if value is None:
            return ItemOutcome(item, ItemStatus.SKIPPED)
        return ItemOutcome(item, ItemStatus.SYNCED, value=value)

    outcomes = list(await asyncio.gather(*(run(item) for item in items)))
    for outcome in outcomes:
        tally.add(outcome)
    return outcomes, tally
