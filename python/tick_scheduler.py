from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import asyncio
import threading
import time

from order_book import OrderBook, Side, build_book, apply_changes
from update_buffer import ChangeRecord, UpdateBuffer
from pricing import PriceQuote, compute_price, slippage
from util import logger, slippagelogger, record_timing

TRADE_VOLUME = 10
TICK_PERIOD = 1.0
REPORT_PRECISION = 4


class TickState(Enum):
    IDLE = 0
    SNAPSHOT = 1
    DRAIN_APPLY = 2
    PRICE_BEFORE_AFTER = 3
    REPORT = 4


@dataclass
class TickReport:
    side: Side
    slippage: float
    expected: PriceQuote
    executed: PriceQuote
    applied: int = 0
    skipped: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def partial(self) -> bool:
        return self.expected.partial or self.executed.partial

    def format(self, precision: int = REPORT_PRECISION) -> str:
        return f"{self.side.value} slippage -> {self.slippage:.{precision}f} %"


class SideBook:
    def __init__(self, side: Side) -> None:
        self.side = side
        self.book = OrderBook(side)
        self.buffer = UpdateBuffer(side)
        self.lock = threading.RLock()
        self.ready = False

    def load_snapshot(self, levels: Iterable[Sequence[Any]]) -> int:
        with self.lock:
            stale = self.buffer.drain()
            skipped = build_book(self.book, levels)
            self.ready = True

        if stale:
            logger.info(f"discarded {len(stale)} {self.side.value} changes older than the snapshot")
        logger.info(f"built {self.side.value} book with {len(self.book)} levels, skipped {skipped} entries")
        return skipped

    def queue(self, record: ChangeRecord):
        self.buffer.append(record)


class TickScheduler:
    def __init__(self, sidebook: SideBook, volume: float = TRADE_VOLUME, period: float = TICK_PERIOD,
                 on_report: Optional[Callable[[TickReport], None]] = None,
                 precision: int = REPORT_PRECISION) -> None:
        if volume <= 0:
            raise ValueError(f"trade volume must be positive, got {volume}")
        if period <= 0:
            raise ValueError(f"tick period must be positive, got {period}")

        self.sidebook = sidebook
        self.volume = volume
        self.period = period
        self.precision = precision
        self.on_report = on_report or self.log_report
        self.state = TickState.IDLE
        self.ticks = 0

        self._timed_cycle = record_timing(name=f"{sidebook.side.value} tick")(self._cycle)

    @property
    def side(self) -> Side:
        return self.sidebook.side

    def log_report(self, report: TickReport):
        slippagelogger.info(report.format(self.precision))

    def tick(self) -> Optional[TickReport]:
        if not self.sidebook.ready:
            logger.debug(f"{self.side.value} book has no snapshot yet, skipping tick")
            return None

        try:
            report = self._timed_cycle()
        finally:
            self.state = TickState.IDLE
        self.ticks += 1
        return report

    def _cycle(self) -> TickReport:
        sidebook = self.sidebook
        with sidebook.lock:
            self.state = TickState.SNAPSHOT
            before = sidebook.book.snapshot_copy()

            self.state = TickState.DRAIN_APPLY
            changes = sidebook.buffer.drain()
            skipped = apply_changes(sidebook.book, ((c.price, c.size) for c in changes))

            self.state = TickState.PRICE_BEFORE_AFTER
            expected = compute_price(before, self.volume)
            executed = compute_price(sidebook.book, self.volume)

        self.state = TickState.REPORT
        report = TickReport(side=self.side, slippage=slippage(expected.price, executed.price),
                            expected=expected, executed=executed,
                            applied=len(changes) - skipped, skipped=skipped)
        if report.partial:
            logger.warning(f"{self.side.value} book too thin for {self.volume} units "
                           f"(before: {expected.filled}, after: {executed.filled} filled), "
                           f"prices are unnormalized totals")
        self.on_report(report)
        return report

    async def run(self, max_ticks: Optional[int] = None):
        count = 0
        while max_ticks is None or count < max_ticks:
            await asyncio.sleep(self.period)
            self.tick()
            count += 1


class SlippageMonitor:
    """Both sides of one instrument plus the schedulers measuring them."""

    def __init__(self, volume: float = TRADE_VOLUME, period: float = TICK_PERIOD,
                 on_report: Optional[Callable[[TickReport], None]] = None,
                 precision: int = REPORT_PRECISION) -> None:
        self.sides: Dict[Side, SideBook] = {side: SideBook(side) for side in Side}
        self._schedulers: Dict[Side, TickScheduler] = {
            side: TickScheduler(sidebook, volume=volume, period=period, on_report=on_report,
                                precision=precision)
            for side, sidebook in self.sides.items()
        }

    def __getitem__(self, side: Side) -> SideBook:
        return self.sides[side]

    def scheduler(self, side: Side) -> TickScheduler:
        return self._schedulers[side]

    def schedulers(self) -> List[TickScheduler]:
        return list(self._schedulers.values())

    def on_snapshot(self, asks: Iterable[Sequence[Any]], bids: Iterable[Sequence[Any]]):
        self.sides[Side.SELL].load_snapshot(asks)
        self.sides[Side.BUY].load_snapshot(bids)

    def on_changes(self, changes: Iterable[Sequence[Any]]) -> int:
        """Route ``[side, price, size]`` changes to their side's buffer.

        Returns the number of changes dropped for an unknown or missing side.
        """
        dropped = 0
        for change in changes:
            try:
                side = Side.from_feed(change[0])
                record = ChangeRecord(side, change[1], change[2])
            except (ValueError, IndexError, KeyError, TypeError) as err:
                logger.warning(f"dropping change {change!r}: {err}")
                dropped += 1
                continue

            self.sides[side].queue(record)
        return dropped
