from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import math

from util import logger

PRICE_QUANTUM = Decimal("0.01")


class ParseError(ValueError):
    pass


class ordered_set:
    def __init__(self, iterable: Optional[Sequence[Decimal]] = None) -> None:
        if not iterable:
            self._array = []
            self._set = set()
            return

        self._set: Set[Decimal] = set(iterable)
        self._array: List[Decimal] = list(self._set)
        self._array.sort()

    def __getitem__(self, index: int) -> Decimal:
        return self._array[index]

    def __contains__(self, key: Decimal) -> bool:
        return key in self._set

    def __len__(self) -> int:
        return len(self._array)

    def __iter__(self) -> Iterator[Decimal]:
        return iter(self._array)

    def __reversed__(self) -> Iterator[Decimal]:
        return reversed(self._array)

    def _find_bin(self, key: Decimal) -> int:
        n = len(self._array)
        start = 0
        while n > 1:
            left = (n + 1) // 2
            right = n - left
            mid = start + left - 1
            if key > self._array[mid]:
                start = mid + 1
                n = right
            else:
                n = left

        return start

    def indexof(self, key: Decimal) -> int:
        return self._find_bin(key)

    def add(self, key: Decimal):
        if key in self._set:
            return

        if len(self._array) == 0:
            self._array.append(key)
        else:
            ind = self._find_bin(key)
            if key < self._array[ind]:
                self._array.insert(ind, key)
            else:
                self._array.insert(ind + 1, key)

        self._set.add(key)

    def remove(self, key: Decimal):
        if key not in self._set:
            return

        ind = self._find_bin(key)
        assert self._array[ind] == key

        self._array.pop(ind)
        self._set.remove(key)

    def clear(self):
        self._array = []
        self._set = set()

    def copy(self) -> "ordered_set":
        other = ordered_set()
        other._array = list(self._array)
        other._set = set(self._set)
        return other


class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @classmethod
    def from_feed(cls, name: str) -> "Side":
        side = _FEED_SIDES.get(str(name).lower())
        if side is None:
            raise ValueError(f"unknown side \"{name}\"")
        return side

    @property
    def descending(self) -> bool:
        # best bid is the highest price, best ask the lowest
        return self is Side.BUY


_FEED_SIDES: Dict[str, Side] = {
    "buy": Side.BUY,
    "bid": Side.BUY,
    "sell": Side.SELL,
    "ask": Side.SELL,
    "offer": Side.SELL,
}


def normalize_price(raw: Any) -> Decimal:
    try:
        price = Decimal(str(raw).strip())
        if price.is_finite():
            return price.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        pass

    raise ParseError(f"invalid price {raw!r}")


def parse_size(raw: Any) -> float:
    try:
        size = float(raw)
    except (TypeError, ValueError):
        raise ParseError(f"invalid size {raw!r}") from None

    if not math.isfinite(size) or size < 0:
        raise ParseError(f"invalid size {raw!r}")
    return size


def parse_level(raw_price: Any, raw_size: Any) -> Tuple[Decimal, float]:
    return normalize_price(raw_price), parse_size(raw_size)


class OrderBook:
    """Price levels of one side, iterated best price first."""

    def __init__(self, side: Side) -> None:
        self.side = side

        self._levels: Dict[Decimal, float] = dict()
        self._prices: ordered_set = ordered_set()

    def __len__(self) -> int:
        return len(self._prices)

    def __contains__(self, price: Decimal) -> bool:
        return price in self._levels

    def __repr__(self) -> str:
        return f"OrderBook({self.side.value}, {len(self)} levels)"

    def set(self, price: Decimal, size: float):
        if size <= 0:
            raise ValueError(f"size must be positive, got {size} at {price}, use delete()")

        if price not in self._levels:
            self._prices.add(price)
        self._levels[price] = size

    def delete(self, price: Decimal):
        if self._levels.pop(price, None) is not None:
            self._prices.remove(price)

    def get(self, price: Decimal, default: Optional[float] = None) -> Optional[float]:
        return self._levels.get(price, default)

    def has(self, price: Decimal) -> bool:
        return price in self._levels

    def clear(self):
        self._levels.clear()
        self._prices.clear()

    def prices(self, side: Optional[Side] = None) -> Iterator[Decimal]:
        side = side or self.side
        return reversed(self._prices) if side.descending else iter(self._prices)

    def ordered_entries(self, side: Optional[Side] = None) -> Iterator[Tuple[Decimal, float]]:
        for price in self.prices(side):
            yield price, self._levels[price]

    def best(self) -> Optional[Tuple[Decimal, float]]:
        return next(self.ordered_entries(), None)

    def snapshot_copy(self) -> "OrderBook":
        other = OrderBook(self.side)
        other._levels = dict(self._levels)
        other._prices = self._prices.copy()
        return other


def build_book(book: OrderBook, levels: Iterable[Sequence[Any]]) -> int:
    """Replace the contents of ``book`` with the levels of a snapshot.

    Each level is a ``(price, size)`` pair of raw feed values. Entries that
    fail to parse are logged and skipped, zero sizes are never inserted and a
    later duplicate of a normalized price overwrites an earlier one.

    Returns the number of skipped (malformed) entries.
    """
    book.clear()

    skipped = 0
    for level in levels:
        try:
            price, size = parse_level(level[0], level[1])
        except (ParseError, IndexError, KeyError, TypeError) as err:
            logger.warning(f"skipping malformed {book.side.value} snapshot level {level!r}: {err}")
            skipped += 1
            continue

        if size == 0:
            continue
        book.set(price, size)

    return skipped


def apply_changes(book: OrderBook, changes: Iterable[Tuple[Any, Any]]) -> int:
    """Apply raw ``(price, size)`` changes to ``book`` in arrival order.

    Every change states the absolute size of its level: zero removes the
    level, anything else overwrites it. Returns the number of skipped
    (malformed) changes.
    """
    skipped = 0
    for raw_price, raw_size in changes:
        try:
            price, size = parse_level(raw_price, raw_size)
        except ParseError as err:
            logger.warning(f"skipping malformed {book.side.value} change ({raw_price!r}, {raw_size!r}): {err}")
            skipped += 1
            continue

        if size == 0:
            if book.has(price):
                book.delete(price)
        else:
            book.set(price, size)

    return skipped
