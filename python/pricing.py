from typing import NamedTuple

import math

from order_book import OrderBook


class PriceQuote(NamedTuple):
    price: float
    volume: float
    filled: float

    @property
    def partial(self) -> bool:
        """True when the book was too thin to fill ``volume``.

        A partial quote carries the raw accumulated cost in ``price``, not a
        per-unit price.
        """
        return self.filled < self.volume


def compute_price(book: OrderBook, volume: float) -> PriceQuote:
    """Volume weighted price to trade ``volume`` units against ``book``.

    Levels are consumed from the best price outward. If the book runs out
    before ``volume`` is filled the total cost is returned as is.
    """
    if volume <= 0:
        raise ValueError(f"trade volume must be positive, got {volume}")

    remaining = volume
    total_cost = 0.0
    for price, size in book.ordered_entries():
        quantity = min(remaining, size)
        total_cost += float(price) * quantity
        remaining -= quantity
        if remaining <= 0:
            return PriceQuote(total_cost / volume, volume, volume)

    return PriceQuote(total_cost, volume, volume - remaining)


def slippage(expected: float, executed: float) -> float:
    """Deviation of ``executed`` from ``expected`` in percent, 0 if undefined."""
    if expected == 0:
        return 0.0

    value = (executed - expected) * 100 / expected
    return value if math.isfinite(value) else 0.0
