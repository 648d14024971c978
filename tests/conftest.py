"""Shared fixtures for the slippage monitor tests."""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Ensure the flat modules in python/ are importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "python"))

from order_book import OrderBook, Side  # noqa: E402


def make_book(side, levels):
    book = OrderBook(side)
    for price, size in levels.items():
        book.set(Decimal(price), size)
    return book


@pytest.fixture
def sell_book():
    return make_book(Side.SELL, {"100.00": 5, "101.00": 10})


@pytest.fixture
def buy_book():
    return make_book(Side.BUY, {"100.00": 5, "99.00": 10})
