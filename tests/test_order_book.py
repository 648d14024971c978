"""Tests for the per-side order book store and the snapshot/update appliers."""

from decimal import Decimal

import pytest

from conftest import make_book
from order_book import (
    OrderBook,
    ParseError,
    Side,
    apply_changes,
    build_book,
    normalize_price,
    ordered_set,
    parse_level,
)


def D(value):
    return Decimal(value)


class TestOrderedSet:
    def test_keeps_keys_sorted(self):
        keys = ordered_set([D("3"), D("1"), D("2")])
        keys.add(D("1.5"))
        keys.add(D("0.5"))
        keys.add(D("4"))
        assert list(keys) == [D("0.5"), D("1"), D("1.5"), D("2"), D("3"), D("4")]

    def test_add_existing_is_noop(self):
        keys = ordered_set()
        keys.add(D("1"))
        keys.add(D("1"))
        assert len(keys) == 1

    def test_remove(self):
        keys = ordered_set([D("1"), D("2"), D("3")])
        keys.remove(D("2"))
        keys.remove(D("5"))
        assert list(keys) == [D("1"), D("3")]
        assert D("2") not in keys

    def test_reversed(self):
        keys = ordered_set([D("1"), D("2"), D("3")])
        assert list(reversed(keys)) == [D("3"), D("2"), D("1")]

    def test_copy_is_independent(self):
        keys = ordered_set([D("1"), D("2")])
        other = keys.copy()
        other.add(D("3"))
        other.remove(D("1"))
        assert list(keys) == [D("1"), D("2")]
        assert list(other) == [D("2"), D("3")]


class TestParsing:
    def test_normalizes_to_two_decimals(self):
        assert normalize_price("100.456") == D("100.46")
        assert normalize_price("100.454") == D("100.45")
        assert normalize_price("100") == D("100.00")
        assert normalize_price(99.5) == D("99.50")

    def test_close_prices_collide(self):
        assert normalize_price("100.001") == normalize_price("99.999")

    @pytest.mark.parametrize("raw", ["abc", "", "NaN", "inf", None, "1e99999999"])
    def test_invalid_price(self, raw):
        with pytest.raises(ParseError):
            normalize_price(raw)

    @pytest.mark.parametrize("raw", ["abc", "nan", "-1", None, "inf"])
    def test_invalid_size(self, raw):
        with pytest.raises(ParseError):
            parse_level("100.00", raw)

    def test_parse_level(self):
        assert parse_level("100.001", "0.5") == (D("100.00"), 0.5)

    def test_parse_error_is_value_error(self):
        assert issubclass(ParseError, ValueError)


class TestSide:
    @pytest.mark.parametrize("name,side", [
        ("buy", Side.BUY), ("bid", Side.BUY), ("sell", Side.SELL),
        ("ask", Side.SELL), ("offer", Side.SELL), ("SELL", Side.SELL),
    ])
    def test_from_feed(self, name, side):
        assert Side.from_feed(name) is side

    def test_unknown_side(self):
        with pytest.raises(ValueError):
            Side.from_feed("hold")


class TestOrderBook:
    def test_set_then_get(self):
        book = OrderBook(Side.SELL)
        book.set(D("100.00"), 1.25)
        assert book.get(D("100.00")) == 1.25
        assert book.has(D("100.00"))
        assert D("100.00") in book
        assert len(book) == 1

    def test_set_overwrites(self):
        book = OrderBook(Side.SELL)
        book.set(D("100.00"), 1)
        book.set(D("100.00"), 3)
        assert book.get(D("100.00")) == 3
        assert len(book) == 1

    @pytest.mark.parametrize("size", [0, -1])
    def test_set_rejects_non_positive_size(self, size):
        book = OrderBook(Side.SELL)
        with pytest.raises(ValueError):
            book.set(D("100.00"), size)
        assert len(book) == 0

    def test_get_missing(self):
        book = OrderBook(Side.BUY)
        assert book.get(D("1.00")) is None
        assert book.get(D("1.00"), 0) == 0
        assert not book.has(D("1.00"))

    def test_delete(self, sell_book):
        sell_book.delete(D("100.00"))
        assert not sell_book.has(D("100.00"))
        assert [p for p, _ in sell_book.ordered_entries()] == [D("101.00")]

    def test_delete_missing_is_noop(self, sell_book):
        sell_book.delete(D("55.55"))
        assert len(sell_book) == 2

    def test_sell_order_is_ascending(self):
        book = make_book(Side.SELL, {"101.00": 2, "100.50": 1, "102.00": 3})
        assert [p for p, _ in book.ordered_entries()] == [D("100.50"), D("101.00"), D("102.00")]

    def test_buy_order_is_descending(self):
        book = make_book(Side.BUY, {"101.00": 2, "100.50": 1, "102.00": 3})
        assert list(book.ordered_entries()) == [(D("102.00"), 3), (D("101.00"), 2), (D("100.50"), 1)]

    def test_direction_override(self):
        book = make_book(Side.SELL, {"101.00": 2, "100.50": 1})
        assert [p for p, _ in book.ordered_entries(Side.BUY)] == [D("101.00"), D("100.50")]

    def test_entries_are_restartable(self, sell_book):
        assert list(sell_book.ordered_entries()) == list(sell_book.ordered_entries())

    def test_best(self, sell_book, buy_book):
        assert sell_book.best() == (D("100.00"), 5)
        assert buy_book.best() == (D("100.00"), 5)
        assert OrderBook(Side.SELL).best() is None

    def test_snapshot_copy_is_independent(self, sell_book):
        copy = sell_book.snapshot_copy()
        sell_book.set(D("99.00"), 1)
        sell_book.delete(D("101.00"))
        copy.set(D("200.00"), 7)

        assert list(copy.ordered_entries()) == [(D("100.00"), 5), (D("101.00"), 10), (D("200.00"), 7)]
        assert list(sell_book.ordered_entries()) == [(D("99.00"), 1), (D("100.00"), 5)]
        assert copy.side is Side.SELL


class TestBuildBook:
    def test_builds_from_snapshot(self):
        book = OrderBook(Side.SELL)
        skipped = build_book(book, [["101.00", "10"], ["100.00", "5"]])
        assert skipped == 0
        assert list(book.ordered_entries()) == [(D("100.00"), 5.0), (D("101.00"), 10.0)]

    def test_skips_zero_sizes(self):
        book = OrderBook(Side.BUY)
        build_book(book, [["100.00", "0"], ["99.00", "0.000"], ["98.00", "1"]])
        assert list(book.ordered_entries()) == [(D("98.00"), 1.0)]

    def test_skips_malformed_entries(self):
        book = OrderBook(Side.BUY)
        skipped = build_book(book, [["abc", "1"], ["99.00", "x"], ["98.00"], {"p": 1}, None, ["97.00", "2"]])
        assert skipped == 5
        assert list(book.ordered_entries()) == [(D("97.00"), 2.0)]

    def test_last_duplicate_wins(self):
        book = OrderBook(Side.SELL)
        build_book(book, [["100.001", "1"], ["100.004", "4"]])
        assert list(book.ordered_entries()) == [(D("100.00"), 4.0)]

    def test_replaces_previous_contents(self, sell_book):
        build_book(sell_book, [["105.00", "1"]])
        assert list(sell_book.ordered_entries()) == [(D("105.00"), 1.0)]


class TestApplyChanges:
    def test_insert_and_overwrite(self, sell_book):
        skipped = apply_changes(sell_book, [("102.00", "4"), ("100.00", "2")])
        assert skipped == 0
        assert list(sell_book.ordered_entries()) == [(D("100.00"), 2.0), (D("101.00"), 10), (D("102.00"), 4.0)]

    def test_zero_size_deletes(self, sell_book):
        apply_changes(sell_book, [("100.00", "0")])
        assert not sell_book.has(D("100.00"))

    def test_zero_size_for_missing_level_is_noop(self, sell_book):
        apply_changes(sell_book, [("250.00", "0.0")])
        assert not sell_book.has(D("250.00"))
        assert len(sell_book) == 2

    def test_last_write_wins(self):
        book = OrderBook(Side.SELL)
        apply_changes(book, [("100.00", "5"), ("100.00", "0")])
        assert not book.has(D("100.00"))

        apply_changes(book, [("100.00", "0"), ("100.00", "5")])
        assert book.get(D("100.00")) == 5.0

    def test_malformed_changes_are_skipped(self, sell_book):
        skipped = apply_changes(sell_book, [("bad", "1"), ("100.00", "-3"), ("103.00", "1")])
        assert skipped == 2
        assert sell_book.get(D("100.00")) == 5
        assert sell_book.get(D("103.00")) == 1.0

    def test_no_zero_levels_survive(self):
        book = OrderBook(Side.BUY)
        build_book(book, [["1.00", "1"], ["2.00", "0"], ["3.00", "2"]])
        apply_changes(book, [("1.00", "0"), ("4.00", "0"), ("3.00", "0"), ("5.00", "1"), ("5.00", "0")])
        assert all(size > 0 for _, size in book.ordered_entries())
        assert len(book) == 0
