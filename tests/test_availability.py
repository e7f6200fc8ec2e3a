import asyncio
from datetime import date

import pytest

from availability import (
    AvailabilityResolver,
    DateRange,
    NotFoundError,
    Scope,
    ValidationError,
    is_range_free,
    merge_ranges,
    validate_range,
)
from models import BlockedDate, Booking, BookingStatus


def d(value: str) -> date:
    return date.fromisoformat(value)


def make_booking(check_in, check_out, status=BookingStatus.CONFIRMED, booking_id=None):
    return Booking(
        id=booking_id,
        homestay_id=1,
        room_id=1,
        guest_name="Guest",
        guest_email="guest@example.com",
        guest_phone="0800000000",
        check_in=d(check_in),
        check_out=d(check_out),
        status=status,
    )


def make_block(start, end):
    return BlockedDate(homestay_id=1, room_id=1, start_date=d(start), end_date=d(end))


class FakeStore:
    """In-memory AvailabilityStore that knows a fixed set of ids."""

    def __init__(self, bookings=(), blocks=(), known_ids=(1,)):
        self.bookings = list(bookings)
        self.blocks = list(blocks)
        self.known_ids = set(known_ids)
        self.calls = []

    def _check(self, target_id, scope):
        self.calls.append((target_id, scope))
        if target_id not in self.known_ids:
            raise NotFoundError(scope.value, target_id)

    async def list_bookings(self, target_id, scope):
        self._check(target_id, scope)
        return self.bookings

    async def list_blocked_dates(self, target_id, scope):
        self._check(target_id, scope)
        return self.blocks


def is_available(store, start, end, target_id=1, scope=Scope.ROOM):
    resolver = AvailabilityResolver(store)
    return asyncio.run(resolver.is_available(target_id, d(start), d(end), scope))


def unavailable(store, target_id=1, scope=Scope.ROOM):
    return asyncio.run(AvailabilityResolver(store).unavailable_ranges(target_id, scope))


class TestDateRange:
    def test_adjacent_ranges_do_not_overlap(self):
        a = DateRange(d("2026-02-10"), d("2026-02-15"))
        b = DateRange(d("2026-02-15"), d("2026-02-20"))
        assert not a.overlaps(b)
        assert not b.overlaps(a)

    def test_one_shared_night_overlaps(self):
        a = DateRange(d("2026-02-10"), d("2026-02-15"))
        b = DateRange(d("2026-02-14"), d("2026-02-20"))
        assert a.overlaps(b)
        assert b.overlaps(a)

    def test_nights(self):
        assert DateRange(d("2026-02-10"), d("2026-02-15")).nights == 5

    @pytest.mark.parametrize("start, end", [("2026-02-10", "2026-02-10"), ("2026-02-11", "2026-02-10")])
    def test_validate_range_rejects_empty_and_inverted(self, start, end):
        with pytest.raises(ValidationError):
            validate_range(d(start), d(end))


class TestMergeRanges:
    def test_merges_adjacent_blocks(self):
        merged = merge_ranges(
            [
                DateRange(d("2026-03-05"), d("2026-03-08")),
                DateRange(d("2026-03-01"), d("2026-03-05")),
            ]
        )
        assert merged == [DateRange(d("2026-03-01"), d("2026-03-08"))]

    def test_contained_range_does_not_shrink_merge(self):
        merged = merge_ranges(
            [
                DateRange(d("2026-03-01"), d("2026-03-10")),
                DateRange(d("2026-03-02"), d("2026-03-04")),
            ]
        )
        assert merged == [DateRange(d("2026-03-01"), d("2026-03-10"))]

    def test_keeps_gaps(self):
        ranges = [
            DateRange(d("2026-03-01"), d("2026-03-03")),
            DateRange(d("2026-03-04"), d("2026-03-06")),
        ]
        assert merge_ranges(ranges) == ranges

    def test_empty(self):
        assert merge_ranges([]) == []


class TestResolver:
    def test_adjacency_is_not_conflict(self):
        store = FakeStore(bookings=[make_booking("2026-02-10", "2026-02-15")])
        assert is_available(store, "2026-02-15", "2026-02-20") is True

    def test_checkout_on_checkin_day_is_free(self):
        store = FakeStore(bookings=[make_booking("2026-02-15", "2026-02-20")])
        assert is_available(store, "2026-02-10", "2026-02-15") is True

    def test_overlap_at_one_day(self):
        store = FakeStore(bookings=[make_booking("2026-02-10", "2026-02-15")])
        assert is_available(store, "2026-02-14", "2026-02-20") is False

    @pytest.mark.parametrize(
        "start, end",
        [
            ("2026-02-01", "2026-02-10"),
            ("2026-02-15", "2026-02-20"),
            ("2026-02-20", "2026-02-25"),
            ("2026-03-01", "2026-03-31"),
        ],
    )
    def test_free_gaps_between_bookings(self, start, end):
        store = FakeStore(
            bookings=[
                make_booking("2026-02-10", "2026-02-15"),
                make_booking("2026-02-25", "2026-03-01"),
            ]
        )
        assert is_available(store, start, end) is True

    @pytest.mark.parametrize(
        "start, end",
        [
            ("2026-02-09", "2026-02-16"),
            ("2026-02-01", "2026-03-01"),
            ("2026-02-10", "2026-02-15"),
            ("2026-02-11", "2026-02-12"),
        ],
    )
    def test_range_covering_or_inside_booking_is_unavailable(self, start, end):
        store = FakeStore(bookings=[make_booking("2026-02-10", "2026-02-15")])
        assert is_available(store, start, end) is False

    @pytest.mark.parametrize(
        "status", [BookingStatus.CANCELLED, BookingStatus.REJECTED, BookingStatus.COMPLETED]
    )
    def test_released_statuses_do_not_block(self, status):
        store = FakeStore(bookings=[make_booking("2026-02-10", "2026-02-15", status=status)])
        assert is_available(store, "2026-02-10", "2026-02-15") is True
        assert unavailable(store) == []

    @pytest.mark.parametrize(
        "status", [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.VERIFIED]
    )
    def test_occupying_statuses_block(self, status):
        store = FakeStore(bookings=[make_booking("2026-02-10", "2026-02-15", status=status)])
        assert is_available(store, "2026-02-12", "2026-02-13") is False

    def test_blocked_dates_block(self):
        store = FakeStore(blocks=[make_block("2026-03-01", "2026-03-05")])
        assert is_available(store, "2026-03-04", "2026-03-06") is False
        assert is_available(store, "2026-03-05", "2026-03-06") is True

    def test_unavailable_ranges_merges_adjacent_blocks(self):
        store = FakeStore(
            blocks=[make_block("2026-03-01", "2026-03-05"), make_block("2026-03-05", "2026-03-08")]
        )
        assert unavailable(store) == [DateRange(d("2026-03-01"), d("2026-03-08"))]

    def test_booking_and_block_overlap_is_additive(self):
        store = FakeStore(
            bookings=[make_booking("2026-03-03", "2026-03-10")],
            blocks=[make_block("2026-03-01", "2026-03-05")],
        )
        assert unavailable(store) == [DateRange(d("2026-03-01"), d("2026-03-10"))]

    def test_overlapping_bookings_are_tolerated(self):
        store = FakeStore(
            bookings=[
                make_booking("2026-04-01", "2026-04-05"),
                make_booking("2026-04-03", "2026-04-07"),
            ]
        )
        assert unavailable(store) == [DateRange(d("2026-04-01"), d("2026-04-07"))]
        assert is_available(store, "2026-04-07", "2026-04-08") is True

    def test_empty_stored_rows_are_skipped(self):
        broken = make_booking("2026-04-05", "2026-04-05", booking_id=7)
        store = FakeStore(bookings=[broken])
        assert unavailable(store) == []
        assert is_available(store, "2026-04-04", "2026-04-06") is True

    def test_zero_length_query_is_rejected(self):
        store = FakeStore()
        with pytest.raises(ValidationError):
            is_available(store, "2026-02-10", "2026-02-10")
        # rejected before the store is touched
        assert store.calls == []

    def test_unknown_target_raises_not_found(self):
        store = FakeStore(known_ids=())
        with pytest.raises(NotFoundError) as excinfo:
            is_available(store, "2026-02-10", "2026-02-12", target_id=42, scope=Scope.HOMESTAY)
        assert excinfo.value.target_id == 42
        assert excinfo.value.kind == "homestay"

    def test_is_range_free_with_nothing_occupied(self):
        assert is_range_free(DateRange(d("2026-01-01"), d("2026-01-02")), [])
