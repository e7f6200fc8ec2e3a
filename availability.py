"""Date-range availability for rooms and homestays.

Bookings and host blocks are treated as half-open intervals [start, end):
a checkout on day N and a check-in on day N never conflict.
"""
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, List, Protocol, Sequence

from models import BlockedDate, Booking, OCCUPYING_STATUSES

logger = logging.getLogger(__name__)


class AvailabilityError(Exception):
    """Caller-input error. Never retried."""


class ValidationError(AvailabilityError):
    pass


class NotFoundError(AvailabilityError):
    def __init__(self, kind: str, target_id: int):
        super().__init__(f"{kind.capitalize()} {target_id} not found")
        self.kind = kind
        self.target_id = target_id


class Scope(str, Enum):
    ROOM = "room"
    HOMESTAY = "homestay"


@dataclass(frozen=True, order=True)
class DateRange:
    start: date
    end: date  # exclusive

    def overlaps(self, other: "DateRange") -> bool:
        return self.start < other.end and other.start < self.end

    @property
    def nights(self) -> int:
        return (self.end - self.start).days


def validate_range(start: date, end: date) -> DateRange:
    if start >= end:
        raise ValidationError(f"Range end {end} must be after start {start}")
    return DateRange(start, end)


def merge_ranges(ranges: Iterable[DateRange]) -> List[DateRange]:
    """Coalesce overlapping and touching ranges, ordered by start."""
    merged: List[DateRange] = []
    for current in sorted(ranges):
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = DateRange(last.start, current.end)
        else:
            merged.append(current)
    return merged


def is_range_free(candidate: DateRange, occupied: Iterable[DateRange]) -> bool:
    return not any(candidate.overlaps(r) for r in occupied)


class AvailabilityStore(Protocol):
    """Read side of the persistence layer.

    Both methods raise NotFoundError when the room or homestay is unknown.
    """

    async def list_bookings(self, target_id: int, scope: Scope) -> Sequence[Booking]: ...

    async def list_blocked_dates(self, target_id: int, scope: Scope) -> Sequence[BlockedDate]: ...


class AvailabilityResolver:
    """Answers availability questions from a snapshot of bookings and blocks.

    Stateless apart from the store it reads through; create one per request.
    """

    def __init__(self, store: AvailabilityStore):
        self.store = store

    async def occupied_ranges(self, target_id: int, scope: Scope = Scope.ROOM) -> List[DateRange]:
        bookings = await self.store.list_bookings(target_id, scope)
        blocks = await self.store.list_blocked_dates(target_id, scope)

        ranges: List[DateRange] = []
        for booking in bookings:
            if booking.status not in OCCUPYING_STATUSES:
                continue
            ranges.extend(_as_range(booking.check_in, booking.check_out, "booking", booking.id))
        for block in blocks:
            ranges.extend(_as_range(block.start_date, block.end_date, "blocked date", block.id))
        return ranges

    async def is_available(
        self, target_id: int, start: date, end: date, scope: Scope = Scope.ROOM
    ) -> bool:
        candidate = validate_range(start, end)
        occupied = await self.occupied_ranges(target_id, scope)
        available = is_range_free(candidate, occupied)
        logger.debug(
            "%s %s [%s, %s) available=%s (%d occupied ranges)",
            scope.value, target_id, start, end, available, len(occupied),
        )
        return available

    async def unavailable_ranges(self, target_id: int, scope: Scope = Scope.ROOM) -> List[DateRange]:
        return merge_ranges(await self.occupied_ranges(target_id, scope))


def _as_range(start: date, end: date, kind: str, row_id) -> List[DateRange]:
    # Rows written around the check constraints can be empty or inverted
    if start >= end:
        logger.warning("Skipping %s %s with empty range [%s, %s)", kind, row_id, start, end)
        return []
    return [DateRange(start, end)]
