"""Database reads behind the availability resolver and the routes."""
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from availability import DateRange, NotFoundError, Scope
from models import (
    BlockedDate,
    Booking,
    BookingHold,
    Homestay,
    OCCUPYING_STATUSES,
    Room,
    Season,
)


async def get_room(session: AsyncSession, room_id: int) -> Room:
    room = await session.get(Room, room_id)
    if room is None:
        raise NotFoundError("room", room_id)
    return room


async def get_homestay(session: AsyncSession, homestay_id: int) -> Homestay:
    homestay = await session.get(Homestay, homestay_id)
    if homestay is None:
        raise NotFoundError("homestay", homestay_id)
    return homestay


class SqlAvailabilityStore:
    """AvailabilityStore backed by the request's session.

    Room scope also picks up whole-homestay bookings and homestay-wide blocks
    (rows with room_id NULL) of the room's homestay.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._rooms: Dict[int, Room] = {}

    async def _room(self, room_id: int) -> Room:
        if room_id not in self._rooms:
            self._rooms[room_id] = await get_room(self.session, room_id)
        return self._rooms[room_id]

    async def list_bookings(self, target_id: int, scope: Scope) -> Sequence[Booking]:
        statement = select(Booking).where(Booking.status.in_(list(OCCUPYING_STATUSES)))
        if scope == Scope.ROOM:
            room = await self._room(target_id)
            statement = statement.where(
                or_(
                    Booking.room_id == room.id,
                    and_(Booking.room_id.is_(None), Booking.homestay_id == room.homestay_id),
                )
            )
        else:
            await get_homestay(self.session, target_id)
            statement = statement.where(Booking.homestay_id == target_id)

        result = await self.session.execute(statement)
        return result.scalars().all()

    async def list_blocked_dates(self, target_id: int, scope: Scope) -> Sequence[BlockedDate]:
        statement = select(BlockedDate)
        if scope == Scope.ROOM:
            room = await self._room(target_id)
            statement = statement.where(
                BlockedDate.homestay_id == room.homestay_id,
                or_(BlockedDate.room_id == room.id, BlockedDate.room_id.is_(None)),
            )
        else:
            await get_homestay(self.session, target_id)
            statement = statement.where(BlockedDate.homestay_id == target_id)

        result = await self.session.execute(statement)
        return result.scalars().all()


async def list_booked_ranges(session: AsyncSession, homestay_id: int) -> List[dict]:
    statement = (
        select(Booking.room_id, Booking.check_in, Booking.check_out)
        .where(Booking.homestay_id == homestay_id)
        .where(Booking.status.in_(list(OCCUPYING_STATUSES)))
        .order_by(Booking.check_in)
    )
    result = await session.execute(statement)
    return [
        {"room_id": room_id, "check_in": check_in, "check_out": check_out}
        for room_id, check_in, check_out in result.all()
    ]


async def list_rooms(session: AsyncSession, homestay_id: int) -> Sequence[Room]:
    statement = select(Room).where(Room.homestay_id == homestay_id).order_by(Room.id)
    result = await session.execute(statement)
    return result.scalars().all()


async def list_blocked_dates(session: AsyncSession, homestay_id: int) -> Sequence[BlockedDate]:
    statement = (
        select(BlockedDate)
        .where(BlockedDate.homestay_id == homestay_id)
        .order_by(BlockedDate.start_date)
    )
    result = await session.execute(statement)
    return result.scalars().all()


async def list_seasons(session: AsyncSession, room_id: int) -> Sequence[Season]:
    statement = select(Season).where(Season.room_id == room_id).order_by(Season.start_date)
    result = await session.execute(statement)
    return result.scalars().all()


async def find_conflicting_holds(
    session: AsyncSession,
    room_id: int,
    candidate: DateRange,
    now: datetime,
    exclude_session: Optional[str] = None,
) -> Sequence[BookingHold]:
    """Live holds on the room overlapping the candidate, owned by other sessions."""
    statement = select(BookingHold).where(
        BookingHold.room_id == room_id,
        BookingHold.expires_at > now,
        BookingHold.check_in < candidate.end,
        BookingHold.check_out > candidate.start,
    )
    if exclude_session is not None:
        statement = statement.where(BookingHold.session_id != exclude_session)
    result = await session.execute(statement)
    return result.scalars().all()


async def find_session_holds(session: AsyncSession, room_id: int, session_id: str) -> Sequence[BookingHold]:
    statement = select(BookingHold).where(
        BookingHold.room_id == room_id, BookingHold.session_id == session_id
    )
    result = await session.execute(statement)
    return result.scalars().all()


async def find_booking(session: AsyncSession, homestay_id: int, booking_id: int) -> Optional[Booking]:
    statement = select(Booking).where(
        Booking.homestay_id == homestay_id, Booking.id == booking_id
    )
    result = await session.execute(statement)
    return result.scalars().first()
