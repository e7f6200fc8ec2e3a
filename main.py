import os
import logging
from fastapi import FastAPI, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date, timedelta
from typing import Dict, List, Optional

from database import init_db, get_session
from models import BlockedDate, Booking, BookingHold, BookingStatus, Room, utcnow
from availability import (
    AvailabilityError,
    AvailabilityResolver,
    DateRange,
    NotFoundError,
    Scope,
    validate_range,
)
from pricing import calculate_total_price, price_range
import repository
from pydantic import BaseModel, Field
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Homestay Booking API")

# 1. Configuration
HOLD_MINUTES = int(os.environ.get("HOLD_MINUTES", "5"))
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
MAX_BOOKING_ID = 2 ** 63

# Host/payment driven moves. Cancelled, rejected and completed are terminal.
ALLOWED_TRANSITIONS: Dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.VERIFIED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.VERIFIED: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.REJECTED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
}


# Pydantic Schemas for Request/Response
class RangeOut(BaseModel):
    start: date
    end: date


class BookedRange(BaseModel):
    room_id: Optional[int]
    check_in: date
    check_out: date


class HomestayAvailability(BaseModel):
    booked_ranges: List[BookedRange]
    unavailable_ranges: List[RangeOut]


class RoomAvailability(BaseModel):
    room_id: int
    check_in: date
    check_out: date
    available: bool


class RoomCalendar(BaseModel):
    room_id: int
    name: str
    unavailable_ranges: List[RangeOut]


class BlockedDateCreate(BaseModel):
    homestay_id: int
    room_id: Optional[int] = None
    start_date: date
    end_date: date
    reason: Optional[str] = None


class HoldCreate(BaseModel):
    room_id: int
    check_in: date
    check_out: date
    session_id: str = Field(min_length=1)


class HoldRelease(BaseModel):
    hold_id: int
    session_id: str = Field(min_length=1)


class QuoteRequest(BaseModel):
    room_id: int
    check_in: date
    check_out: date


class BookingCreate(BaseModel):
    room_id: int
    guest_name: str = Field(min_length=1)
    guest_email: str = Field(min_length=3)
    guest_phone: str = Field(min_length=1)
    check_in: date
    check_out: date
    num_guests: int = Field(default=1, ge=1)
    notes: Optional[str] = None
    session_id: Optional[str] = None


class StatusUpdate(BaseModel):
    status: BookingStatus


def _ranges_out(ranges: List[DateRange]) -> List[RangeOut]:
    return [RangeOut(start=r.start, end=r.end) for r in ranges]


def _http_error(exc: AvailabilityError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _parse_booking_id(query: Optional[str]) -> Optional[int]:
    # ASCII digits only, and within a signed 64-bit key
    query = (query or "").strip()
    if not (query.isascii() and query.isdigit()):
        return None
    booking_id = int(query)
    return booking_id if 0 < booking_id < MAX_BOOKING_ID else None


def _conflict(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT, detail={"error": code, "message": message}
    )


async def _ensure_bookable(
    session: AsyncSession, room_id: int, candidate: DateRange, session_id: Optional[str]
) -> None:
    """Raise 409 unless the room is free and not held by another guest."""
    resolver = AvailabilityResolver(repository.SqlAvailabilityStore(session))
    if not await resolver.is_available(room_id, candidate.start, candidate.end):
        raise _conflict("DATES_UNAVAILABLE", "These dates are no longer available.")

    held = await repository.find_conflicting_holds(
        session, room_id, candidate, utcnow(), exclude_session=session_id
    )
    if held:
        raise _conflict(
            "DATES_HELD", "These dates are currently being booked by another guest."
        )


@app.on_event("startup")
async def on_startup():
    await init_db()


# --- Endpoint 1: GET /availability ---
@app.get("/availability", response_model=HomestayAvailability)
async def get_homestay_availability(
    homestay_id: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
):
    if homestay_id is None:
        raise HTTPException(status_code=400, detail="homestay_id is required")

    resolver = AvailabilityResolver(repository.SqlAvailabilityStore(session))
    try:
        merged = await resolver.unavailable_ranges(homestay_id, Scope.HOMESTAY)
    except AvailabilityError as exc:
        raise _http_error(exc)

    booked = await repository.list_booked_ranges(session, homestay_id)
    return HomestayAvailability(
        booked_ranges=[BookedRange(**row) for row in booked],
        unavailable_ranges=_ranges_out(merged),
    )


# --- Endpoint 2: GET /rooms/{room_id}/availability ---
@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability)
async def get_room_availability(
    room_id: int,
    check_in: date,
    check_out: date,
    session: AsyncSession = Depends(get_session),
):
    resolver = AvailabilityResolver(repository.SqlAvailabilityStore(session))
    try:
        available = await resolver.is_available(room_id, check_in, check_out)
    except AvailabilityError as exc:
        raise _http_error(exc)

    return RoomAvailability(
        room_id=room_id, check_in=check_in, check_out=check_out, available=available
    )


# --- Endpoint 3: GET /rooms/{room_id}/unavailable-ranges ---
@app.get("/rooms/{room_id}/unavailable-ranges", response_model=List[RangeOut])
async def get_room_unavailable_ranges(
    room_id: int, session: AsyncSession = Depends(get_session)
):
    resolver = AvailabilityResolver(repository.SqlAvailabilityStore(session))
    try:
        return _ranges_out(await resolver.unavailable_ranges(room_id))
    except AvailabilityError as exc:
        raise _http_error(exc)


# --- Endpoint 4: GET /rooms/{room_id}/price-range ---
@app.get("/rooms/{room_id}/price-range")
async def get_room_price_range(room_id: int, session: AsyncSession = Depends(get_session)):
    try:
        room = await repository.get_room(session, room_id)
    except AvailabilityError as exc:
        raise _http_error(exc)

    seasons = await repository.list_seasons(session, room_id)
    low, high = price_range(room.price_per_night, seasons)
    return {"room_id": room_id, "min": low, "max": high}


# --- Endpoint 5: GET /homestays/{homestay_id}/calendar (host dashboard) ---
@app.get("/homestays/{homestay_id}/calendar", response_model=List[RoomCalendar])
async def get_homestay_calendar(
    homestay_id: int, session: AsyncSession = Depends(get_session)
):
    try:
        await repository.get_homestay(session, homestay_id)
    except AvailabilityError as exc:
        raise _http_error(exc)

    # One store for the whole request so rooms are fetched once
    resolver = AvailabilityResolver(repository.SqlAvailabilityStore(session))
    calendar = []
    for room in await repository.list_rooms(session, homestay_id):
        ranges = await resolver.unavailable_ranges(room.id)
        calendar.append(
            RoomCalendar(room_id=room.id, name=room.name, unavailable_ranges=_ranges_out(ranges))
        )
    return calendar


# --- Endpoint 6: blocked dates ---
@app.get("/blocked-dates", response_model=List[BlockedDate])
async def list_blocked_dates(
    homestay_id: int, session: AsyncSession = Depends(get_session)
):
    try:
        await repository.get_homestay(session, homestay_id)
    except AvailabilityError as exc:
        raise _http_error(exc)
    return await repository.list_blocked_dates(session, homestay_id)


@app.post("/blocked-dates", status_code=status.HTTP_201_CREATED, response_model=BlockedDate)
async def block_dates(
    payload: BlockedDateCreate, session: AsyncSession = Depends(get_session)
):
    try:
        validate_range(payload.start_date, payload.end_date)
        await repository.get_homestay(session, payload.homestay_id)
        if payload.room_id is not None:
            room = await repository.get_room(session, payload.room_id)
            if room.homestay_id != payload.homestay_id:
                raise NotFoundError("room", payload.room_id)
    except AvailabilityError as exc:
        raise _http_error(exc)

    # Overlap with bookings or other blocks is allowed; both simply count
    blocked = BlockedDate(**payload.model_dump())
    session.add(blocked)
    await session.commit()
    await session.refresh(blocked)
    logger.info(
        "Blocked homestay %s room %s [%s, %s)",
        blocked.homestay_id, blocked.room_id, blocked.start_date, blocked.end_date,
    )
    return blocked


@app.delete("/blocked-dates/{blocked_id}")
async def unblock_dates(blocked_id: int, session: AsyncSession = Depends(get_session)):
    blocked = await session.get(BlockedDate, blocked_id)
    if blocked is None:
        raise HTTPException(status_code=404, detail="Blocked date not found")

    await session.delete(blocked)
    await session.commit()
    logger.info("Unblocked %s for homestay %s", blocked_id, blocked.homestay_id)
    return {"unblocked": blocked_id}


# --- Endpoint 7: booking holds ---
@app.post("/bookings/hold")
async def acquire_hold(payload: HoldCreate, session: AsyncSession = Depends(get_session)):
    try:
        candidate = validate_range(payload.check_in, payload.check_out)
        await repository.get_room(session, payload.room_id)
    except NotFoundError:
        raise HTTPException(
            status_code=404, detail={"error": "ROOM_NOT_FOUND", "message": "Room not found."}
        )
    except AvailabilityError as exc:
        raise _http_error(exc)

    await _ensure_bookable(session, payload.room_id, candidate, payload.session_id)

    # A guest keeps at most one hold per room
    for previous in await repository.find_session_holds(session, payload.room_id, payload.session_id):
        await session.delete(previous)

    expires_at = utcnow() + timedelta(minutes=HOLD_MINUTES)
    hold = BookingHold(
        room_id=payload.room_id,
        check_in=payload.check_in,
        check_out=payload.check_out,
        session_id=payload.session_id,
        expires_at=expires_at,
    )
    session.add(hold)
    await session.commit()
    await session.refresh(hold)
    logger.info("Hold %s on room %s until %s", hold.id, hold.room_id, expires_at)
    return {"hold_id": hold.id, "expires_at": expires_at}


@app.delete("/bookings/hold")
async def release_hold(payload: HoldRelease, session: AsyncSession = Depends(get_session)):
    hold = await session.get(BookingHold, payload.hold_id)
    if hold is not None and hold.session_id == payload.session_id:
        await session.delete(hold)
        await session.commit()
        logger.info("Released hold %s", payload.hold_id)
    return {"released": True}


# --- Endpoint 8: POST /quote ---
@app.post("/quote")
async def get_quote(payload: QuoteRequest, session: AsyncSession = Depends(get_session)):
    try:
        room = await repository.get_room(session, payload.room_id)
        seasons = await repository.list_seasons(session, room.id)
        quote = calculate_total_price(
            room.price_per_night, payload.check_in, payload.check_out, seasons
        )
    except AvailabilityError as exc:
        raise _http_error(exc)

    return {
        "room_id": room.id,
        "check_in": payload.check_in,
        "check_out": payload.check_out,
        "nights": quote.nights,
        "total_price": quote.total,
        "breakdown": [
            {"date": n.date, "price": n.price, "season_name": n.season_name}
            for n in quote.breakdown
        ],
    }


# --- Endpoint 9: POST /bookings ---
@app.post("/bookings", status_code=status.HTTP_201_CREATED, response_model=Booking)
async def create_booking(
    booking_data: BookingCreate,
    session: AsyncSession = Depends(get_session),
):
    try:
        candidate = validate_range(booking_data.check_in, booking_data.check_out)
        room = await repository.get_room(session, booking_data.room_id)
    except AvailabilityError as exc:
        raise _http_error(exc)

    if booking_data.num_guests > room.max_guests:
        raise HTTPException(
            status_code=400, detail=f"Room allows at most {room.max_guests} guests"
        )

    await _ensure_bookable(session, room.id, candidate, booking_data.session_id)

    seasons = await repository.list_seasons(session, room.id)
    quote = calculate_total_price(
        room.price_per_night, booking_data.check_in, booking_data.check_out, seasons
    )

    new_booking = Booking(
        homestay_id=room.homestay_id,
        room_id=room.id,
        guest_name=booking_data.guest_name,
        guest_email=booking_data.guest_email,
        guest_phone=booking_data.guest_phone,
        check_in=booking_data.check_in,
        check_out=booking_data.check_out,
        num_guests=booking_data.num_guests,
        total_price=quote.total,
        notes=booking_data.notes,
        status=BookingStatus.PENDING,
    )
    session.add(new_booking)

    # The guest's own hold has done its job
    if booking_data.session_id:
        for hold in await repository.find_session_holds(session, room.id, booking_data.session_id):
            await session.delete(hold)

    await session.commit()
    await session.refresh(new_booking)
    logger.info(
        "Booking %s created for room %s [%s, %s)",
        new_booking.id, room.id, new_booking.check_in, new_booking.check_out,
    )
    return new_booking


# --- Endpoint 10: PATCH /bookings/{booking_id}/status ---
@app.patch("/bookings/{booking_id}/status", response_model=Booking)
async def update_booking_status(
    booking_id: int,
    update: StatusUpdate,
    session: AsyncSession = Depends(get_session),
):
    booking = await session.get(Booking, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    current = BookingStatus(booking.status)
    if update.status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise _conflict(
            "INVALID_TRANSITION",
            f"Cannot move booking from {current.value} to {update.status.value}",
        )

    booking.status = update.status
    session.add(booking)
    await session.commit()
    await session.refresh(booking)
    logger.info("Booking %s %s -> %s", booking_id, current.value, update.status.value)
    return booking


# --- Endpoint 11: GET /bookings/search ---
@app.get("/bookings/search")
async def search_bookings(
    homestay_id: Optional[int] = None,
    query: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
):
    # Guests look up their own booking by id, scoped to the homestay
    booking_id = _parse_booking_id(query)
    if homestay_id is None or booking_id is None:
        return {"bookings": []}

    booking = await repository.find_booking(session, homestay_id, booking_id)
    if booking is None:
        return {"bookings": []}

    room_name = None
    if booking.room_id is not None:
        room = await session.get(Room, booking.room_id)
        room_name = room.name if room else None
    return {"bookings": [{**booking.model_dump(), "room_name": room_name}]}


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
