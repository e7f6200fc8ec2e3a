from typing import Optional
from datetime import date, datetime, timezone
from enum import Enum
from sqlmodel import SQLModel, Field
from sqlalchemy import CheckConstraint, DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_field(**kwargs):
    # timestamptz on PostgreSQL; values are always aware UTC
    return Field(sa_type=DateTime(timezone=True), **kwargs)


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    VERIFIED = "verified"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    COMPLETED = "completed"


# The only statuses that hold dates. Every availability check goes through this set.
OCCUPYING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.VERIFIED}
)


class Homestay(SQLModel, table=True):
    __tablename__ = "homestays"

    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(index=True, unique=True)
    name: str
    is_active: bool = True
    created_at: datetime = timestamp_field(default_factory=utcnow)


class Room(SQLModel, table=True):
    __tablename__ = "rooms"

    id: Optional[int] = Field(default=None, primary_key=True)
    homestay_id: int = Field(foreign_key="homestays.id", index=True)
    name: str
    price_per_night: int  # whole currency units
    max_guests: int = 2


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("check_out > check_in", name="booking_range_not_empty"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    homestay_id: int = Field(foreign_key="homestays.id", index=True)
    # NULL means the whole homestay is booked
    room_id: Optional[int] = Field(default=None, foreign_key="rooms.id", index=True)
    guest_name: str
    guest_email: str
    guest_phone: str
    check_in: date = Field(index=True)
    check_out: date  # exclusive
    num_guests: int = 1
    total_price: int = 0
    status: BookingStatus = Field(default=BookingStatus.PENDING, index=True)
    notes: Optional[str] = None
    created_at: datetime = timestamp_field(default_factory=utcnow)


class BlockedDate(SQLModel, table=True):
    __tablename__ = "blocked_dates"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="blocked_range_not_empty"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    homestay_id: int = Field(foreign_key="homestays.id", index=True)
    # NULL blocks every room of the homestay
    room_id: Optional[int] = Field(default=None, foreign_key="rooms.id", index=True)
    start_date: date
    end_date: date  # exclusive
    reason: Optional[str] = None
    created_at: datetime = timestamp_field(default_factory=utcnow)


class BookingHold(SQLModel, table=True):
    __tablename__ = "booking_holds"

    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: int = Field(foreign_key="rooms.id", index=True)
    check_in: date
    check_out: date
    session_id: str = Field(index=True)
    expires_at: datetime = timestamp_field(index=True)
    created_at: datetime = timestamp_field(default_factory=utcnow)


class Season(SQLModel, table=True):
    __tablename__ = "seasons"

    id: Optional[int] = Field(default=None, primary_key=True)
    room_id: int = Field(foreign_key="rooms.id", index=True)
    name: Optional[str] = None
    start_date: date  # inclusive
    end_date: date  # inclusive
    price_per_night: int
