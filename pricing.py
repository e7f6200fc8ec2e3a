"""Seasonal nightly pricing.

Each occupied night (check_in .. check_out - 1 day) is priced by the season
its date falls in; nights outside every season use the room's base price.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from availability import validate_range
from models import Season


@dataclass
class NightPrice:
    date: date
    price: int
    season_name: Optional[str] = None


@dataclass
class PriceQuote:
    total: int = 0
    breakdown: List[NightPrice] = field(default_factory=list)

    @property
    def nights(self) -> int:
        return len(self.breakdown)


def daterange(start: date, end: date) -> Iterator[date]:
    cur = start
    while cur < end:
        yield cur
        cur += timedelta(days=1)


def season_for_day(day: date, seasons: Iterable[Season]) -> Optional[Season]:
    # Season bounds are inclusive on both ends; first match wins
    for season in seasons:
        if season.start_date <= day <= season.end_date:
            return season
    return None


def calculate_total_price(
    base_price: int, check_in: date, check_out: date, seasons: Sequence[Season]
) -> PriceQuote:
    validate_range(check_in, check_out)

    quote = PriceQuote()
    for day in daterange(check_in, check_out):
        season = season_for_day(day, seasons)
        price = season.price_per_night if season else base_price
        quote.breakdown.append(
            NightPrice(date=day, price=price, season_name=season.name if season else None)
        )
        quote.total += price
    return quote


def price_range(base_price: int, seasons: Sequence[Season]) -> Tuple[int, int]:
    """Cheapest and most expensive nightly price a room can have."""
    prices = [base_price] + [s.price_per_night for s in seasons]
    return min(prices), max(prices)
