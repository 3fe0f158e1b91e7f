"""Wall-clock and numeric helpers shared by pricing and claims."""

import time
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

Clock = Callable[[], datetime]

TWO_PLACES = Decimal("0.01")


def local_now() -> datetime:
    """Current time as an aware datetime in the server's local timezone."""
    return datetime.now().astimezone()


def now_ms() -> int:
    return int(time.time() * 1000)


def to_ms(moment: datetime) -> int:
    """Convert an aware datetime to Unix milliseconds."""
    return int(moment.timestamp() * 1000)


def day_of_year(moment: datetime) -> int:
    """1-based day of year in the datetime's own timezone (Jan 1 -> 1)."""
    return moment.timetuple().tm_yday


def seconds_of_day(moment: datetime) -> int:
    return moment.hour * 3600 + moment.minute * 60 + moment.second


def calendar_day(moment: datetime) -> date:
    """UTC calendar date used to key daily price records."""
    return moment.astimezone(timezone.utc).date()


def round_money(value: float | Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    if isinstance(value, float):
        value = Decimal(repr(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percent_change(new: Decimal, old: Decimal) -> Decimal:
    """(new - old) / old * 100, or 0 when there is no usable baseline."""
    if old <= 0:
        return Decimal("0")
    return (new - old) / old * Decimal("100")
