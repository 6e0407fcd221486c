"""Abstract history ranges and their cutoff arithmetic."""

import calendar
from datetime import UTC, date, datetime, timedelta
from enum import Enum

from marketdata.models.errors import InvalidInputError


class TimeRange(Enum):
    """Closed set of history ranges a caller can request."""

    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    FIVE_YEARS = "5Y"

    @classmethod
    def parse(cls, value: str | None) -> "TimeRange":
        """
        Parse a short range token (1d, 1w, 1m, 3m, 6m, 1y, 5y).

        Matching ignores case and surrounding whitespace.

        Raises:
            InvalidInputError: If the token is empty or unknown
        """
        token = (value or "").strip().upper()
        try:
            return cls(token)
        except ValueError:
            raise InvalidInputError(
                f"Invalid time range: '{value}'. Accepted values: 1d, 1w, 1m, 3m, 6m, 1y, 5y"
            ) from None

    @property
    def token(self) -> str:
        return self.value.lower()


def _minus_months(day: date, months: int) -> date:
    year, month = divmod(day.year * 12 + (day.month - 1) - months, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def cutoff_for(time_range: TimeRange, now: datetime | None = None) -> date:
    """
    Earliest calendar date (UTC) still inside ``time_range``.

    Providers that always return their full history drop every point dated
    strictly before this cutoff.
    """
    today = (now or datetime.now(UTC)).astimezone(UTC).date()
    if time_range is TimeRange.ONE_DAY:
        return today - timedelta(days=1)
    if time_range is TimeRange.ONE_WEEK:
        return today - timedelta(weeks=1)
    if time_range is TimeRange.ONE_MONTH:
        return _minus_months(today, 1)
    if time_range is TimeRange.THREE_MONTHS:
        return _minus_months(today, 3)
    if time_range is TimeRange.SIX_MONTHS:
        return _minus_months(today, 6)
    if time_range is TimeRange.ONE_YEAR:
        return _minus_months(today, 12)
    return _minus_months(today, 60)
