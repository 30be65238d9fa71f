"""
Rating period helpers.

A period identifies one monthly FIDE rating list. It is stored as an
8-digit ``YYYYMMDD`` string with the day fixed to ``01`` (e.g.
``"20250801"``), so plain string comparison orders periods
chronologically.
"""

import re
from datetime import date, datetime
from typing import Iterator, Optional, Union

MONTH_TOKENS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

# FIDE switched its monthly archives from fixed-width TXT to XML in 2020
XML_ERA_START_YEAR = 2020

PeriodLike = Union[str, int, date, datetime]

_PERIOD_PATTERNS = (
    re.compile(r"^(\d{4})(\d{2})(\d{2})$"),       # 20250801
    re.compile(r"^(\d{4})(\d{2})$"),              # 202508
    re.compile(r"^(\d{4})-(\d{1,2})(?:-(\d{1,2}))?$"),  # 2025-08, 2025-08-01
)


def _format(year: int, month: int) -> str:
    return f"{year:04d}{month:02d}01"


def normalize_period(value: PeriodLike) -> str:
    """
    Convert a period-like value to the canonical ``YYYYMM01`` string.

    Accepts "20250801", "202508", "2025-08", "2025-08-01", integers of the
    same shapes, and date/datetime objects. The day component is always
    reset to 01.

    Raises:
        ValueError: if the value is not a recognisable year-month.
    """
    if isinstance(value, datetime):
        return _format(value.year, value.month)
    if isinstance(value, date):
        return _format(value.year, value.month)

    text = str(value).strip()
    for pattern in _PERIOD_PATTERNS:
        match = pattern.match(text)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if not 1 <= month <= 12 or year < 1900:
                break
            return _format(year, month)

    raise ValueError(f"Invalid rating period: {value!r}")


def current_period(today: Optional[date] = None) -> str:
    """Period of the current month."""
    return normalize_period(today or date.today())


def period_to_date(period: str) -> date:
    period = normalize_period(period)
    return date(int(period[:4]), int(period[4:6]), 1)


def month_key(period: str) -> str:
    """Calendar-month key (``YYYYMM``) used to collapse sub-month rows."""
    return str(period).strip().replace("-", "")[:6]


def fide_month_token(period: str) -> str:
    """
    FIDE's month token used in archive names.

    >>> fide_month_token("20250801")
    'aug25'
    """
    period = normalize_period(period)
    return f"{MONTH_TOKENS[int(period[4:6]) - 1]}{period[2:4]}"


def is_xml_era(period: str) -> bool:
    return int(normalize_period(period)[:4]) >= XML_ERA_START_YEAR


def add_months(period: str, months: int) -> str:
    """Shift a period by a (possibly negative) number of months."""
    period = normalize_period(period)
    index = int(period[:4]) * 12 + int(period[4:6]) - 1 + months
    return _format(index // 12, index % 12 + 1)


def iter_periods(start: PeriodLike, end: PeriodLike) -> Iterator[str]:
    """Yield every period from start through end inclusive."""
    current = normalize_period(start)
    last = normalize_period(end)
    while current <= last:
        yield current
        current = add_months(current, 1)


def historical_periods(
    start_year: int,
    end: Optional[PeriodLike] = None,
    today: Optional[date] = None,
) -> list[str]:
    """
    Every period from January of start_year through end (default: the
    current month).

    Examples:
        >>> historical_periods(2025, "2025-03")
        ['20250101', '20250201', '20250301']
    """
    last = normalize_period(end) if end is not None else current_period(today)
    return list(iter_periods(_format(start_year, 1), last))
