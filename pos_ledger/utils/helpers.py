# utils/helpers.py
from datetime import date, datetime, timedelta
import logging
from typing import Union, Optional

from ..constants import DATETIME_FMT, MONEY_PLACES

NumberLike = Union[float, int, str]

_log = logging.getLogger(__name__)


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def now_str(moment: Optional[datetime] = None) -> str:
    """Timestamp string as stored in every *_at / date column."""
    return (moment or datetime.now()).strftime(DATETIME_FMT)


def round_money(v: float, places: int = MONEY_PLACES) -> float:
    x = round(float(v), places)
    # avoid "-0.0" leaking into stored totals
    return 0.0 if x == 0 else x


def day_bounds(d: date) -> tuple[str, str]:
    """
    Half-open window [d 00:00:00, d+1 00:00:00) as stored timestamp strings.
    """
    start = datetime(d.year, d.month, d.day)
    return start.strftime(DATETIME_FMT), (start + timedelta(days=1)).strftime(DATETIME_FMT)


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    On parse failure returns str(v), or `sentinel` when given, or raises
    ValueError when strict=True.
    """
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
