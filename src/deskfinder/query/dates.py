"""Natural-language date filters in search queries.

``parse_date_query("invoices from march 2024")`` returns
``("invoices", <2024-03-01 00:00:00>, <2024-03-31 23:59:59>)`` as local-time
epoch seconds. A bound of 0 means unbounded.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional

import parsedatetime

LOGGER = logging.getLogger(__name__)

_MONTH_RE = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)", re.IGNORECASE)
_YEAR_RE = re.compile(r"\b(1[89]\d{2}|2\d{3})\b")
_TRAILING_YEAR_RE = re.compile(r"^[\s,]*(1[89]\d{2}|2\d{3})\b")
_DANGLING_FROM_RE = re.compile(r"\bfrom\s*$", re.IGNORECASE)

MIN_YEAR = 1900

_FALLBACK_PHRASES = ("last month", "last week", "yesterday")

_calendar: Optional[parsedatetime.Calendar] = None


class DateQuery(NamedTuple):
    query: str
    start: int
    end: int


def _get_calendar() -> parsedatetime.Calendar:
    global _calendar
    if _calendar is None:
        # Bare month and weekday names resolve to their most recent occurrence
        constants = parsedatetime.Constants()
        constants.YearParseStyle = 0
        constants.DOWParseStyle = -1
        constants.CurrentDOWParseStyle = True
        _calendar = parsedatetime.Calendar(
            constants, version=parsedatetime.VERSION_CONTEXT_STYLE
        )
    return _calendar


def _plausible_year(match: Optional[re.Match], now: datetime) -> bool:
    return match is not None and MIN_YEAR <= int(match.group(1)) <= now.year + 1


def _first_plausible_year(text: str, now: datetime) -> Optional[re.Match]:
    for match in _YEAR_RE.finditer(text):
        if _plausible_year(match, now):
            return match
    return None


def _epoch(moment: datetime) -> int:
    return int(moment.timestamp())


def _window(start: datetime, next_start: datetime) -> tuple[int, int]:
    return _epoch(start), _epoch(next_start) - 1


def day_window(target: date) -> tuple[int, int]:
    start = datetime(target.year, target.month, target.day)
    return _window(start, start + timedelta(days=1))


def week_window(target: date) -> tuple[int, int]:
    """Monday 00:00:00 through Sunday 23:59:59 of the week holding ``target``."""
    monday = target - timedelta(days=target.weekday())
    start = datetime(monday.year, monday.month, monday.day)
    return _window(start, start + timedelta(days=7))


def month_window(target: date) -> tuple[int, int]:
    start = datetime(target.year, target.month, 1)
    if target.month == 12:
        next_start = datetime(target.year + 1, 1, 1)
    else:
        next_start = datetime(target.year, target.month + 1, 1)
    return _window(start, next_start)


def year_window(target: date) -> tuple[int, int]:
    return _window(datetime(target.year, 1, 1), datetime(target.year + 1, 1, 1))


def _remove_span(query: str, start: int, end: int) -> str:
    head = _DANGLING_FROM_RE.sub("", query[:start])
    return " ".join((head + " " + query[end:]).split())


def _with_year(moment: datetime, year: int) -> datetime:
    try:
        return moment.replace(year=year)
    except ValueError:
        # Feb 29 in a non-leap year
        return moment.replace(year=year, day=28)


def _widen(text: str, target: datetime) -> tuple[int, int]:
    lowered = text.lower()
    if "month" in lowered or _MONTH_RE.search(lowered):
        return month_window(target)
    if "week" in lowered:
        return week_window(target)
    if "year" in lowered or _YEAR_RE.search(lowered):
        return year_window(target)
    return day_window(target)


def _recognize(query: str, now: datetime) -> Optional[DateQuery]:
    matches = _get_calendar().nlp(query, sourceTime=now.timetuple())
    if matches:
        target, _context, start, end, text = matches[0]
        year = _first_plausible_year(text, now)
        trailing = _TRAILING_YEAR_RE.match(query[end:])
        if _plausible_year(trailing, now):
            end += trailing.end()
            year = trailing
            text = query[start:end]
        if year is not None:
            target = _with_year(target, int(year.group(1)))
        elif target > now and _MONTH_RE.search(text) and "next" not in text.lower():
            # "december" in June means last December
            target = _with_year(target, target.year - 1)
        LOGGER.debug("Date phrase recognized: %r -> %s", text, target)
        lo, hi = _widen(text, target)
        return DateQuery(_remove_span(query, start, end), lo, hi)

    # A bare year on its own is not a phrase for the recognizer
    year = _first_plausible_year(query, now)
    if year is not None:
        lo, hi = year_window(date(int(year.group(1)), 1, 1))
        return DateQuery(_remove_span(query, year.start(), year.end()), lo, hi)
    return None


def _fallback(query: str, now: datetime) -> Optional[DateQuery]:
    lowered = query.lower()
    for phrase in _FALLBACK_PHRASES:
        idx = lowered.find(phrase)
        if idx < 0:
            continue
        if phrase == "last month":
            first_of_month = date(now.year, now.month, 1)
            lo, hi = month_window(first_of_month - timedelta(days=1))
        elif phrase == "last week":
            lo, hi = week_window(now.date() - timedelta(days=7))
        else:
            lo, hi = day_window(now.date() - timedelta(days=1))
        return DateQuery(_remove_span(query, idx, idx + len(phrase)), lo, hi)
    return None


def parse_date_query(query: str, now: datetime | None = None) -> DateQuery:
    """Split a date expression out of ``query``.

    Returns the query without the expression and an inclusive
    ``[start, end]`` interval in epoch seconds, or ``(query, 0, 0)`` when the
    query holds no date.
    """
    now = now or datetime.now()
    try:
        found = _recognize(query, now)
    except Exception as exc:
        LOGGER.warning("Date recognizer failed on %r: %s", query, exc)
        found = None

    if found is None:
        LOGGER.debug("Recognizer found no date in %r, trying fallback phrases", query)
        found = _fallback(query, now)
    return found if found is not None else DateQuery(query, 0, 0)
