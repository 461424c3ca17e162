"""
Opening-hours evaluation for OSM `opening_hours` strings.

Only the common shapes are understood:
- "24/7"
- "Mo-Fr 08:00-17:00", "Mo,We,Fr 09:00-18:00", "Sa 10:00-14:00"
- "08:00-17:00" (every day)
Rules are separated by ';'. Anything else yields no verdict (unknown).
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from domain.models import AnnotatedVenue, Venue

logger = logging.getLogger(__name__)

WEEK_DAYS = ["Mo", "Tu", "We", "Th", "Fr", "Sa", "Su"]

_DAY_TIME_RE = re.compile(r"^([A-Za-z,-]+)\s+(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})$")


def _hhmm(hours: str, minutes: str) -> int:
    return int(hours) * 100 + int(minutes)


def is_day_included(current_day: str, day_spec: str) -> bool:
    """
    Check whether current_day ("Mo".."Su") is covered by day_spec.

    day_spec may be a range ("Mo-Fr"), a list ("Mo,We,Fr") or a single day.
    """
    if "-" in day_spec:
        start, _, end = day_spec.partition("-")
        if start in WEEK_DAYS and end in WEEK_DAYS and current_day in WEEK_DAYS:
            return WEEK_DAYS.index(start) <= WEEK_DAYS.index(current_day) <= WEEK_DAYS.index(end)

    if "," in day_spec:
        return current_day in day_spec.split(",")

    return day_spec == current_day


def is_open_now(opening_hours: Optional[str], now: Optional[datetime] = None) -> Optional[bool]:
    """
    Decide whether a venue is open at `now` (defaults to the local wall clock).

    Returns True if open, False if closed, None if unknown. Never raises.
    """
    if not opening_hours:
        return None
    if opening_hours == "24/7":
        return True

    now = now or datetime.now()
    today = WEEK_DAYS[now.weekday()]
    current = now.hour * 100 + now.minute

    try:
        for rule in opening_hours.split(";"):
            rule = rule.strip()

            match = _DAY_TIME_RE.match(rule)
            if match:
                if is_day_included(today, match.group(1)):
                    start = _hhmm(match.group(2), match.group(3))
                    end = _hhmm(match.group(4), match.group(5))
                    return start <= current <= end
                # day mismatch, try the next rule
                continue

            match = _TIME_RE.match(rule)
            if match:
                start = _hhmm(match.group(1), match.group(2))
                end = _hhmm(match.group(3), match.group(4))
                return start <= current <= end
    except Exception as exc:
        logger.debug("Could not parse opening hours %r: %s", opening_hours, exc)
    return None


def annotate_open_now(venues: Iterable[Venue], now: Optional[datetime] = None) -> List[AnnotatedVenue]:
    """Attach the open/closed/unknown state to each venue, preserving order."""
    now = now or datetime.now()
    return [AnnotatedVenue(venue=v, open_now=is_open_now(v.opening_hours, now)) for v in venues]


def filter_open_now(venues: Sequence[AnnotatedVenue], only_open: bool) -> list:
    """
    Keep only venues that are currently open when only_open is set.

    Expects the output of annotate_open_now. Plain venues carry no open state,
    so passing them in yields an empty list.
    """
    if not only_open:
        return list(venues)
    return [v for v in venues if getattr(v, "open_now", None) is True]
