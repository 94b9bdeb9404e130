"""
Recurrence expansion and overlap detection for schedule windows.

Everything here is pure: windows come in as values, occurrences come out as
values, nothing touches storage. All instants are timezone-aware UTC.

Monthly windows advance by calendar months from the base start (never chained
from the previous occurrence), clamping the day to the end of a shorter month,
so a window anchored on Jan 31 occurs on Feb 28 (29 in leap years), Mar 31,
Apr 30 and so on. The occurrence end is always start + base duration.
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, Iterator

from dateutil.relativedelta import relativedelta

from signage.errors import ValidationError
from signage.scheduling.types import Occurrence, Recurrence, Window, WindowDraft

FIXED_PERIODS = {
    Recurrence.DAILY: timedelta(days=1),
    Recurrence.WEEKLY: timedelta(days=7),
}
# Longest occurrence that cannot collide with the next one of the same series.
MAX_RECURRING_DURATION = {
    Recurrence.DAILY: timedelta(days=1),
    Recurrence.WEEKLY: timedelta(days=7),
    Recurrence.MONTHLY: timedelta(days=28),
}
# Weekdays and month lengths repeat exactly every 400 Gregorian years.
GREGORIAN_CYCLE = timedelta(days=146097)

# Series with the fewest occurrences drive the pairwise overlap scan.
_DRIVER_RANK = {
    Recurrence.NONE: 0,
    Recurrence.MONTHLY: 1,
    Recurrence.WEEKLY: 2,
    Recurrence.DAILY: 3,
}


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_recurrence(value: str | Recurrence | None) -> Recurrence:
    if isinstance(value, Recurrence):
        return value
    try:
        return Recurrence((value or "none").strip().lower())
    except ValueError as exc:
        raise ValidationError(
            f"Invalid recurrence {value!r}. Use none, daily, weekly or monthly."
        ) from exc


def validate_range(range_start: datetime, range_end: datetime) -> tuple[datetime, datetime]:
    range_start = ensure_utc(range_start)
    range_end = ensure_utc(range_end)
    if range_end <= range_start:
        raise ValidationError("to must be after from")
    return range_start, range_end


def build_draft(
    schedule_id: str,
    playlist_id: str,
    start: datetime,
    end: datetime,
    recurrence: str | Recurrence | None = Recurrence.NONE,
    recur_until: datetime | None = None,
    priority: int = 0,
    enabled: bool = True,
) -> WindowDraft:
    """Validate raw window fields and normalize them into a WindowDraft.

    Raises ValidationError for an empty or inverted range, an unknown
    recurrence tag, a missing (or superfluous) recur_until, a recur_until
    before the start, or a recurring window longer than its own period.
    """
    rule = parse_recurrence(recurrence)
    start = ensure_utc(start)
    end = ensure_utc(end)
    if end <= start:
        raise ValidationError("end must be after start")

    if rule == Recurrence.NONE:
        if recur_until is not None:
            raise ValidationError("recur_until is only allowed for recurring windows")
    else:
        if recur_until is None:
            raise ValidationError(f"recur_until is required for {rule.value} recurrence")
        recur_until = ensure_utc(recur_until)
        if recur_until < start:
            raise ValidationError("recur_until must not be before start")
        if end - start > MAX_RECURRING_DURATION[rule]:
            raise ValidationError(
                f"a {rule.value} window cannot last longer than its recurrence period"
            )

    return WindowDraft(
        schedule_id=schedule_id,
        playlist_id=playlist_id,
        start=start,
        end=end,
        recurrence=rule,
        recur_until=recur_until,
        priority=int(priority),
        enabled=bool(enabled),
    )


def occurrence_start(window: Window, index: int) -> datetime:
    if window.recurrence == Recurrence.MONTHLY:
        return window.start + relativedelta(months=index)
    period = FIXED_PERIODS.get(window.recurrence)
    if period is None:
        return window.start
    return window.start + period * index


def _first_candidate_index(window: Window, query_start: datetime) -> int:
    # Smallest index whose occurrence can still end after query_start.
    if window.end > query_start:
        return 0
    period = FIXED_PERIODS.get(window.recurrence)
    if period is not None:
        return (query_start - window.end) // period + 1
    months = (query_start.year - window.start.year) * 12 + (query_start.month - window.start.month)
    return max(0, months - 1 - window.duration.days // 28)


def expand(
    window: Window,
    query_start: datetime,
    query_end: datetime,
    apply_exceptions: bool = True,
) -> Iterator[Occurrence]:
    """Yield the occurrences of ``window`` intersecting [query_start, query_end).

    Occurrences come out in start order. Recurring series stop at the first
    start past ``recur_until`` (inclusive bound) or at ``query_end``. Starts
    listed in ``window.exceptions`` are skipped unless ``apply_exceptions``
    is False.
    """
    query_start = ensure_utc(query_start)
    query_end = ensure_utc(query_end)
    if query_end <= query_start:
        return

    duration = window.duration
    if not window.recurring:
        if window.start < query_end and window.end > query_start:
            if not (apply_exceptions and window.start in window.exceptions):
                yield _occurrence(window, window.start, duration)
        return

    index = _first_candidate_index(window, query_start)
    while True:
        start = occurrence_start(window, index)
        if start >= query_end:
            return
        if window.recur_until is not None and start > window.recur_until:
            return
        index += 1
        if start + duration <= query_start:
            continue
        if apply_exceptions and start in window.exceptions:
            continue
        yield _occurrence(window, start, duration)


def _occurrence(window: Window, start: datetime, duration: timedelta) -> Occurrence:
    return Occurrence(
        window_id=window.id,
        start=start,
        end=start + duration,
        playlist_id=window.playlist_id,
        priority=window.priority,
        recurring=window.recurring,
    )


def is_occurrence_start(window: Window, instant: datetime) -> bool:
    instant = ensure_utc(instant)
    for occurrence in expand(window, instant, instant + timedelta(microseconds=1), apply_exceptions=False):
        if occurrence.start == instant:
            return True
    return False


def horizon_end(window: Window) -> datetime | None:
    """Latest instant any occurrence can still cover; None for an unbounded series."""
    if not window.recurring:
        return window.end
    if window.recur_until is None:
        return None
    return window.recur_until + window.duration


def _repeat_period(first: Window, second: Window) -> timedelta | None:
    if not (first.recurring and second.recurring):
        return None
    rules = {first.recurrence, second.recurrence}
    if Recurrence.MONTHLY in rules:
        return GREGORIAN_CYCLE
    if Recurrence.WEEKLY in rules:
        return FIXED_PERIODS[Recurrence.WEEKLY]
    return FIXED_PERIODS[Recurrence.DAILY]


def windows_overlap(first: Window, second: Window) -> bool:
    """Whether any instant is covered by occurrences of both windows.

    Exceptions are ignored: a suppressed occurrence still reserves its slot.
    The scan covers the stretch where both series are live. When both recur,
    their joint pattern repeats after one combined period, so the scan is
    capped at one period plus the longer duration past the later base start;
    a collision further out would have a copy inside that span.
    """
    scan_start = max(first.start, second.start)
    bounds = [bound for bound in (horizon_end(first), horizon_end(second)) if bound is not None]
    scan_end = min(bounds) if bounds else None

    period = _repeat_period(first, second)
    if period is not None:
        cap = scan_start + period + max(first.duration, second.duration)
        scan_end = cap if scan_end is None else min(scan_end, cap)

    if scan_end is None or scan_end <= scan_start:
        return False

    driver, other = sorted((first, second), key=lambda w: _DRIVER_RANK[w.recurrence])
    for occurrence in expand(driver, scan_start, scan_end, apply_exceptions=False):
        hit = next(expand(other, occurrence.start, occurrence.end, apply_exceptions=False), None)
        if hit is not None:
            return True
    return False


def find_overlap(candidate: Window, existing: Iterable[Window]) -> str | None:
    """Id of the first enabled window in ``existing`` that collides with ``candidate``."""
    for window in existing:
        if not window.enabled or window.id == candidate.id:
            continue
        if windows_overlap(candidate, window):
            return window.id
    return None
