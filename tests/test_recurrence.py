"""Recurrence expansion and window validation."""
import types
from datetime import datetime, timedelta, timezone

import pytest
from dateutil.relativedelta import relativedelta

from signage.errors import ValidationError
from signage.scheduling.recurrence import build_draft, expand, is_occurrence_start, parse_recurrence
from signage.scheduling.types import Recurrence, Window


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_window(start, end, recurrence=Recurrence.NONE, recur_until=None, exceptions=(), window_id="w1"):
    return Window(
        id=window_id,
        schedule_id="s1",
        playlist_id="p1",
        start=start,
        end=end,
        recurrence=recurrence,
        recur_until=recur_until,
        exceptions=frozenset(exceptions),
    )


class TestExpandNonRecurring:
    def test_returns_base_interval_when_it_intersects(self):
        window = make_window(utc(2025, 1, 6, 9), utc(2025, 1, 6, 10))
        occurrences = list(expand(window, utc(2025, 1, 6, 9, 59), utc(2025, 1, 6, 12)))
        assert [(o.start, o.end) for o in occurrences] == [(utc(2025, 1, 6, 9), utc(2025, 1, 6, 10))]
        assert occurrences[0].recurring is False
        assert occurrences[0].playlist_id == "p1"

    def test_half_open_boundaries_do_not_intersect(self):
        window = make_window(utc(2025, 1, 6, 9), utc(2025, 1, 6, 10))
        assert list(expand(window, utc(2025, 1, 6, 10), utc(2025, 1, 6, 11))) == []
        assert list(expand(window, utc(2025, 1, 6, 8), utc(2025, 1, 6, 9))) == []

    def test_empty_query_range_yields_nothing(self):
        window = make_window(utc(2025, 1, 6, 9), utc(2025, 1, 6, 10))
        assert list(expand(window, utc(2025, 1, 6, 12), utc(2025, 1, 6, 9))) == []

    def test_excepted_single_occurrence_is_dropped(self):
        window = make_window(utc(2025, 1, 6, 9), utc(2025, 1, 6, 10), exceptions=[utc(2025, 1, 6, 9)])
        assert list(expand(window, utc(2025, 1, 6), utc(2025, 1, 7))) == []


class TestExpandRecurring:
    @pytest.mark.parametrize(
        "recurrence, period",
        [
            (Recurrence.DAILY, relativedelta(days=1)),
            (Recurrence.WEEKLY, relativedelta(weeks=1)),
            (Recurrence.MONTHLY, relativedelta(months=1)),
        ],
    )
    def test_recur_until_three_periods_gives_four_occurrences(self, recurrence, period):
        start = utc(2025, 1, 6, 9)
        window = make_window(start, start + timedelta(hours=2), recurrence, recur_until=start + period * 3)
        occurrences = list(expand(window, start, start + period * 10))
        assert [o.start for o in occurrences] == [start + period * k for k in range(4)]
        assert all(o.start <= window.recur_until for o in occurrences)
        assert all(o.end - o.start == timedelta(hours=2) for o in occurrences)
        assert all(o.recurring for o in occurrences)

    def test_steps_forward_to_a_distant_query_range(self):
        window = make_window(
            utc(2020, 1, 1, 9), utc(2020, 1, 1, 10), Recurrence.DAILY, recur_until=utc(2030, 1, 1)
        )
        occurrences = list(expand(window, utc(2025, 6, 15), utc(2025, 6, 16)))
        assert [o.start for o in occurrences] == [utc(2025, 6, 15, 9)]

    def test_occurrence_started_before_query_is_included(self):
        window = make_window(
            utc(2025, 1, 1, 22), utc(2025, 1, 2, 2), Recurrence.DAILY, recur_until=utc(2025, 12, 31)
        )
        occurrences = list(expand(window, utc(2025, 6, 15, 1), utc(2025, 6, 15, 1, 30)))
        assert [(o.start, o.end) for o in occurrences] == [(utc(2025, 6, 14, 22), utc(2025, 6, 15, 2))]

    def test_distant_monthly_query(self):
        window = make_window(
            utc(2020, 1, 15, 8), utc(2020, 1, 15, 18), Recurrence.MONTHLY, recur_until=utc(2030, 1, 1)
        )
        occurrences = list(expand(window, utc(2025, 6, 1), utc(2025, 7, 1)))
        assert [o.start for o in occurrences] == [utc(2025, 6, 15, 8)]

    def test_nothing_after_recur_until(self):
        window = make_window(
            utc(2025, 1, 6, 9), utc(2025, 1, 6, 17), Recurrence.WEEKLY, recur_until=utc(2025, 2, 1)
        )
        assert list(expand(window, utc(2025, 2, 2), utc(2025, 6, 1))) == []

    def test_exceptions_skip_single_instances(self):
        excepted = utc(2025, 1, 8, 9)
        window = make_window(
            utc(2025, 1, 6, 9),
            utc(2025, 1, 6, 10),
            Recurrence.DAILY,
            recur_until=utc(2025, 1, 10, 9),
            exceptions=[excepted],
        )
        starts = [o.start for o in expand(window, utc(2025, 1, 1), utc(2025, 2, 1))]
        assert excepted not in starts
        assert len(starts) == 4

        unfiltered = [o.start for o in expand(window, utc(2025, 1, 1), utc(2025, 2, 1), apply_exceptions=False)]
        assert excepted in unfiltered
        assert len(unfiltered) == 5

    def test_expand_is_lazy(self):
        window = make_window(
            utc(2025, 1, 6, 9), utc(2025, 1, 6, 10), Recurrence.DAILY, recur_until=utc(2026, 1, 1)
        )
        result = expand(window, utc(2025, 1, 1), utc(2026, 1, 1))
        assert isinstance(result, types.GeneratorType)
        assert next(result).start == utc(2025, 1, 6, 9)


class TestMonthlyClamping:
    def _jan_31(self, year):
        return make_window(
            utc(year, 1, 31, 10),
            utc(year, 1, 31, 12),
            Recurrence.MONTHLY,
            recur_until=utc(year, 12, 31, 23),
        )

    def test_clamps_to_last_day_of_february(self):
        occurrences = list(expand(self._jan_31(2025), utc(2025, 2, 1), utc(2025, 3, 1)))
        assert [(o.start, o.end) for o in occurrences] == [(utc(2025, 2, 28, 10), utc(2025, 2, 28, 12))]

    def test_leap_year_february(self):
        occurrences = list(expand(self._jan_31(2024), utc(2024, 2, 1), utc(2024, 3, 1)))
        assert [o.start for o in occurrences] == [utc(2024, 2, 29, 10)]

    def test_anchor_day_does_not_drift_after_short_month(self):
        occurrences = list(expand(self._jan_31(2025), utc(2025, 1, 1), utc(2025, 5, 1)))
        assert [o.start for o in occurrences] == [
            utc(2025, 1, 31, 10),
            utc(2025, 2, 28, 10),
            utc(2025, 3, 31, 10),
            utc(2025, 4, 30, 10),
        ]


class TestOccurrenceStart:
    def test_matches_only_real_starts(self):
        window = make_window(
            utc(2025, 1, 6, 9), utc(2025, 1, 6, 17), Recurrence.WEEKLY, recur_until=utc(2025, 3, 3, 9)
        )
        assert is_occurrence_start(window, utc(2025, 1, 20, 9))
        assert not is_occurrence_start(window, utc(2025, 1, 20, 10))
        assert not is_occurrence_start(window, utc(2025, 1, 21, 9))
        assert not is_occurrence_start(window, utc(2025, 3, 10, 9))


class TestBuildDraft:
    def test_normalizes_naive_times_to_utc(self):
        draft = build_draft("s1", "p1", datetime(2025, 1, 6, 9), datetime(2025, 1, 6, 10))
        assert draft.start == utc(2025, 1, 6, 9)
        assert draft.recurrence == Recurrence.NONE

    def test_converts_offsets_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        draft = build_draft(
            "s1",
            "p1",
            datetime(2025, 1, 6, 11, tzinfo=plus_two),
            datetime(2025, 1, 6, 12, tzinfo=plus_two),
            "DAILY",
            datetime(2025, 2, 1, tzinfo=plus_two),
        )
        assert draft.start == utc(2025, 1, 6, 9)
        assert draft.recurrence == Recurrence.DAILY
        assert draft.recur_until == utc(2025, 1, 31, 22)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"start": utc(2025, 1, 6, 10), "end": utc(2025, 1, 6, 10)},
            {"start": utc(2025, 1, 6, 10), "end": utc(2025, 1, 6, 9)},
            {"recurrence": "yearly", "recur_until": utc(2026, 1, 1)},
            {"recurrence": "daily"},
            {"recurrence": "none", "recur_until": utc(2026, 1, 1)},
            {"recurrence": "weekly", "recur_until": utc(2025, 1, 1)},
            {"recurrence": "daily", "end": utc(2025, 1, 7, 10), "recur_until": utc(2026, 1, 1)},
        ],
    )
    def test_rejects_invalid_windows(self, kwargs):
        fields = {
            "start": utc(2025, 1, 6, 9),
            "end": utc(2025, 1, 6, 10),
            "recurrence": "none",
            "recur_until": None,
        }
        fields.update(kwargs)
        with pytest.raises(ValidationError):
            build_draft("s1", "p1", **fields)

    def test_parse_recurrence_rejects_unknown_tags(self):
        assert parse_recurrence(None) == Recurrence.NONE
        with pytest.raises(ValidationError):
            parse_recurrence("fortnightly")
