import logging
from datetime import datetime
from typing import Iterable, Protocol

from signage.errors import ConflictError, NotFoundError, ValidationError
from signage.scheduling.recurrence import (
    build_draft,
    ensure_utc,
    expand,
    find_overlap,
    is_occurrence_start,
    validate_range,
)
from signage.scheduling.store import OverlapGuard, SchedulingStore
from signage.scheduling.types import DeleteScope, Occurrence, Recurrence, ScheduleInfo, Window

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, screen_ids: list[str], reason: str, payload: dict | None = None) -> int: ...


def parse_scope(value: str | DeleteScope) -> DeleteScope:
    if isinstance(value, DeleteScope):
        return value
    try:
        return DeleteScope((value or "").strip().lower())
    except ValueError as exc:
        raise ValidationError("scope must be 'one' or 'all'") from exc


def _pick(active: list[Occurrence]) -> Occurrence | None:
    # Highest priority, then most recently started, then lowest window id.
    if not active:
        return None
    ranked = sorted(active, key=lambda o: o.window_id)
    ranked.sort(key=lambda o: (o.priority, o.start), reverse=True)
    return ranked[0]


class ScheduleResolver:
    """Schedule operations and "what should this screen show now" answers.

    Stateless apart from its collaborators: every call reads fresh rows from
    the store, so concurrent use needs no locking here. Window writes rely on
    the store to serialize the overlap check per schedule.
    """

    def __init__(self, store: SchedulingStore, notifier: Notifier | None = None) -> None:
        self.store = store
        self.notifier = notifier

    # -- schedules -----------------------------------------------------------

    def create_schedule(self, name: str, owner_account: str) -> ScheduleInfo:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Schedule name cannot be empty")
        schedule = self.store.create_schedule(cleaned, owner_account)
        logger.info("Created schedule %s for %s", schedule.id, owner_account)
        return schedule

    def get_schedule(self, schedule_id: str) -> ScheduleInfo:
        schedule = self.store.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("schedule", schedule_id)
        return schedule

    def list_schedules(self, owner_account: str) -> list[ScheduleInfo]:
        return self.store.list_schedules_for_owner(owner_account)

    def delete_schedule(self, schedule_id: str) -> None:
        self.get_schedule(schedule_id)
        screen_ids = self.store.list_screens_for_schedule(schedule_id)
        self.store.delete_schedule(schedule_id)
        logger.info("Deleted schedule %s", schedule_id)
        self._notify(screen_ids, "schedule_deleted", {"schedule_id": schedule_id})

    def bind_screen(self, schedule_id: str, screen_id: str) -> None:
        self.get_schedule(schedule_id)
        self.store.bind_screen(schedule_id, screen_id)
        logger.info("Bound screen %s to schedule %s", screen_id, schedule_id)
        self._notify([screen_id], "schedule_bound", {"schedule_id": schedule_id})

    def unbind_screen(self, schedule_id: str, screen_id: str) -> None:
        self.get_schedule(schedule_id)
        self.store.unbind_screen(schedule_id, screen_id)
        logger.info("Unbound screen %s from schedule %s", screen_id, schedule_id)
        self._notify([screen_id], "schedule_unbound", {"schedule_id": schedule_id})

    def list_screens(self, schedule_id: str) -> list[str]:
        self.get_schedule(schedule_id)
        return self.store.list_screens_for_schedule(schedule_id)

    # -- windows -------------------------------------------------------------

    def list_windows(self, schedule_id: str, include_disabled: bool = True) -> list[Window]:
        self.get_schedule(schedule_id)
        if include_disabled:
            return self.store.list_windows(schedule_id)
        return self.store.list_enabled_windows(schedule_id)

    def get_window(self, window_id: str) -> Window:
        window = self.store.get_window(window_id)
        if window is None:
            raise NotFoundError("window", window_id)
        return window

    def create_window(
        self,
        schedule_id: str,
        playlist_id: str,
        start: datetime,
        end: datetime,
        recurrence: str | Recurrence = Recurrence.NONE,
        recur_until: datetime | None = None,
        priority: int = 0,
        enabled: bool = True,
    ) -> Window:
        draft = build_draft(
            schedule_id, playlist_id, start, end, recurrence, recur_until, priority, enabled
        )
        self.get_schedule(schedule_id)
        candidate = Window.from_draft("", draft)
        window = self.store.create_window(draft, self._overlap_guard(candidate))
        logger.info(
            "Created %s window %s on schedule %s (priority %s)",
            window.recurrence.value,
            window.id,
            schedule_id,
            window.priority,
        )
        self._notify_schedule(schedule_id, "window_created", {"window_id": window.id})
        return window

    def set_window_enabled(self, window_id: str, enabled: bool) -> Window:
        window = self.get_window(window_id)
        guard = self._overlap_guard(window) if enabled else None
        updated = self.store.set_window_enabled(window_id, enabled, guard)
        logger.info("Window %s %s", window_id, "enabled" if enabled else "disabled")
        self._notify_schedule(
            window.schedule_id, "window_updated", {"window_id": window_id, "enabled": enabled}
        )
        return updated

    def delete_window(
        self,
        window_id: str,
        scope: str | DeleteScope = DeleteScope.ALL,
        occurrence_start: datetime | None = None,
    ) -> None:
        scope = parse_scope(scope)
        if scope == DeleteScope.ONE and occurrence_start is None:
            raise ValidationError("occur_start required for scope=one")

        window = self.get_window(window_id)
        if scope == DeleteScope.ALL:
            self.store.delete_window(window_id)
            logger.info("Deleted window %s", window_id)
            self._notify_schedule(window.schedule_id, "window_deleted", {"window_id": window_id})
            return

        occurrence_start = ensure_utc(occurrence_start)
        if not is_occurrence_start(window, occurrence_start):
            raise ValidationError(
                f"{occurrence_start.isoformat()} is not an occurrence of window {window_id}"
            )
        self.store.add_occurrence_exception(window_id, occurrence_start)
        logger.info("Suppressed occurrence %s of window %s", occurrence_start.isoformat(), window_id)
        self._notify_schedule(
            window.schedule_id,
            "occurrence_deleted",
            {"window_id": window_id, "occur_start": occurrence_start.isoformat()},
        )

    # -- reads ---------------------------------------------------------------

    def list_occurrences(self, schedule_id: str, range_start: datetime, range_end: datetime) -> list[Occurrence]:
        range_start, range_end = validate_range(range_start, range_end)
        self.get_schedule(schedule_id)
        occurrences = [
            occurrence
            for window in self.store.list_enabled_windows(schedule_id)
            for occurrence in expand(window, range_start, range_end)
        ]
        occurrences.sort(key=lambda o: (o.start, -o.priority, o.window_id))
        return occurrences

    def active_occurrences_for_screen_at(self, screen_id: str, instant: datetime) -> list[Occurrence]:
        instant = ensure_utc(instant)
        active: list[Occurrence] = []
        for schedule in self.store.list_schedules_for_screen(screen_id):
            for window in self.store.list_enabled_windows(schedule.id):
                # Look back one duration so an occurrence that began earlier is still seen.
                span = window.duration
                for occurrence in expand(window, instant - span, instant + span):
                    if occurrence.covers(instant):
                        active.append(occurrence)
        return active

    def resolve_occurrence_for_screen_at(self, screen_id: str, instant: datetime) -> Occurrence | None:
        return _pick(self.active_occurrences_for_screen_at(screen_id, instant))

    def resolve_playlist_for_screen_at(self, screen_id: str, instant: datetime) -> str | None:
        """Playlist the screen should show at ``instant``, or None when no window is active."""
        occurrence = self.resolve_occurrence_for_screen_at(screen_id, instant)
        if occurrence is None:
            return None
        return occurrence.playlist_id

    def notify_affected(
        self,
        reason: str,
        payload: dict,
        schedule_ids: Iterable[str] = (),
        screen_ids: Iterable[str] = (),
    ) -> None:
        """Notify the screens bound to ``schedule_ids`` plus ``screen_ids``, once each.

        For changes made outside the resolver (playlist deletion, direct
        playlist assignment) that still alter what a screen shows.
        """
        if self.notifier is None:
            return
        targets = set(screen_ids)
        for schedule_id in set(schedule_ids):
            targets.update(self.store.list_screens_for_schedule(schedule_id))
        self._notify(sorted(targets), reason, payload)

    # -- helpers -------------------------------------------------------------

    def _overlap_guard(self, candidate: Window) -> OverlapGuard:
        def guard(existing: list[Window]) -> None:
            conflict = find_overlap(candidate, existing)
            if conflict is not None:
                logger.info(
                    "Rejected window on schedule %s: overlaps window %s",
                    candidate.schedule_id,
                    conflict,
                )
                raise ConflictError(conflict)

        return guard

    def _notify_schedule(self, schedule_id: str, reason: str, payload: dict) -> None:
        if self.notifier is None:
            return
        screen_ids = self.store.list_screens_for_schedule(schedule_id)
        self._notify(screen_ids, reason, {"schedule_id": schedule_id, **payload})

    def _notify(self, screen_ids: list[str], reason: str, payload: dict) -> None:
        if self.notifier is None or not screen_ids:
            return
        self.notifier.notify(screen_ids, reason, payload)
