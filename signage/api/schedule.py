from datetime import datetime

from fastapi import APIRouter, Depends, Query

from signage.api.deps import get_policy, get_resolver, normalize_entity_id, resolve_account_id
from signage.scheduling.access import OwnershipPolicy
from signage.scheduling.resolver import ScheduleResolver
from signage.schemas.schedule import (
    BindScreenIn,
    OccurrenceOut,
    ScheduleIn,
    ScheduleOut,
    WindowIn,
    WindowOut,
)

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.get("", response_model=list[ScheduleOut])
def list_schedules(
    account_id: str = Depends(resolve_account_id),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    return resolver.list_schedules(account_id)


@router.post("", response_model=ScheduleOut)
def create_schedule(
    body: ScheduleIn,
    account_id: str = Depends(resolve_account_id),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    return resolver.create_schedule(body.name, account_id)


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: str,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
):
    return policy.schedule(normalize_entity_id(schedule_id), account_id)


@router.delete("/{schedule_id}")
def delete_schedule(
    schedule_id: str,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    resolver.delete_schedule(schedule.id)
    return {"ok": True}


@router.get("/{schedule_id}/screens")
def list_bound_screens(
    schedule_id: str,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    return {"schedule_id": schedule.id, "screen_ids": resolver.list_screens(schedule.id)}


@router.post("/{schedule_id}/screens")
def bind_screen(
    schedule_id: str,
    body: BindScreenIn,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    screen_id = normalize_entity_id(body.screen_id)
    policy.screen(screen_id, account_id)
    resolver.bind_screen(schedule.id, screen_id)
    return {"ok": True}


@router.delete("/{schedule_id}/screens/{screen_id}")
def unbind_screen(
    schedule_id: str,
    screen_id: str,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    screen_id = normalize_entity_id(screen_id)
    policy.screen(screen_id, account_id)
    resolver.unbind_screen(schedule.id, screen_id)
    return {"ok": True}


@router.get("/{schedule_id}/windows", response_model=list[WindowOut])
def list_windows(
    schedule_id: str,
    include_disabled: bool = True,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    windows = resolver.list_windows(schedule.id, include_disabled=include_disabled)
    return [WindowOut.from_window(window) for window in windows]


@router.post("/{schedule_id}/windows", response_model=WindowOut)
def create_window(
    schedule_id: str,
    body: WindowIn,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    playlist_id = normalize_entity_id(body.playlist_id)
    policy.playlist(playlist_id, account_id)
    window = resolver.create_window(
        schedule.id,
        playlist_id,
        body.start,
        body.end,
        recurrence=body.recurrence,
        recur_until=body.recur_until,
        priority=body.priority,
        enabled=body.enabled,
    )
    return WindowOut.from_window(window)


@router.put("/windows/{window_id}", response_model=WindowOut)
def update_window(
    window_id: str,
    enabled: bool,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    window_id = normalize_entity_id(window_id)
    policy.window(window_id, account_id)
    return WindowOut.from_window(resolver.set_window_enabled(window_id, enabled))


@router.delete("/windows/{window_id}")
def delete_window(
    window_id: str,
    scope: str,
    occur_start: datetime | None = None,
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    window_id = normalize_entity_id(window_id)
    policy.window(window_id, account_id)
    resolver.delete_window(window_id, scope, occur_start)
    return {"ok": True}


@router.get("/{schedule_id}/occurrences", response_model=list[OccurrenceOut])
def list_occurrences(
    schedule_id: str,
    range_from: datetime = Query(..., alias="from"),
    range_to: datetime = Query(..., alias="to"),
    account_id: str = Depends(resolve_account_id),
    policy: OwnershipPolicy = Depends(get_policy),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    schedule = policy.schedule(normalize_entity_id(schedule_id), account_id)
    return resolver.list_occurrences(schedule.id, range_from, range_to)
