from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from signage.api.deps import get_owned, get_resolver, normalize_entity_id, resolve_account_id
from signage.db import get_db
from signage.models.group import ScreenGroup, ScreenGroupMember
from signage.models.playlist import Playlist
from signage.models.schedule import ScheduleScreen
from signage.models.screen import Screen
from signage.scheduling.recurrence import ensure_utc
from signage.scheduling.resolver import ScheduleResolver
from signage.schemas.group import ScreenGroupOut
from signage.schemas.schedule import ResolvedPlaylistOut
from signage.schemas.screen import ScreenIn, ScreenOut
from signage.services.playback import SOURCE_DIRECT, SOURCE_SCHEDULE

router = APIRouter(prefix="/screens", tags=["screens"])


def _normalize_device_id(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


def _checked_playlist_id(db: Session, playlist_id: str | None, account_id: str) -> str | None:
    cleaned = normalize_entity_id(playlist_id or "")
    if not cleaned:
        return None
    get_owned(db, Playlist, cleaned, account_id, "playlist")
    return cleaned


def _commit_screen(db: Session, screen: Screen) -> Screen:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="device_id is already paired with another screen") from exc
    db.refresh(screen)
    return screen


@router.post("", response_model=ScreenOut)
def create_screen(
    body: ScreenIn,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    screen = Screen(
        name=body.name.strip(),
        owner_account=account_id,
        location=body.location.strip() or None,
        device_id=_normalize_device_id(body.device_id),
        active_playlist_id=_checked_playlist_id(db, body.active_playlist_id, account_id),
    )
    db.add(screen)
    return _commit_screen(db, screen)


@router.get("", response_model=list[ScreenOut])
def list_screens(account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    return (
        db.query(Screen)
        .filter(Screen.owner_account == account_id)
        .order_by(Screen.created_at.asc(), Screen.id.asc())
        .all()
    )


@router.get("/{screen_id}", response_model=ScreenOut)
def get_screen(screen_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    return get_owned(db, Screen, screen_id, account_id, "screen")


@router.put("/{screen_id}", response_model=ScreenOut)
def update_screen(
    screen_id: str,
    name: str | None = None,
    location: str | None = None,
    device_id: str | None = None,
    active_playlist_id: str | None = None,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    screen = get_owned(db, Screen, screen_id, account_id, "screen")
    previous_playlist_id = screen.active_playlist_id
    if name is not None:
        cleaned = name.strip()
        if not cleaned:
            raise HTTPException(status_code=400, detail="Screen name cannot be empty")
        screen.name = cleaned
    if location is not None:
        screen.location = location.strip() or None
    if device_id is not None:
        screen.device_id = _normalize_device_id(device_id)
    if active_playlist_id is not None:
        screen.active_playlist_id = _checked_playlist_id(db, active_playlist_id, account_id)
    screen = _commit_screen(db, screen)
    if screen.active_playlist_id != previous_playlist_id:
        resolver.notify_affected(
            "screen_playlist_changed",
            {"playlist_id": screen.active_playlist_id},
            screen_ids=[str(screen.id)],
        )
    return screen


@router.delete("/{screen_id}")
def delete_screen(screen_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    screen = get_owned(db, Screen, screen_id, account_id, "screen")
    db.query(ScheduleScreen).filter(ScheduleScreen.screen_id == screen.id).delete(synchronize_session=False)
    db.query(ScreenGroupMember).filter(ScreenGroupMember.screen_id == screen.id).delete(synchronize_session=False)
    db.delete(screen)
    db.commit()
    return {"ok": True}


@router.get("/{screen_id}/resolve", response_model=ResolvedPlaylistOut)
def resolve_screen_playlist(
    screen_id: str,
    at: datetime | None = None,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    screen = get_owned(db, Screen, screen_id, account_id, "screen")
    instant = ensure_utc(at) if at is not None else datetime.now(timezone.utc)
    occurrence = resolver.resolve_occurrence_for_screen_at(str(screen.id), instant)
    if occurrence is not None:
        return ResolvedPlaylistOut(
            screen_id=str(screen.id),
            at=instant,
            playlist_id=occurrence.playlist_id,
            source=SOURCE_SCHEDULE,
            window_id=occurrence.window_id,
        )
    if screen.active_playlist_id:
        return ResolvedPlaylistOut(
            screen_id=str(screen.id),
            at=instant,
            playlist_id=str(screen.active_playlist_id),
            source=SOURCE_DIRECT,
        )
    return ResolvedPlaylistOut(screen_id=str(screen.id), at=instant)


@router.get("/{screen_id}/groups", response_model=list[ScreenGroupOut])
def list_screen_groups(screen_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    screen = get_owned(db, Screen, screen_id, account_id, "screen")
    return (
        db.query(ScreenGroup)
        .join(ScreenGroupMember, ScreenGroupMember.group_id == ScreenGroup.id)
        .filter(ScreenGroupMember.screen_id == screen.id)
        .order_by(ScreenGroup.name.asc(), ScreenGroup.id.asc())
        .all()
    )
