import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from signage.api.deps import get_owned, get_resolver, resolve_account_id
from signage.db import get_db
from signage.errors import NotFoundError
from signage.models.media import Media
from signage.models.playlist import Playlist, PlaylistItem
from signage.models.schedule import ScheduleWindow, ScheduleWindowException
from signage.models.screen import Screen
from signage.scheduling.resolver import ScheduleResolver
from signage.schemas.playlist import PlaylistItemOut, PlaylistOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/playlists", tags=["playlists"])


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail="Playlist name cannot be empty")
    return cleaned


def _owned_item(db: Session, item_id: str, account_id: str) -> PlaylistItem:
    item = db.get(PlaylistItem, item_id)
    if not item:
        raise NotFoundError("playlist item", item_id)
    get_owned(db, Playlist, item.playlist_id, account_id, "playlist")
    return item


@router.post("", response_model=PlaylistOut)
def create_playlist(name: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    playlist = Playlist(name=_clean_name(name), owner_account=account_id)
    db.add(playlist)
    db.commit()
    db.refresh(playlist)
    return playlist


@router.get("", response_model=list[PlaylistOut])
def list_playlists(account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    return (
        db.query(Playlist)
        .filter(Playlist.owner_account == account_id)
        .order_by(Playlist.created_at.asc(), Playlist.id.asc())
        .all()
    )


@router.put("/{playlist_id}", response_model=PlaylistOut)
def update_playlist(
    playlist_id: str,
    name: str | None = None,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    playlist = get_owned(db, Playlist, playlist_id, account_id, "playlist")
    if name is not None:
        playlist.name = _clean_name(name)
    db.commit()
    db.refresh(playlist)
    return playlist


@router.delete("/{playlist_id}")
def delete_playlist(
    playlist_id: str,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    playlist = get_owned(db, Playlist, playlist_id, account_id, "playlist")
    deleted_id = str(playlist.id)
    schedule_ids = [
        row[0]
        for row in db.query(ScheduleWindow.schedule_id)
        .filter(ScheduleWindow.playlist_id == playlist.id)
        .distinct()
    ]
    direct_screen_ids = [row[0] for row in db.query(Screen.id).filter(Screen.active_playlist_id == playlist.id)]
    window_ids = select(ScheduleWindow.id).where(ScheduleWindow.playlist_id == playlist.id)
    db.query(ScheduleWindowException).filter(
        ScheduleWindowException.window_id.in_(window_ids)
    ).delete(synchronize_session=False)
    removed_windows = db.query(ScheduleWindow).filter(ScheduleWindow.playlist_id == playlist.id).delete(
        synchronize_session=False
    )
    db.query(PlaylistItem).filter(PlaylistItem.playlist_id == playlist.id).delete(synchronize_session=False)
    db.query(Screen).filter(Screen.active_playlist_id == playlist.id).update(
        {"active_playlist_id": None},
        synchronize_session=False,
    )
    db.delete(playlist)
    db.commit()
    logger.info("Deleted playlist %s and %s schedule windows using it", deleted_id, removed_windows)
    resolver.notify_affected(
        "playlist_deleted",
        {"playlist_id": deleted_id},
        schedule_ids=schedule_ids,
        screen_ids=direct_screen_ids,
    )
    return {"ok": True}


@router.post("/{playlist_id}/items", response_model=PlaylistItemOut)
def add_item(
    playlist_id: str,
    media_id: str,
    order: int | None = None,
    duration_sec: int | None = None,
    enabled: bool = True,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    playlist = get_owned(db, Playlist, playlist_id, account_id, "playlist")
    media = get_owned(db, Media, media_id, account_id, "media")
    if order is None:
        max_order = (
            db.query(PlaylistItem.order)
            .filter(PlaylistItem.playlist_id == playlist.id)
            .order_by(PlaylistItem.order.desc())
            .first()
        )
        order = (max_order[0] + 1) if max_order else 1
    item = PlaylistItem(
        playlist_id=playlist.id,
        media_id=media.id,
        order=order,
        duration_sec=duration_sec,
        enabled=enabled,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@router.get("/{playlist_id}/items", response_model=list[PlaylistItemOut])
def list_items(playlist_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    playlist = get_owned(db, Playlist, playlist_id, account_id, "playlist")
    return (
        db.query(PlaylistItem)
        .filter(PlaylistItem.playlist_id == playlist.id)
        .order_by(PlaylistItem.order.asc(), PlaylistItem.id.asc())
        .all()
    )


@router.put("/items/{item_id}", response_model=PlaylistItemOut)
def update_item(
    item_id: str,
    order: int | None = None,
    duration_sec: int | None = None,
    enabled: bool | None = None,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    item = _owned_item(db, item_id, account_id)
    if order is not None:
        item.order = order
    if duration_sec is not None:
        item.duration_sec = duration_sec
    if enabled is not None:
        item.enabled = enabled
    db.commit()
    db.refresh(item)
    return item


@router.delete("/items/{item_id}")
def delete_item(item_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    item = _owned_item(db, item_id, account_id)
    db.delete(item)
    db.commit()
    return {"ok": True}
