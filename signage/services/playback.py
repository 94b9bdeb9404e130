import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from signage.models.media import Media
from signage.models.playlist import Playlist, PlaylistItem
from signage.models.screen import Screen
from signage.scheduling.resolver import ScheduleResolver

SOURCE_SCHEDULE = "schedule"
SOURCE_DIRECT = "direct"


@dataclass
class EffectivePlaylist:
    playlist: Playlist
    source: str
    items: list[dict] = field(default_factory=list)
    etag: str = ""


def effective_playlist_id(resolver: ScheduleResolver, screen: Screen, at: datetime) -> tuple[str | None, str | None]:
    """Scheduled playlist if a window is active, else the screen's direct playlist."""
    scheduled = resolver.resolve_playlist_for_screen_at(str(screen.id), at)
    if scheduled:
        return scheduled, SOURCE_SCHEDULE
    if screen.active_playlist_id:
        return str(screen.active_playlist_id), SOURCE_DIRECT
    return None, None


def playlist_content(db: Session, playlist_id: str) -> list[dict]:
    rows = (
        db.query(PlaylistItem, Media)
        .join(Media, Media.id == PlaylistItem.media_id)
        .filter(PlaylistItem.playlist_id == playlist_id, PlaylistItem.enabled.is_(True))
        .order_by(PlaylistItem.order.asc(), PlaylistItem.id.asc())
        .all()
    )
    return [
        {
            "media_id": str(media.id),
            "url": media.path,
            "type": media.type,
            "duration": item.duration_sec if item.duration_sec is not None else media.duration_sec,
            "checksum": media.checksum,
        }
        for item, media in rows
    ]


def playlist_etag(playlist: Playlist, items: list[dict]) -> str:
    digest = hashlib.sha256()
    digest.update(str(playlist.id).encode("utf-8"))
    digest.update((playlist.updated_at.isoformat() if playlist.updated_at else "").encode("utf-8"))
    digest.update(json.dumps(items, sort_keys=True, separators=(",", ":")).encode("utf-8"))
    return digest.hexdigest()


def load_effective_playlist(
    db: Session,
    resolver: ScheduleResolver,
    screen: Screen,
    at: datetime,
) -> EffectivePlaylist | None:
    playlist_id, source = effective_playlist_id(resolver, screen, at)
    if playlist_id is None:
        return None
    playlist = db.get(Playlist, playlist_id)
    if playlist is None:
        return None
    items = playlist_content(db, playlist_id)
    return EffectivePlaylist(
        playlist=playlist,
        source=source,
        items=items,
        etag=playlist_etag(playlist, items),
    )
