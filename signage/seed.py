import base64
import hashlib
import os
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from signage.db import SessionLocal, init_db
from signage.models.media import Media
from signage.models.playlist import Playlist, PlaylistItem
from signage.models.screen import Screen
from signage.scheduling.resolver import ScheduleResolver
from signage.scheduling.types import Recurrence
from signage.services.schedule_store import SqlScheduleStore
from signage.services.storage import MEDIA_SUBDIR, ensure_storage, media_dir

DEMO_ACCOUNT = "demo"
DEMO_DEVICE_ID = "demo-device"
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGNgYAAAAAMAASsJTYQAAAAASUVORK5CYII="
)


def _next_monday(now: datetime) -> datetime:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(days=(7 - midnight.weekday()) % 7)


def _existing_demo(db: Session, screen: Screen) -> dict:
    store = SqlScheduleStore(db)
    playlists = {p.name: p.id for p in db.query(Playlist).filter(Playlist.owner_account == DEMO_ACCOUNT)}
    schedule = next((s for s in store.list_schedules_for_screen(screen.id) if s.name == "Weekdays"), None)
    windows = store.list_windows(schedule.id) if schedule else []
    return {
        "account": DEMO_ACCOUNT,
        "screen_id": screen.id,
        "schedule_id": schedule.id if schedule else None,
        "window_id": windows[0].id if windows else None,
        "playlist_ids": [playlists.get("Office Hours"), playlists.get("After Hours")],
    }


def seed(session_factory=SessionLocal, now: datetime | None = None) -> dict:
    """Create a demo account with one screen, two playlists and a weekday schedule.

    Running it again leaves the database alone and returns the ids of the
    demo rows already present.
    """
    db: Session = session_factory()
    try:
        init_db(bind=db.get_bind())
        ensure_storage()
        existing = db.query(Screen).filter(Screen.device_id == DEMO_DEVICE_ID).first()
        if existing is not None:
            return _existing_demo(db, existing)

        media_entries = []
        for filename, label in [("office_hours.png", "Office Hours"), ("after_hours.png", "After Hours")]:
            with open(os.path.join(media_dir(), filename), "wb") as f:
                f.write(PLACEHOLDER_PNG)
            media = Media(
                name=label,
                type="image",
                path=f"/storage/{MEDIA_SUBDIR}/{filename}",
                duration_sec=10,
                size=len(PLACEHOLDER_PNG),
                checksum=hashlib.sha256(PLACEHOLDER_PNG).hexdigest(),
                owner_account=DEMO_ACCOUNT,
            )
            db.add(media)
            media_entries.append(media)

        office = Playlist(name="Office Hours", owner_account=DEMO_ACCOUNT)
        after_hours = Playlist(name="After Hours", owner_account=DEMO_ACCOUNT)
        db.add_all([office, after_hours])
        db.flush()

        db.add_all(
            [
                PlaylistItem(playlist_id=office.id, media_id=media_entries[0].id, order=1, duration_sec=10, enabled=True),
                PlaylistItem(playlist_id=after_hours.id, media_id=media_entries[1].id, order=1, duration_sec=10, enabled=True),
            ]
        )
        screen = Screen(
            name="Lobby",
            owner_account=DEMO_ACCOUNT,
            device_id=DEMO_DEVICE_ID,
            active_playlist_id=after_hours.id,
        )
        db.add(screen)
        db.commit()

        resolver = ScheduleResolver(SqlScheduleStore(db))
        schedule = resolver.create_schedule("Weekdays", DEMO_ACCOUNT)
        resolver.bind_screen(schedule.id, screen.id)
        monday = _next_monday(now or datetime.now(timezone.utc))
        window = resolver.create_window(
            schedule.id,
            office.id,
            monday + timedelta(hours=9),
            monday + timedelta(hours=17),
            recurrence=Recurrence.WEEKLY,
            recur_until=monday + timedelta(weeks=52),
            priority=1,
        )
        return {
            "account": DEMO_ACCOUNT,
            "screen_id": screen.id,
            "schedule_id": schedule.id,
            "window_id": window.id,
            "playlist_ids": [office.id, after_hours.id],
        }
    finally:
        db.close()


if __name__ == "__main__":
    print(seed())
