import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from signage.api.deps import get_resolver
from signage.db import get_db
from signage.models.screen import Screen
from signage.scheduling.resolver import ScheduleResolver
from signage.services.playback import load_effective_playlist

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tv", tags=["tv"])


def _client_etag(request: Request) -> str:
    candidate = request.headers.get("X-If-None-Match") or request.headers.get("If-None-Match") or ""
    return candidate.strip().strip('"')


@router.get("/content")
def tv_content(
    device_id: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    resolver: ScheduleResolver = Depends(get_resolver),
):
    cleaned = (device_id or "").strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail="device_id is required")
    screen = db.query(Screen).filter(Screen.device_id == cleaned).first()
    if not screen:
        raise HTTPException(status_code=404, detail="device not found")

    effective = load_effective_playlist(db, resolver, screen, datetime.now(timezone.utc))
    if effective is None:
        logger.info("No playlist active for screen %s (device %s)", screen.id, cleaned)
        raise HTTPException(
            status_code=404,
            detail="no playlist active for this screen right now",
            headers={"X-Debug-Why": "no active schedule window and no direct playlist"},
        )

    headers = {
        "ETag": f'"{effective.etag}"',
        "X-Content-ETag": effective.etag,
        "X-Content-Source": effective.source,
    }
    if _client_etag(request) == effective.etag:
        return Response(status_code=304, headers=headers)

    response.headers.update(headers)
    return {
        "screen_id": str(screen.id),
        "playlist_id": str(effective.playlist.id),
        "playlist_name": effective.playlist.name,
        "source": effective.source,
        "content": [
            {"url": item["url"], "duration": item["duration"], "type": item["type"]}
            for item in effective.items
        ],
    }
