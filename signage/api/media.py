import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import func
from sqlalchemy.orm import Session

from signage.api.deps import get_owned, resolve_account_id
from signage.db import get_db
from signage.models.media import Media
from signage.models.playlist import PlaylistItem
from signage.schemas.media import MediaOut
from signage.services.storage import delete_file, normalized_media_type, save_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


def _resolved_media_name(name: str | None, file: UploadFile) -> str:
    candidate = (name or "").strip()
    if candidate and candidate.lower() != "unnamed":
        return candidate
    fallback = (file.filename or "").strip()
    if fallback:
        return fallback
    return "media-file"


@router.post("/upload", response_model=MediaOut)
def upload_media(
    file: UploadFile = File(...),
    name: str | None = None,
    type: str = "image",
    duration_sec: int = 10,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    try:
        media_type = normalized_media_type(type)
        path, size, checksum = save_file(file, media_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    media = Media(
        name=_resolved_media_name(name, file),
        type=media_type,
        path=path,
        duration_sec=max(1, duration_sec),
        size=size,
        checksum=checksum,
        owner_account=account_id,
    )
    db.add(media)
    db.commit()
    db.refresh(media)
    logger.info("Stored %s media %s (%s bytes)", media_type, media.id, size)
    return media


@router.get("/page")
def list_media_page(
    offset: int = 0,
    limit: int = 100,
    q: str | None = None,
    type: str | None = None,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    safe_offset = max(0, offset)
    safe_limit = max(1, min(limit, 500))

    query = db.query(Media).filter(Media.owner_account == account_id)
    if type:
        normalized_type = type.strip().lower()
        if normalized_type in {"image", "video"}:
            query = query.filter(func.lower(Media.type) == normalized_type)
    if q:
        keyword = f"%{q.strip().lower()}%"
        if keyword != "%%":
            query = query.filter(func.lower(Media.name).like(keyword) | func.lower(Media.path).like(keyword))

    total = query.count()
    items = query.order_by(Media.created_at.desc(), Media.id.desc()).offset(safe_offset).limit(safe_limit).all()
    return {
        "items": [MediaOut.model_validate(item) for item in items],
        "total": total,
        "offset": safe_offset,
        "limit": safe_limit,
    }


@router.get("/{media_id}", response_model=MediaOut)
def get_media(media_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    return get_owned(db, Media, media_id, account_id, "media")


@router.delete("/{media_id}")
def delete_media(media_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    media = get_owned(db, Media, media_id, account_id, "media")
    db.query(PlaylistItem).filter(PlaylistItem.media_id == media.id).delete(synchronize_session=False)
    path = media.path
    db.delete(media)
    db.commit()
    delete_file(path)
    return {"ok": True}
