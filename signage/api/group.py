import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from signage.api.deps import get_owned, resolve_account_id
from signage.db import get_db
from signage.errors import NotFoundError
from signage.models.group import ScreenGroup, ScreenGroupMember
from signage.models.screen import Screen
from signage.schemas.group import ScreenGroupIn, ScreenGroupMemberIn, ScreenGroupOut
from signage.schemas.screen import ScreenOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail="Group name cannot be empty")
    return cleaned


def _commit_group(db: Session, group: ScreenGroup) -> ScreenGroup:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="A group with this name already exists") from exc
    db.refresh(group)
    return group


@router.get("", response_model=list[ScreenGroupOut])
def list_groups(account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    return (
        db.query(ScreenGroup)
        .filter(ScreenGroup.owner_account == account_id)
        .order_by(ScreenGroup.name.asc(), ScreenGroup.id.asc())
        .all()
    )


@router.post("", response_model=ScreenGroupOut)
def create_group(body: ScreenGroupIn, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    group = ScreenGroup(
        name=_clean_name(body.name),
        description=(body.description or "").strip() or None,
        owner_account=account_id,
    )
    db.add(group)
    group = _commit_group(db, group)
    logger.info("Created screen group %s for %s", group.id, account_id)
    return group


@router.get("/{group_id}", response_model=ScreenGroupOut)
def get_group(group_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    return get_owned(db, ScreenGroup, group_id, account_id, "group")


@router.put("/{group_id}", response_model=ScreenGroupOut)
def update_group(
    group_id: str,
    name: str | None = None,
    description: str | None = None,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    group = get_owned(db, ScreenGroup, group_id, account_id, "group")
    if name is not None:
        group.name = _clean_name(name)
    if description is not None:
        group.description = description.strip() or None
    return _commit_group(db, group)


@router.delete("/{group_id}")
def delete_group(group_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    group = get_owned(db, ScreenGroup, group_id, account_id, "group")
    db.query(ScreenGroupMember).filter(ScreenGroupMember.group_id == group.id).delete(synchronize_session=False)
    db.delete(group)
    db.commit()
    logger.info("Deleted screen group %s", group_id)
    return {"ok": True}


@router.get("/{group_id}/screens", response_model=list[ScreenOut])
def list_group_screens(group_id: str, account_id: str = Depends(resolve_account_id), db: Session = Depends(get_db)):
    group = get_owned(db, ScreenGroup, group_id, account_id, "group")
    return (
        db.query(Screen)
        .join(ScreenGroupMember, ScreenGroupMember.screen_id == Screen.id)
        .filter(ScreenGroupMember.group_id == group.id)
        .order_by(Screen.name.asc(), Screen.id.asc())
        .all()
    )


@router.post("/{group_id}/screens")
def add_group_screen(
    group_id: str,
    body: ScreenGroupMemberIn,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    group = get_owned(db, ScreenGroup, group_id, account_id, "group")
    screen = get_owned(db, Screen, body.screen_id, account_id, "screen")
    # Adding an existing member is a no-op.
    if db.get(ScreenGroupMember, (group.id, screen.id)) is None:
        db.add(ScreenGroupMember(group_id=group.id, screen_id=screen.id))
        db.commit()
    return {"ok": True}


@router.delete("/{group_id}/screens/{screen_id}")
def remove_group_screen(
    group_id: str,
    screen_id: str,
    account_id: str = Depends(resolve_account_id),
    db: Session = Depends(get_db),
):
    group = get_owned(db, ScreenGroup, group_id, account_id, "group")
    screen = get_owned(db, Screen, screen_id, account_id, "screen")
    removed = (
        db.query(ScreenGroupMember)
        .filter(ScreenGroupMember.group_id == group.id, ScreenGroupMember.screen_id == screen.id)
        .delete(synchronize_session=False)
    )
    if not removed:
        raise NotFoundError("group member", screen.id)
    db.commit()
    return {"ok": True}
