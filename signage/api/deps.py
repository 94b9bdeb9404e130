from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from signage.db import get_db
from signage.errors import AuthorizationError, NotFoundError
from signage.scheduling.access import OwnershipPolicy
from signage.scheduling.resolver import ScheduleResolver
from signage.services.schedule_store import SqlScheduleStore


def resolve_account_id(request: Request) -> str:
    account = (request.headers.get("X-Account-ID") or "").strip()
    if not account:
        raise HTTPException(status_code=401, detail="Missing X-Account-ID header")
    return account


def get_store(request: Request, db: Session = Depends(get_db)) -> SqlScheduleStore:
    return SqlScheduleStore(db, locks=request.app.state.schedule_locks)


def get_resolver(request: Request, store: SqlScheduleStore = Depends(get_store)) -> ScheduleResolver:
    return ScheduleResolver(store, notifier=request.app.state.notifier)


def get_policy(store: SqlScheduleStore = Depends(get_store)) -> OwnershipPolicy:
    return OwnershipPolicy(store)


def normalize_entity_id(value: str) -> str:
    normalized = (value or "").strip()
    if normalized.startswith("{") and normalized.endswith("}"):
        normalized = normalized[1:-1].strip()
    return normalized


def get_owned(db: Session, model, entity_id: str, account_id: str, kind: str):
    entity_id = normalize_entity_id(entity_id)
    row = db.get(model, entity_id) if entity_id else None
    if row is None:
        raise NotFoundError(kind, entity_id)
    if row.owner_account != account_id:
        raise AuthorizationError()
    return row
