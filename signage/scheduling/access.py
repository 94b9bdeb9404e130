from signage.errors import AuthorizationError, NotFoundError
from signage.scheduling.store import SchedulingStore
from signage.scheduling.types import ScheduleInfo


class OwnershipPolicy:
    """Ownership checks layered on top of the resolver; the resolver itself never checks."""

    def __init__(self, store: SchedulingStore) -> None:
        self.store = store

    def schedule(self, schedule_id: str, account_id: str) -> ScheduleInfo:
        schedule = self.store.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("schedule", schedule_id)
        if schedule.owner_account != account_id:
            raise AuthorizationError()
        return schedule

    def window(self, window_id: str, account_id: str) -> ScheduleInfo:
        schedule = self.store.get_schedule_owning_window(window_id)
        if schedule is None:
            raise NotFoundError("window", window_id)
        if schedule.owner_account != account_id:
            raise AuthorizationError()
        return schedule

    def playlist(self, playlist_id: str, account_id: str) -> None:
        owner = self.store.get_playlist_owner(playlist_id)
        if owner is None:
            raise NotFoundError("playlist", playlist_id)
        if owner != account_id:
            raise AuthorizationError()

    def screen(self, screen_id: str, account_id: str) -> None:
        owner = self.store.get_screen_owner(screen_id)
        if owner is None:
            raise NotFoundError("screen", screen_id)
        if owner != account_id:
            raise AuthorizationError()
