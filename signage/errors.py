class SignageError(Exception):
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def payload(self) -> dict:
        return {"detail": self.detail}


class ValidationError(SignageError, ValueError):
    """Malformed input, rejected before anything is persisted."""

    status_code = 400


class ConflictError(SignageError):
    """A new or re-enabled window would overlap an enabled window on the same schedule."""

    status_code = 409

    def __init__(self, conflicting_window_id: str, detail: str | None = None) -> None:
        super().__init__(detail or f"time window overlaps with window {conflicting_window_id}")
        self.conflicting_window_id = conflicting_window_id

    def payload(self) -> dict:
        return {"detail": self.detail, "conflicting_window_id": self.conflicting_window_id}


class NotFoundError(SignageError):
    status_code = 404

    def __init__(self, kind: str, entity_id: str | None = None) -> None:
        super().__init__(f"{kind.capitalize()} not found")
        self.kind = kind
        self.entity_id = entity_id

    def payload(self) -> dict:
        return {"detail": self.detail, "kind": self.kind, "id": self.entity_id}


class AuthorizationError(SignageError):
    status_code = 403

    def __init__(self, detail: str = "forbidden") -> None:
        super().__init__(detail)
