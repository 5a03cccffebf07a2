# trackerman/errors.py

"""Exception taxonomy shared by the store, fetcher, scheduler and CLI."""


class TrackermanError(Exception):
    """Base class for all errors surfaced to trackerman callers."""


class ValidationError(TrackermanError):
    """Malformed or unrecognised input, rejected before any mutation."""


class DuplicateItemError(TrackermanError):
    """The (name, exterior) pair is already tracked."""

    def __init__(self, name: str, exterior: str) -> None:
        super().__init__(
            f"Item {name} ({exterior}) is already being tracked"
        )
        self.name = name
        self.exterior = exterior


class NotFoundError(TrackermanError):
    """The (name, exterior) pair is not tracked."""

    def __init__(self, name: str, exterior: str) -> None:
        super().__init__(f"Item {name} ({exterior}) not found")
        self.name = name
        self.exterior = exterior


class FetchError(TrackermanError):
    """Network failure, timeout or non-success response for one URL."""

    def __init__(
        self,
        url: str,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(f"Fetching {url} failed: {message}")
        self.url = url
        self.cause = cause


class NotificationError(TrackermanError):
    """Alert delivery failed; logged, never propagated to the trigger."""
