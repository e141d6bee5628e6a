"""Error taxonomy shared by the provider, sync and ledger layers.

Every error carries the HTTP status the routing layer answers with, so the
single exception handler in ``main`` never has to special-case a kind.
"""

from typing import Optional


class SeriesTrackError(Exception):
    """Base class for all expected failures."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SeriesTrackError):
    """The upstream provider or the local store has no such resource."""

    http_status = 404


class UpstreamUnavailable(SeriesTrackError):
    """Transport failure or unexpected status from the upstream provider."""

    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationFailed(SeriesTrackError):
    """The upstream provider rejected our credentials (401/403)."""

    http_status = 502


class RateLimited(SeriesTrackError):
    """The upstream provider answered 429."""

    http_status = 429


class AlreadyTracked(SeriesTrackError):
    """The user already has a subscription for the show."""

    http_status = 409


class NotTracked(SeriesTrackError):
    """The user has no subscription for the show."""

    http_status = 404


class InvalidRequest(SeriesTrackError):
    """Caller input failed validation before any work was done."""

    http_status = 400


class PersistenceError(SeriesTrackError):
    """Store failure not explained by an expected insert race."""

    http_status = 500
