"""Hierarchical exception types for the gateway."""

from __future__ import annotations


class YggGatewayError(Exception):
    """Base exception for all gateway errors."""


# ── Authentication ──────────────────────────────────────────────


class AuthError(YggGatewayError):
    """The login protocol did not produce a usable session."""


class InvalidCredentialsError(AuthError):
    """The origin site rejected the username/password pair (HTTP 401)."""


class NoSessionCookieError(AuthError):
    """The login page did not hand out the ``ygg_`` session cookie."""


class LoginError(AuthError):
    """Login failed with an unexpected HTTP status."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RemoteServiceError(AuthError):
    """The browser-automation service reported a failure."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SessionRenewalExhaustedError(AuthError):
    """The session expired again after a renewal; no further retry is made."""


# ── Session / transport ─────────────────────────────────────────


class SessionExpiredError(YggGatewayError):
    """The origin site bounced the request back to its login page."""


class TransportError(YggGatewayError):
    """Network failure or timeout talking to the origin site."""


class ParseError(YggGatewayError):
    """A page did not have the expected shape."""


# ── Downloads ───────────────────────────────────────────────────


class DownloadError(YggGatewayError):
    """Torrent download failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TokenMissingError(DownloadError):
    """The download-timer response carried no token."""


class QuotaExhaustedError(DownloadError):
    """No downloads left for today."""


class RatioInsufficientError(DownloadError):
    """Downloads remain but the site refused the file (ratio too low)."""

    def __init__(self, message: str, *, remaining: int) -> None:
        super().__init__(message, status=302)
        self.remaining = remaining


class QuotaCheckError(DownloadError):
    """The download was refused and the remaining-downloads check failed too."""


# ── Metadata ────────────────────────────────────────────────────


class MetadataLookupError(YggGatewayError):
    """TMDB/IMDB identifier could not be resolved to search queries."""
