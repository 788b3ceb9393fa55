"""Typed errors raised at the platform adapter boundary.

Every adapter failure is one of these; the job layer classifies them into
retry-or-terminate and never lets an unclassified adapter error escape.
"""
import httpx

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
AUTH_STATUS_CODES = {401, 403}


class PlatformError(Exception):
    """Base class for adapter errors."""

    retryable = False

    def __init__(self, message: str, platform: str | None = None):
        super().__init__(message)
        self.message = message
        self.platform = platform


class UnsupportedPlatform(PlatformError):
    """No adapter is registered for the platform tag."""


class TransientApiError(PlatformError):
    """Rate limits, network blips, timeouts - worth retrying."""

    retryable = True


class PermanentApiError(PlatformError):
    """Validation failure or auth rejection - retrying will not help."""

    def __init__(self, message: str, platform: str | None = None, status_code: int | None = None):
        super().__init__(message, platform)
        self.status_code = status_code

    @property
    def auth_rejected(self) -> bool:
        return self.status_code in AUTH_STATUS_CODES


class NotSupported(PlatformError):
    """The platform does not offer this capability."""


class CredentialExpired(PlatformError):
    """The account needs to be reconnected before it can be used."""


def translate_http_error(exc: httpx.HTTPError, platform: str) -> PlatformError:
    """Map an httpx failure onto the adapter error taxonomy."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = exc.response.text[:300]
        message = f"{platform} API returned {status}: {body}" if body else f"{platform} API returned {status}"
        if status in RETRYABLE_STATUS_CODES:
            return TransientApiError(message, platform)
        return PermanentApiError(message, platform, status_code=status)
    # Connect/read timeouts, DNS failures, dropped connections
    return TransientApiError(f"{platform} API unreachable: {exc!s}", platform)
