"""
Custom exception classes for SocialBot.

Each exception carries the HTTP status the API layer answers with, so the
facade can translate any of them into the uniform ``{"error": ...}`` body.
"""

from typing import Optional


class SocialBotError(Exception):
    """Base exception for all SocialBot errors."""
    http_status = 500


# =============================================================================
# Request / configuration errors
# =============================================================================

class ConfigurationError(SocialBotError):
    """Raised when a required setting or credential is missing."""


class MissingFieldError(SocialBotError):
    """Raised when a request lacks a required field."""
    http_status = 400


class NotFoundError(SocialBotError):
    """Raised when a referenced trend or post does not exist."""
    http_status = 404


# =============================================================================
# Generation errors (recovered inside the fallback chain)
# =============================================================================

class ProviderError(SocialBotError):
    """A single provider attempt failed: non-2xx, timeout, transport or bad body."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider}: {message}")


class NormalizationError(SocialBotError):
    """Provider output could not be turned into usable content."""


class UnrecognizedResponseError(NormalizationError):
    """Provider payload matched none of the known response shapes."""


# =============================================================================
# Publishing errors
# =============================================================================

class AlreadyPostedError(SocialBotError):
    """Raised when publishing a post that is already on the page."""

    def __init__(self, message: str = "Already posted"):
        super().__init__(message)


class FacebookAPIError(SocialBotError):
    """The Graph API rejected a call or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
