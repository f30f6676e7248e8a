from typing import Optional


class ShortLinkError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidURL(ShortLinkError):
    status_code = 400
    default_message = "Invalid or missing URL."


class InvalidShortcodeFormat(ShortLinkError):
    status_code = 400
    default_message = "Invalid shortcode format. Must be alphanumeric, 4-10 chars."


class ShortcodeCollision(ShortLinkError):
    status_code = 409
    default_message = "Shortcode already in use."


class ShortcodeNotFound(ShortLinkError):
    status_code = 404
    default_message = "Shortcode not found."


class ShortcodeExpired(ShortLinkError):
    status_code = 410
    default_message = "Shortcode expired."


class UnexpectedFailure(ShortLinkError):
    status_code = 500
    default_message = "Internal server error"


class ShortcodeSpaceExhausted(UnexpectedFailure):
    """Random generation hit the attempt cap without finding a free code."""


class InvalidLogEvent(ValueError):
    """Raised when a diagnostic event fails validation; the event is not sent."""
