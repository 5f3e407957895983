class PromptVerseError(Exception):
    """Base exception for PromptVerse application."""

    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or "PromptVerse error"
        super().__init__(self.message)


class ValidationError(PromptVerseError):
    """Raised when request data is missing or malformed."""

    status_code = 400


class PermissionDeniedError(PromptVerseError):
    """Raised when a user tries to change a record they do not own."""

    status_code = 403


class NotFoundError(PromptVerseError):
    """Raised when no matching record exists."""

    status_code = 404


class UserNotFoundError(NotFoundError):
    """User not found."""


class LedgerValidationError(ValidationError):
    """Raised when a ledger amount is not a positive integer."""


class AuthenticationError(PromptVerseError):
    """Invalid credentials"""

    status_code = 401


class InsufficientCreditsError(PromptVerseError):
    """Raised when a debit exceeds the user's balance."""

    status_code = 400

    def __init__(self, needed: int, available: int):
        self.needed = needed
        self.available = available
        super().__init__(f"Insufficient credits: needed {needed}, available {available}")


class WebhookMetadataError(PromptVerseError):
    """Raised when a billing webhook carries metadata we cannot act on."""


def error_detail(exc: PromptVerseError) -> str | dict:
    """Shape the HTTP ``detail`` payload for a domain exception."""
    if isinstance(exc, InsufficientCreditsError):
        return {
            "message": "Insufficient credits",
            "creditsNeeded": exc.needed,
            "creditsAvailable": exc.available,
        }
    return exc.message
