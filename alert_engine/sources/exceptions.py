"""Custom exceptions for listing event sources."""


class ListingSourceError(Exception):
    """Base exception for listing source errors.

    Catching this handles any feed failure at the engine level (log, record
    feed health, try again on the next poll).
    """

    pass


class ListingSourceHTTPError(ListingSourceError):
    """HTTP request failed with a 4xx or 5xx status, or could not be sent."""

    def __init__(self, message: str, status_code: int, url: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    @property
    def retryable(self) -> bool:
        return self.status_code == 0 or self.status_code >= 500 or self.status_code == 429


class ListingSourceTimeoutError(ListingSourceError):
    """HTTP request timed out."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class ListingSourceResponseError(ListingSourceError):
    """The feed answered but the payload could not be parsed."""

    pass
