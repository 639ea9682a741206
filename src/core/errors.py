"""
Error classes shared by the fetch, publish and ledger layers.
"""
from typing import Optional


class SkywriteError(Exception):
    """Base class for all errors raised by skywrite."""


class FetchError(SkywriteError):
    """
    A source could not be fetched or parsed.
    The current cycle is skipped and retried on the next tick.
    """

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class PublishError(SkywriteError):
    """
    A post could not be published.
    Terminates the polling loop of the source that produced it.
    """

    def __init__(self, message: str, text: Optional[str] = None):
        super().__init__(message)
        self.text = text


class LedgerError(SkywriteError):
    """Persistent storage failure in the posted-url ledger."""


class DuplicateKeyError(LedgerError):
    """The url is already recorded in the ledger."""

    def __init__(self, url: str):
        super().__init__(f"{url} is already recorded")
        self.url = url
