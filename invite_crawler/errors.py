from __future__ import annotations

from typing import Optional


# sysexits.h EX_IOERR, reserved for data-integrity aborts
EXIT_DATA_INTEGRITY = 74


class InviteCrawlerError(Exception):
    """Base error for the crawler."""


class SearchError(InviteCrawlerError):
    """A search result page could not be loaded."""


class ResolveError(InviteCrawlerError):
    """An intermediary link could not be resolved to invite links."""


class VerifyError(InviteCrawlerError):
    """An invite link could not be verified against the invite API."""


class CatalogCorruptionError(InviteCrawlerError):
    """The catalog file exists but cannot be opened or decoded."""

    def __init__(self, path: str, reason: str, *, unreadable: bool = False) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
        # True when the file could not even be opened (as opposed to decoded)
        self.unreadable = unreadable


class CatalogSaveError(InviteCrawlerError):
    """Saving the catalog failed and the retry policy gave up."""


class CatalogAbort(InviteCrawlerError):
    """The corruption policy refused to continue with an empty catalog."""

    exit_status = EXIT_DATA_INTEGRITY

    def __init__(self, cause: Optional[CatalogCorruptionError] = None) -> None:
        super().__init__("aborted to protect the saved catalog" + (f" ({cause})" if cause else ""))
        self.cause = cause


class PublishError(InviteCrawlerError):
    """Base for search index failures."""

    step = "publish"
    status = "Index state unknown."


class IndexUnavailableError(PublishError):
    step = "get_or_create"
    status = "Index is out of control."


class IndexDeleteError(PublishError):
    step = "delete_all_documents"
    status = "Index is outdated."


class IndexInsertError(PublishError):
    step = "add_documents"
    status = "Index is empty."
