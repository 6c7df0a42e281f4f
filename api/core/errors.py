"""
Error kinds raised by the content layer.

Repositories raise these; `content.service.ContentService` is the boundary that
logs store failures and turns them into empty results.
"""

from __future__ import annotations


class ContentError(RuntimeError):
    pass


class NotFound(ContentError):
    """The requested identifier or slug does not exist. Expected, not logged as an error."""


class ValidationFailure(ContentError):
    """Malformed filter or content input, detected before the store is touched."""


class ReadFailure(ContentError):
    pass


class WriteFailure(ContentError):
    pass


# Search adapter failures are explicit and separable from store failures.
class SearchError(ContentError):
    pass
