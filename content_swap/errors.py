# content_swap/errors.py

from __future__ import annotations

from typing import Optional


class ContentSwapError(Exception):
    """Base class for every failure raised by the promotion engine."""

    def __init__(self, message: str, *, group: Optional[str] = None) -> None:
        super().__init__(message)
        self.group = group


class ConfigurationError(ContentSwapError):
    """Unknown swap group or promotion target. Raised before any database call."""


class ValidationError(ContentSwapError):
    """
    Staging content is not ready for promotion.

    Raised before any DDL is issued, so the live tables are untouched and the
    promotion can be retried once the staging content is fixed.
    """

    def __init__(self, message: str, *, group: Optional[str] = None, table: Optional[str] = None) -> None:
        super().__init__(message, group=group)
        self.table = table


class StagingMissingError(ValidationError):
    """The `_staging` table does not exist (the content loader never ran)."""


class StagingEmptyError(ValidationError):
    """The `_staging` table exists but holds no rows."""


class RetiredTablesPendingError(ValidationError):
    """A `_retired` table kept by an earlier promotion is still around."""


class TransactionError(ContentSwapError):
    """
    A statement inside the swap transaction failed and the whole transaction
    was rolled back. The original database error is kept as `__cause__`.
    """

    def __init__(self, group: str, cause: BaseException) -> None:
        detail = getattr(cause, "orig", None) or cause
        super().__init__(f"Promotion of group '{group}' rolled back: {detail}", group=group)
        self.cause = cause
