from __future__ import annotations

from typing import Any


class ReviewNotFound(LookupError):
    pass


class UserNotFound(LookupError):
    pass


class NotReviewOwner(PermissionError):
    pass


class StaleUpdate(Exception):
    """The request carried an ``updatedAt`` older than the stored row."""

    def __init__(self, server_version: Any) -> None:
        super().__init__("Server version is newer")
        self.server_version = server_version
