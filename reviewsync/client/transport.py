from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar, Union

import httpx
from pydantic import TypeAdapter

from .models import BulkSyncResponse, RemoteReview, Review, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Connectivity probe only; data calls use the client's default timeout
PROBE_TIMEOUT = 5.0
DEFAULT_TIMEOUT = 30.0

_REVIEW_LIST = TypeAdapter(list[RemoteReview])


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T


@dataclass(frozen=True)
class Error:
    message: str


Result = Union[Success[T], Error]


class SyncService:
    """HTTP client for the review sync API.

    Every call returns ``Success`` or ``Error``; transport problems are
    logged and reported, never raised.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _call(
        self,
        what: str,
        method: str,
        path: str,
        parse: Callable[[Any], T],
        **kwargs: Any,
    ) -> Result[T]:
        try:
            response = self._client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s failed", what, exc_info=True)
            return Error(str(exc) or type(exc).__name__)

        if not response.is_success:
            logger.warning("%s: server returned %d", what, response.status_code)
            return Error(f"Server returned code: {response.status_code}")

        try:
            return Success(parse(response.json()))
        except ValueError:
            logger.warning("%s: unreadable response body", what, exc_info=True)
            return Error("Invalid response from server")

    def test_connection(self) -> bool:
        try:
            response = self._client.get(f"{self.base_url}/api/health", timeout=PROBE_TIMEOUT)
        except httpx.HTTPError:
            logger.warning("Health probe failed", exc_info=True)
            return False
        return response.status_code == 200

    def sync_user(self, user: User) -> Result[dict]:
        return self._call(
            "User sync",
            "PUT",
            f"/api/users/{user.user_id}",
            dict,
            json={"userName": user.user_name},
        )

    def bulk_sync(self, user_id: str, reviews: list[Review]) -> Result[BulkSyncResponse]:
        body = {"userId": user_id, "reviews": [r.to_sync_payload() for r in reviews]}
        return self._call(
            "Bulk sync",
            "POST",
            "/api/reviews/sync",
            BulkSyncResponse.model_validate,
            json=body,
        )

    def fetch_all_reviews(self, since: datetime | None = None) -> Result[list[RemoteReview]]:
        params = {"since": since.isoformat()} if since else None
        return self._call(
            "Review download", "GET", "/api/reviews", _REVIEW_LIST.validate_python, params=params
        )

    def fetch_user_reviews(
        self, user_id: str, since: datetime | None = None
    ) -> Result[list[RemoteReview]]:
        params = {"since": since.isoformat()} if since else None
        return self._call(
            "User review download",
            "GET",
            f"/api/reviews/user/{user_id}",
            _REVIEW_LIST.validate_python,
            params=params,
        )
