"""Opportunity store backed by the remote Campus Cares API."""
import json
import logging
from typing import Any

import httpx

from campuscares.core.errors import (
    ERRORS_BY_CODE,
    NotFound,
    PermissionDenied,
    RemoteUnavailable,
    ValidationError,
)
from campuscares.models import OpportunityRead
from campuscares.store.base import ImageUpload
from campuscares.store.normalize import (
    UnrecognizedShape,
    format_start,
    opportunity_from_detail,
    opportunity_from_moderation,
    opportunity_listing,
)

logger = logging.getLogger(__name__)


def to_payload(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert canonical fields to the backend's write shape.

    The backend keeps a single UTC ``date`` instant, so ``date`` and ``time``
    must travel together.
    """
    payload = dict(fields)
    if "date" in payload or "time" in payload:
        payload["date"] = format_start(payload.pop("date"), payload.pop("time"))
    return payload


class RemoteStore:
    """Client for the backend's opportunity, registration and attendance endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._timeout = timeout
        self._client = httpx.Client(
            base_url=f"{base_url.rstrip('/')}/api",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # Reads

    def list_opportunities(self) -> list[OpportunityRead]:
        body = self._json(self._request("GET", "/opps"))
        return self._normalize(opportunity_listing, body, opportunity_from_detail)

    def list_unapproved_opportunities(self) -> list[OpportunityRead]:
        body = self._json(self._request("GET", "/opps/unapproved"))
        return self._normalize(opportunity_listing, body, opportunity_from_moderation)

    def get_opportunity(self, opportunity_id: int) -> OpportunityRead:
        body = self._json(self._request("GET", f"/opps/{opportunity_id}"))
        return self._normalize(opportunity_from_detail, body)

    # Writes

    def create_opportunity(
        self, fields: dict[str, Any], image: ImageUpload | None = None
    ) -> OpportunityRead:
        payload = to_payload(fields)
        if image is None:
            response = self._request("POST", "/opps", json=payload)
        else:
            # Multipart form: list fields are sent JSON-encoded
            data = {
                key: value if isinstance(value, str) else json.dumps(value)
                for key, value in payload.items()
                if value is not None
            }
            response = self._request("POST", "/opps", data=data, files={"image": image})
        return self._normalize(opportunity_from_detail, self._json(response))

    def update_opportunity(
        self, opportunity_id: int, fields: dict[str, Any]
    ) -> OpportunityRead:
        response = self._request("PUT", f"/opps/{opportunity_id}", json=to_payload(fields))
        return self._normalize(opportunity_from_detail, self._json(response))

    def add_comment(self, opportunity_id: int, text: str) -> OpportunityRead:
        # The backend only accepts whole lists; the last writer wins on its side
        current = self.get_opportunity(opportunity_id)
        return self.update_opportunity(
            opportunity_id, {"comments": [*current.comments, text]}
        )

    def delete_opportunity(self, opportunity_id: int, require_pending: bool = False) -> None:
        """
        Delete an opportunity.

        The backend has no conditional delete, so ``require_pending`` is
        checked against a fresh fetch just before the DELETE. That check is
        not atomic: an approval landing between the two requests is lost.
        """
        if require_pending and self.get_opportunity(opportunity_id).approved:
            raise PermissionDenied(
                "Approved opportunities can only be deleted by an administrator"
            )
        self._request("DELETE", f"/opps/{opportunity_id}")

    def register(self, user_id: int, opportunity_id: int, allow_pending: bool = False) -> None:
        """
        Register a user.

        ``allow_pending`` is not sent: the backend decides from its own token
        whether a pending opportunity accepts signups.
        """
        self._request(
            "POST",
            "/register-opp",
            json={"user_id": user_id, "opportunity_id": opportunity_id},
        )

    def unregister(self, user_id: int, opportunity_id: int) -> None:
        self._request(
            "POST",
            "/unregister-opp",
            json={"user_id": user_id, "opportunity_id": opportunity_id},
        )

    def mark_attendance(self, user_id: int, opportunity_id: int) -> None:
        self._request(
            "PUT",
            "/attendance",
            json={"user_ids": [user_id], "opportunity_id": opportunity_id},
        )

    # Helpers

    def _json(self, response: httpx.Response):
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailable("Backend returned a non-JSON response") from e

    def _normalize(self, normalizer, body, *args):
        try:
            return normalizer(body, *args)
        except UnrecognizedShape as e:
            logger.error(f"Backend returned an unrecognized payload: {e}")
            raise RemoteUnavailable("Backend returned an unrecognized payload") from e

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(f"Request timeout after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise RemoteUnavailable(f"Request failed: {e}") from e

        self._raise_for_status(response)
        return response

    def _raise_for_status(self, response: httpx.Response) -> None:
        """
        Translate backend failures into engine errors.

        Raises:
            RemoteUnavailable: For 429 and 5xx responses.
            NotFound, PermissionDenied: For 404 and 401/403.
            The error named by the body's ``error`` code for other 4xx
            responses, falling back to ValidationError.
        """
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
        except ValueError:
            detail = {}
        if not isinstance(detail, dict):
            detail = {}
        message = detail.get("message") or response.reason_phrase or f"HTTP {status}"

        if status == 429 or status >= 500:
            logger.warning(f"Backend unavailable ({status}): {message}")
            raise RemoteUnavailable(f"Backend unavailable: {message}", backend_status=status)

        error_class = ERRORS_BY_CODE.get(detail.get("error"))
        if error_class is not None:
            raise error_class(message)
        if status == 404:
            raise NotFound(message)
        if status in (401, 403):
            raise PermissionDenied(message)
        raise ValidationError(message, backend_status=status)
