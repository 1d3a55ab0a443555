"""Map remote backend payloads to the canonical opportunity record.

Each backend endpoint gets exactly one normalizer. The backend sends start
instants as UTC ISO strings; they are converted to the configured event
timezone and split into the civil date and time the engine works with.
Payloads that do not match the expected shape raise ``UnrecognizedShape``
instead of being guessed at.
"""
import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as SchemaError

from campuscares.engine.time_policy import event_timezone
from campuscares.models import OpportunityRead, RegistrationSummary

logger = logging.getLogger(__name__)


class UnrecognizedShape(ValueError):
    """A backend payload did not match the shape its endpoint promises."""


def _require(payload: Any, *keys: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise UnrecognizedShape(f"Expected an object, got {type(payload).__name__}")
    missing = [key for key in keys if payload.get(key) is None]
    if missing:
        raise UnrecognizedShape(f"Missing fields: {', '.join(missing)}")
    return payload


def parse_start(raw: str):
    """Split a backend start instant into civil date and time in the event timezone."""
    try:
        instant = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as e:
        raise UnrecognizedShape(f"Unparseable date: {raw!r}") from e
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    local = instant.astimezone(event_timezone())
    return local.date(), local.time().replace(tzinfo=None)


def format_start(date, time) -> str:
    """Inverse of ``parse_start``: civil date and time to a UTC ISO string."""
    local = datetime.combine(date, time, tzinfo=event_timezone())
    return local.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _host(payload: dict[str, Any]) -> tuple[int | None, int | None]:
    host_user_id = payload.get("host_user_id")
    host_org_id = payload.get("host_org_id")
    if (host_user_id is None) == (host_org_id is None):
        raise UnrecognizedShape("Exactly one of host_user_id and host_org_id must be set")
    return host_user_id, host_org_id


def _opportunity(payload: Any, participant, approved_default: bool) -> OpportunityRead:
    payload = _require(payload, "id", "name", "date", "total_slots")
    date, time = parse_start(payload["date"])
    host_user_id, host_org_id = _host(payload)
    try:
        return OpportunityRead(
            id=payload["id"],
            name=payload["name"],
            description=payload.get("description") or "",
            nonprofit=payload.get("nonprofit"),
            host_user_id=host_user_id,
            host_org_id=host_org_id,
            created_by=payload.get("created_by", host_user_id),
            total_slots=payload["total_slots"],
            date=date,
            time=time,
            duration=payload.get("duration") or 0,
            address=payload.get("address") or "",
            approved=payload.get("approved", approved_default),
            redirect_url=payload.get("redirect_url"),
            attendance_marked=payload.get("attendance_marked", False),
            causes=list(dict.fromkeys(payload.get("causes") or [])),
            visibility=payload.get("visibility") or [],
            comments=payload.get("comments") or [],
            host_attended=payload.get("host_attended", False),
            registrations=[
                participant(entry) for entry in payload.get("involved_users") or []
            ],
        )
    except SchemaError as e:
        raise UnrecognizedShape(str(e)) from e


def _flat_participant(entry: Any) -> RegistrationSummary:
    entry = _require(entry, "id")
    return RegistrationSummary(
        user_id=entry["id"],
        registered=bool(entry.get("registered", False)),
        attended=bool(entry.get("attended", False)),
    )


def _nested_participant(entry: Any) -> RegistrationSummary:
    user = _require(_require(entry, "user")["user"], "id")
    return RegistrationSummary(
        user_id=user["id"],
        registered=bool(entry.get("registered", False)),
        attended=bool(entry.get("attended", False)),
    )


def opportunity_from_detail(payload: Any) -> OpportunityRead:
    """
    Normalize ``GET /opps``, ``GET /opps/{id}``, ``POST /opps`` and ``PUT /opps/{id}``.

    Participants arrive flat in ``involved_users``:
    ``{"id": 7, "user": "Name", "registered": true, "attended": false}``.
    """
    return _opportunity(payload, _flat_participant, approved_default=True)


def opportunity_from_moderation(payload: Any) -> OpportunityRead:
    """
    Normalize one entry of ``GET /opps/unapproved``.

    Participants arrive nested:
    ``{"user": {"id": 7, ...}, "registered": true, "attended": false}``.
    """
    return _opportunity(payload, _nested_participant, approved_default=False)


def opportunity_listing(body: Any, normalizer) -> list[OpportunityRead]:
    """
    Normalize a ``{"opportunities": [...]}`` listing body.

    Individual records that fail to normalize are logged and skipped so one
    bad row does not hide the rest of the listing.
    """
    entries = _require(body, "opportunities")["opportunities"]
    if not isinstance(entries, list):
        raise UnrecognizedShape("'opportunities' must be a list")

    opportunities = []
    for entry in entries:
        try:
            opportunities.append(normalizer(entry))
        except UnrecognizedShape as e:
            entry_id = entry.get("id") if isinstance(entry, dict) else None
            logger.warning(f"Skipping unrecognized opportunity record {entry_id}: {e}")
    return opportunities
