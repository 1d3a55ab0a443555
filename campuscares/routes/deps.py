"""Request-scoped dependencies shared by the API routers."""
import logging

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from campuscares.core.config import settings
from campuscares.core.database import get_session
from campuscares.models import Viewer
from campuscares.repository import OpportunityRepository
from campuscares.store.base import OpportunityStore
from campuscares.store.remote import RemoteStore
from campuscares.store.sql import SqlOpportunityStore

logger = logging.getLogger(__name__)


def get_store(session: Session = Depends(get_session)):
    """
    Dependency for the configured opportunity store.

    With ``STORE_BACKEND=remote`` the database session goes unused and every
    call is forwarded to the backend API.
    """
    if settings.store_backend == "remote":
        with RemoteStore(
            settings.remote_api_url,
            token=settings.remote_api_token,
            timeout=settings.remote_timeout_seconds,
        ) as store:
            yield store
    else:
        yield SqlOpportunityStore(session)


def get_repository(store: OpportunityStore = Depends(get_store)) -> OpportunityRepository:
    """A fresh repository per request. Nothing is cached across requests."""
    return OpportunityRepository(store)


def parse_organizations(raw: str | None) -> frozenset[int]:
    if not raw:
        return frozenset()
    try:
        return frozenset(int(part) for part in raw.split(",") if part.strip())
    except ValueError as e:
        raise HTTPException(
            status_code=400, detail="X-Viewer-Organizations must be comma-separated ids"
        ) from e


def get_viewer(
    x_viewer_id: int | None = Header(default=None),
    x_viewer_organizations: str | None = Header(default=None),
    x_viewer_admin: bool = Header(default=False),
) -> Viewer:
    """
    Build the viewer from headers set by the authenticating gateway.

    The headers are trusted as-is; this service never sees user tokens.
    """
    if x_viewer_id is None:
        raise HTTPException(status_code=401, detail="Viewer identity required")
    return Viewer(
        id=x_viewer_id,
        organizations=parse_organizations(x_viewer_organizations),
        admin=x_viewer_admin,
    )
