"""Transient, id-keyed projection of the opportunity store.

The repository is a convenience cache, never the source of truth: it is
discarded with the request that created it and refreshed after every
mutation. All mutations go through ``mutate``, which applies an optimistic
projection, commits to the store and rolls the projection back on failure.
"""
import logging
from collections.abc import Callable
from typing import TypeVar

from campuscares.core.errors import EngineError, NotFound, RemoteUnavailable
from campuscares.models import OpportunityRead
from campuscares.store.base import OpportunityStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Receives a private copy of the cached record; returns the projected record,
# or None when the mutation is expected to remove it.
Projection = Callable[[OpportunityRead], OpportunityRead | None]


class OpportunityRepository:
    """Opportunity records keyed by id, backed by an ``OpportunityStore``."""

    def __init__(self, store: OpportunityStore):
        self.store = store
        self._items: dict[int, OpportunityRead] = {}

    def __contains__(self, opportunity_id: int) -> bool:
        return opportunity_id in self._items

    def peek(self, opportunity_id: int) -> OpportunityRead | None:
        """Cached record without touching the store."""
        return self._items.get(opportunity_id)

    def get(self, opportunity_id: int, refresh: bool = False) -> OpportunityRead:
        """Cached record, fetched from the store when missing or when asked to."""
        if refresh or opportunity_id not in self._items:
            try:
                self._items[opportunity_id] = self.store.get_opportunity(opportunity_id)
            except NotFound:
                self._items.pop(opportunity_id, None)
                raise
        return self._items[opportunity_id]

    def put(self, opportunity: OpportunityRead) -> None:
        self._items[opportunity.id] = opportunity

    def refresh_all(self) -> list[OpportunityRead]:
        """Replace the cache with the store's full listing."""
        opportunities = self.store.list_opportunities()
        self._items = {opportunity.id: opportunity for opportunity in opportunities}
        return opportunities

    def mutate(
        self,
        opportunity_id: int,
        project: Projection | None,
        commit: Callable[[], T],
    ) -> OpportunityRead | None:
        """
        Apply locally, commit remotely, roll back on error.

        Args:
            opportunity_id: Record the mutation targets.
            project: Optimistic projection applied to the cached record before
                the store is called. None skips the projection.
            commit: The store call. Its return value is ignored; the record
                is refetched instead.

        Returns:
            The refetched record, or None if it no longer exists or could not
            be refetched.

        Raises:
            Whatever ``commit`` raised, after the projection has been undone.
            Rejections also trigger a refetch so the cache matches the store.
        """
        snapshot = self._items.get(opportunity_id)
        if snapshot is not None and project is not None:
            projected = project(snapshot.model_copy(deep=True))
            if projected is None:
                del self._items[opportunity_id]
            else:
                self._items[opportunity_id] = projected

        try:
            commit()
        except RemoteUnavailable:
            # Outcome unknown: keep the last confirmed state, do not refetch
            self._restore(opportunity_id, snapshot)
            raise
        except EngineError as e:
            logger.info(f"Mutation on opportunity {opportunity_id} rejected: {e.code}")
            self._restore(opportunity_id, snapshot)
            self._reconcile(opportunity_id)
            raise
        except Exception:
            self._restore(opportunity_id, snapshot)
            raise

        return self._reconcile(opportunity_id)

    def _restore(self, opportunity_id: int, snapshot: OpportunityRead | None) -> None:
        if snapshot is None:
            self._items.pop(opportunity_id, None)
        else:
            self._items[opportunity_id] = snapshot

    def _reconcile(self, opportunity_id: int) -> OpportunityRead | None:
        try:
            return self.get(opportunity_id, refresh=True)
        except NotFound:
            return None
        except RemoteUnavailable as e:
            logger.warning(f"Could not refetch opportunity {opportunity_id}: {e}")
            self._items.pop(opportunity_id, None)
            return None
