"""The persistent-store collaborator the engine runs against.

Stores own the authoritative state. Every mutating method either commits
atomically and returns, or raises an ``EngineError`` and leaves the stored
state untouched. Capacity and approval rules are re-checked here because
anything the engine saw beforehand may already be stale.
"""

from typing import Any, Protocol

from campuscares.models import OpportunityRead

# (filename, content, content type). Forwarded to the backend, never stored by the engine.
ImageUpload = tuple[str, bytes, str]


class OpportunityStore(Protocol):
    def list_opportunities(self) -> list[OpportunityRead]: ...

    def list_unapproved_opportunities(self) -> list[OpportunityRead]: ...

    def get_opportunity(self, opportunity_id: int) -> OpportunityRead: ...

    def create_opportunity(
        self, fields: dict[str, Any], image: ImageUpload | None = None
    ) -> OpportunityRead: ...

    def update_opportunity(
        self, opportunity_id: int, fields: dict[str, Any]
    ) -> OpportunityRead: ...

    def add_comment(self, opportunity_id: int, text: str) -> OpportunityRead: ...

    def delete_opportunity(
        self, opportunity_id: int, require_pending: bool = False
    ) -> None: ...

    def register(
        self, user_id: int, opportunity_id: int, allow_pending: bool = False
    ) -> None: ...

    def unregister(self, user_id: int, opportunity_id: int) -> None: ...

    def mark_attendance(self, user_id: int, opportunity_id: int) -> None: ...
