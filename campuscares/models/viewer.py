"""Viewer: the external user on whose behalf the engine acts."""

from sqlmodel import SQLModel


class Viewer(SQLModel):
    """Identity, memberships and role of the caller.

    Viewers are owned by the surrounding application; the engine only
    reads them.

    Attributes:
        id: External user id.
        organizations: Ids of organizations the viewer belongs to.
        admin: Administrators are privileged for every engine rule.
    """
    id: int
    organizations: frozenset[int] = frozenset()
    admin: bool = False

    @property
    def privileged(self) -> bool:
        return self.admin
