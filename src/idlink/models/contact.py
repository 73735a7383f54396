"""Contact value model shared by the store and the resolution core."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LinkPrecedence(str, Enum):
    """Role of a contact inside its identity group."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class Contact(BaseModel):
    """Immutable snapshot of one stored contact record.

    A primary anchors an identity group and has no ``linked_id``; a secondary
    points at its group's primary through ``linked_id``.
    """

    id: int
    email: str | None = None
    phone_number: str | None = None
    linked_id: int | None = None
    link_precedence: LinkPrecedence
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @property
    def is_primary(self) -> bool:
        return self.link_precedence == LinkPrecedence.PRIMARY

    @property
    def is_secondary(self) -> bool:
        return self.link_precedence == LinkPrecedence.SECONDARY

    @property
    def precedence_key(self) -> tuple[datetime, int]:
        """Sort key for primary selection: oldest first, lower id on ties."""
        return (self.created_at, self.id)


class IdentifyResult(BaseModel):
    """Projected identity returned by ``identify`` and ``lookup``."""

    primary_contact_id: int
    emails: list[str] = Field(default_factory=list)
    phone_numbers: list[str] = Field(default_factory=list)
    secondary_contact_ids: list[int] = Field(default_factory=list)
