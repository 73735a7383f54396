"""Group resolution: settle on a single primary for a set of matched contacts.

Resolution flow:
1. Collect the anchoring primaries: every matched primary, plus the primary
   each matched secondary links to
2. One anchor → adopt it, nothing changes
3. Several anchors → merge: the oldest primary survives, the others are
   demoted to secondaries of it and their own secondaries are re-pointed

Merging is a union of disjoint groups keyed by the primary's id. Re-pointing
keeps every group one hop deep, so a secondary never links to a secondary.
"""

from dataclasses import dataclass, field

from ..errors import IntegrityFault
from ..logging import get_context_logger, log_merge_event
from ..models import Contact, LinkPrecedence
from ..storage import ContactStore

logger = get_context_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a candidate set."""

    primary: Contact
    demoted_ids: tuple[int, ...] = field(default_factory=tuple)
    repointed_count: int = 0

    @property
    def merged(self) -> bool:
        return bool(self.demoted_ids)


class GroupResolver:
    """Determines, and if needed establishes, the primary of an identity group."""

    def __init__(self, store: ContactStore):
        self.store = store

    async def resolve(self, candidates: list[Contact]) -> Resolution:
        """Resolve matched contacts to a single primary, merging groups if needed.

        Args:
            candidates: Contacts returned by the matcher (must not be empty)

        Returns:
            Resolution naming the surviving primary

        Raises:
            IntegrityFault: a secondary's link does not lead to a live primary,
                or no primary could be reached at all
        """
        if not candidates:
            raise IntegrityFault("Cannot resolve a primary from an empty candidate set")

        anchors = await self._anchoring_primaries(candidates)
        if not anchors:
            raise IntegrityFault(
                "Could not determine a primary contact for matched contacts",
                contact_ids=[c.id for c in candidates],
            )

        ordered = sorted(anchors.values(), key=lambda c: c.precedence_key)
        survivor = ordered[0]
        if len(ordered) == 1:
            return Resolution(primary=survivor)

        return await self._merge(survivor, ordered[1:])

    async def _anchoring_primaries(self, candidates: list[Contact]) -> dict[int, Contact]:
        anchors: dict[int, Contact] = {c.id: c for c in candidates if c.is_primary}

        for contact in candidates:
            if contact.is_primary or contact.linked_id in anchors:
                continue

            if contact.linked_id is None:
                logger.error(
                    f"Secondary contact {contact.id} has no linked primary",
                    extra={"contact_id": contact.id},
                )
                raise IntegrityFault(
                    f"Secondary contact {contact.id} has no linked primary",
                    contact_ids=[contact.id],
                )

            primary = await self.store.find_by_id(contact.linked_id)
            if primary is None or not primary.is_primary:
                logger.error(
                    f"Linked primary {contact.linked_id} not found for secondary {contact.id}",
                    extra={"contact_id": contact.id, "linked_id": contact.linked_id},
                )
                raise IntegrityFault(
                    f"Linked primary contact {contact.linked_id} not found "
                    f"for secondary contact {contact.id}",
                    contact_ids=[contact.id, contact.linked_id],
                )
            anchors[primary.id] = primary

        return anchors

    async def _merge(self, survivor: Contact, demoted: list[Contact]) -> Resolution:
        demoted_ids = tuple(c.id for c in demoted)

        for contact in demoted:
            await self.store.update_precedence_and_link(
                contact.id, LinkPrecedence.SECONDARY, survivor.id
            )

        repointed = await self.store.bulk_repoint_secondaries(demoted_ids, survivor.id)

        log_merge_event(survivor.id, list(demoted_ids), repointed)
        return Resolution(
            primary=survivor,
            demoted_ids=demoted_ids,
            repointed_count=repointed,
        )
