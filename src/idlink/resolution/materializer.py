"""Identity group materialization.

Walks the identity graph breadth-first from a primary: each round fetches
the contacts whose id or linked_id is in the frontier. Groups are one hop
deep when the resolver's invariants hold, so the walk normally ends after a
single round; any primary found along the way is expanded too, so anomalous
rows are reported rather than silently dropped.
"""

from ..logging import get_context_logger
from ..models import Contact
from ..storage import ContactStore

logger = get_context_logger(__name__)


class GroupMaterializer:
    """Loads every member of the identity group anchored at a primary."""

    def __init__(self, store: ContactStore):
        self.store = store

    async def materialize(self, primary_id: int) -> list[Contact]:
        """Load a primary and all contacts transitively linked to it.

        Args:
            primary_id: Id of the group's primary

        Returns:
            Members in discovery order, each id once
        """
        members: dict[int, Contact] = {}
        expanded: set[int] = set()
        frontier = [primary_id]

        while frontier:
            expanded.update(frontier)
            next_frontier: list[int] = []

            for contact in await self.store.find_linked(frontier):
                if contact.id in members:
                    continue
                members[contact.id] = contact

                if contact.is_primary and contact.id not in expanded:
                    next_frontier.append(contact.id)

            frontier = next_frontier

        anomalies = [
            c.id for c in members.values() if c.is_primary and c.id != primary_id
        ]
        if anomalies:
            logger.warning(
                f"Group {primary_id} reaches other primaries {anomalies}",
                extra={"primary_id": primary_id, "extra_primary_ids": anomalies},
            )

        return list(members.values())
