"""Candidate matching for identity resolution.

A request matches every live contact that shares its email OR its phone
number. Matching is exact: emails and phone numbers are compared as given.
"""

from ..logging import get_context_logger
from ..models import Contact
from ..storage import ContactStore

logger = get_context_logger(__name__)


class ContactMatcher:
    """Finds stored contacts sharing an email or phone number with a request."""

    def __init__(self, store: ContactStore):
        self.store = store

    async def find_candidates(
        self,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> list[Contact]:
        """Find every contact whose email or phone matches.

        Args:
            email: Email to match (optional)
            phone_number: Phone number to match (optional)

        Returns:
            Matching contacts, oldest first, without duplicates. Empty when
            neither input is given or nothing matches.
        """
        if not email and not phone_number:
            return []

        seen: set[int] = set()
        candidates = []
        for contact in await self.store.find_matching(email or None, phone_number or None):
            if contact.id not in seen:
                seen.add(contact.id)
                candidates.append(contact)

        logger.debug(
            f"Matched {len(candidates)} candidate contact(s)",
            extra={"candidate_ids": [c.id for c in candidates]},
        )
        return candidates
