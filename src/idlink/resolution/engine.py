"""Identity engine: the single entry point for resolving a partial contact.

identify(email, phone_number):
1. Match stored contacts sharing the email or phone number
2. No match → create a new primary contact
3. Otherwise resolve the matches to one primary (merging groups if needed)
4. Materialize the full group
5. If the request carries an email or phone the group has never seen,
   record it as a new secondary of the primary
6. Project the group into an IdentifyResult

The whole call runs in one unit of work, so merges and inserts are
all-or-nothing and calls sharing an email or phone number are serialized.
"""

import time

from ..errors import ContactNotFound, IntegrityFault, InvalidRequest
from ..logging import get_context_logger, log_identify_result
from ..models import Contact, IdentifyResult, LinkPrecedence
from ..storage import ContactStore, ContactStoreProvider
from .materializer import GroupMaterializer
from .matcher import ContactMatcher
from .resolver import GroupResolver

logger = get_context_logger(__name__)


def contention_keys(email: str | None, phone_number: str | None) -> list[str]:
    """Keys that serialize concurrent calls touching the same values."""
    keys = []
    if email:
        keys.append(f"email:{email}")
    if phone_number:
        keys.append(f"phone:{phone_number}")
    return keys


def has_new_information(
    members: list[Contact],
    email: str | None,
    phone_number: str | None,
) -> bool:
    """Check whether the request adds an email or phone unknown to the group."""
    if email and email not in {m.email for m in members}:
        return True
    if phone_number and phone_number not in {m.phone_number for m in members}:
        return True
    return False


def _distinct(values) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value is not None and value not in seen:
            seen[value] = None
    return list(seen)


def _lead_with(values: list[str], first: str | None) -> list[str]:
    if first is None or first not in values:
        return values
    return [first] + [v for v in values if v != first]


def project_identity(primary: Contact, members: list[Contact]) -> IdentifyResult:
    """Project a group into the caller-facing identity.

    Emails and phone numbers are distinct and in first-seen order, except
    that the primary's own values come first.
    """
    return IdentifyResult(
        primary_contact_id=primary.id,
        emails=_lead_with(_distinct(m.email for m in members), primary.email),
        phone_numbers=_lead_with(
            _distinct(m.phone_number for m in members), primary.phone_number
        ),
        secondary_contact_ids=[m.id for m in members if m.is_secondary],
    )


class IdentityEngine:
    """Resolves partial contacts into unified identities.

    The engine holds no state between calls; everything lives in the store.
    """

    def __init__(self, provider: ContactStoreProvider | None = None):
        """Initialize the engine.

        Args:
            provider: Unit-of-work provider (default: application database)
        """
        self.provider = provider or ContactStoreProvider()

    async def identify(
        self,
        email: str | None = None,
        phone_number: str | None = None,
    ) -> IdentifyResult:
        """Resolve an email and/or phone number to the identity they belong to.

        Args:
            email: Email address (optional)
            phone_number: Phone number (optional)

        Returns:
            The unified identity, including any record created by this call

        Raises:
            InvalidRequest: neither email nor phone number supplied
            IntegrityFault: stored linkage is corrupt
            StoreUnavailable: the store failed transiently
            ConcurrencyConflict: a concurrent call touching the same records won
        """
        email = email or None
        phone_number = phone_number or None
        if email is None and phone_number is None:
            raise InvalidRequest("Either email or phoneNumber is required")

        started = time.perf_counter()
        async with self.provider.unit_of_work(contention_keys(email, phone_number)) as store:
            result, action, member_count = await self._identify(store, email, phone_number)

        log_identify_result(
            result.primary_contact_id,
            action,
            member_count,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return result

    async def _identify(
        self,
        store: ContactStore,
        email: str | None,
        phone_number: str | None,
    ) -> tuple[IdentifyResult, str, int]:
        candidates = await ContactMatcher(store).find_candidates(email, phone_number)

        if not candidates:
            contact = await store.insert(email, phone_number, LinkPrecedence.PRIMARY)
            return project_identity(contact, [contact]), "created_primary", 1

        resolution = await GroupResolver(store).resolve(candidates)
        primary = resolution.primary

        members = await GroupMaterializer(store).materialize(primary.id)
        if primary.id not in {m.id for m in members}:
            raise IntegrityFault(
                f"Primary contact {primary.id} vanished during materialization",
                contact_ids=[primary.id],
            )

        action = "merged" if resolution.merged else "matched"
        if has_new_information(members, email, phone_number):
            secondary = await store.insert(
                email, phone_number, LinkPrecedence.SECONDARY, linked_id=primary.id
            )
            members.append(secondary)
            action = "added_secondary" if not resolution.merged else "merged_added_secondary"

        return project_identity(primary, members), action, len(members)

    async def lookup(self, contact_id: int) -> IdentifyResult:
        """Project the identity containing ``contact_id`` without writing.

        Raises:
            ContactNotFound: no live contact has this id
            IntegrityFault: the contact's primary cannot be loaded
        """
        async with self.provider.unit_of_work([]) as store:
            contact = await store.find_by_id(contact_id)
            if contact is None:
                raise ContactNotFound(contact_id)

            primary = contact
            if contact.is_secondary:
                primary = await store.find_by_id(contact.linked_id) if contact.linked_id else None
                if primary is None or not primary.is_primary:
                    raise IntegrityFault(
                        f"Linked primary contact {contact.linked_id} not found "
                        f"for secondary contact {contact.id}",
                        contact_ids=[contact.id],
                    )

            members = await GroupMaterializer(store).materialize(primary.id)

        return project_identity(primary, members)
