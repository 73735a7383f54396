"""Unit tests for ContactMatcher and GroupResolver.

Uses the in-memory contact store, no database required.

Run with: pytest tests/unit/test_resolver.py -v
"""

from datetime import timedelta

import pytest

from idlink.errors import IntegrityFault
from idlink.models import LinkPrecedence
from idlink.resolution import ContactMatcher, GroupResolver

from tests.fixtures import EPOCH

SECONDARY = LinkPrecedence.SECONDARY


class TestContactMatcher:
    """Tests for candidate lookup."""

    @pytest.mark.asyncio
    async def test_matches_on_email_or_phone(self, memory_store):
        """Test that contacts sharing either value are returned."""
        by_email = memory_store.seed(email="doc@hillvalley.edu", phone_number="111")
        by_phone = memory_store.seed(email="marty@hillvalley.edu", phone_number="222")
        memory_store.seed(email="biff@hillvalley.edu", phone_number="333")

        candidates = await ContactMatcher(memory_store).find_candidates(
            "doc@hillvalley.edu", "222"
        )

        assert [c.id for c in candidates] == [by_email.id, by_phone.id]

    @pytest.mark.asyncio
    async def test_absent_value_matches_nothing(self, memory_store):
        """Test that a missing phone never matches contacts without one."""
        memory_store.seed(email="doc@hillvalley.edu")

        candidates = await ContactMatcher(memory_store).find_candidates(None, "111")

        assert candidates == []

    @pytest.mark.asyncio
    async def test_soft_deleted_contacts_are_ignored(self, memory_store):
        """Test that deleted contacts never become candidates."""
        memory_store.seed(email="doc@hillvalley.edu", deleted=True)

        candidates = await ContactMatcher(memory_store).find_candidates(
            "doc@hillvalley.edu", None
        )

        assert candidates == []


class TestGroupResolver:
    """Tests for primary selection and merging."""

    @pytest.mark.asyncio
    async def test_single_primary_is_adopted(self, memory_store):
        """Test that one anchoring primary resolves without writes."""
        primary = memory_store.seed(email="doc@hillvalley.edu")
        secondary = memory_store.seed(
            email="emmett@hillvalley.edu", precedence=SECONDARY, linked_id=primary.id
        )

        resolution = await GroupResolver(memory_store).resolve([primary, secondary])

        assert resolution.primary.id == primary.id
        assert resolution.merged is False
        assert "update_precedence_and_link" not in memory_store.calls

    @pytest.mark.asyncio
    async def test_secondary_only_match_loads_its_primary(self, memory_store):
        """Test that matching a secondary resolves to the primary it links to."""
        primary = memory_store.seed(email="doc@hillvalley.edu")
        secondary = memory_store.seed(
            email="emmett@hillvalley.edu", precedence=SECONDARY, linked_id=primary.id
        )

        resolution = await GroupResolver(memory_store).resolve([secondary])

        assert resolution.primary.id == primary.id
        assert resolution.merged is False

    @pytest.mark.asyncio
    async def test_oldest_primary_survives_merge(self, memory_store):
        """Test that the earliest created primary wins regardless of id."""
        newer = memory_store.seed(email="a@x.io", created_at=EPOCH + timedelta(days=2))
        older = memory_store.seed(phone_number="555", created_at=EPOCH + timedelta(days=1))

        resolution = await GroupResolver(memory_store).resolve([newer, older])

        assert resolution.primary.id == older.id
        assert resolution.demoted_ids == (newer.id,)
        demoted = memory_store.get(newer.id)
        assert demoted.link_precedence == SECONDARY
        assert demoted.linked_id == older.id

    @pytest.mark.asyncio
    async def test_creation_tie_broken_by_id(self, memory_store):
        """Test that equal creation times fall back to the lower id."""
        first = memory_store.seed(email="a@x.io", created_at=EPOCH)
        second = memory_store.seed(phone_number="555", created_at=EPOCH)

        resolution = await GroupResolver(memory_store).resolve([second, first])

        assert resolution.primary.id == first.id

    @pytest.mark.asyncio
    async def test_merge_repoints_demoted_secondaries(self, memory_store):
        """Test that secondaries of a demoted primary follow it to the survivor."""
        survivor = memory_store.seed(email="a@x.io")
        loser = memory_store.seed(phone_number="555")
        child = memory_store.seed(email="b@x.io", precedence=SECONDARY, linked_id=loser.id)

        resolution = await GroupResolver(memory_store).resolve([survivor, loser])

        assert resolution.repointed_count == 1
        assert memory_store.get(child.id).linked_id == survivor.id
        assert memory_store.get(loser.id).linked_id == survivor.id

    @pytest.mark.asyncio
    async def test_secondaries_of_different_groups_merge(self, memory_store):
        """Test that matching only secondaries of two groups still merges them."""
        first = memory_store.seed(email="a@x.io")
        first_child = memory_store.seed(
            email="b@x.io", precedence=SECONDARY, linked_id=first.id
        )
        second = memory_store.seed(email="c@x.io")
        second_child = memory_store.seed(
            phone_number="777", precedence=SECONDARY, linked_id=second.id
        )

        resolution = await GroupResolver(memory_store).resolve([first_child, second_child])

        assert resolution.primary.id == first.id
        assert resolution.demoted_ids == (second.id,)
        assert memory_store.get(second_child.id).linked_id == first.id

    @pytest.mark.asyncio
    async def test_three_groups_merge_into_one(self, memory_store):
        """Test that every later primary is demoted under the earliest."""
        a = memory_store.seed(email="a@x.io")
        b = memory_store.seed(email="b@x.io")
        c = memory_store.seed(email="c@x.io")

        resolution = await GroupResolver(memory_store).resolve([c, a, b])

        assert resolution.primary.id == a.id
        assert set(resolution.demoted_ids) == {b.id, c.id}
        for contact_id in (b.id, c.id):
            assert memory_store.get(contact_id).linked_id == a.id

    @pytest.mark.asyncio
    async def test_empty_candidates_is_integrity_fault(self, memory_store):
        """Test that resolving nothing is reported as a fault."""
        with pytest.raises(IntegrityFault):
            await GroupResolver(memory_store).resolve([])

    @pytest.mark.asyncio
    async def test_dangling_link_is_integrity_fault(self, memory_store):
        """Test that a secondary pointing at a missing primary is a fault."""
        orphan = memory_store.seed(email="a@x.io", precedence=SECONDARY, linked_id=99)

        with pytest.raises(IntegrityFault) as exc_info:
            await GroupResolver(memory_store).resolve([orphan])

        assert orphan.id in exc_info.value.contact_ids

    @pytest.mark.asyncio
    async def test_link_to_secondary_is_integrity_fault(self, memory_store):
        """Test that a secondary chained to another secondary is a fault."""
        primary = memory_store.seed(email="a@x.io")
        middle = memory_store.seed(email="b@x.io", precedence=SECONDARY, linked_id=primary.id)
        chained = memory_store.seed(email="c@x.io", precedence=SECONDARY, linked_id=middle.id)

        with pytest.raises(IntegrityFault):
            await GroupResolver(memory_store).resolve([chained])

    @pytest.mark.asyncio
    async def test_link_to_deleted_primary_is_integrity_fault(self, memory_store):
        """Test that a soft-deleted primary cannot anchor a group."""
        primary = memory_store.seed(email="a@x.io", deleted=True)
        secondary = memory_store.seed(
            phone_number="555", precedence=SECONDARY, linked_id=primary.id
        )

        with pytest.raises(IntegrityFault):
            await GroupResolver(memory_store).resolve([secondary])
