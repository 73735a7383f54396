"""Contact store for idlink.

Defines the ``contacts`` table, the store contract the resolution core
depends on, and its SQLAlchemy implementation. Each ``identify`` call runs
inside one unit of work opened by ``ContactStoreProvider``: a single
transaction, serialized against other calls that share an email or phone
number.

Serialization:
- PostgreSQL: transaction-scoped advisory locks on the contention keys,
  plus ``SELECT ... FOR UPDATE`` on every row read.
- Other dialects: one process-wide lock held until after commit.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager, contextmanager, nullcontext
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Iterator

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    insert,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base, create_session_factory, get_engine, get_session_factory
from .errors import ConcurrencyConflict, IntegrityFault, StoreUnavailable
from .logging import get_context_logger
from .models import Contact, LinkPrecedence

logger = get_context_logger(__name__)

# SQLSTATEs for serialization failure, deadlock and lock-not-available
_CONFLICT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =========================
# Table
# =========================


class ContactRecord(Base):
    """Row mapping for the ``contacts`` table."""

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), index=True)
    email: Mapped[str | None] = mapped_column(String(255), index=True)
    linked_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id"), index=True)
    link_precedence: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=LinkPrecedence.PRIMARY.value,
        server_default=LinkPrecedence.PRIMARY.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(
            "email IS NOT NULL OR phone_number IS NOT NULL",
            name="contact_info_required",
        ),
        CheckConstraint(
            "link_precedence IN ('primary', 'secondary')",
            name="valid_link_precedence",
        ),
        CheckConstraint(
            "(link_precedence = 'primary' AND linked_id IS NULL) OR "
            "(link_precedence = 'secondary' AND linked_id IS NOT NULL)",
            name="secondary_has_link",
        ),
        Index("ix_contacts_linked_id_precedence", "linked_id", "link_precedence"),
    )


contacts_table = ContactRecord.__table__


# =========================
# Error translation
# =========================


def _sqlstate(exc: DBAPIError) -> str | None:
    """Extract the SQLSTATE from a wrapped driver error, if any."""
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def _is_conflict(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in _CONFLICT_SQLSTATES:
        return True
    # SQLite reports writer contention as an OperationalError
    return "database is locked" in str(exc.orig).lower()


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise database failures as identity error kinds.

    Args:
        operation: Store operation name, used in the error message
    """
    try:
        yield
    except DBAPIError as exc:
        if _is_conflict(exc):
            raise ConcurrencyConflict(
                f"{operation} conflicted with a concurrent resolution"
            ) from exc
        if isinstance(exc, IntegrityError):
            raise IntegrityFault(f"{operation} violated a contact constraint") from exc
        raise StoreUnavailable(f"{operation} failed: {exc.__class__.__name__}") from exc
    except (SQLAlchemyError, OSError) as exc:
        raise StoreUnavailable(f"{operation} failed: {exc.__class__.__name__}") from exc


# =========================
# Store contract
# =========================


class ContactStore(ABC):
    """Operations the resolution core needs from durable contact storage.

    Soft-deleted rows are invisible to every read.
    """

    @abstractmethod
    async def find_matching(
        self, email: str | None, phone_number: str | None
    ) -> list[Contact]:
        """Contacts whose email equals ``email`` OR whose phone equals ``phone_number``."""
        ...

    @abstractmethod
    async def find_by_id(self, contact_id: int) -> Contact | None:
        ...

    @abstractmethod
    async def find_linked(self, contact_ids: Iterable[int]) -> list[Contact]:
        """Contacts whose id or linked_id is in ``contact_ids``."""
        ...

    @abstractmethod
    async def insert(
        self,
        email: str | None,
        phone_number: str | None,
        precedence: LinkPrecedence,
        linked_id: int | None = None,
    ) -> Contact:
        ...

    @abstractmethod
    async def update_precedence_and_link(
        self,
        contact_id: int,
        precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        ...

    @abstractmethod
    async def bulk_repoint_secondaries(
        self, old_primary_ids: Iterable[int], new_primary_id: int
    ) -> int:
        """Point every secondary linked to ``old_primary_ids`` at ``new_primary_id``.

        Returns:
            Number of rewritten rows
        """
        ...

    @abstractmethod
    async def lock(self, keys: Iterable[str]) -> None:
        """Serialize the current unit of work against others sharing ``keys``."""
        ...


# =========================
# SQLAlchemy implementation
# =========================


class SQLContactStore(ContactStore):
    """Contact store running every operation on one ``AsyncSession``.

    The session's transaction is owned by the caller (see
    ``ContactStoreProvider.unit_of_work``); this class never commits.
    """

    def __init__(self, session: AsyncSession, lock_rows: bool = False):
        """Initialize the store.

        Args:
            session: Session whose transaction spans the unit of work
            lock_rows: Read rows with ``FOR UPDATE`` (PostgreSQL only)
        """
        self.session = session
        self.lock_rows = lock_rows

    @property
    def _live(self):
        return contacts_table.c.deleted_at.is_(None)

    async def _fetch(self, operation: str, stmt) -> list[Contact]:
        stmt = stmt.order_by(contacts_table.c.created_at, contacts_table.c.id)
        if self.lock_rows:
            stmt = stmt.with_for_update()
        with translate_store_errors(operation):
            result = await self.session.execute(stmt)
            rows = result.mappings().all()
        return [Contact.model_validate(dict(row)) for row in rows]

    async def find_matching(
        self, email: str | None, phone_number: str | None
    ) -> list[Contact]:
        clauses = []
        if email:
            clauses.append(contacts_table.c.email == email)
        if phone_number:
            clauses.append(contacts_table.c.phone_number == phone_number)
        if not clauses:
            return []

        stmt = select(contacts_table).where(self._live, or_(*clauses))
        return await self._fetch("find_matching", stmt)

    async def find_by_id(self, contact_id: int) -> Contact | None:
        stmt = select(contacts_table).where(
            self._live, contacts_table.c.id == contact_id
        )
        contacts = await self._fetch("find_by_id", stmt)
        return contacts[0] if contacts else None

    async def find_linked(self, contact_ids: Iterable[int]) -> list[Contact]:
        ids = sorted(set(contact_ids))
        if not ids:
            return []

        stmt = select(contacts_table).where(
            self._live,
            or_(
                contacts_table.c.id.in_(ids),
                contacts_table.c.linked_id.in_(ids),
            ),
        )
        return await self._fetch("find_linked", stmt)

    async def insert(
        self,
        email: str | None,
        phone_number: str | None,
        precedence: LinkPrecedence,
        linked_id: int | None = None,
    ) -> Contact:
        now = _utcnow()
        stmt = (
            insert(contacts_table)
            .values(
                email=email,
                phone_number=phone_number,
                link_precedence=LinkPrecedence(precedence).value,
                linked_id=linked_id,
                created_at=now,
                updated_at=now,
            )
            .returning(*contacts_table.c)
        )
        with translate_store_errors("insert"):
            result = await self.session.execute(stmt)
            row = result.mappings().one()

        contact = Contact.model_validate(dict(row))
        logger.debug(
            f"Inserted {contact.link_precedence.value} contact {contact.id}",
            extra={"contact_id": contact.id, "linked_id": linked_id},
        )
        return contact

    async def update_precedence_and_link(
        self,
        contact_id: int,
        precedence: LinkPrecedence,
        linked_id: int | None,
    ) -> None:
        stmt = (
            update(contacts_table)
            .where(self._live, contacts_table.c.id == contact_id)
            .values(
                link_precedence=LinkPrecedence(precedence).value,
                linked_id=linked_id,
                updated_at=_utcnow(),
            )
        )
        with translate_store_errors("update_precedence_and_link"):
            result = await self.session.execute(stmt)

        if result.rowcount == 0:
            raise IntegrityFault(
                f"Contact {contact_id} disappeared before it could be relinked",
                contact_ids=[contact_id],
            )

    async def bulk_repoint_secondaries(
        self, old_primary_ids: Iterable[int], new_primary_id: int
    ) -> int:
        ids = sorted(set(old_primary_ids))
        if not ids:
            return 0

        stmt = (
            update(contacts_table)
            .where(
                self._live,
                contacts_table.c.linked_id.in_(ids),
                contacts_table.c.link_precedence == LinkPrecedence.SECONDARY.value,
            )
            .values(linked_id=new_primary_id, updated_at=_utcnow())
        )
        with translate_store_errors("bulk_repoint_secondaries"):
            result = await self.session.execute(stmt)
        return result.rowcount

    async def lock(self, keys: Iterable[str]) -> None:
        # Other dialects are serialized by the provider's process-wide lock
        if not self.lock_rows:
            return
        for key in sorted(set(keys)):
            with translate_store_errors("lock"):
                await self.session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
                    {"key": key},
                )


# =========================
# In-process locks
# =========================


class KeyedLocks:
    """Registry of asyncio locks keyed by contention key.

    Keys are always acquired in sorted order so two holders can never wait
    on each other. Entries are dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        registered: list[str] = []
        acquired: list[str] = []
        try:
            for key in sorted(set(keys)):
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._users[key] = self._users.get(key, 0) + 1
                registered.append(key)
                await lock.acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in registered:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]


_local_locks = KeyedLocks()

# Key serializing every unit of work on dialects without advisory locks
LOCAL_SERIAL_KEY = "contacts"


# =========================
# Unit of work
# =========================


class ContactStoreProvider:
    """Opens atomic units of work over the contact store.

    Usage:
        provider = ContactStoreProvider()
        async with provider.unit_of_work(["email:a@b.c"]) as store:
            contacts = await store.find_matching("a@b.c", None)
    """

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        locks: KeyedLocks | None = None,
    ):
        """Initialize the provider.

        Args:
            engine: Engine to use (default: the application engine)
            locks: In-process lock registry for non-PostgreSQL engines
        """
        self._engine = engine
        self._session_factory: async_sessionmaker[AsyncSession] | None = (
            create_session_factory(engine) if engine is not None else None
        )
        self._locks = locks if locks is not None else _local_locks

    @property
    def engine(self) -> AsyncEngine:
        return self._engine or get_engine()

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    @property
    def uses_advisory_locks(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    @asynccontextmanager
    async def unit_of_work(self, keys: Iterable[str]) -> AsyncIterator[ContactStore]:
        """Open a transaction serialized on ``keys``; commits on clean exit.

        Without advisory locks every unit of work is serialized, whatever
        its keys.

        Any exception rolls back every write made through the yielded store.
        """
        keys = sorted(set(keys))
        advisory = self.uses_advisory_locks
        local_hold = (
            nullcontext() if advisory else self._locks.hold([LOCAL_SERIAL_KEY])
        )

        async with local_hold:
            session = self.session_factory()
            try:
                store = SQLContactStore(session, lock_rows=advisory)
                await store.lock(keys)
                yield store
                with translate_store_errors("commit"):
                    await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()
