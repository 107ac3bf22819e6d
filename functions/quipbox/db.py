"""
Database abstraction for SQL backends and an in-memory test implementation.
"""

from __future__ import annotations

import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import JSON, Boolean, Column, Float, String, Text, func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from quipbox.kinds import StoredKind, parse_response_kind

# Dialects whose INSERT supports ON CONFLICT DO UPDATE.
_UPSERT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class DbClient(Protocol):
    """Interface for user and message storage."""

    async def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    async def upsert_user_response(self, user_id: str, response: str) -> None:
        ...

    async def append_messages_created(
        self, user_id: str, message_ids: list[str]
    ) -> bool:
        ...

    async def insert_messages(self, messages: list["NewMessage"]) -> list[str]:
        ...

    async def get_message(self, message_id: str) -> Optional["MessageRecord"]:
        ...

    async def get_messages(
        self, message_ids: Iterable[str]
    ) -> list["MessageRecord"]:
        ...

    async def sample_active_message(
        self, user_id: str, category: Optional[str] = None
    ) -> Optional["MessageRecord"]:
        ...


def new_message_id() -> str:
    return uuid.uuid4().hex


def parse_message_id(value: object) -> Optional[str]:
    """Return the canonical form of a message id, or None if it is malformed."""
    if not isinstance(value, str):
        return None
    try:
        return uuid.UUID(value).hex
    except ValueError:
        return None


@dataclass
class UserRecord:
    user_id: str
    response: Optional[str] = None
    name: Optional[str] = None
    messages_created: Optional[list[str]] = None

    @property
    def kind(self) -> StoredKind:
        return parse_response_kind(self.response)

    def as_dict(self) -> dict:
        data: dict = {"id": self.user_id}
        if self.response is not None:
            data["response"] = self.response
        if self.name is not None:
            data["name"] = self.name
        if self.messages_created is not None:
            data["messagesCreated"] = list(self.messages_created)
        return data


@dataclass
class NewMessage:
    user_id: str
    category: str
    text: str
    active: bool = True
    weight: float = 1.0
    client_message_id: Optional[str] = None


@dataclass
class MessageRecord:
    message_id: str
    user_id: str
    category: str
    text: str
    active: bool = True
    # Stored for a future weighted draw; selection is uniform today.
    weight: float = 1.0
    client_message_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        """The six public fields, as served by the lookup routes."""
        return {
            "_id": self.message_id,
            "userId": self.user_id,
            "category": self.category,
            "text": self.text,
            "active": self.active,
            "weight": self.weight,
        }

    def as_entry(self) -> dict:
        """Payload served by the random entry route: no id, plus messageId."""
        data = self.as_dict()
        data.pop("_id")
        if self.client_message_id is not None:
            data["messageId"] = self.client_message_id
        return data


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.messages: Dict[str, MessageRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.messages.clear()

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    async def upsert_user_response(self, user_id: str, response: str) -> None:
        user = self.users.get(user_id)
        if user:
            user.response = response
        else:
            self.users[user_id] = UserRecord(user_id=user_id, response=response)

    async def append_messages_created(
        self, user_id: str, message_ids: list[str]
    ) -> bool:
        user = self.users.get(user_id)
        if not user:
            return False
        user.messages_created = [*(user.messages_created or []), *message_ids]
        return True

    async def insert_messages(self, messages: list[NewMessage]) -> list[str]:
        records = [
            MessageRecord(
                message_id=new_message_id(),
                user_id=msg.user_id,
                category=msg.category,
                text=msg.text,
                active=msg.active,
                weight=msg.weight,
                client_message_id=msg.client_message_id,
            )
            for msg in messages
        ]
        for record in records:
            self.messages[record.message_id] = record
        return [record.message_id for record in records]

    async def get_message(self, message_id: str) -> Optional[MessageRecord]:
        return self.messages.get(message_id)

    async def get_messages(self, message_ids: Iterable[str]) -> list[MessageRecord]:
        wanted = set(message_ids)
        return [msg for key, msg in self.messages.items() if key in wanted]

    async def sample_active_message(
        self, user_id: str, category: Optional[str] = None
    ) -> Optional[MessageRecord]:
        matches = [
            msg
            for msg in self.messages.values()
            if msg.user_id == user_id
            and msg.active is not False
            and (not category or msg.category == category)
        ]
        if not matches:
            return None
        return random.choice(matches)


class SqlDbClient:
    """
    SQLAlchemy asyncio implementation for Postgres (asyncpg) or SQLite
    (aiosqlite, used in tests).
    """

    def __init__(
        self,
        database_url: str,
        database_name: Optional[str] = None,
        *,
        pool_size: int = 3,
        connect_timeout: float = 5.0,
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        url = make_url(database_url)
        if database_name:
            url = url.set(database=database_name)
        backend = url.get_backend_name()
        if backend not in _UPSERT_INSERTS:
            raise ValueError(f"Unsupported database backend: {backend}")
        self._insert = _UPSERT_INSERTS[backend]

        engine_kwargs: dict = {
            "pool_pre_ping": True,
            "connect_args": {"timeout": connect_timeout},
        }
        if backend != "sqlite":
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=0,
                pool_timeout=connect_timeout,
                pool_recycle=1800,
            )
        self.engine = create_async_engine(url, **engine_kwargs)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False)

    async def connect(self) -> None:
        """Open a first connection and make sure the tables exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.id,
            response=row.response,
            name=row.name,
            messages_created=(
                list(row.messages_created)
                if row.messages_created is not None
                else None
            ),
        )

    def _to_message_record(self, row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            message_id=row.id,
            user_id=row.user_id,
            category=row.category,
            text=row.text,
            active=row.active,
            weight=row.weight,
            client_message_id=row.client_message_id,
            created_at=row.created_at,
        )

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async with self.Session() as session:
            row = await session.get(UserRow, user_id)
            if not row:
                return None
            return self._to_user_record(row)

    async def upsert_user_response(self, user_id: str, response: str) -> None:
        stmt = (
            self._insert(UserRow)
            .values(id=user_id, response=response)
            .on_conflict_do_update(
                index_elements=[UserRow.id], set_={"response": response}
            )
        )
        async with self.Session() as session:
            await session.execute(stmt)
            await session.commit()

    async def append_messages_created(
        self, user_id: str, message_ids: list[str]
    ) -> bool:
        async with self.Session() as session:
            stmt = select(UserRow).where(UserRow.id == user_id).with_for_update()
            row = (await session.execute(stmt)).scalar_one_or_none()
            if not row:
                return False
            row.messages_created = [*(row.messages_created or []), *message_ids]
            await session.commit()
            return True

    async def insert_messages(self, messages: list[NewMessage]) -> list[str]:
        now = time.time()
        rows = [
            MessageRow(
                id=new_message_id(),
                user_id=msg.user_id,
                client_message_id=msg.client_message_id,
                category=msg.category,
                text=msg.text,
                active=msg.active,
                weight=msg.weight,
                created_at=now,
            )
            for msg in messages
        ]
        async with self.Session() as session:
            session.add_all(rows)
            await session.commit()
        return [row.id for row in rows]

    async def get_message(self, message_id: str) -> Optional[MessageRecord]:
        async with self.Session() as session:
            row = await session.get(MessageRow, message_id)
            if not row:
                return None
            return self._to_message_record(row)

    async def get_messages(self, message_ids: Iterable[str]) -> list[MessageRecord]:
        ids = list(message_ids)
        if not ids:
            return []
        async with self.Session() as session:
            stmt = select(MessageRow).where(MessageRow.id.in_(ids))
            rows = (await session.execute(stmt)).scalars().all()
            return [self._to_message_record(row) for row in rows]

    async def sample_active_message(
        self, user_id: str, category: Optional[str] = None
    ) -> Optional[MessageRecord]:
        stmt = select(MessageRow).where(
            MessageRow.user_id == user_id,
            MessageRow.active.is_not(False),
        )
        if category:
            stmt = stmt.where(MessageRow.category == category)
        stmt = stmt.order_by(func.random()).limit(1)
        async with self.Session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            if not row:
                return None
            return self._to_message_record(row)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    response = Column(String, nullable=True)
    name = Column(String, nullable=True)
    messages_created = Column(JSON, nullable=True)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    client_message_id = Column("message_id", String, nullable=True)
    category = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    weight = Column(Float, nullable=False, default=1.0)
    created_at = Column(Float, nullable=False)
