"""
SQLAlchemy-backed implementations of the user and webhook log stores.
"""

from typing import Any

from loguru import logger
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..webhooks.collaborators import UserStore, WebhookLogStore
from ..webhooks.models import UserRecord, WebhookLogRecord
from .database import UserDocument, WebhookLog

# Query keys that map onto indexed columns
INDEXED_USER_KEYS = {"auth0UserId": UserDocument.auth_user_id, "email": UserDocument.email}


class SQLAlchemyWebhookLogStore(WebhookLogStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, record: WebhookLogRecord, source: str) -> str:
        entry = WebhookLog(
            type=record.type,
            event_id=str(record.event_id) if record.event_id is not None else None,
            source=source,
            data=record.data,
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()

        logger.debug(f"📝 Logged webhook {record.event_id} from {source}: {entry.id}")
        return entry.id

    async def health_check(self) -> dict[str, Any]:
        return await _ping(self.session_factory)


class SQLAlchemyUserStore(UserStore):
    """
    User documents kept in a JSON column.

    ``auth0UserId`` and ``email`` lookups use indexed columns; any other
    query key is matched against the document itself.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_one(self, query: dict[str, Any]) -> UserRecord | None:
        async with self.session_factory() as session:
            row = await self._find_row(session, query)

        if row is None:
            return None
        return UserRecord.model_validate(dict(row.document))

    async def update(self, user: UserRecord, source: str) -> None:
        document = user.to_document(mode="json")
        query = (
            {"auth0UserId": user.auth_user_id}
            if user.auth_user_id
            else {"email": user.email}
        )

        async with self.session_factory() as session:
            row = await self._find_row(session, query)
            if row is None:
                row = UserDocument(document=document)
                session.add(row)
            else:
                row.document = document
                row.version += 1

            row.auth_user_id = user.auth_user_id
            row.email = user.email
            row.updated_by = source
            await session.commit()

        logger.debug(f"💾 User {query} updated by {source}")

    async def insert(self, user: UserRecord) -> None:
        """Create a user document; used for seeding."""
        async with self.session_factory() as session:
            session.add(
                UserDocument(
                    auth_user_id=user.auth_user_id,
                    email=user.email,
                    document=user.to_document(mode="json"),
                )
            )
            await session.commit()

    async def health_check(self) -> dict[str, Any]:
        return await _ping(self.session_factory)

    @staticmethod
    async def _find_row(
        session: AsyncSession, query: dict[str, Any]
    ) -> UserDocument | None:
        statement = select(UserDocument)
        remaining = {}
        for key, value in query.items():
            column = INDEXED_USER_KEYS.get(key)
            if column is not None:
                statement = statement.where(column == value)
            else:
                remaining[key] = value

        result = await session.execute(statement)
        for row in result.scalars():
            if all(row.document.get(key) == value for key, value in remaining.items()):
                return row
        return None


async def _ping(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, Any]:
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {"accessible": True}
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        return {"accessible": False, "error": str(e)}
