from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select

from training_webhook.infrastructure.database import DatabaseManager, WebhookLog
from training_webhook.infrastructure.stores import (
    SQLAlchemyUserStore,
    SQLAlchemyWebhookLogStore,
)
from training_webhook.webhooks.collaborators import InMemoryUserStore
from training_webhook.webhooks.models import TrainingUpdate, UserRecord, WebhookLogRecord


@pytest_asyncio.fixture
async def database():
    """In-memory SQLite database with all tables created."""
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.create_tables()
    yield manager
    await manager.dispose()


@pytest.fixture
def stored_user(user_document) -> UserRecord:
    return UserRecord.model_validate(
        {**user_document, "auth0UserId": "auth0", "training": {"videoWatched": True}}
    )


class TestSQLAlchemyWebhookLogStore:
    @pytest.mark.asyncio
    async def test_insert_appends_record(self, database, body):
        store = SQLAlchemyWebhookLogStore(database.session_factory)

        log_id = await store.insert(
            WebhookLogRecord(event_id="imma Id", data=body["form_response"]), "typeform"
        )

        async with database.session_factory() as session:
            rows = (await session.execute(select(WebhookLog))).scalars().all()

        assert len(rows) == 1
        assert rows[0].id == log_id
        assert rows[0].type == "typeform.testResults"
        assert rows[0].event_id == "imma Id"
        assert rows[0].source == "typeform"
        assert rows[0].data["hidden"] == {"id": "auth0"}

    @pytest.mark.asyncio
    async def test_health_check(self, database):
        store = SQLAlchemyWebhookLogStore(database.session_factory)
        assert (await store.health_check())["accessible"] is True


class TestSQLAlchemyUserStore:
    @pytest.mark.asyncio
    async def test_find_one_by_auth_user_id(self, database, stored_user):
        store = SQLAlchemyUserStore(database.session_factory)
        await store.insert(stored_user)

        user = await store.find_one({"auth0UserId": "auth0"})

        assert user.email == "esteban61@mailinator.com"
        assert user.first_name == "Esteban"
        assert user.model_extra["id"] == "123456"

    @pytest.mark.asyncio
    async def test_find_one_returns_none_for_unknown_user(self, database, stored_user):
        store = SQLAlchemyUserStore(database.session_factory)
        await store.insert(stored_user)

        assert await store.find_one({"auth0UserId": "nobody"}) is None

    @pytest.mark.asyncio
    async def test_find_one_by_document_field(self, database, stored_user):
        store = SQLAlchemyUserStore(database.session_factory)
        await store.insert(stored_user)

        assert await store.find_one({"firstName": "Esteban"}) is not None
        assert await store.find_one({"firstName": "Someone"}) is None

    @pytest.mark.asyncio
    async def test_update_merges_training_and_keeps_other_fields(
        self, database, stored_user
    ):
        store = SQLAlchemyUserStore(database.session_factory)
        await store.insert(stored_user)
        submitted = datetime(2020, 6, 19, 13, 44, tzinfo=timezone.utc)

        update = TrainingUpdate(
            test_grade=1.0,
            training_completed=submitted,
            exam_passed=submitted,
            is_training_complete=True,
        )
        await store.update(update.apply(stored_user), "Typeform")

        user = await store.find_one({"auth0UserId": "auth0"})
        assert user.is_training_complete is True
        assert user.training["videoWatched"] is True
        assert user.training["testGrade"] == 1.0
        assert user.training["examPassed"].startswith("2020-06-19T13:44:00")
        assert user.model_extra["id"] == "123456"


class TestInMemoryUserStore:
    @pytest.mark.asyncio
    async def test_update_replaces_matching_document(self, stored_user):
        store = InMemoryUserStore([stored_user.to_document()])

        await store.update(TrainingUpdate(test_grade=0.5).apply(stored_user), "Typeform")

        assert len(store.documents) == 1
        assert store.documents[0]["training"] == {"videoWatched": True, "testGrade": 0.5}
        assert store.updates[0][1] == "Typeform"

    @pytest.mark.asyncio
    async def test_find_one_returns_a_copy(self, stored_user):
        store = InMemoryUserStore([stored_user.to_document()])

        user = await store.find_one({"auth0UserId": "auth0"})
        user.training["testGrade"] = 0.1

        assert "testGrade" not in store.documents[0]["training"]
