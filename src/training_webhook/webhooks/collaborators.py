"""
Collaborator interfaces consumed by the training result processor.

Each interface has a local implementation used for development and tests;
real implementations live in ``training_webhook.infrastructure``.
"""

import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from .models import ResultsEmail, UserRecord, WebhookLogRecord


class WebhookLogStore(ABC):
    """Append-only audit log of verified webhook deliveries."""

    @abstractmethod
    async def insert(self, record: WebhookLogRecord, source: str) -> str:
        """Append a record and return its identifier."""
        pass

    async def health_check(self) -> dict[str, Any]:
        return {"accessible": True}


class UserStore(ABC):
    """Store owning user documents."""

    @abstractmethod
    async def find_one(self, query: dict[str, Any]) -> UserRecord | None:
        """Find the first user whose document matches every key in ``query``."""
        pass

    @abstractmethod
    async def update(self, user: UserRecord, source: str) -> None:
        """Write back a user record, tagged with the source of the update."""
        pass

    async def health_check(self) -> dict[str, Any]:
        return {"accessible": True}


class TrainingCompletionMarker(ABC):
    """Marks a user's training complete on the training platform."""

    @abstractmethod
    async def mark_complete(self, email: str, form_submitted_date: str) -> None:
        pass


class TrainingStatusNotifier(ABC):
    """Propagates a user's training status to downstream systems."""

    @abstractmethod
    async def notify(self, user: UserRecord, updated_by: str) -> None:
        pass


class ResultsEmailSender(ABC):
    """Sends the training results email."""

    @abstractmethod
    async def send(self, email: ResultsEmail, passed: bool) -> None:
        pass


@dataclass
class LocalLogEntry:
    """Local audit log entry."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    record: WebhookLogRecord | None = None
    source: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryWebhookLogStore(WebhookLogStore):
    def __init__(self):
        self.entries: list[LocalLogEntry] = []

    async def insert(self, record: WebhookLogRecord, source: str) -> str:
        entry = LocalLogEntry(record=record.model_copy(deep=True), source=source)
        self.entries.append(entry)
        logger.debug(f"📝 Logged webhook {record.event_id} from {source}: {entry.id}")
        return entry.id


class InMemoryUserStore(UserStore):
    """In-memory user documents keyed by position."""

    def __init__(self, documents: list[dict[str, Any]] | None = None):
        self.documents: list[dict[str, Any]] = [
            copy.deepcopy(document) for document in documents or []
        ]
        self.updates: list[tuple[dict[str, Any], str]] = []

    @staticmethod
    def _matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
        return all(document.get(key) == value for key, value in query.items())

    async def find_one(self, query: dict[str, Any]) -> UserRecord | None:
        for document in self.documents:
            if self._matches(document, query):
                return UserRecord.model_validate(copy.deepcopy(document))
        return None

    async def update(self, user: UserRecord, source: str) -> None:
        document = user.to_document()
        self.updates.append((copy.deepcopy(document), source))

        key = "auth0UserId" if user.auth_user_id else "email"
        for index, existing in enumerate(self.documents):
            if existing.get(key) == document.get(key):
                self.documents[index] = document
                break
        else:
            self.documents.append(document)

        logger.debug(f"💾 User {document.get(key)} updated by {source}")


class RecordingCompletionMarker(TrainingCompletionMarker):
    """Logs completion calls instead of contacting the training platform."""

    def __init__(self):
        self.calls: list[dict[str, str]] = []

    async def mark_complete(self, email: str, form_submitted_date: str) -> None:
        self.calls.append({"email": email, "formSubmittedDate": form_submitted_date})
        logger.info(f"🎓 Training complete for {email} at {form_submitted_date}")


class RecordingStatusNotifier(TrainingStatusNotifier):
    def __init__(self):
        self.calls: list[dict[str, Any]] = []

    async def notify(self, user: UserRecord, updated_by: str) -> None:
        self.calls.append({"userDoc": user.to_document(), "updatedBy": updated_by})
        logger.info(f"📣 Training status for {user.email} updated by {updated_by}")


class ConsoleEmailSender(ResultsEmailSender):
    """Writes results emails to the log, like a console email provider."""

    def __init__(self):
        self.sent: list[tuple[dict[str, Any], bool]] = []

    async def send(self, email: ResultsEmail, passed: bool) -> None:
        self.sent.append((email.to_message(), passed))
        logger.info(
            f"📧 Results email to {email.to}: score={email.score:.2f}, passed={passed}"
        )
