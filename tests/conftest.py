import base64
import copy
import hashlib
import hmac
import json
from types import SimpleNamespace
from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest

from training_webhook.webhooks.collaborators import (
    ResultsEmailSender,
    TrainingCompletionMarker,
    TrainingStatusNotifier,
    UserStore,
    WebhookLogStore,
)
from training_webhook.webhooks.models import UserRecord
from training_webhook.webhooks.services import ProcessorSettings, TrainingResultProcessor

SECRET = "secret"


def sign(raw_body: bytes, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    return "sha256=" + base64.b64encode(digest).decode()


@pytest.fixture
def body() -> Dict[str, Any]:
    """Typeform delivery with one email answer and one correct choice answer."""
    return {
        "event_id": "imma Id",
        "form_response": {
            "answers": [
                {
                    "type": "email",
                    "email": "esteban@email.com",
                    "field": {
                        "id": "T6SAKyckikWV",
                        "type": "email",
                        "ref": "75417bf4-3800-48df-8f9f-dd47ed74ba4f",
                    },
                },
                {
                    "type": "choice",
                    "choice": {"label": "London"},
                    "field": {"id": "k6TP9oLGgHjl", "type": "multiple_choice"},
                },
            ],
            "calculated": {"score": 1},
            "hidden": {"id": "auth0"},
            "submitted_at": "2020-06-19T13:44:00.000Z",
        },
    }


@pytest.fixture
def user_document() -> Dict[str, Any]:
    return {
        "id": "123456",
        "email": "esteban61@mailinator.com",
        "firstName": "Esteban",
    }


@pytest.fixture
def call_order() -> list:
    return []


def _record_call(call_order: list, name: str, return_value: Any = None):
    async def side_effect(*args, **kwargs):
        call_order.append(name)
        return return_value

    return side_effect


@pytest.fixture
def collaborators(call_order, user_document) -> SimpleNamespace:
    """AsyncMock collaborators that record the order they are called in."""
    log_store = AsyncMock(spec=WebhookLogStore)
    log_store.insert.side_effect = _record_call(call_order, "log.insert", "log-1")

    user_store = AsyncMock(spec=UserStore)
    user_store.find_one.side_effect = _record_call(
        call_order, "users.find_one", UserRecord.model_validate(copy.deepcopy(user_document))
    )
    user_store.update.side_effect = _record_call(call_order, "users.update")

    completion_marker = AsyncMock(spec=TrainingCompletionMarker)
    completion_marker.mark_complete.side_effect = _record_call(
        call_order, "training.mark_complete"
    )

    status_notifier = AsyncMock(spec=TrainingStatusNotifier)
    status_notifier.notify.side_effect = _record_call(call_order, "status.notify")

    email_sender = AsyncMock(spec=ResultsEmailSender)
    email_sender.send.side_effect = _record_call(call_order, "email.send")

    return SimpleNamespace(
        log_store=log_store,
        user_store=user_store,
        completion_marker=completion_marker,
        status_notifier=status_notifier,
        email_sender=email_sender,
    )


@pytest.fixture
def processor(collaborators) -> TrainingResultProcessor:
    return TrainingResultProcessor(
        settings=ProcessorSettings(webhook_secret=SECRET),
        log_store=collaborators.log_store,
        user_store=collaborators.user_store,
        completion_marker=collaborators.completion_marker,
        status_notifier=collaborators.status_notifier,
        email_sender=collaborators.email_sender,
    )


@pytest.fixture
def raw_body(body) -> bytes:
    return json.dumps(body).encode()


@pytest.fixture
def signature(raw_body) -> str:
    return sign(raw_body)
