import asyncio
import json

import httpx
import pytest

from training_webhook.core.exceptions import ConfigurationError, ExternalAPIError
from training_webhook.infrastructure.external_apis import (
    SendGridEmailSender,
    TrainingPlatformClient,
)
from training_webhook.webhooks.models import ResultsEmail, UserRecord


class RecordingTransport:
    """httpx MockTransport that records requests and replies with a fixed status."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})


@pytest.fixture
def results_email() -> ResultsEmail:
    return ResultsEmail(to="esteban61@mailinator.com", first_name="Esteban", score=0.75)


class TestTrainingPlatformClient:
    @pytest.mark.asyncio
    async def test_mark_complete_posts_email_and_date(self):
        recorder = RecordingTransport()
        client = TrainingPlatformClient(
            base_url="https://training.example.com/api",
            api_key="key",
            transport=recorder.transport,
        )

        await client.mark_complete(
            email="esteban61@mailinator.com", form_submitted_date="2020-06-19 09:44:00"
        )

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/users/training-complete"
        assert request.headers["Authorization"] == "Bearer key"
        assert json.loads(request.content) == {
            "email": "esteban61@mailinator.com",
            "formSubmittedDate": "2020-06-19 09:44:00",
        }

    @pytest.mark.asyncio
    async def test_notify_sends_user_document(self, user_document):
        recorder = RecordingTransport()
        client = TrainingPlatformClient(
            base_url="https://training.example.com",
            api_key="key",
            transport=recorder.transport,
        )

        await client.notify(UserRecord.model_validate(user_document), "TypeForm")

        assert json.loads(recorder.requests[0].content) == {
            "userDoc": {**user_document, "training": {}},
            "updatedBy": "TypeForm",
        }

    @pytest.mark.asyncio
    async def test_error_status_raises_external_api_error(self):
        client = TrainingPlatformClient(
            base_url="https://training.example.com",
            api_key="key",
            transport=RecordingTransport(status_code=503).transport,
        )

        with pytest.raises(ExternalAPIError) as exc_info:
            await client.mark_complete(email="a@b.c", form_submitted_date="2020-06-19 09:44:00")

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_overlapping_calls_on_one_client_both_succeed(self, user_document):
        completed = asyncio.Event()
        paths: list[str] = []

        async def handle(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/training-status"):
                # Still in flight while the completion call finishes
                await completed.wait()
                await asyncio.sleep(0.01)
            paths.append(request.url.path)
            if request.url.path.endswith("/training-complete"):
                completed.set()
            return httpx.Response(200, json={"ok": True})

        client = TrainingPlatformClient(
            base_url="https://training.example.com",
            api_key="key",
            transport=httpx.MockTransport(handle),
        )

        results = await asyncio.gather(
            client.notify(UserRecord.model_validate(user_document), "TypeForm"),
            client.mark_complete(
                email="esteban61@mailinator.com", form_submitted_date="2020-06-19 09:44:00"
            ),
            return_exceptions=True,
        )

        assert results == [None, None]
        assert paths == ["/users/training-complete", "/users/training-status"]

    @pytest.mark.asyncio
    async def test_missing_base_url_is_a_configuration_error(self):
        client = TrainingPlatformClient()

        with pytest.raises(ConfigurationError):
            await client.mark_complete(email="a@b.c", form_submitted_date="x")


class TestSendGridEmailSender:
    def test_template_message_for_passed_result(self, results_email):
        sender = SendGridEmailSender(
            api_key="sg-key",
            from_email="training@example.com",
            passed_template_id="d-pass",
            failed_template_id="d-fail",
        )

        message = sender.build_message(results_email, passed=True)

        assert message["template_id"] == "d-pass"
        assert message["personalizations"][0]["to"] == [{"email": "esteban61@mailinator.com"}]
        assert message["personalizations"][0]["dynamic_template_data"] == {
            "firstName": "Esteban",
            "score": 0.75,
            "scorePercent": 75,
            "passed": True,
        }

    def test_plain_message_without_templates(self, results_email):
        sender = SendGridEmailSender(api_key="sg-key", from_email="training@example.com")

        message = sender.build_message(results_email, passed=False)

        assert "template_id" not in message
        assert message["content"][0]["value"] == (
            "Hi Esteban,\n\nYou scored 75% and did not pass the training exam."
        )

    @pytest.mark.asyncio
    async def test_send_posts_to_sendgrid(self, results_email):
        recorder = RecordingTransport(status_code=202)
        sender = SendGridEmailSender(
            api_key="sg-key",
            from_email="training@example.com",
            failed_template_id="d-fail",
            transport=recorder.transport,
        )

        await sender.send(results_email, passed=False)

        request = recorder.requests[0]
        assert str(request.url) == "https://api.sendgrid.com/v3/mail/send"
        assert request.headers["Authorization"] == "Bearer sg-key"
        assert json.loads(request.content)["template_id"] == "d-fail"

    @pytest.mark.asyncio
    async def test_send_failure_raises_external_api_error(self, results_email):
        sender = SendGridEmailSender(
            api_key="sg-key",
            from_email="training@example.com",
            transport=RecordingTransport(status_code=401).transport,
        )

        with pytest.raises(ExternalAPIError):
            await sender.send(results_email, passed=True)

    @pytest.mark.asyncio
    async def test_send_without_api_key_is_a_configuration_error(self, results_email):
        sender = SendGridEmailSender(api_key=None, from_email="training@example.com")

        with pytest.raises(ConfigurationError):
            await sender.send(results_email, passed=True)
