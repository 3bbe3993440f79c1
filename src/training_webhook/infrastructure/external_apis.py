"""
External API clients with proper async support.
Uses httpx for async HTTP operations.
"""

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from ..core.exceptions import ConfigurationError, create_external_api_error
from ..webhooks.collaborators import (
    ResultsEmailSender,
    TrainingCompletionMarker,
    TrainingStatusNotifier,
)
from ..webhooks.models import ResultsEmail, UserRecord

SENDGRID_BASE_URL = "https://api.sendgrid.com"


@dataclass
class APIConfig:
    """Configuration for external API clients."""

    base_url: str
    api_key: str
    timeout: int = 30


class TrainingPlatformClient(TrainingCompletionMarker, TrainingStatusNotifier):
    """
    Async training platform client.

    Marks users' training complete and receives training status updates.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize training platform client.

        Args:
            base_url: Base URL for the training platform API
            api_key: API key for authentication
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used in tests
        """
        self.config = APIConfig(
            base_url=base_url or "", api_key=api_key or "", timeout=timeout
        )
        self._transport = transport

        if not self.config.base_url or not self.config.api_key:
            logger.warning("Training platform client created without credentials")

    def _build_client(self) -> httpx.AsyncClient:
        """New client per call; the instance is shared by concurrent requests."""
        if not self.config.base_url:
            raise ConfigurationError(
                message="Training platform base URL is not configured",
                error_code="missing-training-api-url",
            )

        return httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Accept": "application/json",
                "User-Agent": "Training-Results-Webhook/1.0",
            },
            timeout=httpx.Timeout(self.config.timeout),
            transport=self._transport,
        )

    async def mark_complete(self, email: str, form_submitted_date: str) -> None:
        await self._post(
            "/users/training-complete",
            {"email": email, "formSubmittedDate": form_submitted_date},
        )
        logger.info(f"🎓 Training marked complete for {email}")

    async def notify(self, user: UserRecord, updated_by: str) -> None:
        await self._post(
            "/users/training-status",
            {"userDoc": user.to_document(mode="json"), "updatedBy": updated_by},
        )
        logger.info(f"📣 Training status sent for {user.email}")

    async def _post(self, path: str, body: dict[str, Any]) -> None:
        async with self._build_client() as client:
            try:
                response = await client.post(path, json=body)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(f"Training platform {path} returned {e.response.status_code}")
                raise create_external_api_error(
                    "training_platform", e.response.status_code, e.response.text
                ) from e
            except httpx.RequestError as e:
                logger.error(f"Training platform {path} request failed: {e}")
                raise create_external_api_error("training_platform", 0, str(e)) from e


class SendGridEmailSender(ResultsEmailSender):
    """Sends training results through the SendGrid v3 mail API."""

    def __init__(
        self,
        api_key: str | None,
        from_email: str,
        passed_template_id: str | None = None,
        failed_template_id: str | None = None,
        timeout: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key or ""
        self.from_email = from_email
        self.passed_template_id = passed_template_id
        self.failed_template_id = failed_template_id
        self.timeout = timeout
        self._transport = transport

        if not self.api_key:
            logger.warning("SendGrid email sender created without an API key")

    def build_message(self, email: ResultsEmail, passed: bool) -> dict[str, Any]:
        """Build the SendGrid mail/send request body."""
        template_id = self.passed_template_id if passed else self.failed_template_id
        template_data = {
            "firstName": email.first_name,
            "score": email.score,
            "scorePercent": round(email.score * 100),
            "passed": passed,
        }

        message: dict[str, Any] = {
            "from": {"email": self.from_email},
            "personalizations": [{"to": [{"email": email.to}]}],
        }

        if template_id:
            message["template_id"] = template_id
            message["personalizations"][0]["dynamic_template_data"] = template_data
            return message

        outcome = "passed" if passed else "did not pass"
        greeting = f"Hi {email.first_name}," if email.first_name else "Hi,"
        message["subject"] = "Your training exam results"
        message["content"] = [
            {
                "type": "text/plain",
                "value": (
                    f"{greeting}\n\nYou scored {template_data['scorePercent']}% "
                    f"and {outcome} the training exam."
                ),
            }
        ]
        return message

    async def send(self, email: ResultsEmail, passed: bool) -> None:
        if not self.api_key:
            raise ConfigurationError(
                message="SendGrid API key is not configured",
                error_code="missing-sendgrid-key",
            )

        async with httpx.AsyncClient(
            base_url=SENDGRID_BASE_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    "/v3/mail/send", json=self.build_message(email, passed)
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(f"SendGrid returned {e.response.status_code}")
                raise create_external_api_error(
                    "sendgrid", e.response.status_code, e.response.text
                ) from e
            except httpx.RequestError as e:
                logger.error(f"SendGrid request failed: {e}")
                raise create_external_api_error("sendgrid", 0, str(e)) from e

        logger.info(f"📧 Results email sent to {email.to} (passed={passed})")
