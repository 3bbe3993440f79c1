"""
Training result processing service.
Verifies, audits, scores and applies Typeform quiz results with injected collaborators.
"""

import time
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from ..config.settings import WebhookConfig
from ..core.exceptions import (
    ErrorResponseBuilder,
    ValidationError,
    create_invalid_payload_error,
    create_missing_submitted_date_error,
    create_missing_user_id_error,
    create_signature_error,
    create_user_not_found_error,
)
from ..utils.clock import parse_timestamp, to_store_timestamp
from .collaborators import (
    ResultsEmailSender,
    TrainingCompletionMarker,
    TrainingStatusNotifier,
    UserStore,
    WebhookLogStore,
)
from .models import (
    FormResponse,
    ProcessingResult,
    ProcessingStatus,
    ResultsEmail,
    ScoreDecision,
    TrainingUpdate,
    TypeformPayload,
    UserRecord,
    WebhookLogRecord,
    WebhookMetrics,
)
from .scoring import score_form_response
from .signature import verify_signature


@dataclass(frozen=True)
class ProcessorSettings:
    """Values the processor needs from configuration, passed explicitly."""

    webhook_secret: str | None
    passing_grade: float = 0.8
    completion_timezone: str = "America/New_York"
    log_source_tag: str = "typeform"
    update_source_tag: str = "Typeform"
    updated_by_tag: str = "TypeForm"

    @classmethod
    def from_config(cls, config: WebhookConfig) -> "ProcessorSettings":
        return cls(
            webhook_secret=config.get_webhook_secret(),
            passing_grade=config.passing_grade,
            completion_timezone=config.completion_timezone,
            log_source_tag=config.log_source_tag,
            update_source_tag=config.update_source_tag,
            updated_by_tag=config.updated_by_tag,
        )


class TrainingResultProcessor:
    """
    Processes one Typeform training result per call.

    Calls are made sequentially and are not transactional: a failure part
    way through leaves earlier side effects in place.
    """

    def __init__(
        self,
        settings: ProcessorSettings,
        log_store: WebhookLogStore,
        user_store: UserStore,
        completion_marker: TrainingCompletionMarker,
        status_notifier: TrainingStatusNotifier,
        email_sender: ResultsEmailSender,
    ):
        self.settings = settings
        self.log_store = log_store
        self.user_store = user_store
        self.completion_marker = completion_marker
        self.status_notifier = status_notifier
        self.email_sender = email_sender
        self.metrics = WebhookMetrics()

        logger.info("TrainingResultProcessor initialized")

    async def process_webhook(
        self, data: Any, signature: str | None, raw_body: bytes
    ) -> ProcessingResult:
        """
        Process a Typeform webhook delivery.

        Args:
            data: Parsed JSON body
            signature: Value of the Typeform-Signature header
            raw_body: Raw request body the signature was computed over

        Returns:
            Processing result for a successfully applied result

        Raises:
            SignatureError: Signature does not match
            ValidationError: Payload lacks a user id, submission date or score
            NotFoundError: No user matches the payload's user id
        """
        start_time = time.time()

        try:
            result = await self._process(data, signature, raw_body)
        except Exception as e:
            processing_time_ms = int((time.time() - start_time) * 1000)
            self.metrics.update_request(
                success=False,
                processing_time_ms=processing_time_ms,
                error_code=ErrorResponseBuilder.classify(e),
            )
            raise

        result.processing_time_ms = int((time.time() - start_time) * 1000)
        self.metrics.update_request(
            success=True,
            processing_time_ms=result.processing_time_ms,
            has_passed=result.has_passed,
        )
        return result

    async def _process(
        self, data: Any, signature: str | None, raw_body: bytes
    ) -> ProcessingResult:
        if not verify_signature(raw_body, signature, self.settings.webhook_secret):
            raise create_signature_error()

        await self._log_webhook(data)

        payload = self._parse_payload(data)
        form_response = payload.form_response
        submitted_at = self._parse_submitted_at(form_response)
        decision = score_form_response(form_response, self.settings.passing_grade)

        logger.info(
            f"📨 Processing training result: event_id={payload.event_id}, "
            f"user_id={form_response.user_id}, grade={decision.test_grade:.2f}"
        )

        user = await self.user_store.find_one({"auth0UserId": form_response.user_id})
        if user is None:
            logger.warning(f"❌ No user found for {form_response.user_id}")
            raise create_user_not_found_error(form_response.user_id)

        update = await self._build_update(user, decision, submitted_at)
        updated_user = update.apply(user)

        await self.user_store.update(updated_user, self.settings.update_source_tag)
        await self.status_notifier.notify(updated_user, self.settings.updated_by_tag)
        await self.email_sender.send(
            ResultsEmail(
                to=updated_user.email,
                first_name=updated_user.first_name,
                score=decision.test_grade,
            ),
            decision.has_passed,
        )

        logger.info(
            f"✅ Training result applied for {form_response.user_id}: "
            f"passed={decision.has_passed}"
        )
        return ProcessingResult(
            success=True,
            status=ProcessingStatus.COMPLETED,
            event_id=payload.event_id,
            user_id=form_response.user_id,
            test_grade=decision.test_grade,
            has_passed=decision.has_passed,
        )

    async def _log_webhook(self, data: Any) -> None:
        # Every delivery that passes signature verification is audited
        if isinstance(data, dict):
            record = WebhookLogRecord(
                event_id=data.get("event_id"), data=data.get("form_response") or {}
            )
        else:
            record = WebhookLogRecord()
        await self.log_store.insert(record, self.settings.log_source_tag)

    @staticmethod
    def _parse_payload(data: Any) -> TypeformPayload:
        # User id and submission date are checked before the body as a whole
        form_response = data.get("form_response") if isinstance(data, dict) else None
        if not isinstance(form_response, dict):
            form_response = {}
        hidden = form_response.get("hidden")
        if not isinstance(hidden, dict) or not hidden.get("id"):
            raise create_missing_user_id_error()
        if not form_response.get("submitted_at"):
            raise create_missing_submitted_date_error()

        try:
            return TypeformPayload.from_webhook_data(data)
        except PydanticValidationError as e:
            raise create_invalid_payload_error(e) from e

    @staticmethod
    def _parse_submitted_at(form_response: FormResponse):
        try:
            return parse_timestamp(form_response.submitted_at)
        except (ValueError, OverflowError) as e:
            raise ValidationError(
                message=f"submitted_at is not a valid timestamp: {form_response.submitted_at}",
                error_code="invalid-submitted-date",
            ) from e

    async def _build_update(
        self, user: UserRecord, decision: ScoreDecision, submitted_at
    ) -> TrainingUpdate:
        if not decision.has_passed:
            return TrainingUpdate(test_grade=decision.test_grade)

        form_submitted_date = to_store_timestamp(
            submitted_at, self.settings.completion_timezone
        )
        await self.completion_marker.mark_complete(
            email=user.email, form_submitted_date=form_submitted_date
        )

        return TrainingUpdate(
            test_grade=decision.test_grade,
            training_completed=submitted_at,
            exam_passed=submitted_at,
            is_training_complete=True,
        )

    def get_metrics(self) -> dict[str, Any]:
        """Get current processing metrics."""
        return {
            "total_requests": self.metrics.total_requests,
            "successful_requests": self.metrics.successful_requests,
            "failed_requests": self.metrics.failed_requests,
            "success_rate": self.metrics.success_rate,
            "passed_results": self.metrics.passed_results,
            "failed_results": self.metrics.failed_results,
            "errors_by_code": dict(self.metrics.errors_by_code),
            "average_processing_time_ms": self.metrics.average_processing_time_ms,
            "last_request_time": self.metrics.last_request_time.isoformat()
            if self.metrics.last_request_time
            else None,
        }

    async def health_check(self) -> dict[str, Any]:
        """Check the health of the stores the processor depends on."""
        health = {
            "status": "healthy",
            "processor": "active",
            "log_store": "unknown",
            "user_store": "unknown",
        }

        for name, store in (("log_store", self.log_store), ("user_store", self.user_store)):
            try:
                store_health = await store.health_check()
                health[name] = (
                    "healthy" if store_health.get("accessible", False) else "unhealthy"
                )
            except Exception as e:
                logger.warning(f"{name} health check failed: {e}")
                health[name] = "unhealthy"

            if health[name] != "healthy":
                health["status"] = "degraded"

        if not self.settings.webhook_secret:
            health["status"] = "degraded"
            health["processor"] = "missing webhook secret"

        return health


class TrainingResultProcessorFactory:
    """Factory for creating processors with proper dependency injection."""

    @staticmethod
    def create_processor(config: WebhookConfig) -> TrainingResultProcessor:
        """
        Create a processor with collaborators chosen by configuration.

        Args:
            config: Webhook configuration

        Returns:
            Configured TrainingResultProcessor instance
        """
        settings = ProcessorSettings.from_config(config)

        if config.use_local_collaborators:
            from .collaborators import (
                ConsoleEmailSender,
                InMemoryUserStore,
                InMemoryWebhookLogStore,
                RecordingCompletionMarker,
                RecordingStatusNotifier,
            )

            logger.info("🏠 Using local in-memory collaborators")
            return TrainingResultProcessor(
                settings=settings,
                log_store=InMemoryWebhookLogStore(),
                user_store=InMemoryUserStore(),
                completion_marker=RecordingCompletionMarker(),
                status_notifier=RecordingStatusNotifier(),
                email_sender=ConsoleEmailSender(),
            )

        from ..infrastructure.database import get_database_manager
        from ..infrastructure.external_apis import (
            SendGridEmailSender,
            TrainingPlatformClient,
        )
        from ..infrastructure.stores import SQLAlchemyUserStore, SQLAlchemyWebhookLogStore

        database = get_database_manager(config.database_url, echo=config.debug)
        training_client = TrainingPlatformClient(
            base_url=config.training_api_base_url,
            api_key=config.training_api_key,
            timeout=config.training_api_timeout,
        )

        return TrainingResultProcessor(
            settings=settings,
            log_store=SQLAlchemyWebhookLogStore(database.session_factory),
            user_store=SQLAlchemyUserStore(database.session_factory),
            completion_marker=training_client,
            status_notifier=training_client,
            email_sender=SendGridEmailSender(
                api_key=config.sendgrid_api_key,
                from_email=config.sendgrid_from_email,
                passed_template_id=config.sendgrid_passed_template_id,
                failed_template_id=config.sendgrid_failed_template_id,
            ),
        )
