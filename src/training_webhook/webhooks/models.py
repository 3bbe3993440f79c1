"""
Pydantic models for Typeform webhook data and user training records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

WEBHOOK_LOG_TYPE = "typeform.testResults"


class ProcessingStatus(str, Enum):
    """Processing status enumeration."""

    COMPLETED = "completed"
    FAILED = "failed"


class Answer(BaseModel):
    """Single answer in a form response. Only the answer type is interpreted."""

    model_config = ConfigDict(extra="allow")

    type: str | None = Field(None, description="Answer type, e.g. 'choice' or 'email'")


class Calculated(BaseModel):
    model_config = ConfigDict(extra="allow")

    score: float | None = Field(None, description="Typeform calculated quiz score")


class Hidden(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = Field(None, description="Auth user identifier passed to the form")


class FormResponse(BaseModel):
    """Typeform ``form_response`` object."""

    model_config = ConfigDict(extra="allow", frozen=True)

    answers: list[Answer] = Field(default_factory=list)
    calculated: Calculated | None = None
    hidden: Hidden | None = None
    submitted_at: str | None = Field(None, description="ISO8601 submission time")

    @property
    def user_id(self) -> str | None:
        return self.hidden.id if self.hidden else None

    @property
    def score(self) -> float | None:
        return self.calculated.score if self.calculated else None

    @property
    def choice_answer_count(self) -> int:
        return sum(1 for answer in self.answers if answer.type == "choice")


class TypeformPayload(BaseModel):
    """Inbound webhook body. Missing ``form_response`` is treated as empty."""

    model_config = ConfigDict(extra="allow", frozen=True)

    event_id: str | None = None
    form_response: FormResponse = Field(default_factory=FormResponse)

    @classmethod
    def from_webhook_data(cls, data: dict[str, Any]) -> "TypeformPayload":
        if not isinstance(data, dict):
            raise ValueError("Webhook data must be a dictionary")
        return cls.model_validate(data)


class WebhookLogRecord(BaseModel):
    """Audit record written for every delivery that passes signature verification."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(default=WEBHOOK_LOG_TYPE)
    event_id: Any = None
    data: dict[str, Any] = Field(default_factory=dict)


class ScoreDecision(BaseModel):
    """Derived grade and pass/fail gate."""

    model_config = ConfigDict(frozen=True)

    test_grade: float
    has_passed: bool


class TrainingUpdate(BaseModel):
    """
    Explicit partial update applied to a user's training record.

    Only the fields set here are written; everything else on the stored
    record is carried over unchanged.
    """

    model_config = ConfigDict(frozen=True)

    test_grade: float
    training_completed: datetime | None = None
    exam_passed: datetime | None = None
    is_training_complete: bool | None = None

    def training_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"testGrade": self.test_grade}
        if self.training_completed is not None:
            fields["trainingCompleted"] = self.training_completed
        if self.exam_passed is not None:
            fields["examPassed"] = self.exam_passed
        return fields

    def apply(self, user: "UserRecord") -> "UserRecord":
        """Return a copy of ``user`` with this update merged in."""
        training = {**user.training, **self.training_fields()}
        changes: dict[str, Any] = {"training": training}
        if self.is_training_complete is not None:
            changes["is_training_complete"] = self.is_training_complete
        return user.model_copy(update=changes, deep=True)


class UserRecord(BaseModel):
    """
    User document owned by the user store.

    Field names follow the stored document (camelCase); unknown fields are
    kept so a write-back never drops data.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    email: str | None = None
    first_name: str | None = Field(None, alias="firstName")
    auth_user_id: str | None = Field(None, alias="auth0UserId")
    training: dict[str, Any] = Field(default_factory=dict)
    is_training_complete: bool | None = Field(None, alias="isTrainingComplete")

    @model_validator(mode="before")
    @classmethod
    def default_training(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("training") is None:
            data = {**data, "training": {}}
        return data

    def to_document(self, mode: str = "python") -> dict[str, Any]:
        """Serialize back to the stored document shape."""
        return self.model_dump(mode=mode, by_alias=True, exclude_unset=True)


class ResultsEmail(BaseModel):
    """Arguments for the training results email."""

    model_config = ConfigDict(populate_by_name=True)

    to: str
    first_name: str | None = Field(None, alias="firstName")
    score: float

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ProcessingResult(BaseModel):
    """Result of webhook processing."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    success: bool
    status: ProcessingStatus
    event_id: str | None = None
    user_id: str | None = None
    test_grade: float | None = None
    has_passed: bool | None = None
    processing_time_ms: int = Field(default=0, ge=0)


class WebhookMetrics(BaseModel):
    """Processing counters exposed on the metrics endpoint."""

    model_config = ConfigDict(validate_assignment=True)

    total_requests: int = Field(default=0, ge=0)
    successful_requests: int = Field(default=0, ge=0)
    failed_requests: int = Field(default=0, ge=0)
    passed_results: int = Field(default=0, ge=0)
    failed_results: int = Field(default=0, ge=0)
    errors_by_code: dict[str, int] = Field(default_factory=dict)
    average_processing_time_ms: float = Field(default=0.0, ge=0.0)
    last_request_time: datetime | None = None

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def update_request(
        self,
        success: bool,
        processing_time_ms: int,
        has_passed: bool | None = None,
        error_code: str | None = None,
    ) -> None:
        """Record one processed request."""
        self.total_requests += 1
        if success:
            self.successful_requests += 1
            if has_passed is True:
                self.passed_results += 1
            elif has_passed is False:
                self.failed_results += 1
        else:
            self.failed_requests += 1
            if error_code:
                self.errors_by_code = {
                    **self.errors_by_code,
                    error_code: self.errors_by_code.get(error_code, 0) + 1,
                }

        total_time = self.average_processing_time_ms * (self.total_requests - 1)
        self.average_processing_time_ms = (
            total_time + processing_time_ms
        ) / self.total_requests
        self.last_request_time = datetime.now(timezone.utc)

        logger.debug(
            f"Metrics updated: total={self.total_requests}, "
            f"success_rate={self.success_rate:.2%}"
        )


class HealthStatus(BaseModel):
    """Health check status model."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    services: dict[str, str] = Field(default_factory=dict)
    metrics: dict[str, Any] | None = None
