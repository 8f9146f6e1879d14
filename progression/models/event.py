"""Inbound challenge completion event.

The queue payload arrives as a plain dict in either the camelCase shape
the upstream producer emits::

    {"userId": 108835, "timeSpent": 60, "challengeId": 31138,
     "completionStatus": "success", "score": 120, "jobId": "e25332a2-..."}

or snake_case.  Validation happens here, before the controller touches
any repository; anything missing or mistyped becomes a
MalformedEventError.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from progression.core.errors import MalformedEventError

SUCCESS = "success"


class ChallengeCompletedIn(BaseModel):
    """Wire schema for the event payload."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", str_strip_whitespace=True
    )

    user_id: int = Field(validation_alias=AliasChoices("userId", "user_id"), gt=0)
    challenge_id: int = Field(
        validation_alias=AliasChoices("challengeId", "challenge_id"), gt=0
    )
    completion_status: str = Field(
        validation_alias=AliasChoices(
            "completionStatus", "completion_status", "completion"
        ),
        min_length=1,
    )
    score: int = 0
    time_spent: int = Field(
        default=0,
        validation_alias=AliasChoices("timeSpent", "time_spent", "timespent"),
        ge=0,
    )
    job_id: str | None = Field(
        default=None, validation_alias=AliasChoices("jobId", "job_id")
    )


@dataclass(frozen=True, slots=True)
class ChallengeCompletedEvent:
    user_id: int
    challenge_id: int
    completion_status: str
    score: int
    time_spent: int
    job_id: str | None = None

    @property
    def is_success(self) -> bool:
        return self.completion_status == SUCCESS

    @property
    def event_key(self) -> str:
        """Idempotency key: the queue job id, or a digest of the fields."""
        if self.job_id:
            return self.job_id
        raw = (
            f"{self.user_id}:{self.challenge_id}:{self.completion_status}:"
            f"{self.score}:{self.time_spent}"
        )
        return "sha256:" + hashlib.sha256(raw.encode()).hexdigest()

    @staticmethod
    def from_payload(payload: dict) -> ChallengeCompletedEvent:
        try:
            data = ChallengeCompletedIn.model_validate(payload)
        except ValidationError as exc:
            fields = sorted({".".join(map(str, e["loc"])) for e in exc.errors()})
            raise MalformedEventError(
                f"invalid challenge completion event: {', '.join(fields)}"
            ) from exc
        return ChallengeCompletedEvent.from_model(data)

    @staticmethod
    def from_model(data: ChallengeCompletedIn) -> ChallengeCompletedEvent:
        return ChallengeCompletedEvent(
            user_id=data.user_id,
            challenge_id=data.challenge_id,
            completion_status=data.completion_status.lower(),
            score=data.score,
            time_spent=data.time_spent,
            job_id=data.job_id,
        )

    def to_payload(self) -> dict:
        return {
            "userId": self.user_id,
            "challengeId": self.challenge_id,
            "completionStatus": self.completion_status,
            "score": self.score,
            "timeSpent": self.time_spent,
            "jobId": self.job_id,
        }
