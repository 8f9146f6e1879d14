"""Challenge completion event ingestion.

  POST /v1/events/challenge-completed
  -> validate payload (422 on malformed input, nothing enqueued)
  -> enqueue on challenge_completed
  -> 202 Accepted

Evaluation happens in the worker; this endpoint only hands the event
over, the same way any other producer pushing to the queue would.
"""

from __future__ import annotations

from fastapi import APIRouter, status
from pydantic import BaseModel

from progression.models.event import ChallengeCompletedEvent, ChallengeCompletedIn
from progression.services.task_queue import CHALLENGE_COMPLETED_QUEUE, task_queue

router = APIRouter(prefix="/v1/events", tags=["events"])


class EventAcceptedOut(BaseModel):
    task_id: str
    status: str


@router.post(
    "/challenge-completed",
    response_model=EventAcceptedOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def ingest_challenge_completed(body: ChallengeCompletedIn) -> EventAcceptedOut:
    event = ChallengeCompletedEvent.from_model(body)
    task = await task_queue.enqueue(CHALLENGE_COMPLETED_QUEUE, event.to_payload())
    return EventAcceptedOut(task_id=task.id, status="queued")
