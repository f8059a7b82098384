from __future__ import annotations
from typing import Protocol
import httpx
import structlog
from pydantic import ValidationError
from goodgrid.errors import GatewayUnavailable
from goodgrid.models.submission import TaskSubmission
from goodgrid.models.task import Task
from goodgrid.schemas.verification import FeedbackReport, FraudAssessment, HistoryEntry, VerificationResult

log = structlog.get_logger()


class VerificationGateway(Protocol):
    async def verify(self, submission: TaskSubmission, task: Task) -> VerificationResult: ...

    async def detect_fraud(
        self, submission: TaskSubmission, task: Task, history: list[HistoryEntry]
    ) -> FraudAssessment: ...

    async def generate_feedback(
        self, submission: TaskSubmission, task: Task, result: VerificationResult
    ) -> FeedbackReport: ...


def submission_payload(s: TaskSubmission) -> dict:
    return {
        "id": str(s.id),
        "taskId": str(s.task_id),
        "userId": str(s.user_id),
        "submissionText": s.submission_text,
        "fileAttachments": s.file_attachments or [],
        "revisionCount": s.revision_count,
        "submittedAt": s.submitted_at.isoformat() if s.submitted_at else None,
    }


def task_payload(t: Task) -> dict:
    return {
        "id": str(t.id),
        "title": t.title,
        "description": t.description,
        "category": t.category.value,
        "requirements": t.requirements_json or {},
        "rewards": t.rewards_json or {},
    }


class HttpVerificationGateway:
    """
    JSON-over-HTTP client for the AI verification service.
    Every transport, status or decoding failure is raised as GatewayUnavailable.
    """

    def __init__(self, base_url: str, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _post(self, path: str, body: dict) -> dict:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                r = await self._client.post(url, json=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    r = await client.post(url, json=body)
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning("verification_gateway_error", path=path, error=str(e))
            raise GatewayUnavailable(f"{path}: {e}") from e

    async def verify(self, submission: TaskSubmission, task: Task) -> VerificationResult:
        data = await self._post("/verify", {"submission": submission_payload(submission), "task": task_payload(task)})
        return _parse(VerificationResult, data)

    async def detect_fraud(self, submission: TaskSubmission, task: Task, history: list[HistoryEntry]) -> FraudAssessment:
        data = await self._post("/fraud", {
            "submission": submission_payload(submission),
            "task": task_payload(task),
            "history": [h.model_dump() for h in history],
        })
        return _parse(FraudAssessment, data)

    async def generate_feedback(self, submission: TaskSubmission, task: Task, result: VerificationResult) -> FeedbackReport:
        data = await self._post("/feedback", {
            "submission": submission_payload(submission),
            "task": task_payload(task),
            "verification": result.model_dump(by_alias=True),
        })
        return _parse(FeedbackReport, data)


def _parse(model, data):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise GatewayUnavailable(f"malformed {model.__name__}: {e}") from e
