from __future__ import annotations
import json
import uuid
from datetime import datetime, timezone
from decimal import Decimal
import httpx
import pytest

from goodgrid.errors import GatewayUnavailable
from goodgrid.models.ledger import RewardDistribution
from goodgrid.models.submission import SubmissionStatus, TaskSubmission
from goodgrid.models.task import Task, TaskCategory
from goodgrid.schemas.verification import RiskLevel, VerificationResult
from goodgrid.services.payments import HttpPaymentProcessor
from goodgrid.services.verification_gateway import HttpVerificationGateway


def _submission():
    return TaskSubmission(
        id=uuid.uuid4(), task_id=uuid.uuid4(), user_id=uuid.uuid4(), submission_text="done",
        file_attachments=[], status=SubmissionStatus.UNDER_REVIEW, revision_count=0,
        submitted_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
    )


def _task():
    return Task(
        id=uuid.uuid4(), title="Plant trees", description="Ten saplings", category=TaskCategory.COMMUNITY,
        requirements_json={}, rewards_json={"xp": 100},
    )


def _gateway(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpVerificationGateway("http://verifier", timeout=1, client=client)


@pytest.mark.asyncio
async def test_verify_parses_camel_case():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"passed": True, "score": 88, "requiresManualReview": False, "flaggedIssues": ["blurry"]})

    result = await _gateway(handler).verify(_submission(), _task())

    assert seen["path"] == "/verify"
    assert seen["body"]["task"]["category"] == "COMMUNITY"
    assert result.score == 88 and result.flagged_issues == ["blurry"]


@pytest.mark.asyncio
async def test_fraud_and_feedback():
    def handler(request: httpx.Request):
        if request.url.path == "/fraud":
            return httpx.Response(200, json={"isFraudulent": False, "riskLevel": "MEDIUM"})
        return httpx.Response(200, json={"feedback": "Good start", "areasForImprovement": ["lighting"]})

    gw = _gateway(handler)
    fraud = await gw.detect_fraud(_submission(), _task(), [])
    report = await gw.generate_feedback(_submission(), _task(), VerificationResult(passed=True, score=75))

    assert fraud.risk_level == RiskLevel.MEDIUM
    assert report.areas_for_improvement == ["lighting"]


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json={"score": 250}),
])
async def test_bad_responses_become_gateway_unavailable(response):
    with pytest.raises(GatewayUnavailable):
        await _gateway(lambda request: response).verify(_submission(), _task())


@pytest.mark.asyncio
async def test_transport_error_becomes_gateway_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayUnavailable):
        await _gateway(handler).verify(_submission(), _task())


@pytest.mark.asyncio
async def test_payout_request_is_idempotent_per_distribution():
    seen = []

    def handler(request: httpx.Request):
        seen.append(json.loads(request.content))
        return httpx.Response(202, json={"ok": True})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    dist = RewardDistribution(id=uuid.uuid4(), user_id=uuid.uuid4(), payment_amount=Decimal("12.00"))
    await HttpPaymentProcessor("http://payouts", client=client).pay(dist)

    assert seen[0]["idempotencyKey"] == f"reward_{dist.id}"
    assert seen[0]["amount"] == "12.00"


@pytest.mark.asyncio
async def test_payout_failure_raises():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(402)))
    dist = RewardDistribution(id=uuid.uuid4(), user_id=uuid.uuid4(), payment_amount=Decimal("1.00"))
    with pytest.raises(httpx.HTTPStatusError):
        await HttpPaymentProcessor("http://payouts", client=client).pay(dist)
