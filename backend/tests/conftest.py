from __future__ import annotations
import asyncio
import os

# must be set before goodgrid.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./goodgrid_test.db")
os.environ.setdefault("NOTIFICATIONS_MODE", "log")

import uuid
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from goodgrid.db import Base
from goodgrid.errors import GatewayUnavailable
import goodgrid.models.task  # register tables
import goodgrid.models.submission
import goodgrid.models.review
import goodgrid.models.ledger
import goodgrid.models.stats
import goodgrid.models.catalog
from goodgrid.models.task import Task, TaskCategory, TaskStatus
from goodgrid.schemas.verification import FeedbackReport, FraudAssessment, RiskLevel, VerificationResult
from goodgrid.services.review_queue import ReviewService
from goodgrid.services.submissions import SubmissionService


class FakeGateway:
    def __init__(self):
        self.result = VerificationResult(passed=True, score=90)
        self.fraud = FraudAssessment(is_fraudulent=False, risk_level=RiskLevel.LOW)
        self.feedback = FeedbackReport(feedback="Add more detail", strengths=["clear"], areas_for_improvement=["depth"])
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        self.history_seen = None
        self.delay = 0.0

    async def verify(self, submission, task):
        self.calls.append("verify")
        if self.delay:
            await asyncio.sleep(self.delay)
        if "verify" in self.fail_on:
            raise GatewayUnavailable("verifier down")
        return self.result

    async def detect_fraud(self, submission, task, history):
        self.calls.append("detect_fraud")
        self.history_seen = history
        if "detect_fraud" in self.fail_on:
            raise RuntimeError("unexpected payload")
        return self.fraud

    async def generate_feedback(self, submission, task, result):
        self.calls.append("generate_feedback")
        if "generate_feedback" in self.fail_on:
            raise GatewayUnavailable("feedback down")
        return self.feedback


class FakeNotifier:
    def __init__(self):
        self.sent: list[tuple] = []

    async def notify(self, user_id, event, payload):
        self.sent.append((user_id, event, payload))

    async def close(self):
        return None

    def events(self):
        return [e for (_, e, _) in self.sent]


class FakeDispatcher:
    def __init__(self):
        self.dispatched: list = []
        self.fail = False

    def dispatch(self, submission_id):
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.dispatched.append(submission_id)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'goodgrid.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def submissions(session_factory, gateway, notifier, dispatcher):
    return SubmissionService(
        gateway=gateway,
        notifier=notifier,
        dispatcher=dispatcher,
        session_factory=session_factory,
        gateway_timeout=2,
    )


@pytest.fixture
def reviews(submissions, session_factory, notifier):
    return ReviewService(submissions, notifier=notifier, session_factory=session_factory)


@pytest.fixture
def make_task(session_factory):
    async def _make(**kw) -> Task:
        kw.setdefault("title", f"Task {uuid.uuid4().hex[:6]}")
        kw.setdefault("description", "Clean up the park")
        kw.setdefault("category", TaskCategory.COMMUNITY)
        kw.setdefault("status", TaskStatus.IN_PROGRESS)
        kw.setdefault("rewards_json", {"xp": 100, "trustScoreBonus": 5, "rwisPoints": 10})
        async with session_factory() as session:
            task = Task(**kw)
            session.add(task)
            await session.commit()
            return task
    return _make
