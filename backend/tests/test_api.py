from __future__ import annotations
import uuid
import httpx
import pytest
from httpx import AsyncClient

from goodgrid.deps import get_review_service, get_submission_service
from goodgrid.errors import AlreadyAssigned, DuplicateSubmission, GatewayUnavailable
from goodgrid.main import app
from goodgrid.schemas.review import ReviewerLoad


class StubSubmissions:
    async def submit(self, task_id, user_id, text, attachments):
        raise DuplicateSubmission("already submitted")

    async def get_submission(self, submission_id):
        return None


class StubReviews:
    queue_calls: list = []

    async def list_queue(self, **kw):
        self.queue_calls.append(kw)
        return []

    async def available_reviewers(self):
        return [ReviewerLoad(reviewer_id=uuid.UUID(int=7), pending_reviews=1, total_reviews=3, average_rating=4.5)]

    async def assign(self, item_id, reviewer_id):
        raise AlreadyAssigned("taken")

    async def reviewer_stats(self, reviewer_id):
        raise GatewayUnavailable("db down")


@pytest.fixture
def api():
    app.dependency_overrides[get_submission_service] = lambda: StubSubmissions()
    app.dependency_overrides[get_review_service] = lambda: StubReviews()
    yield AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    app.dependency_overrides.clear()


def _hdrs():
    return {"X-User-Id": str(uuid.uuid4())}


@pytest.mark.asyncio
async def test_missing_identity_is_401(api):
    async with api as ac:
        r = await ac.get(f"/submissions/{uuid.uuid4()}")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_duplicate_submission_is_409(api):
    async with api as ac:
        r = await ac.post("/submissions", headers=_hdrs(), json={"task_id": str(uuid.uuid4()), "submission_text": "hi"})
    assert r.status_code == 409, r.text
    assert r.json()["code"] == "DuplicateSubmission"


@pytest.mark.asyncio
async def test_unknown_submission_is_404(api):
    async with api as ac:
        r = await ac.get(f"/submissions/{uuid.uuid4()}", headers=_hdrs())
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_queue_errors_map_to_status(api):
    async with api as ac:
        r1 = await ac.post(f"/reviews/queue/{uuid.uuid4()}/assign", headers=_hdrs())
        r2 = await ac.get("/reviews/stats", headers=_hdrs())
    assert r1.status_code == 409
    assert r2.status_code == 503


@pytest.mark.asyncio
async def test_rating_out_of_range_is_422(api):
    async with api as ac:
        r = await ac.post(f"/reviews/queue/{uuid.uuid4()}/approve", headers=_hdrs(), json={"rating": 9})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_queue_is_scoped_to_caller(api):
    StubReviews.queue_calls.clear()
    hdrs = _hdrs()
    actor = uuid.UUID(hdrs["X-User-Id"])
    async with api as ac:
        r1 = await ac.get("/reviews/queue", headers=hdrs)
        r2 = await ac.get("/reviews/queue", headers=hdrs, params={"mine": 1})
    assert (r1.status_code, r2.status_code) == (200, 200)
    assert [(c["reviewer_id"], c["claimed_only"]) for c in StubReviews.queue_calls] == [(actor, False), (actor, True)]


@pytest.mark.asyncio
async def test_available_reviewers_route(api):
    async with api as ac:
        r = await ac.get("/reviews/reviewers", headers=_hdrs())
    assert r.status_code == 200, r.text
    assert r.json() == [{
        "reviewer_id": str(uuid.UUID(int=7)),
        "pending_reviews": 1,
        "total_reviews": 3,
        "average_rating": 4.5,
    }]
