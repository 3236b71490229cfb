"""
Submission, moderation and processing route tests.

Stores, providers and the pipeline are replaced with mocks through
``app.dependency_overrides``; the lifespan is replaced so no database is
touched.
"""

import contextlib
import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from story_exchange.main import app
from story_exchange.api.dependencies import (
    get_moderator,
    get_pipeline,
    get_story_store,
)
from story_exchange.db.models import GENERATION_MATCHED, Story, SuggestedStory
from story_exchange.db.story_store import StoryStatusConflict, StoryStore
from story_exchange.llm.classifier import Classification
from story_exchange.llm.client import LLMClient, LLMError
from story_exchange.llm.moderation import ModerationVerdict, Moderator
from story_exchange.llm.rewrite import PLACEHOLDER_TEXT
from story_exchange.matching.pipeline import (
    DeliveryPipeline,
    DeliveryState,
    PipelineOutcome,
    ProcessingResult,
)


@pytest.fixture
def mock_moderator():
    mock = AsyncMock(spec=Moderator)
    mock.moderate.return_value = ModerationVerdict(approved=True, reason="ok", severity="low")
    return mock


@pytest.fixture
def mock_stories():
    mock = AsyncMock(spec=StoryStore)

    async def _create_story(**kwargs):
        return Story(id=uuid.uuid4(), **kwargs)

    mock.create_story.side_effect = _create_story
    return mock


@pytest.fixture
def mock_pipeline():
    mock = AsyncMock(spec=DeliveryPipeline)
    mock.run.return_value = PipelineOutcome(
        state=DeliveryState.FALLBACK_AND_DELIVERED,
        classification=Classification(archetype="Hero", emotion_tone="hopeful"),
        received_story_id=uuid.uuid4(),
        suggested_story_id=uuid.uuid4(),
    )
    return mock


@pytest.fixture
def client(mock_moderator, mock_stories, mock_pipeline):
    app.dependency_overrides[get_moderator] = lambda: mock_moderator
    app.dependency_overrides[get_story_store] = lambda: mock_stories
    app.dependency_overrides[get_pipeline] = lambda: mock_pipeline

    # Mock lifespan to avoid DB connection
    @contextlib.asynccontextmanager
    async def mock_lifespan(app):
        yield

    app.router.lifespan_context = mock_lifespan

    with TestClient(app) as c:
        yield c

    app.dependency_overrides = {}


def _story_payload(**overrides):
    payload = {"text": "I lost my job and felt hopeless", "language": "en", "consent": True}
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------
# /submit
# ---------------------------------------------------------------------

def test_submit_delivers_story(client, auth_headers, user_id, mock_stories, mock_pipeline):
    resp = client.post("/submit", json=_story_payload(), headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["receivedStoryId"] is not None
    assert data["deliveryState"] == "FALLBACK_AND_DELIVERED"
    assert data["classification"] == {"archetype": "Hero", "emotion_tone": "hopeful"}
    assert data["story"]["user_id"] == str(user_id)
    assert data["story"]["status"] == "approved"

    create_kwargs = mock_stories.create_story.await_args.kwargs
    assert create_kwargs["user_id"] == user_id
    assert create_kwargs["status"] == "approved"

    # Story committed before the pipeline runs, and again after delivery
    assert mock_stories.commit.await_count == 2
    mock_pipeline.run.assert_awaited_once()


def test_submit_rejected_by_moderation(client, auth_headers, mock_moderator, mock_stories, mock_pipeline):
    mock_moderator.moderate.return_value = ModerationVerdict(
        approved=False,
        reason="Contains personal information",
        severity="high",
    )

    resp = client.post("/submit", json=_story_payload(text="Call me at 555-0100"), headers=auth_headers)

    assert resp.status_code == 400
    data = resp.json()
    assert data["success"] is False
    assert data["reason"] == "Contains personal information"
    assert data["severity"] == "high"
    mock_stories.create_story.assert_not_awaited()
    mock_pipeline.run.assert_not_awaited()


def test_submit_without_consent(client, auth_headers, mock_moderator, mock_stories):
    resp = client.post("/submit", json=_story_payload(consent=False), headers=auth_headers)

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    mock_moderator.moderate.assert_not_awaited()
    mock_stories.create_story.assert_not_awaited()


def test_submit_delivery_failed_still_succeeds(client, auth_headers, mock_pipeline):
    mock_pipeline.run.return_value = PipelineOutcome(
        state=DeliveryState.DELIVERY_FAILED,
        classification=Classification(archetype="Self", emotion_tone="reflective"),
    )

    resp = client.post("/submit", json=_story_payload(), headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["receivedStoryId"] is None
    assert data["deliveryState"] == "DELIVERY_FAILED"


def test_submit_requires_auth(client, mock_stories):
    resp = client.post("/submit", json=_story_payload())

    assert resp.status_code in (401, 403)
    mock_stories.create_story.assert_not_awaited()


def test_submit_validates_body(client, auth_headers):
    resp = client.post("/submit", json={"text": "", "consent": True}, headers=auth_headers)
    assert resp.status_code == 422


# ---------------------------------------------------------------------
# /moderate
# ---------------------------------------------------------------------

def test_moderation_queue_requires_admin_key(client):
    assert client.get("/moderate").status_code == 403
    assert client.get("/moderate", params={"key": "wrong"}).status_code == 403


def test_moderation_queue(client, admin_headers, mock_stories):
    pending = Story(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        text="waiting",
        language="en",
        status="pending",
        consent=True,
    )
    mock_stories.list_by_status.return_value = [pending]

    resp = client.get("/moderate", params={"status": "pending", "limit": 10}, headers=admin_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 1
    assert data["stories"][0]["id"] == str(pending.id)
    mock_stories.list_by_status.assert_awaited_once_with("pending", limit=10)


def test_moderate_story_approve(client, admin_headers, mock_stories):
    story_id = uuid.uuid4()
    mock_stories.set_status_once.return_value = Story(
        id=story_id,
        user_id=uuid.uuid4(),
        text="a story",
        language="en",
        status="approved",
        consent=True,
    )

    resp = client.post(
        "/moderate",
        json={"storyId": str(story_id), "action": "approve"},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    assert resp.json()["story"]["status"] == "approved"
    mock_stories.set_status_once.assert_awaited_once_with(story_id, "approved")
    mock_stories.commit.assert_awaited_once()


def test_moderate_unknown_story(client, admin_headers, mock_stories):
    mock_stories.set_status_once.side_effect = LookupError("missing")

    resp = client.post(
        "/moderate",
        json={"storyId": str(uuid.uuid4()), "action": "reject"},
        headers=admin_headers,
    )

    assert resp.status_code == 404


def test_moderate_twice_conflicts(client, admin_headers, mock_stories):
    mock_stories.set_status_once.side_effect = StoryStatusConflict("already approved")

    resp = client.post(
        "/moderate",
        json={"storyId": str(uuid.uuid4()), "action": "reject"},
        headers=admin_headers,
    )

    assert resp.status_code == 409
    mock_stories.commit.assert_not_awaited()


def test_moderate_comment_network_error_fails_closed(client):
    llm = AsyncMock(spec=LLMClient)
    llm.complete.side_effect = LLMError("connection refused")
    app.dependency_overrides[get_moderator] = lambda: Moderator(llm)

    resp = client.post("/moderate-comment", json={"text": "You are not alone"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["approved"] is False
    assert data["severity"] == "medium"


# ---------------------------------------------------------------------
# /process-story
# ---------------------------------------------------------------------

def test_process_story(client, admin_headers, mock_stories, mock_pipeline):
    story = Story(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        text="a story",
        language="en",
        status="approved",
        consent=True,
    )
    mock_stories.get_story.return_value = story
    suggestion = SuggestedStory(
        id=uuid.uuid4(),
        source_story_id=story.id,
        target_language="es",
        rewritten_text="una historia",
        generation_type=GENERATION_MATCHED,
    )
    mock_pipeline.prepare_renditions.return_value = ProcessingResult(
        classification=Classification(archetype="Child", emotion_tone="joyful"),
        similar_count=2,
        suggestions=[suggestion],
    )

    resp = client.post(
        "/process-story",
        json={"storyId": str(story.id), "targetLanguages": ["es", "es"]},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["similarStoriesCount"] == 2
    assert data["suggestions"][0]["target_language"] == "es"
    assert data["classification"]["archetype"] == "Child"
    mock_pipeline.prepare_renditions.assert_awaited_once_with(story, ["es"])


def test_process_story_default_languages(client, admin_headers, mock_stories, mock_pipeline):
    mock_stories.get_story.return_value = Story(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        text="a story",
        language="en",
        status="approved",
        consent=True,
    )
    mock_pipeline.prepare_renditions.return_value = ProcessingResult(
        classification=Classification(archetype="Self", emotion_tone="reflective"),
        similar_count=0,
    )

    resp = client.post("/process-story", json={"storyId": str(uuid.uuid4())}, headers=admin_headers)

    assert resp.status_code == 200
    assert mock_pipeline.prepare_renditions.await_args.args[1] == ["en", "pt-BR", "es"]


def test_process_unknown_story(client, admin_headers, mock_stories):
    mock_stories.get_story.return_value = None

    resp = client.post("/process-story", json={"storyId": str(uuid.uuid4())}, headers=admin_headers)

    assert resp.status_code == 404


def test_process_requires_admin(client):
    resp = client.post("/process-story", json={"storyId": str(uuid.uuid4())})
    assert resp.status_code == 403


def test_database_outage_returns_503(client, auth_headers, mock_stories):
    mock_stories.create_story.side_effect = OperationalError("INSERT", {}, Exception("down"))

    resp = client.post("/submit", json=_story_payload(), headers=auth_headers)

    assert resp.status_code == 503
    assert resp.json()["error"] == "database_unavailable"


def test_delivery_database_error_keeps_submission(client, auth_headers, mock_stories, mock_pipeline):
    mock_pipeline.run.side_effect = OperationalError("INSERT", {}, Exception("ledger down"))

    resp = client.post("/submit", json=_story_payload(), headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["receivedStoryId"] is None
    assert data["deliveryState"] == "DELIVERY_FAILED"
    assert data["classification"] == {"archetype": "Self", "emotion_tone": "reflective"}

    # Only the story commit happened; the failed delivery was rolled back
    assert mock_stories.commit.await_count == 1
    mock_stories.rollback.assert_awaited_once()


def test_process_story_returns_unsaved_placeholder(client, admin_headers, mock_stories, mock_pipeline):
    story = Story(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        text="a story",
        language="en",
        status="approved",
        consent=True,
    )
    mock_stories.get_story.return_value = story
    mock_pipeline.prepare_renditions.return_value = ProcessingResult(
        classification=Classification(archetype="Self", emotion_tone="reflective"),
        similar_count=0,
        suggestions=[
            SuggestedStory(
                source_story_id=story.id,
                target_language="es",
                rewritten_text=PLACEHOLDER_TEXT,
                generation_type=GENERATION_MATCHED,
            )
        ],
    )

    resp = client.post(
        "/process-story",
        json={"storyId": str(story.id), "targetLanguages": ["es"]},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    rendition = resp.json()["suggestions"][0]
    assert rendition["id"] is None
    assert rendition["rewritten_text"] == PLACEHOLDER_TEXT
