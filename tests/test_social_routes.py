"""
Social, feed, profile, inbox and transcription route tests.
"""

import contextlib
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport

from story_exchange.main import app
from story_exchange.api.dependencies import (
    get_inbox,
    get_moderator,
    get_rewriter,
    get_social_store,
    get_story_store,
    get_transcriber,
    get_user_story_store,
)
from story_exchange.db import get_async_session
from story_exchange.db.delivery_ledger import DeliveryLedger
from story_exchange.db.models import (
    GENERATION_MATCHED,
    Comment,
    Profile,
    Report,
    SuggestedStory,
    UserReceivedStory,
)
from story_exchange.db.social_store import SocialStore
from story_exchange.db.story_store import StoryStore
from story_exchange.llm.moderation import ModerationVerdict, Moderator
from story_exchange.llm.rewrite import Rewriter
from story_exchange.speech.transcriber import Transcriber, TranscriptionError


def _suggestion(**overrides):
    fields = dict(
        id=uuid.uuid4(),
        source_story_id=uuid.uuid4(),
        target_language="en",
        rewritten_text="Someone else's story.",
        generation_type=GENERATION_MATCHED,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return SuggestedStory(**fields)


@pytest.fixture
def mock_social():
    mock = AsyncMock(spec=SocialStore)
    mock.suggestion_exists.return_value = True
    mock.get_profile.return_value = None
    mock.feed.return_value = []
    mock.reactions_by_user.return_value = {}
    return mock


@pytest.fixture
def mock_moderator():
    mock = AsyncMock(spec=Moderator)
    mock.moderate.return_value = ModerationVerdict(approved=True)
    return mock


@pytest.fixture
def mock_rewriter():
    mock = AsyncMock(spec=Rewriter)

    async def _translate(text, target_language, source_language="auto"):
        return f"[{target_language}] {text}"

    mock.translate.side_effect = _translate
    return mock


@pytest.fixture
def mock_inbox():
    mock = AsyncMock(spec=DeliveryLedger)
    mock.count_received.return_value = (0, 0)
    return mock


@pytest.fixture
def mock_stories():
    mock = AsyncMock(spec=StoryStore)
    mock.count_approved_by_user.return_value = 0
    return mock


@pytest.fixture
def mock_transcriber():
    mock = AsyncMock(spec=Transcriber)
    mock.transcribe.return_value = "I wanted to tell someone."
    return mock


@pytest.fixture
async def async_client(
    mock_social, mock_moderator, mock_rewriter, mock_inbox, mock_stories, mock_transcriber
):
    app.dependency_overrides[get_social_store] = lambda: mock_social
    app.dependency_overrides[get_moderator] = lambda: mock_moderator
    app.dependency_overrides[get_rewriter] = lambda: mock_rewriter
    app.dependency_overrides[get_inbox] = lambda: mock_inbox
    app.dependency_overrides[get_user_story_store] = lambda: mock_stories
    app.dependency_overrides[get_transcriber] = lambda: mock_transcriber

    @contextlib.asynccontextmanager
    async def mock_lifespan(app):
        yield

    app.router.lifespan_context = mock_lifespan

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides = {}


# ---------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------

async def test_reaction_toggle_round_trip(async_client, auth_headers, user_id, mock_social):
    mock_social.toggle_reaction.side_effect = ["added", "removed"]
    payload = {"suggestedId": str(uuid.uuid4()), "type": "heart"}

    first = await async_client.post("/react", json=payload, headers=auth_headers)
    second = await async_client.post("/react", json=payload, headers=auth_headers)

    assert first.json() == {"success": True, "action": "added"}
    assert second.json() == {"success": True, "action": "removed"}
    assert mock_social.toggle_reaction.await_args.args == (
        user_id,
        uuid.UUID(payload["suggestedId"]),
        "heart",
    )
    assert mock_social.commit.await_count == 2


async def test_reaction_unknown_suggestion(async_client, auth_headers, mock_social):
    mock_social.suggestion_exists.return_value = False

    resp = await async_client.post(
        "/react",
        json={"suggestedId": str(uuid.uuid4()), "type": "heart"},
        headers=auth_headers,
    )

    assert resp.status_code == 404
    mock_social.toggle_reaction.assert_not_awaited()


async def test_reaction_requires_auth(async_client):
    resp = await async_client.post("/react", json={"suggestedId": str(uuid.uuid4()), "type": "heart"})
    assert resp.status_code in (401, 403)


# ---------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------

async def test_add_comment(async_client, auth_headers, user_id, mock_social):
    suggested_id = uuid.uuid4()
    mock_social.add_comment.return_value = Comment(
        id=uuid.uuid4(),
        suggested_id=suggested_id,
        user_id=user_id,
        text="Thank you for sharing",
    )
    mock_social.get_profile.return_value = Profile(user_id=user_id, display_name="River", preferred_language="en")

    resp = await async_client.post(
        "/comment",
        json={"suggestedId": str(suggested_id), "text": "Thank you for sharing"},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    comment = resp.json()["comment"]
    assert comment["text"] == "Thank you for sharing"
    assert comment["profiles"]["display_name"] == "River"
    mock_social.commit.assert_awaited_once()


async def test_comment_rejected_by_moderation(async_client, auth_headers, mock_social, mock_moderator):
    mock_moderator.moderate.return_value = ModerationVerdict(
        approved=False,
        reason="Harassment",
        severity="high",
    )

    resp = await async_client.post(
        "/comment",
        json={"suggestedId": str(uuid.uuid4()), "text": "something hurtful"},
        headers=auth_headers,
    )

    assert resp.status_code == 400
    assert resp.json()["reason"] == "Harassment"
    assert mock_moderator.moderate.await_args.kwargs["kind"] == "comment"
    mock_social.add_comment.assert_not_awaited()


async def test_list_comments_with_authors(async_client, mock_social):
    suggested_id = uuid.uuid4()
    comment = Comment(
        id=uuid.uuid4(),
        suggested_id=suggested_id,
        user_id=uuid.uuid4(),
        text="Same here",
    )
    mock_social.list_comments.return_value = [(comment, "Sky", "https://img.test/a.png")]

    resp = await async_client.get("/comment", params={"suggestedId": str(suggested_id)})

    assert resp.status_code == 200
    comments = resp.json()["comments"]
    assert comments[0]["profiles"] == {"display_name": "Sky", "avatar_url": "https://img.test/a.png"}


# ---------------------------------------------------------------------
# Reports & Follows
# ---------------------------------------------------------------------

async def test_report(async_client, auth_headers, user_id, mock_social):
    suggested_id = uuid.uuid4()
    mock_social.add_report.return_value = Report(
        id=uuid.uuid4(),
        suggested_id=suggested_id,
        user_id=user_id,
        reason="Contains a name",
    )

    resp = await async_client.post(
        "/report",
        json={"suggestedId": str(suggested_id), "reason": "Contains a name"},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["report"]["reason"] == "Contains a name"
    assert data["message"] == "Report submitted successfully"


async def test_self_follow_rejected(async_client, auth_headers, user_id, mock_social):
    resp = await async_client.post(
        "/follow",
        json={"followedId": str(user_id), "action": "follow"},
        headers=auth_headers,
    )

    assert resp.status_code == 400
    mock_social.follow.assert_not_awaited()


async def test_follow_and_unfollow(async_client, auth_headers, user_id, mock_social):
    other = uuid.uuid4()

    resp = await async_client.post("/follow", json={"followedId": str(other)}, headers=auth_headers)
    assert resp.json() == {"success": True, "action": "follow"}
    mock_social.follow.assert_awaited_once_with(user_id, other)

    resp = await async_client.post(
        "/follow",
        json={"followedId": str(other), "action": "unfollow"},
        headers=auth_headers,
    )
    assert resp.json() == {"success": True, "action": "unfollow"}
    mock_social.unfollow.assert_awaited_once_with(user_id, other)


# ---------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------

async def test_feed_anonymous_base_language(async_client, mock_social, mock_rewriter):
    suggestion = _suggestion()
    mock_social.feed.return_value = [(suggestion, 3, 1)]

    resp = await async_client.get("/feed", params={"page": 1, "limit": 1})

    assert resp.status_code == 200
    data = resp.json()
    item = data["suggestions"][0]
    assert item["rewritten_text"] == "Someone else's story."
    assert item["reaction_count"] == 3
    assert item["comment_count"] == 1
    assert item["user_reaction"] is None
    assert data["hasMore"] is True
    mock_rewriter.translate.assert_not_awaited()
    mock_social.reactions_by_user.assert_not_awaited()
    mock_social.feed.assert_awaited_once_with("en", offset=0, limit=1)


async def test_feed_translates_and_shows_own_reaction(
    async_client, auth_headers, mock_social, mock_rewriter
):
    first, second = _suggestion(), _suggestion(rewritten_text="Another one.")
    mock_social.feed.return_value = [(first, 0, 0), (second, 1, 0)]
    mock_social.reactions_by_user.return_value = {second.id: "hug"}

    resp = await async_client.get(
        "/feed",
        params={"lang": "es", "page": 2, "limit": 20},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    data = resp.json()
    assert [s["rewritten_text"] for s in data["suggestions"]] == [
        "[es] Someone else's story.",
        "[es] Another one.",
    ]
    assert data["suggestions"][1]["user_reaction"] == "hug"
    assert data["hasMore"] is False
    mock_social.feed.assert_awaited_once_with("en", offset=20, limit=20)


# ---------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------

async def test_profile_not_found(async_client):
    resp = await async_client.get(f"/profile/{uuid.uuid4()}")
    assert resp.status_code == 404


async def test_profile_with_counts(async_client, auth_headers, mock_social):
    profile_id = uuid.uuid4()
    mock_social.get_profile.return_value = Profile(user_id=profile_id, display_name="Sky", preferred_language="en")
    mock_social.follow_counts.return_value = (5, 2)
    mock_social.is_following.return_value = True

    resp = await async_client.get(f"/profile/{profile_id}", headers=auth_headers)

    assert resp.status_code == 200
    profile = resp.json()["profile"]
    assert profile["display_name"] == "Sky"
    assert profile["follower_count"] == 5
    assert profile["following_count"] == 2
    assert profile["is_following"] is True


async def test_me(async_client, auth_headers, user_id, mock_stories, mock_inbox):
    mock_stories.count_approved_by_user.return_value = 4
    mock_inbox.count_received.return_value = (3, 1)

    resp = await async_client.get("/me", headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["userId"] == str(user_id)
    assert data["profile"] is None
    assert (data["storiesSent"], data["storiesReceived"], data["unread"]) == (4, 3, 1)


def test_me_reads_stories_on_user_session():
    route = next(r for r in app.routes if getattr(r, "path", None) == "/me")
    dependencies = {d.call: d for d in route.dependant.dependencies}

    assert get_story_store not in dependencies
    store = dependencies[get_user_story_store]
    assert [d.call for d in store.dependencies] == [get_async_session]


# ---------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------

async def test_received_list(async_client, auth_headers, user_id, mock_inbox):
    suggestion = _suggestion()
    delivery = UserReceivedStory(
        id=uuid.uuid4(),
        user_id=user_id,
        submission_id=uuid.uuid4(),
        source_story_id=suggestion.source_story_id,
        suggested_story_id=suggestion.id,
        is_read=False,
    )
    mock_inbox.list_received.return_value = [(delivery, suggestion)]
    mock_inbox.count_received.return_value = (1, 1)

    resp = await async_client.get("/received", headers=auth_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["unread"] == 1
    assert data["stories"][0]["suggestion"]["rewritten_text"] == "Someone else's story."
    assert data["stories"][0]["is_read"] is False


async def test_mark_read_unknown_delivery(async_client, auth_headers, mock_inbox):
    mock_inbox.mark_read.return_value = False

    resp = await async_client.post(f"/received/{uuid.uuid4()}/read", headers=auth_headers)

    assert resp.status_code == 404
    mock_inbox.commit.assert_not_awaited()


async def test_mark_all_read(async_client, auth_headers, user_id, mock_inbox):
    mock_inbox.mark_all_read.return_value = 3

    resp = await async_client.post("/received/read-all", headers=auth_headers)

    assert resp.json() == {"success": True, "updated": 3}
    mock_inbox.mark_all_read.assert_awaited_once_with(user_id)


# ---------------------------------------------------------------------
# Transcription
# ---------------------------------------------------------------------

async def test_transcribe(async_client, auth_headers, mock_transcriber):
    resp = await async_client.post(
        "/transcribe",
        files={"audio": ("voice.webm", b"fake-audio", "audio/webm")},
        data={"language": "pt-BR"},
        headers=auth_headers,
    )

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "text": "I wanted to tell someone."}
    assert mock_transcriber.transcribe.await_args.kwargs["language"] == "pt-BR"


async def test_transcribe_provider_failure(async_client, auth_headers, mock_transcriber):
    mock_transcriber.transcribe.side_effect = TranscriptionError("down")

    resp = await async_client.post(
        "/transcribe",
        files={"audio": ("voice.webm", b"fake-audio", "audio/webm")},
        headers=auth_headers,
    )

    assert resp.status_code == 502
