"""Unit tests for /chat, /profile, /conversations and /health endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from src.models.chat import ChatReply, Conversation, Message, MessageRole
from src.models.user import Profile, User
from src.services.errors import (
    AuthorizationError,
    InsufficientBalanceError,
    UpstreamUnavailableError,
)


def _make_user(email="user@example.com"):
    now = datetime.now(timezone.utc)
    return User(id=uuid4(), email=email, email_confirmed_at=now, created_at=now, updated_at=now)


def _make_conversation(user_id, title="New Chat"):
    now = datetime.now(timezone.utc)
    return Conversation(id=uuid4(), user_id=user_id, title=title, created_at=now, updated_at=now)


@pytest.fixture
def current_user():
    return _make_user()


@pytest.fixture
def chat_service():
    return MagicMock()


@pytest.fixture
def auth_client(client, current_user, chat_service):
    """TestClient authenticated as current_user with the chat service overridden."""
    from src.api.dependencies import get_current_user
    from src.api.routes import get_chat_service
    from src.main import app

    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    yield client
    app.dependency_overrides.pop(get_current_user, None)
    app.dependency_overrides.pop(get_chat_service, None)


# ---------------------------------------------------------------------------
# POST /chat
# ---------------------------------------------------------------------------

class TestChat:
    def test_returns_reply_and_balance(self, auth_client, chat_service, current_user):
        conversation_id = uuid4()
        chat_service.complete_turn = AsyncMock(
            return_value=ChatReply(
                message="Hi there", tokens_remaining=9990, conversation_id=conversation_id
            )
        )

        response = auth_client.post(
            "/chat", json={"conversation_id": str(conversation_id), "message": "  hello  "}
        )

        assert response.status_code == 200
        assert response.json() == {
            "message": "Hi there",
            "tokens_remaining": 9990,
            "conversation_id": str(conversation_id),
        }
        chat_service.complete_turn.assert_awaited_once_with(
            user_id=current_user.id, conversation_id=conversation_id, message="hello"
        )

    @pytest.mark.parametrize("message", ["", "   "])
    def test_empty_message_is_400(self, auth_client, chat_service, message):
        response = auth_client.post(
            "/chat", json={"conversation_id": str(uuid4()), "message": message}
        )

        assert response.status_code == 400
        chat_service.complete_turn.assert_not_called()

    def test_overlong_message_is_400(self, auth_client, chat_service):
        response = auth_client.post(
            "/chat", json={"conversation_id": str(uuid4()), "message": "x" * 4001}
        )

        assert response.status_code == 400

    def test_insufficient_balance_is_402(self, auth_client, chat_service):
        chat_service.complete_turn = AsyncMock(side_effect=InsufficientBalanceError())

        response = auth_client.post(
            "/chat", json={"conversation_id": str(uuid4()), "message": "hello"}
        )

        assert response.status_code == 402
        assert response.json()["error"] == "insufficient_tokens"

    def test_foreign_conversation_is_403(self, auth_client, chat_service):
        chat_service.complete_turn = AsyncMock(side_effect=AuthorizationError())

        response = auth_client.post(
            "/chat", json={"conversation_id": str(uuid4()), "message": "hello"}
        )

        assert response.status_code == 403

    def test_model_unavailable_is_503(self, auth_client, chat_service):
        chat_service.complete_turn = AsyncMock(
            side_effect=UpstreamUnavailableError("AI service temporarily unavailable")
        )

        response = auth_client.post(
            "/chat", json={"conversation_id": str(uuid4()), "message": "hello"}
        )

        assert response.status_code == 503
        assert response.json()["detail"] == "AI service temporarily unavailable"

    def test_requires_authentication(self, client):
        response = client.post("/chat", json={"conversation_id": str(uuid4()), "message": "hi"})
        assert response.status_code in (401, 403)


# ---------------------------------------------------------------------------
# GET /profile
# ---------------------------------------------------------------------------

class TestProfile:
    def test_returns_balance(self, auth_client, current_user):
        now = datetime.now(timezone.utc)
        profile = Profile(
            user_id=current_user.id,
            email=current_user.email,
            tokens=8765,
            created_at=now,
            updated_at=now,
        )

        with (
            patch("src.api.routes.UserService") as MockUserService,
            patch("src.api.routes.RoleService") as MockRoleService,
        ):
            MockUserService.return_value.get_profile = AsyncMock(return_value=profile)
            MockRoleService.return_value.has_role = AsyncMock(return_value=False)

            response = auth_client.get("/profile")

        assert response.status_code == 200
        assert response.json() == {
            "id": str(current_user.id),
            "email": current_user.email,
            "tokens": 8765,
            "is_admin": False,
        }

    def test_missing_profile_is_404(self, auth_client):
        with (
            patch("src.api.routes.UserService") as MockUserService,
            patch("src.api.routes.RoleService"),
        ):
            MockUserService.return_value.get_profile = AsyncMock(return_value=None)

            response = auth_client.get("/profile")

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# /conversations
# ---------------------------------------------------------------------------

class TestConversations:
    def test_create_with_default_title(self, auth_client, current_user):
        conversation = _make_conversation(current_user.id)

        with patch("src.api.conversations.ConversationService") as MockService:
            MockService.return_value.create_conversation = AsyncMock(return_value=conversation)

            response = auth_client.post("/conversations")

        assert response.status_code == 201
        assert response.json()["title"] == "New Chat"
        MockService.return_value.create_conversation.assert_awaited_once_with(
            current_user.id, title="New Chat"
        )

    def test_list(self, auth_client, current_user):
        conversations = [_make_conversation(current_user.id, "A"), _make_conversation(current_user.id, "B")]

        with patch("src.api.conversations.ConversationService") as MockService:
            MockService.return_value.list_conversations = AsyncMock(return_value=conversations)

            response = auth_client.get("/conversations")

        assert response.status_code == 200
        assert [c["title"] for c in response.json()] == ["A", "B"]

    def test_get_with_messages(self, auth_client, current_user):
        conversation = _make_conversation(current_user.id)
        message = Message(
            id=uuid4(),
            conversation_id=conversation.id,
            role=MessageRole.USER,
            content="hello",
            created_at=datetime.now(timezone.utc),
        )

        with patch("src.api.conversations.ConversationService") as MockService:
            MockService.return_value.get_conversation = AsyncMock(return_value=conversation)
            MockService.return_value.get_messages = AsyncMock(return_value=[message])

            response = auth_client.get(f"/conversations/{conversation.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["conversation"]["id"] == str(conversation.id)
        assert body["messages"][0]["content"] == "hello"

    def test_foreign_conversation_is_404(self, auth_client):
        foreign = _make_conversation(uuid4())

        with patch("src.api.conversations.ConversationService") as MockService:
            MockService.return_value.get_conversation = AsyncMock(return_value=foreign)

            response = auth_client.get(f"/conversations/{foreign.id}")

        assert response.status_code == 404
        MockService.return_value.get_messages.assert_not_called()

    def test_delete(self, auth_client, current_user):
        conversation_id = uuid4()

        with patch("src.api.conversations.ConversationService") as MockService:
            MockService.return_value.delete_conversation = AsyncMock(return_value=True)

            response = auth_client.delete(f"/conversations/{conversation_id}")

        assert response.status_code == 204
        MockService.return_value.delete_conversation.assert_awaited_once_with(
            conversation_id, current_user.id
        )

    def test_delete_missing_is_404(self, auth_client):
        with patch("src.api.conversations.ConversationService") as MockService:
            MockService.return_value.delete_conversation = AsyncMock(return_value=False)

            response = auth_client.delete(f"/conversations/{uuid4()}")

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_health_reports_dependencies(self, client):
        with patch("src.database.health_check", new_callable=AsyncMock, return_value=True):
            response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert body["redis"] == "unavailable"
        assert "X-Correlation-Id" in response.headers
