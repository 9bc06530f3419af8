"""Global pytest fixtures for the codepact challenge engine.

This module provides shared fixtures for testing including:
- A mocked unit of work with one AsyncMock per repository
- A ChallengeService wired to that unit of work
- An ASGI test client with a stand-in auth middleware
"""

from collections.abc import AsyncGenerator, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ===========================================
# UNIT OF WORK FIXTURES
# ===========================================


@pytest.fixture
def mock_uow() -> MagicMock:
    """Mock unit of work; repositories return domain records as rows."""
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=None)
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()

    uow.challenges = AsyncMock()
    uow.challenges.get_by_id.return_value = None
    uow.challenges.get_for_update.return_value = None
    uow.challenges.list_due_for_completion.return_value = []

    uow.memberships = AsyncMock()
    uow.memberships.list_for_challenge.return_value = []

    uow.invitations = AsyncMock()
    uow.invitations.get_pending.return_value = None

    uow.status_changes = AsyncMock()
    uow.status_changes.list_for_challenge.return_value = []

    uow.submissions = AsyncMock()
    uow.submissions.list_for_challenge.return_value = []
    uow.submissions.count_for_user.return_value = 1

    uow.users = AsyncMock()
    uow.users.display_names.return_value = {}
    uow.users.exists.return_value = True
    uow.users.search.return_value = []
    return uow


@pytest.fixture
def challenge_service(mock_uow: MagicMock) -> Generator:
    """ChallengeService whose every unit of work is ``mock_uow``."""
    from codepact.challenges.config import ChallengeSettings
    from codepact.challenges.service import ChallengeService

    with patch("codepact.challenges.service.UnitOfWork", return_value=mock_uow):
        yield ChallengeService(
            session_factory=MagicMock(),
            settings=ChallengeSettings(candidate_search_limit=20, scheduler_batch_size=100),
        )


# ===========================================
# HTTP CLIENT FIXTURES
# ===========================================


@pytest.fixture
def mock_challenge_service() -> MagicMock:
    service = MagicMock()
    for name in (
        "create_challenge",
        "get_challenge_with_leaderboard",
        "activate",
        "cancel",
        "join",
        "invite",
        "list_invite_candidates",
        "record_submission",
    ):
        setattr(service, name, AsyncMock())
    return service


@pytest_asyncio.fixture
async def async_client(mock_challenge_service: MagicMock) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client; ``X-Test-User`` stands in for the auth middleware."""
    from codepact.challenges.api import get_challenge_service
    from codepact.main import create_app

    app = create_app(with_lifespan=False)

    @app.middleware("http")
    async def fake_auth(request, call_next):
        user_id = request.headers.get("X-Test-User")
        if user_id:
            request.state.user = {"user_id": user_id}
        return await call_next(request)

    app.dependency_overrides[get_challenge_service] = lambda: mock_challenge_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
