"""REST API endpoints for challenges."""

from __future__ import annotations

from functools import lru_cache
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from codepact.infrastructure.database.session import get_session_factory
from codepact.shared.utils.datetime_utils import utcnow
from codepact.shared.utils.logging import get_logger

from .exceptions import ChallengeServiceError, raise_http_exception
from .schemas import (
    ChallengeView,
    CreateChallengeRequest,
    InviteRequest,
    SubmissionResponse,
    UserSummary,
)
from .service import ChallengeService

logger = get_logger(__name__)

router = APIRouter(prefix="/challenges", tags=["challenges"])


@lru_cache
def get_challenge_service() -> ChallengeService:
    return ChallengeService(get_session_factory())


def _get_user_id(request: Request) -> UUID:
    """Extract the acting user from request state (set by auth middleware)."""
    user = getattr(request.state, "user", None)
    if not user or not user.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return UUID(str(user["user_id"]))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user context",
        )


def _get_optional_user_id(request: Request) -> UUID | None:
    if not getattr(request.state, "user", None):
        return None
    return _get_user_id(request)


# ===========================================
# CHALLENGE CRUD
# ===========================================


@router.post("", response_model=ChallengeView, status_code=status.HTTP_201_CREATED)
async def create_challenge(
    body: CreateChallengeRequest,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    """Create a challenge; the caller becomes its owner and first member."""
    user_id = _get_user_id(request)
    try:
        return await service.create_challenge(user_id, body, utcnow())
    except ChallengeServiceError as e:
        raise_http_exception(e)


@router.get("/{challenge_id}", response_model=ChallengeView)
async def get_challenge(
    challenge_id: UUID,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    """Challenge details, progress, leaderboard and the caller's actions."""
    viewer_id = _get_optional_user_id(request)
    try:
        return await service.get_challenge_with_leaderboard(challenge_id, utcnow(), viewer_id)
    except ChallengeServiceError as e:
        raise_http_exception(e)


# ===========================================
# LIFECYCLE
# ===========================================


@router.post("/{challenge_id}/activate", response_model=ChallengeView)
async def activate_challenge(
    challenge_id: UUID,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    user_id = _get_user_id(request)
    try:
        return await service.activate(challenge_id, user_id, utcnow())
    except ChallengeServiceError as e:
        raise_http_exception(e)


@router.post("/{challenge_id}/cancel", response_model=ChallengeView)
async def cancel_challenge(
    challenge_id: UUID,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    user_id = _get_user_id(request)
    try:
        return await service.cancel(challenge_id, user_id, utcnow())
    except ChallengeServiceError as e:
        raise_http_exception(e)


# ===========================================
# MEMBERSHIP
# ===========================================


@router.post("/{challenge_id}/join", response_model=ChallengeView)
async def join_challenge(
    challenge_id: UUID,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    user_id = _get_user_id(request)
    try:
        return await service.join(challenge_id, user_id, utcnow())
    except ChallengeServiceError as e:
        raise_http_exception(e)


@router.post(
    "/{challenge_id}/invitations",
    response_model=ChallengeView,
    status_code=status.HTTP_201_CREATED,
)
async def invite_to_challenge(
    challenge_id: UUID,
    body: InviteRequest,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    """Invite a user to a private challenge (owner only)."""
    user_id = _get_user_id(request)
    try:
        return await service.invite(challenge_id, user_id, body.candidate_id, utcnow())
    except ChallengeServiceError as e:
        raise_http_exception(e)


@router.get("/{challenge_id}/invite-candidates", response_model=list[UserSummary])
async def list_invite_candidates(
    challenge_id: UUID,
    request: Request,
    search: str | None = Query(default=None, max_length=100),
    limit: int | None = Query(default=None, ge=1, le=100),
    service: ChallengeService = Depends(get_challenge_service),
):
    """Users the owner may still invite; existing members are never listed."""
    user_id = _get_user_id(request)
    try:
        return await service.list_invite_candidates(challenge_id, user_id, search, limit)
    except ChallengeServiceError as e:
        raise_http_exception(e)


# ===========================================
# SUBMISSIONS
# ===========================================


@router.post(
    "/{challenge_id}/submissions",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_submission(
    challenge_id: UUID,
    request: Request,
    service: ChallengeService = Depends(get_challenge_service),
):
    user_id = _get_user_id(request)
    try:
        return await service.record_submission(challenge_id, user_id, utcnow())
    except ChallengeServiceError as e:
        raise_http_exception(e)
