"""
Placement Test Controller

This module implements the API endpoints for placement tests: the level
catalog, starting sessions, answering, completing and reading results and
progress.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, HTTPException, Depends, Path, Query, Request, status
from pydantic import BaseModel, Field

from placement.api import APIResponse
from placement.common.auth.dependencies import get_current_user_id
from placement.common.exceptions import DuplicateError, NotFoundError, ValidationError
from placement.common.logger import get_logger
from placement.assessments.placement_test.errors import (
    InvalidSessionStateError,
    LevelLockedError,
    SessionAccessError,
    SessionExpiredError
)
from placement.assessments.placement_test.service import PlacementTestService

# Set up logger
logger = get_logger(__name__)

# Create router
router = APIRouter()


# Request Models
class StartSessionRequest(BaseModel):
    level: int = Field(..., ge=1, description="Level number to attempt")


class SubmitAnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1, description="Question identifier")
    answer: str = Field(..., description="Answer text")


def get_placement_test_service(request: Request) -> PlacementTestService:
    """Get the service instance configured on the application."""
    service = getattr(request.app.state, "placement_test_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=APIResponse.error("Placement test service not initialized")
        )
    return service


def _http_error(e: Exception, action: str) -> HTTPException:
    """Map an engine error to the HTTP response for it."""
    if isinstance(e, HTTPException):
        return e

    if isinstance(e, SessionAccessError):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(e, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, SessionExpiredError):
        status_code = status.HTTP_410_GONE
    elif isinstance(e, (InvalidSessionStateError, LevelLockedError, DuplicateError)):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(e, ValidationError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        logger.error(f"Failed to {action}: {str(e)}", exc_info=True)
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=APIResponse.error(f"Failed to {action}", code="internal_error")
        )

    logger.info(f"Request to {action} rejected with {status_code}: {str(e)}")
    return HTTPException(status_code=status_code, detail=APIResponse.from_error(e))


@router.get("/levels")
async def list_levels(service: PlacementTestService = Depends(get_placement_test_service)) -> Dict[str, Any]:
    """List the level catalog."""
    return APIResponse.success(service.get_level_catalog())


@router.get("/levels/me")
async def list_levels_for_user(
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    """List the levels with their status and card affordances for the current user."""
    try:
        return APIResponse.success(await service.get_levels_for_user(user_id))
    except Exception as e:
        raise _http_error(e, "list levels")


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def start_session(
    request: StartSessionRequest,
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    """
    Start a timed placement test session.

    Args:
        request: The level to attempt
        user_id: The authenticated user's ID

    Returns:
        The new session with its questions, without reference answers

    Raises:
        HTTPException: 404 for an unknown level, 409 if the level is locked
            or a session is already in progress
    """
    try:
        session = await service.start_session(user_id, request.level)
        return APIResponse.success(session, message="Session started")
    except Exception as e:
        raise _http_error(e, "start session")


@router.get("/sessions/active")
async def get_active_session(
    level: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    """Get the current user's in-progress session, data is null if none."""
    try:
        return APIResponse.success(await service.get_active_session(user_id, level))
    except Exception as e:
        raise _http_error(e, "get active session")


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    try:
        return APIResponse.success(await service.get_session(session_id, user_id))
    except Exception as e:
        raise _http_error(e, "get session")


@router.put("/sessions/{session_id}/answers")
async def submit_answer(
    request: SubmitAnswerRequest,
    session_id: str = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    """
    Record the answer to one question.

    Raises:
        HTTPException: 409 if the session has ended, 410 if its time limit passed
    """
    try:
        session = await service.submit_answer(session_id, request.question_id, request.answer, user_id)
        return APIResponse.success(session, message="Answer recorded")
    except Exception as e:
        raise _http_error(e, "submit answer")


@router.post("/sessions/{session_id}/complete")
async def complete_session(
    session_id: str = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    """Score the session and record the attempt."""
    try:
        result = await service.complete_session(session_id, user_id)
        return APIResponse.success(result, message="Session completed")
    except Exception as e:
        raise _http_error(e, "complete session")


@router.get("/sessions/{session_id}/results")
async def get_session_results(
    session_id: str = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    try:
        return APIResponse.success(await service.get_session_results(session_id, user_id))
    except Exception as e:
        raise _http_error(e, "get session results")


@router.get("/progress")
async def get_progress(
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    try:
        return APIResponse.success(await service.get_user_progress(user_id))
    except Exception as e:
        raise _http_error(e, "get progress")


@router.get("/progress/levels/{level}")
async def get_level_stats(
    level: int = Path(..., ge=1),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    try:
        return APIResponse.success(await service.get_level_stats(user_id, level))
    except Exception as e:
        raise _http_error(e, "get level stats")


@router.get("/history")
async def get_history(
    level: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(get_current_user_id),
    service: PlacementTestService = Depends(get_placement_test_service)
) -> Dict[str, Any]:
    """Attempt history of the current user, newest first."""
    try:
        return APIResponse.success(await service.get_history(user_id, level))
    except Exception as e:
        raise _http_error(e, "get history")
