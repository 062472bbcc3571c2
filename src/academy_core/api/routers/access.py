"""API endpoints for level access requests, reviews and grants.

Access Request Lifecycle: pending -> approved | rejected

Learners request access to restricted levels; reviewers (teacher/admin)
approve or reject, or grant access directly.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from academy_core import crud, models, schemas
from academy_core.workflow import AccessErrorCode, AccessOutcome, AccessWorkflowService

from ..dependencies import get_access_service, get_current_user

logger = logging.getLogger("academy-core.access")

ERROR_STATUS_CODES: dict[AccessErrorCode, int] = {
    AccessErrorCode.ALREADY_GRANTED: status.HTTP_409_CONFLICT,
    AccessErrorCode.DUPLICATE_PENDING: status.HTTP_409_CONFLICT,
    AccessErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AccessErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    AccessErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    AccessErrorCode.STORE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _handle_outcome_error(outcome: AccessOutcome) -> HTTPException:
    """Convert a failed AccessOutcome into an HTTPException with a structured detail."""
    detail = {
        "error": outcome.error.value,
        "message": outcome.message,
    }
    if outcome.error == AccessErrorCode.DUPLICATE_PENDING and outcome.existing_request_id:
        detail["request_id"] = str(outcome.existing_request_id)
    if outcome.error == AccessErrorCode.ALREADY_GRANTED:
        detail["has_access"] = True
    return HTTPException(status_code=ERROR_STATUS_CODES[outcome.error], detail=detail)


def _format_pending_item(request: models.LevelAccessRequest) -> schemas.PendingAccessRequestItem:
    """Format a pending request with requester name and level title."""
    item = schemas.PendingAccessRequestItem.model_validate(request)
    item.student_name = request.requester.display_name if request.requester else None
    item.level_title = request.level.title if request.level else None
    return item


router = APIRouter(tags=["access"])


@router.post("/requests", response_model=schemas.AccessRequestCreated, status_code=status.HTTP_201_CREATED)
def request_access(
    body: schemas.AccessRequestCreate,
    current_user: models.Profile = Depends(get_current_user),
    service: AccessWorkflowService = Depends(get_access_service),
):
    """
    Request access to a restricted level.

    - **level_id**: Level UUID (required)
    - **message**: Note for reviewers (optional)

    Returns 409 `already_granted` if the caller already has access, and 409
    `duplicate_pending` (with the existing `request_id`) if a request is
    already waiting for review.
    """
    outcome = service.request_access(current_user.id, body.level_id, body.message)
    if not outcome.ok:
        logger.info(f"Access request by {current_user.id} for level {body.level_id} refused: {outcome.error.value}")
        raise _handle_outcome_error(outcome)
    return schemas.AccessRequestCreated(
        request=schemas.AccessRequestResponse.model_validate(outcome.request),
        message=outcome.message,
    )


@router.get("/requests", response_model=list[schemas.PendingAccessRequestItem])
def list_pending_requests(
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum number of requests"),
    current_user: models.Profile = Depends(get_current_user),
    service: AccessWorkflowService = Depends(get_access_service),
):
    """List pending access requests, newest first. Reviewer role required."""
    outcome = service.list_pending_requests(can_review=crud.is_reviewer(current_user), limit=limit)
    if not outcome.ok:
        raise _handle_outcome_error(outcome)
    return [_format_pending_item(request) for request in outcome.requests]


@router.post("/requests/{request_id}/review", response_model=schemas.AccessReviewResponse)
def review_access(
    request_id: UUID,
    body: schemas.AccessReview,
    current_user: models.Profile = Depends(get_current_user),
    service: AccessWorkflowService = Depends(get_access_service),
):
    """
    Approve or reject a pending access request. Reviewer role required.

    Valid transitions:
    - pending -> approved (also grants access)
    - pending -> rejected

    Reviewing an already decided request returns 409 `invalid_transition`.
    """
    outcome = service.review_access(
        request_id,
        current_user.id,
        body.decision,
        feedback=body.feedback,
        can_review=crud.is_reviewer(current_user),
    )
    if not outcome.ok:
        logger.warning(f"Review of access request {request_id} failed: {outcome.message}")
        raise _handle_outcome_error(outcome)
    return schemas.AccessReviewResponse(
        request=schemas.AccessRequestResponse.model_validate(outcome.request),
        grant=schemas.AccessGrantResponse.model_validate(outcome.grant) if outcome.grant else None,
        message=outcome.message,
    )


@router.post("/grants", response_model=schemas.AccessGrantResponse, status_code=status.HTTP_201_CREATED)
def grant_access(
    body: schemas.AccessGrantCreate,
    current_user: models.Profile = Depends(get_current_user),
    service: AccessWorkflowService = Depends(get_access_service),
):
    """
    Grant a user access to a level directly. Reviewer role required.

    Granting twice for the same user and level updates the existing grant.
    """
    outcome = service.grant_access(
        body.user_id,
        body.level_id,
        current_user.id,
        can_review=crud.is_reviewer(current_user),
        expires_at=body.expires_at,
        reason=body.reason,
    )
    if not outcome.ok:
        raise _handle_outcome_error(outcome)
    return schemas.AccessGrantResponse.model_validate(outcome.grant)


@router.get("/levels/{level_id}", response_model=schemas.LevelAccessResponse)
def check_level_access(
    level_id: UUID,
    current_user: models.Profile = Depends(get_current_user),
    service: AccessWorkflowService = Depends(get_access_service),
):
    """Check whether the caller may open a level."""
    outcome = service.check_level_access(current_user.id, level_id)
    if not outcome.ok:
        raise _handle_outcome_error(outcome)
    return schemas.LevelAccessResponse(
        level_id=level_id,
        has_access=outcome.has_access,
        grant=schemas.AccessGrantResponse.model_validate(outcome.grant) if outcome.grant else None,
    )
