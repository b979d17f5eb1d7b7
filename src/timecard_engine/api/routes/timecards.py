"""Timecard API endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from timecard_engine.api.dependencies import CurrentActor, DbSession, Timecards
from timecard_engine.api.schemas import (
    AuditEntryResponse,
    AuditGroupResponse,
    AuditHistoryResponse,
    AuditStatisticsResponse,
    EditRequest,
    ErrorResponse,
    RejectedFieldsResponse,
    RejectRequest,
    ReopenRequest,
    TimecardCreate,
    TimecardResponse,
    TransitionResponse,
    VersionedRequest,
)
from timecard_engine.models import TimecardHeader
from timecard_engine.services.errors import TransitionResult
from timecard_engine.services.history_reader import AuditLogFilter, HistoryReader
from timecard_engine.services.timecard_service import TimecardService

router = APIRouter(prefix="/timecards", tags=["timecards"])

ERROR_STATUS = {
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "CONCURRENT_MODIFICATION": status.HTTP_409_CONFLICT,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "VALIDATION_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
}

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


async def _require_timecard(service: TimecardService, timecard_id: UUID) -> TimecardHeader:
    """Load a timecard or raise a 404."""
    timecard = await service.get_timecard(timecard_id)
    if timecard is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Timecard not found",
        )
    return timecard


def _to_response(result: TransitionResult) -> TransitionResponse:
    """Convert a service result, raising HTTPException on failure."""
    if not result.ok:
        error = result.error
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
            detail={
                "detail": str(error),
                "code": result.error_code,
                "retryable": error.retryable if error else False,
            },
        )
    return TransitionResponse(
        timecard=TimecardResponse.model_validate(result.timecard),
        change_id=result.change_id,
        audit_entries=len(result.entries),
    )


# ============================================================================
# Timecards
# ============================================================================


@router.post(
    "",
    response_model=TransitionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_timecard(
    service: Timecards,
    actor: CurrentActor,
    payload: TimecardCreate,
) -> TransitionResponse:
    """Create a draft timecard for the acting user."""
    result = await service.create_draft(
        actor,
        project_id=payload.project_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        entries=payload.entries,
        pay_rate=payload.pay_rate,
    )
    return _to_response(result)


@router.get(
    "/{timecard_id}",
    response_model=TimecardResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_timecard(
    service: Timecards,
    timecard_id: Annotated[UUID, Path()],
) -> TimecardResponse:
    """Get a timecard with its daily entries."""
    timecard = await _require_timecard(service, timecard_id)
    return TimecardResponse.model_validate(timecard)


# ============================================================================
# Lifecycle
# ============================================================================


@router.post("/{timecard_id}/submit", response_model=TransitionResponse, responses=ERROR_RESPONSES)
async def submit_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: VersionedRequest | None = None,
) -> TransitionResponse:
    """Submit a draft for approval."""
    version = payload.expected_version if payload else None
    return _to_response(await service.submit(timecard_id, actor, version))


@router.post("/{timecard_id}/approve", response_model=TransitionResponse, responses=ERROR_RESPONSES)
async def approve_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: VersionedRequest | None = None,
) -> TransitionResponse:
    """Approve a submitted timecard."""
    version = payload.expected_version if payload else None
    return _to_response(await service.approve(timecard_id, actor, version))


@router.post("/{timecard_id}/reject", response_model=TransitionResponse, responses=ERROR_RESPONSES)
async def reject_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: RejectRequest,
) -> TransitionResponse:
    """Reject a submitted timecard, applying any daily corrections with it."""
    result = await service.reject_with_edits(
        timecard_id,
        actor,
        payload.reason,
        payload.payload(),
        payload.expected_version,
    )
    return _to_response(result)


@router.post(
    "/{timecard_id}/admin-edit", response_model=TransitionResponse, responses=ERROR_RESPONSES
)
async def admin_edit_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: EditRequest,
) -> TransitionResponse:
    """Approver edits a draft directly."""
    result = await service.admin_edit_draft(
        timecard_id, actor, payload.payload(), payload.expected_version
    )
    return _to_response(result)


@router.post("/{timecard_id}/edit", response_model=TransitionResponse, responses=ERROR_RESPONSES)
async def edit_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: EditRequest,
) -> TransitionResponse:
    """Owner edits their own draft."""
    result = await service.user_edit_draft(
        timecard_id, actor, payload.payload(), payload.expected_version
    )
    return _to_response(result)


@router.post(
    "/{timecard_id}/resubmit", response_model=TransitionResponse, responses=ERROR_RESPONSES
)
async def resubmit_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: VersionedRequest | None = None,
) -> TransitionResponse:
    """Resubmit a rejected timecard."""
    version = payload.expected_version if payload else None
    return _to_response(await service.resubmit(timecard_id, actor, version))


@router.post(
    "/{timecard_id}/return-to-draft", response_model=TransitionResponse, responses=ERROR_RESPONSES
)
async def return_timecard_to_draft(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: VersionedRequest | None = None,
) -> TransitionResponse:
    """Take a rejected timecard back to draft."""
    version = payload.expected_version if payload else None
    return _to_response(await service.return_to_draft(timecard_id, actor, version))


@router.post("/{timecard_id}/reopen", response_model=TransitionResponse, responses=ERROR_RESPONSES)
async def reopen_timecard(
    service: Timecards,
    actor: CurrentActor,
    timecard_id: Annotated[UUID, Path()],
    payload: ReopenRequest | None = None,
) -> TransitionResponse:
    """Reopen an approved timecard for correction (admin only)."""
    result = await service.reopen(
        timecard_id,
        actor,
        reason=payload.reason if payload else None,
        expected_version=payload.expected_version if payload else None,
    )
    return _to_response(result)


# ============================================================================
# Audit history
# ============================================================================


@router.get(
    "/{timecard_id}/history",
    response_model=AuditHistoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_history(
    service: Timecards,
    db: DbSession,
    timecard_id: Annotated[UUID, Path()],
    grouped: Annotated[bool, Query()] = True,
    newest_first: Annotated[bool, Query()] = False,
    action_type: Annotated[str | None, Query()] = None,
    field_name: Annotated[str | None, Query()] = None,
    date_from: Annotated[datetime | None, Query()] = None,
    date_to: Annotated[datetime | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AuditHistoryResponse:
    """Audit history, grouped by interaction unless ``grouped=false``."""
    await _require_timecard(service, timecard_id)
    try:
        filters = AuditLogFilter(
            action_type=action_type,
            field_name=field_name,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )
        reader = HistoryReader(db)
        if grouped:
            groups = await reader.list_grouped(timecard_id, filters, newest_first=newest_first)
            return AuditHistoryResponse(
                timecard_id=timecard_id,
                groups=[AuditGroupResponse.model_validate(g) for g in groups],
            )
        rows = await reader.list_flat(timecard_id, filters)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    return AuditHistoryResponse(
        timecard_id=timecard_id,
        entries=[AuditEntryResponse.model_validate(r) for r in rows],
    )


@router.get(
    "/{timecard_id}/history/statistics",
    response_model=AuditStatisticsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_history_statistics(
    service: Timecards,
    db: DbSession,
    timecard_id: Annotated[UUID, Path()],
) -> AuditStatisticsResponse:
    """Summary counts over the audit history."""
    await _require_timecard(service, timecard_id)
    stats = await HistoryReader(db).get_statistics(timecard_id)
    return AuditStatisticsResponse.model_validate(stats)


@router.get(
    "/{timecard_id}/rejected-fields",
    response_model=RejectedFieldsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_rejected_fields(
    service: Timecards,
    db: DbSession,
    timecard_id: Annotated[UUID, Path()],
) -> RejectedFieldsResponse:
    """Cached rejected_fields alongside the value derived from the log."""
    timecard = await _require_timecard(service, timecard_id)
    reader = HistoryReader(db)
    derived = await reader.derive_rejected_fields(timecard_id)
    cached = list(timecard.rejected_fields or [])
    return RejectedFieldsResponse(
        timecard_id=timecard_id,
        rejected_fields=cached,
        derived_rejected_fields=derived,
        consistent=sorted(cached) == sorted(derived),
    )
