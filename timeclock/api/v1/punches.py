"""
Punch endpoints.
Employees punch for themselves at server time; managers may record manual punches
(with an explicit timestamp) on behalf of any employee in their tenant.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from timeclock.core.deps import (
    MANAGER_ROLES,
    RequestContext,
    get_db,
    get_punch_pipeline,
    get_request_context,
)
from timeclock.schemas.punch import PunchCreateRequest, PunchListResponse, PunchOut, PunchRejectedResponse
from timeclock.services.punch_pipeline import PunchSubmission, PunchSubmissionPipeline
from timeclock.services.punch_store import list_punches
from timeclock.utils.datetime_utils import ensure_utc, now_utc

router = APIRouter()
_log = logging.getLogger(__name__)


def _check_punch_permissions(body: PunchCreateRequest, context: RequestContext) -> None:
    if context.has_any_role(*MANAGER_ROLES):
        return
    if body.is_manual or body.timestamp is not None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manual punches require a manager role"
        )
    if body.employee_id != context.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only punch for yourself"
        )


# Sync on purpose: idempotent submission may block on a per-key lock, so it runs in the threadpool
@router.post(
    "",
    response_model=PunchOut,
    status_code=201,
    responses={400: {"model": PunchRejectedResponse}},
)
def create_punch_endpoint(
    body: PunchCreateRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=255),
    context: RequestContext = Depends(get_request_context),
    pipeline: PunchSubmissionPipeline = Depends(get_punch_pipeline),
):
    """
    Submit a punch.

    Retries carrying the same Idempotency-Key receive the first response (201 or 400)
    without creating another punch. 409 if the first request is still running.
    """
    _check_punch_permissions(body, context)

    timestamp = now_utc()
    if body.timestamp is not None:
        timestamp = ensure_utc(body.timestamp)

    response = pipeline.submit_punch(PunchSubmission(
        tenant_id=context.tenant_id,
        employee_id=body.employee_id,
        punch_type=body.type,
        timestamp=timestamp,
        shift_id=body.shift_id,
        idempotency_key=idempotency_key,
        latitude=body.latitude,
        longitude=body.longitude,
        device_id=body.device_id,
        is_manual=body.is_manual,
        actor_id=context.user_id,
    ))
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.get("", response_model=PunchListResponse)
async def list_punches_endpoint(
    employee_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None, description="Inclusive lower bound (ISO-8601)"),
    end: Optional[datetime] = Query(None, description="Inclusive upper bound (ISO-8601)"),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """
    List punches in the caller's tenant, oldest first.
    Employees without a manager role only see their own punches.
    """
    if not context.has_any_role(*MANAGER_ROLES):
        if employee_id and employee_id != context.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only view your own punches"
            )
        employee_id = context.user_id

    if start is not None and end is not None and ensure_utc(end) < ensure_utc(start):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end must not be before start"
        )

    rows = list_punches(
        db,
        context.tenant_id,
        employee_id=employee_id,
        start=ensure_utc(start),
        end=ensure_utc(end),
    )
    return PunchListResponse(data=[PunchOut.model_validate(r) for r in rows])
