"""Grant applications router.

Submission, re-application, every status-machine transition, report
uploads with signed download links, and the staff analytics view.  All
role, ownership and status checks live in
:class:`~tourism_hub.services.application_service.ApplicationService`;
this module only maps HTTP onto it.
"""

import logging
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Path,
    Query,
    UploadFile,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import _safe_error, get_current_user, get_db, get_storage
from tourism_hub.errors import DomainError
from tourism_hub.models.db.user import User
from tourism_hub.models.grant import (
    AmountDecision,
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    GrantAnalyticsResponse,
    ReportKind,
    ReviewNotes,
    SignedUrlResponse,
)
from tourism_hub.services.application_service import (
    REPORT_BUCKETS,
    ApplicationService,
    report_object_path,
)
from tourism_hub.storage import SIGNED_URL_TTL_SECONDS, BlobStorage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["applications"])


def _internal_error(operation: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_safe_error(operation, e),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/applications", response_model=ApplicationListResponse)
async def list_applications(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Own applications; Admin and Editor accounts see every application."""
    try:
        applications, total = await ApplicationService.list_for_user(
            db, user, status_filter=status_filter, limit=limit, offset=offset
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing applications", e) from e
    return ApplicationListResponse(
        applications=[ApplicationResponse.model_validate(a) for a in applications],
        total=total,
    )


@router.get("/applications/analytics", response_model=GrantAnalyticsResponse)
async def grant_analytics(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        return GrantAnalyticsResponse(
            **await ApplicationService.grant_analytics(db, user)
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("grant analytics", e) from e


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.get_application(db, application_id, user)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("fetching application", e) from e
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@router.post(
    "/applications",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_application(
    body: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.submit(db, user, body)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("submitting application", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/reapply",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reapply(
    application_id: str,
    body: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Start a new application linked to one of the caller's earlier ones."""
    try:
        application = await ApplicationService.reapply(db, user, application_id, body)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("re-submitting application", e) from e
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Reviewer transitions
# ---------------------------------------------------------------------------


@router.post("/applications/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: str,
    body: ReviewNotes,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.reject(db, application_id, user, body.notes)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("rejecting application", e) from e
    return ApplicationResponse.model_validate(application)


@router.post("/applications/{application_id}/offer", response_model=ApplicationResponse)
async def make_conditional_offer(
    application_id: str,
    body: AmountDecision,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.make_conditional_offer(
            db, application_id, user, body.amount, body.notes
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("making conditional offer", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/early-report/approve",
    response_model=ApplicationResponse,
)
async def approve_early_report(
    application_id: str,
    body: AmountDecision,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.approve_early_report(
            db, application_id, user, body.amount, body.notes
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("approving early report", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/early-report/reject",
    response_model=ApplicationResponse,
)
async def reject_early_report(
    application_id: str,
    body: ReviewNotes,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.reject_early_report(
            db, application_id, user, body.notes
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("rejecting early report", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/final-report/reject",
    response_model=ApplicationResponse,
)
async def reject_final_report(
    application_id: str,
    body: ReviewNotes,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.reject_final_report(
            db, application_id, user, body.notes
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("rejecting final report", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/complete", response_model=ApplicationResponse
)
async def complete_application(
    application_id: str,
    body: AmountDecision,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.complete(
            db, application_id, user, body.amount, body.notes
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("completing application", e) from e
    return ApplicationResponse.model_validate(application)


# ---------------------------------------------------------------------------
# Applicant transitions
# ---------------------------------------------------------------------------


@router.post(
    "/applications/{application_id}/offer/accept", response_model=ApplicationResponse
)
async def accept_offer(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.accept_offer(db, application_id, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("accepting offer", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/offer/decline", response_model=ApplicationResponse
)
async def decline_offer(
    application_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        application = await ApplicationService.decline_offer(db, application_id, user)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("declining offer", e) from e
    return ApplicationResponse.model_validate(application)


@router.post(
    "/applications/{application_id}/reports/{kind}",
    response_model=ApplicationResponse,
)
async def upload_report(
    application_id: str,
    kind: ReportKind = Path(...),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    """Upload a report file, then move the application to *Report Submitted*.

    When the transition is refused the uploaded blob is removed again
    (best-effort) so storage does not collect orphans.
    """
    bucket = REPORT_BUCKETS[kind]
    file_name = file.filename or "report"
    path = report_object_path(user.id, application_id, file_name)
    try:
        # Fail fast on visibility before touching storage
        await ApplicationService.get_application(db, application_id, user)
        data = await file.read()
        await storage.upload(
            bucket, path, data, file.content_type or "application/octet-stream"
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("uploading report", e) from e

    try:
        application = await ApplicationService.submit_report(
            db, application_id, user, kind, path, file_name
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        await storage.remove_quietly(bucket, [path])
        if isinstance(e, (HTTPException, DomainError)):
            raise
        raise _internal_error("submitting report", e) from e
    return ApplicationResponse.model_validate(application)


@router.get(
    "/applications/{application_id}/reports/{kind}/{index}/url",
    response_model=SignedUrlResponse,
)
async def get_report_url(
    application_id: str,
    kind: ReportKind,
    index: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    """Short-lived download link for a submitted report file."""
    try:
        bucket, entry = await ApplicationService.get_report_file(
            db, application_id, kind, index, user
        )
        url = await storage.create_signed_url(
            bucket, entry["path"], SIGNED_URL_TTL_SECONDS
        )
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating signed URL", e) from e
    return SignedUrlResponse(url=url, expires_in=SIGNED_URL_TTL_SECONDS)
