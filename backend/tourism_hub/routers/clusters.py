"""Clusters (points of interest): CRUD, counters, reviews and analytics."""

import logging
import uuid
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.deps import (
    _safe_error,
    get_app_state,
    get_current_user,
    get_db,
    get_optional_user,
    get_storage,
)
from tourism_hub.errors import DomainError, ValidationFailure
from tourism_hub.models.cluster import (
    ClusterBatchCreate,
    ClusterCreate,
    ClusterResponse,
    ClusterUpdate,
    DailyAnalytic,
    ReviewCreate,
    ReviewResponse,
    TransferOwnershipRequest,
)
from tourism_hub.models.db.base import utcnow
from tourism_hub.models.db.user import User
from tourism_hub.models.notification import CountResponse
from tourism_hub.services.access_control import require_content_creator
from tourism_hub.services.cluster_service import COUNTER_KINDS, ClusterService
from tourism_hub.state import AppState
from tourism_hub.storage import CLUSTER_IMAGE_BUCKET, BlobStorage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["clusters"])


def _internal_error(operation: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_safe_error(operation, e),
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/clusters", response_model=list[ClusterResponse])
async def list_clusters(
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    app_state: Optional[AppState] = Depends(get_app_state),
):
    """Public list.  Anonymous callers are served from the state cache when
    it is enabled; signed-in callers may also see their hidden clusters."""
    try:
        if user is None and app_state is not None:
            rows = sorted(app_state.clusters(), key=lambda r: r.get("name") or "")
            return [ClusterResponse.model_validate(r) for r in rows]
        clusters = await ClusterService.list_clusters(db, user)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("listing clusters", e) from e
    return [ClusterResponse.model_validate(c) for c in clusters]


@router.get("/clusters/{cluster_id}", response_model=ClusterResponse)
async def get_cluster(cluster_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    try:
        cluster = await ClusterService.get_cluster(db, cluster_id)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("fetching cluster", e) from e
    return ClusterResponse.model_validate(cluster)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post(
    "/clusters", response_model=ClusterResponse, status_code=status.HTTP_201_CREATED
)
async def create_cluster(
    body: ClusterCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        cluster = await ClusterService.create_cluster(db, user, body)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("creating cluster", e) from e
    return ClusterResponse.model_validate(cluster)


@router.post(
    "/clusters/batch",
    response_model=CountResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_clusters_batch(
    body: ClusterBatchCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Bulk import; rows are inserted in chunks within one transaction."""
    try:
        count = await ClusterService.create_batch(db, user, body.clusters)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("batch cluster import", e) from e
    return CountResponse(count=count)


@router.post("/clusters/images", status_code=status.HTTP_201_CREATED)
async def upload_cluster_image(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    """Upload an image and return its public URL for use in ``image``."""
    try:
        require_content_creator(user, "Uploading image")
        name = (file.filename or "image").replace("/", "_")
        path = f"{user.id}/{int(utcnow().timestamp() * 1000)}-{name}"
        data = await file.read()
        await storage.upload(
            CLUSTER_IMAGE_BUCKET, path, data, file.content_type or "image/jpeg"
        )
        url = storage.public_url(CLUSTER_IMAGE_BUCKET, path)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("uploading image", e) from e
    return {"url": url, "path": path}


@router.patch("/clusters/{cluster_id}", response_model=ClusterResponse)
async def update_cluster(
    cluster_id: uuid.UUID,
    body: ClusterUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    try:
        cluster = await ClusterService.update_cluster(
            db, user, cluster_id, body, storage=storage
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("updating cluster", e) from e
    return ClusterResponse.model_validate(cluster)


@router.delete("/clusters/{cluster_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_cluster(
    cluster_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: BlobStorage = Depends(get_storage),
):
    try:
        await ClusterService.delete_cluster(db, user, cluster_id, storage=storage)
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("deleting cluster", e) from e


@router.post("/clusters/{cluster_id}/transfer", response_model=ClusterResponse)
async def transfer_ownership(
    cluster_id: uuid.UUID,
    body: TransferOwnershipRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        try:
            new_owner_id = uuid.UUID(body.new_owner_id)
        except ValueError:
            raise ValidationFailure(
                "new_owner_id is not a valid id", action="Transferring cluster ownership"
            )
        cluster = await ClusterService.transfer_ownership(
            db, user, cluster_id, new_owner_id
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("transferring cluster", e) from e
    return ClusterResponse.model_validate(cluster)


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@router.get("/clusters/{cluster_id}/reviews", response_model=list[ReviewResponse])
async def list_reviews(cluster_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    try:
        reviews = await ClusterService.list_reviews(db, cluster_id)
    except Exception as e:
        raise _internal_error("listing reviews", e) from e
    return [ReviewResponse(**r) for r in reviews]


@router.post(
    "/clusters/{cluster_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_review(
    cluster_id: uuid.UUID,
    body: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        review = await ClusterService.add_review(
            db, user, cluster_id, body.rating, body.comment
        )
        await db.commit()
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("submitting review", e) from e
    return ReviewResponse(
        id=str(review.id),
        cluster_id=str(review.cluster_id),
        user_id=str(review.user_id),
        reviewer_name=user.name,
        rating=review.rating,
        comment=review.comment,
        created_at=review.created_at,
    )


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


@router.get("/clusters/{cluster_id}/analytics", response_model=list[DailyAnalytic])
async def cluster_analytics(
    cluster_id: uuid.UUID,
    days: int = Query(30, ge=1, le=366),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        series = await ClusterService.daily_analytics(db, user, cluster_id, days=days)
    except (HTTPException, DomainError):
        raise
    except Exception as e:
        raise _internal_error("cluster analytics", e) from e
    return [DailyAnalytic(**row) for row in series]


# ---------------------------------------------------------------------------
# Counters (registered last: the path captures any action segment)
# ---------------------------------------------------------------------------


@router.post("/clusters/{cluster_id}/{kind}")
async def count_interaction(cluster_id: uuid.UUID, kind: str, request: Request):
    """Public view/click counter.  Never fails the caller."""
    if kind not in COUNTER_KINDS:
        raise HTTPException(status_code=404, detail="Not found")
    factory = request.app.state.session_factory
    # Own session: a failed count rolls back without touching request state
    async with factory() as session:
        counted = await ClusterService.increment_counter(session, cluster_id, kind)
        if counted:
            try:
                await session.commit()
            except Exception:
                await session.rollback()
                logger.warning(
                    "Committing %s count for %s failed", kind, cluster_id, exc_info=True
                )
                counted = False
    return {"counted": counted}
