"""Business logic for clusters (points of interest) and their reviews."""

import logging
import uuid
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import ConflictOrDuplicate, NotFound, ValidationFailure
from tourism_hub.models.cluster import ClusterCreate, ClusterUpdate
from tourism_hub.models.db.base import utcnow
from tourism_hub.models.db.cluster import Cluster, ClusterAnalytic, ClusterReview
from tourism_hub.models.db.user import User
from tourism_hub.services.access_control import (
    is_elevated,
    require_content_creator,
    require_elevated,
    require_owner_or_elevated,
    require_user,
)
from tourism_hub.storage import (
    CLUSTER_IMAGE_BUCKET,
    BlobStorage,
    object_path_from_public_url,
)

logger = logging.getLogger(__name__)

BATCH_CHUNK_SIZE = 500
COUNTER_KINDS = ("view", "click")


async def _remove_image_quietly(
    storage: Optional[BlobStorage], image_url: Optional[str]
) -> None:
    path = object_path_from_public_url(image_url, CLUSTER_IMAGE_BUCKET)
    if storage is None or path is None:
        return
    await storage.remove_quietly(CLUSTER_IMAGE_BUCKET, [path])


class ClusterService:
    """Service layer for cluster CRUD, counters, reviews and analytics."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def list_clusters(
        db: AsyncSession, user: Optional[User] = None
    ) -> list[Cluster]:
        """Public list; hidden clusters are shown only to staff and owners."""
        query = select(Cluster).order_by(Cluster.name)
        if not is_elevated(user):
            if user is None:
                query = query.where(Cluster.is_hidden.is_(False))
            else:
                query = query.where(
                    (Cluster.is_hidden.is_(False)) | (Cluster.owner_id == user.id)
                )
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_cluster(db: AsyncSession, cluster_id: uuid.UUID) -> Cluster:
        cluster = await db.get(Cluster, cluster_id)
        if cluster is None:
            raise NotFound("Cluster not found", action="Fetching cluster")
        return cluster

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def create_cluster(
        db: AsyncSession, actor: Optional[User], data: ClusterCreate
    ) -> Cluster:
        actor = require_content_creator(actor, "Adding cluster")
        cluster = Cluster(owner_id=actor.id, **data.model_dump())
        db.add(cluster)
        await db.flush()
        logger.info("Cluster %s created by %s", cluster.id, actor.id)
        return cluster

    @staticmethod
    async def create_batch(
        db: AsyncSession, actor: Optional[User], items: list[ClusterCreate]
    ) -> int:
        """Insert clusters in chunks of 500; returns the number created."""
        actor = require_content_creator(actor, "Adding clusters in batch")
        created = 0
        for start in range(0, len(items), BATCH_CHUNK_SIZE):
            chunk = items[start : start + BATCH_CHUNK_SIZE]
            db.add_all(Cluster(owner_id=actor.id, **item.model_dump()) for item in chunk)
            await db.flush()
            created += len(chunk)
            logger.info("Batch cluster insert: %d/%d", created, len(items))
        return created

    @staticmethod
    async def update_cluster(
        db: AsyncSession,
        actor: Optional[User],
        cluster_id: uuid.UUID,
        data: ClusterUpdate,
        storage: Optional[BlobStorage] = None,
    ) -> Cluster:
        action = "Updating cluster"
        cluster = await ClusterService.get_cluster(db, cluster_id)
        require_owner_or_elevated(actor, cluster.owner_id, action)

        changes = data.model_dump(exclude_unset=True)
        old_image = cluster.image
        for key, value in changes.items():
            setattr(cluster, key, value)
        await db.flush()

        if "image" in changes and old_image and changes["image"] != old_image:
            await _remove_image_quietly(storage, old_image)
        return cluster

    @staticmethod
    async def delete_cluster(
        db: AsyncSession,
        actor: Optional[User],
        cluster_id: uuid.UUID,
        storage: Optional[BlobStorage] = None,
    ) -> None:
        """Delete the row, then remove its image best-effort."""
        action = "Deleting cluster"
        cluster = await ClusterService.get_cluster(db, cluster_id)
        require_owner_or_elevated(actor, cluster.owner_id, action)
        image = cluster.image
        await db.delete(cluster)
        await db.flush()
        logger.info("Cluster %s deleted by %s", cluster_id, actor.id)
        await _remove_image_quietly(storage, image)

    @staticmethod
    async def transfer_ownership(
        db: AsyncSession,
        actor: Optional[User],
        cluster_id: uuid.UUID,
        new_owner_id: uuid.UUID,
    ) -> Cluster:
        action = "Transferring cluster ownership"
        require_elevated(actor, action)
        cluster = await ClusterService.get_cluster(db, cluster_id)
        new_owner = await db.get(User, new_owner_id)
        if new_owner is None:
            raise NotFound("New owner not found", action=action)
        cluster.owner_id = new_owner.id
        await db.flush()
        logger.info(
            "Cluster %s transferred to %s by %s", cluster_id, new_owner_id, actor.id
        )
        return cluster

    @staticmethod
    async def increment_counter(
        db: AsyncSession, cluster_id: uuid.UUID, kind: str
    ) -> bool:
        """Bump the view or click counter and today's analytics row.

        Public and best-effort: failures are logged and swallowed so a
        counter never breaks page rendering.  The session is rolled back on
        failure, so callers must not share it with other writes.  Returns
        whether it counted.
        """
        if kind not in COUNTER_KINDS:
            raise ValidationFailure(f"Unknown counter '{kind}'", action="Counting")
        try:
            cluster = await db.get(Cluster, cluster_id, with_for_update=True)
            if cluster is None:
                return False
            today = utcnow().date()
            result = await db.execute(
                select(ClusterAnalytic).where(
                    ClusterAnalytic.cluster_id == cluster_id,
                    ClusterAnalytic.date == today,
                )
            )
            daily = result.scalar_one_or_none()
            if daily is None:
                daily = ClusterAnalytic(
                    cluster_id=cluster_id, date=today, views=0, clicks=0
                )
                db.add(daily)
            if kind == "view":
                cluster.view_count = (cluster.view_count or 0) + 1
                daily.views = (daily.views or 0) + 1
            else:
                cluster.click_count = (cluster.click_count or 0) + 1
                daily.clicks = (daily.clicks or 0) + 1
            await db.flush()
            return True
        except Exception:
            await db.rollback()
            logger.warning(
                "Failed to count %s for cluster %s", kind, cluster_id, exc_info=True
            )
            return False

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    @staticmethod
    async def _recompute_rating(db: AsyncSession, cluster: Cluster) -> None:
        avg, count = (
            await db.execute(
                select(func.avg(ClusterReview.rating), func.count(ClusterReview.id)).where(
                    ClusterReview.cluster_id == cluster.id
                )
            )
        ).one()
        cluster.average_rating = round(float(avg), 2) if avg is not None else None
        cluster.review_count = count or 0

    @staticmethod
    async def add_review(
        db: AsyncSession,
        user: Optional[User],
        cluster_id: uuid.UUID,
        rating: int,
        comment: Optional[str] = None,
    ) -> ClusterReview:
        """One review per user per cluster; the cluster's rating is recomputed."""
        action = "Submitting review"
        user = require_user(user, action)
        if not 1 <= rating <= 5:
            raise ValidationFailure("Rating must be between 1 and 5", action=action)
        cluster = await ClusterService.get_cluster(db, cluster_id)

        existing = await db.execute(
            select(ClusterReview.id).where(
                ClusterReview.cluster_id == cluster_id,
                ClusterReview.user_id == user.id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictOrDuplicate(
                "You have already reviewed this cluster", action=action
            )

        review = ClusterReview(
            cluster_id=cluster_id, user_id=user.id, rating=rating, comment=comment
        )
        db.add(review)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictOrDuplicate(
                "You have already reviewed this cluster", action=action
            ) from exc

        await ClusterService._recompute_rating(db, cluster)
        await db.flush()
        return review

    @staticmethod
    async def list_reviews(db: AsyncSession, cluster_id: uuid.UUID) -> list[dict]:
        """Reviews with reviewer display names, newest first."""
        result = await db.execute(
            select(ClusterReview, User.name)
            .join(User, User.id == ClusterReview.user_id, isouter=True)
            .where(ClusterReview.cluster_id == cluster_id)
            .order_by(ClusterReview.created_at.desc())
        )
        return [
            {
                "id": str(review.id),
                "cluster_id": str(review.cluster_id),
                "user_id": str(review.user_id),
                "reviewer_name": name,
                "rating": review.rating,
                "comment": review.comment,
                "created_at": review.created_at,
            }
            for review, name in result.all()
        ]

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    @staticmethod
    async def daily_analytics(
        db: AsyncSession,
        actor: Optional[User],
        cluster_id: uuid.UUID,
        days: int = 30,
    ) -> list[dict]:
        """Per-day views and clicks for the last *days* days (zero-filled)."""
        action = "Fetching cluster analytics"
        cluster = await ClusterService.get_cluster(db, cluster_id)
        require_owner_or_elevated(actor, cluster.owner_id, action)
        if not 1 <= days <= 366:
            raise ValidationFailure("days must be between 1 and 366", action=action)

        end = utcnow().date()
        start = end - timedelta(days=days - 1)
        result = await db.execute(
            select(ClusterAnalytic).where(
                ClusterAnalytic.cluster_id == cluster_id,
                ClusterAnalytic.date >= start,
                ClusterAnalytic.date <= end,
            )
        )
        by_day: dict[date, ClusterAnalytic] = {row.date: row for row in result.scalars()}
        series = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            row = by_day.get(day)
            series.append(
                {
                    "date": day,
                    "views": row.views if row else 0,
                    "clicks": row.clicks if row else 0,
                }
            )
        return series
