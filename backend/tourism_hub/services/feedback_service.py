"""Site feedback: anyone may submit, staff triage."""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import NotFound, ValidationFailure
from tourism_hub.models.db.feedback import Feedback
from tourism_hub.models.db.user import User
from tourism_hub.services.access_control import require_elevated, require_user

logger = logging.getLogger(__name__)

FEEDBACK_STATUSES = ("new", "seen", "in_progress", "resolved")


class FeedbackService:

    @staticmethod
    async def submit(
        db: AsyncSession,
        content: str,
        is_anonymous: bool,
        page_context: Optional[str] = None,
        user: Optional[User] = None,
    ) -> Feedback:
        """Record feedback; anonymous submissions drop the user identity."""
        action = "Submitting feedback"
        text = (content or "").strip()
        if not text:
            raise ValidationFailure("Feedback cannot be empty", action=action)
        if not is_anonymous:
            user = require_user(user, action)
        feedback = Feedback(
            content=text,
            page_context=page_context,
            user_id=None if is_anonymous else user.id,
            user_email=None if is_anonymous else user.email,
            status="new",
        )
        db.add(feedback)
        await db.flush()
        return feedback

    @staticmethod
    async def list_feedback(
        db: AsyncSession, actor: Optional[User], status: Optional[str] = None
    ) -> list[Feedback]:
        require_elevated(actor, "Fetching feedback")
        query = select(Feedback).order_by(Feedback.created_at.desc())
        if status:
            query = query.where(Feedback.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def update_status(
        db: AsyncSession, actor: Optional[User], feedback_id: uuid.UUID, status: str
    ) -> Feedback:
        action = "Updating feedback status"
        require_elevated(actor, action)
        if status not in FEEDBACK_STATUSES:
            raise ValidationFailure(
                f"Status must be one of: {', '.join(FEEDBACK_STATUSES)}",
                action=action,
            )
        feedback = await db.get(Feedback, feedback_id)
        if feedback is None:
            raise NotFound("Feedback not found", action=action)
        feedback.status = status
        await db.flush()
        logger.info("Feedback %s -> %s by %s", feedback_id, status, actor.id)
        return feedback
