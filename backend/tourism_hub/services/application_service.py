"""Grant application status machine.

States and edges::

    Pending                -> Rejected | Conditional Offer
    Conditional Offer      -> Rejected | Early Report Required
    Early Report Required  -> Early Report Submitted
    Early Report Submitted -> Early Report Required | Final Report Required
    Final Report Required  -> Final Report Submitted
    Final Report Submitted -> Final Report Required | Complete
    Rejected, Complete     (terminal)

Every transition runs as one read-modify-write: the row is loaded with
``SELECT ... FOR UPDATE``, the guard and source status are checked, the
status changes and exactly one history entry is appended in the same
flush.  The caller's transaction (``get_db``) commits it.
"""

import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tourism_hub.errors import (
    ConflictOrDuplicate,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationFailure,
)
from tourism_hub.models.db.base import as_utc, utcnow
from tourism_hub.models.db.grant_application import GrantApplication, GrantStatusEntry
from tourism_hub.models.db.user import User
from tourism_hub.models.grant import ApplicationCreate
from tourism_hub.services.access_control import is_elevated, require_user
from tourism_hub.services.disbursement import DisbursementLedger
from tourism_hub.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Statuses
# ---------------------------------------------------------------------------
STATUS_PENDING = "Pending"
STATUS_REJECTED = "Rejected"
STATUS_CONDITIONAL_OFFER = "Conditional Offer"
STATUS_EARLY_REPORT_REQUIRED = "Early Report Required"
STATUS_EARLY_REPORT_SUBMITTED = "Early Report Submitted"
STATUS_FINAL_REPORT_REQUIRED = "Final Report Required"
STATUS_FINAL_REPORT_SUBMITTED = "Final Report Submitted"
STATUS_COMPLETE = "Complete"

TERMINAL_STATUSES = frozenset({STATUS_REJECTED, STATUS_COMPLETE})

ALLOWED_TRANSITIONS: dict[str, list[str]] = {
    STATUS_PENDING: [STATUS_REJECTED, STATUS_CONDITIONAL_OFFER],
    STATUS_CONDITIONAL_OFFER: [STATUS_REJECTED, STATUS_EARLY_REPORT_REQUIRED],
    STATUS_EARLY_REPORT_REQUIRED: [STATUS_EARLY_REPORT_SUBMITTED],
    STATUS_EARLY_REPORT_SUBMITTED: [
        STATUS_EARLY_REPORT_REQUIRED,
        STATUS_FINAL_REPORT_REQUIRED,
    ],
    STATUS_FINAL_REPORT_REQUIRED: [STATUS_FINAL_REPORT_SUBMITTED],
    STATUS_FINAL_REPORT_SUBMITTED: [STATUS_FINAL_REPORT_REQUIRED, STATUS_COMPLETE],
    # Terminal states -- no outgoing transitions
    STATUS_REJECTED: [],
    STATUS_COMPLETE: [],
}

REPORT_BUCKETS = {
    "early": "grant-early-report-files",
    "final": "grant-final-report-files",
}

ACTOR_ELEVATED = "elevated"
ACTOR_APPLICANT = "applicant"

NOTIFY_APPLICANT = "applicant"
NOTIFY_GRANT_ADMINS = "grant_admins"

_ID_ATTEMPTS = 10


@dataclass(frozen=True)
class Transition:
    """One guarded edge of the status machine."""

    name: str
    source: str
    target: str
    actor: str
    notify: str
    action: str


TRANSITIONS: dict[str, Transition] = {
    t.name: t
    for t in (
        Transition(
            "reject", STATUS_PENDING, STATUS_REJECTED,
            ACTOR_ELEVATED, NOTIFY_APPLICANT, "Rejecting application",
        ),
        Transition(
            "make_conditional_offer", STATUS_PENDING, STATUS_CONDITIONAL_OFFER,
            ACTOR_ELEVATED, NOTIFY_APPLICANT, "Making conditional offer",
        ),
        Transition(
            "accept_offer", STATUS_CONDITIONAL_OFFER, STATUS_EARLY_REPORT_REQUIRED,
            ACTOR_APPLICANT, NOTIFY_GRANT_ADMINS, "Accepting offer",
        ),
        Transition(
            "decline_offer", STATUS_CONDITIONAL_OFFER, STATUS_REJECTED,
            ACTOR_APPLICANT, NOTIFY_GRANT_ADMINS, "Declining offer",
        ),
        Transition(
            "submit_early_report", STATUS_EARLY_REPORT_REQUIRED,
            STATUS_EARLY_REPORT_SUBMITTED,
            ACTOR_APPLICANT, NOTIFY_GRANT_ADMINS, "Submitting early report",
        ),
        Transition(
            "submit_final_report", STATUS_FINAL_REPORT_REQUIRED,
            STATUS_FINAL_REPORT_SUBMITTED,
            ACTOR_APPLICANT, NOTIFY_GRANT_ADMINS, "Submitting final report",
        ),
        Transition(
            "approve_early_report", STATUS_EARLY_REPORT_SUBMITTED,
            STATUS_FINAL_REPORT_REQUIRED,
            ACTOR_ELEVATED, NOTIFY_APPLICANT, "Approving early report",
        ),
        Transition(
            "reject_early_report", STATUS_EARLY_REPORT_SUBMITTED,
            STATUS_EARLY_REPORT_REQUIRED,
            ACTOR_ELEVATED, NOTIFY_APPLICANT, "Rejecting early report",
        ),
        Transition(
            "reject_final_report", STATUS_FINAL_REPORT_SUBMITTED,
            STATUS_FINAL_REPORT_REQUIRED,
            ACTOR_ELEVATED, NOTIFY_APPLICANT, "Rejecting final report",
        ),
        Transition(
            "complete", STATUS_FINAL_REPORT_SUBMITTED, STATUS_COMPLETE,
            ACTOR_ELEVATED, NOTIFY_APPLICANT, "Completing application",
        ),
    )
}


def generate_application_id(
    now: Optional[datetime] = None, rng: Optional[random.Random] = None
) -> str:
    """Human-readable id, ``GA-<yyyymm>-<nnnn>`` with nnnn in 1000..9999."""
    now = now or utcnow()
    rng = rng or random
    return f"GA-{now:%Y%m}-{rng.randint(1000, 9999)}"


def _append_history(
    application: GrantApplication,
    status: str,
    actor: User,
    notes: Optional[str],
    now: datetime,
) -> GrantStatusEntry:
    history = application.status_history
    if history:
        # Keep the log monotonically time-ordered even if clocks drift
        last = as_utc(history[-1].timestamp)
        if last is not None and last > now:
            now = last
    entry = GrantStatusEntry(
        position=len(history),
        status=status,
        timestamp=now,
        notes=notes,
        changed_by=actor.name,
        changed_by_id=actor.id,
    )
    history.append(entry)
    application.status = status
    application.last_update_timestamp = now
    return entry


class ApplicationService:
    """Service layer for the grant application lifecycle."""

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @staticmethod
    async def _allocate_id(db: AsyncSession, now: datetime) -> str:
        for _ in range(_ID_ATTEMPTS):
            candidate = generate_application_id(now)
            existing = await db.get(GrantApplication, candidate)
            if existing is None:
                return candidate
            logger.info("Application id %s already taken, retrying", candidate)
        raise ConflictOrDuplicate(
            "Could not allocate an application id, please retry",
            action="Submitting grant application",
        )

    @staticmethod
    async def _load_for_update(
        db: AsyncSession, application_id: str, action: str
    ) -> GrantApplication:
        result = await db.execute(
            select(GrantApplication)
            .where(GrantApplication.id == application_id)
            .with_for_update()
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise NotFound("Application not found", action=action)
        return application

    @staticmethod
    async def get_application(
        db: AsyncSession, application_id: str, user: Optional[User]
    ) -> GrantApplication:
        """Return one application to its applicant or an elevated user."""
        action = "Fetching application"
        user = require_user(user, action)
        application = await db.get(GrantApplication, application_id)
        if application is None:
            raise NotFound("Application not found", action=action)
        if application.applicant_id != user.id and not is_elevated(user):
            raise PermissionDenied("You cannot view this application", action=action)
        return application

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user: Optional[User],
        status_filter: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[GrantApplication], int]:
        """Own applications, or every application for elevated users.

        Returns ``(applications, total)``, newest update first.
        """
        user = require_user(user, "Fetching grant applications")
        query = select(GrantApplication)
        count_query = select(func.count(GrantApplication.id))
        if not is_elevated(user):
            query = query.where(GrantApplication.applicant_id == user.id)
            count_query = count_query.where(GrantApplication.applicant_id == user.id)
        if status_filter:
            query = query.where(GrantApplication.status == status_filter)
            count_query = count_query.where(GrantApplication.status == status_filter)

        result = await db.execute(
            query.order_by(GrantApplication.last_update_timestamp.desc())
            .limit(limit)
            .offset(offset)
        )
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    async def _create(
        db: AsyncSession,
        user: User,
        data: ApplicationCreate,
        notes: Optional[str],
        resubmitted_from: Optional[GrantApplication] = None,
    ) -> GrantApplication:
        now = utcnow()
        application = GrantApplication(
            id=await ApplicationService._allocate_id(db, now),
            applicant_id=user.id,
            applicant_name=user.name,
            status=STATUS_PENDING,
            submission_timestamp=now,
            last_update_timestamp=now,
            early_report_files=[],
            final_report_files=[],
            early_report_rejection_count=0,
            final_report_rejection_count=0,
            resubmitted_from_id=resubmitted_from.id if resubmitted_from else None,
            resubmission_count=(
                (resubmitted_from.resubmission_count or 0) + 1
                if resubmitted_from
                else 0
            ),
            status_history=[],
            **data.model_dump(),
        )
        _append_history(application, STATUS_PENDING, user, notes, now)
        db.add(application)
        await db.flush()
        return application

    @staticmethod
    async def submit(
        db: AsyncSession, user: Optional[User], data: ApplicationCreate
    ) -> GrantApplication:
        """Create a Pending application and tell the grant admins."""
        user = require_user(user, "Submitting grant application")
        application = await ApplicationService._create(db, user, data, notes=None)
        await NotificationService.notify_admins(
            db,
            f'New grant application "{application.project_name}" '
            f"submitted by {user.name}.",
            related_application_id=application.id,
            type="new_app",
        )
        logger.info("Application %s submitted by %s", application.id, user.id)
        return application

    @staticmethod
    async def reapply(
        db: AsyncSession,
        user: Optional[User],
        prior_application_id: str,
        data: ApplicationCreate,
    ) -> GrantApplication:
        """Create a new application linked to one of the caller's earlier ones."""
        action = "Re-submitting grant"
        user = require_user(user, action)
        prior = await db.get(GrantApplication, prior_application_id)
        if prior is None:
            raise NotFound("Original application not found", action=action)
        if prior.applicant_id != user.id:
            raise PermissionDenied(
                "You can only re-apply from your own application", action=action
            )
        application = await ApplicationService._create(
            db,
            user,
            data,
            notes=f"Re-submitted from previous application {prior.id}.",
            resubmitted_from=prior,
        )
        await NotificationService.notify_admins(
            db,
            f'Grant re-application "{application.project_name}" '
            f"submitted by {user.name}.",
            related_application_id=application.id,
            type="resubmission",
        )
        logger.info(
            "Application %s re-submitted from %s by %s",
            application.id,
            prior.id,
            user.id,
        )
        return application

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @staticmethod
    async def _transition(
        db: AsyncSession,
        application_id: str,
        actor: Optional[User],
        name: str,
        notes: Optional[str] = None,
        mutate: Optional[Callable[[GrantApplication], None]] = None,
        message: Optional[str] = None,
    ) -> GrantApplication:
        transition = TRANSITIONS[name]
        action = transition.action
        actor = require_user(actor, action)
        application = await ApplicationService._load_for_update(
            db, application_id, action
        )

        if transition.actor == ACTOR_ELEVATED:
            if not is_elevated(actor):
                raise PermissionDenied(
                    "Only Admin or Editor accounts can review applications",
                    action=action,
                )
        elif application.applicant_id != actor.id:
            raise PermissionDenied(
                "Only the applicant can perform this action", action=action
            )

        if application.status != transition.source:
            raise InvalidTransition(
                f"Cannot {name.replace('_', ' ')} while the application is "
                f"'{application.status}' (requires '{transition.source}')",
                action=action,
            )

        if mutate is not None:
            mutate(application)
        _append_history(application, transition.target, actor, notes, utcnow())
        await db.flush()

        text = message or (
            f'Your grant application "{application.project_name}" '
            f"({application.id}) is now {transition.target}."
        )
        if notes:
            text = f"{text} Notes: {notes}"
        if transition.notify == NOTIFY_APPLICANT:
            await NotificationService.notify_user(
                db,
                application.applicant_id,
                text,
                related_application_id=application.id,
                type="status_change",
            )
        else:
            await NotificationService.notify_admins(
                db, text, related_application_id=application.id, type="status_change"
            )

        logger.info(
            "Application %s: %s -> %s by %s (%s)",
            application.id,
            transition.source,
            transition.target,
            actor.id,
            name,
        )
        return application

    @staticmethod
    async def reject(
        db: AsyncSession, application_id: str, actor: Optional[User], notes: Optional[str]
    ) -> GrantApplication:
        return await ApplicationService._transition(
            db, application_id, actor, "reject", notes=notes
        )

    @staticmethod
    async def make_conditional_offer(
        db: AsyncSession,
        application_id: str,
        actor: Optional[User],
        amount,
        notes: Optional[str] = None,
    ) -> GrantApplication:
        return await ApplicationService._transition(
            db,
            application_id,
            actor,
            "make_conditional_offer",
            notes=notes,
            mutate=lambda app: DisbursementLedger.record(
                app, "make_conditional_offer", amount
            ),
        )

    @staticmethod
    async def accept_offer(
        db: AsyncSession, application_id: str, actor: Optional[User]
    ) -> GrantApplication:
        return await ApplicationService._transition(
            db,
            application_id,
            actor,
            "accept_offer",
            notes="Conditional offer accepted by applicant.",
            message=f"Applicant accepted the conditional offer for {application_id}.",
        )

    @staticmethod
    async def decline_offer(
        db: AsyncSession, application_id: str, actor: Optional[User]
    ) -> GrantApplication:
        return await ApplicationService._transition(
            db,
            application_id,
            actor,
            "decline_offer",
            notes="Conditional offer declined by applicant.",
            message=f"Applicant declined the conditional offer for {application_id}.",
        )

    @staticmethod
    async def submit_report(
        db: AsyncSession,
        application_id: str,
        actor: Optional[User],
        kind: str,
        path: str,
        file_name: str,
    ) -> GrantApplication:
        """Append a report file and move to Early/Final Report Submitted."""
        if kind not in REPORT_BUCKETS:
            raise ValidationFailure(
                f"Unknown report kind '{kind}'", action="Submitting report"
            )
        column = f"{kind}_report_files"
        entry = {
            "path": path,
            "file_name": file_name,
            "submitted_at": utcnow().isoformat(),
        }

        def _attach(app: GrantApplication) -> None:
            setattr(app, column, [*(getattr(app, column) or []), entry])

        return await ApplicationService._transition(
            db,
            application_id,
            actor,
            f"submit_{kind}_report",
            mutate=_attach,
            message=(
                f"{kind.capitalize()} report submitted for application "
                f"{application_id}."
            ),
        )

    @staticmethod
    async def approve_early_report(
        db: AsyncSession,
        application_id: str,
        actor: Optional[User],
        amount,
        notes: Optional[str] = None,
    ) -> GrantApplication:
        """Approve the early report and record the initial disbursement."""
        return await ApplicationService._transition(
            db,
            application_id,
            actor,
            "approve_early_report",
            notes=notes,
            mutate=lambda app: DisbursementLedger.record(
                app, "approve_early_report", amount
            ),
        )

    @staticmethod
    async def reject_early_report(
        db: AsyncSession, application_id: str, actor: Optional[User], notes: Optional[str]
    ) -> GrantApplication:
        def _count(app: GrantApplication) -> None:
            app.early_report_rejection_count = (app.early_report_rejection_count or 0) + 1

        return await ApplicationService._transition(
            db, application_id, actor, "reject_early_report", notes=notes, mutate=_count
        )

    @staticmethod
    async def reject_final_report(
        db: AsyncSession, application_id: str, actor: Optional[User], notes: Optional[str]
    ) -> GrantApplication:
        def _count(app: GrantApplication) -> None:
            app.final_report_rejection_count = (app.final_report_rejection_count or 0) + 1

        return await ApplicationService._transition(
            db, application_id, actor, "reject_final_report", notes=notes, mutate=_count
        )

    @staticmethod
    async def complete(
        db: AsyncSession,
        application_id: str,
        actor: Optional[User],
        amount,
        notes: Optional[str] = None,
    ) -> GrantApplication:
        """Close the grant and record the final disbursement."""
        return await ApplicationService._transition(
            db,
            application_id,
            actor,
            "complete",
            notes=notes,
            mutate=lambda app: DisbursementLedger.record(app, "complete", amount),
        )

    # ------------------------------------------------------------------
    # Reports and analytics
    # ------------------------------------------------------------------

    @staticmethod
    async def get_report_file(
        db: AsyncSession,
        application_id: str,
        kind: str,
        index: int,
        user: Optional[User],
    ) -> tuple[str, dict]:
        """Return ``(bucket, file_entry)`` for a submitted report file."""
        action = "Creating signed URL"
        if kind not in REPORT_BUCKETS:
            raise ValidationFailure(f"Unknown report kind '{kind}'", action=action)
        application = await ApplicationService.get_application(
            db, application_id, user
        )
        files = getattr(application, f"{kind}_report_files") or []
        if index < 0 or index >= len(files):
            raise NotFound("Report file not found", action=action)
        return REPORT_BUCKETS[kind], files[index]

    @staticmethod
    async def grant_analytics(db: AsyncSession, user: Optional[User]) -> dict:
        """Counts by status and category plus approved/disbursed totals."""
        if not is_elevated(user):
            raise PermissionDenied(
                "Grant analytics are restricted to staff", action="Fetching analytics"
            )
        status_rows = await db.execute(
            select(GrantApplication.status, func.count(GrantApplication.id)).group_by(
                GrantApplication.status
            )
        )
        by_status = {row[0]: row[1] for row in status_rows.all()}

        category_rows = await db.execute(
            select(
                GrantApplication.grant_category_id, func.count(GrantApplication.id)
            ).group_by(GrantApplication.grant_category_id)
        )
        by_category = {
            (row[0] or "uncategorised"): row[1] for row in category_rows.all()
        }

        totals = (
            await db.execute(
                select(
                    func.coalesce(func.sum(GrantApplication.amount_requested), 0),
                    func.coalesce(func.sum(GrantApplication.amount_approved), 0),
                    func.coalesce(
                        func.sum(GrantApplication.initial_disbursement_amount), 0
                    ),
                    func.coalesce(
                        func.sum(GrantApplication.final_disbursement_amount), 0
                    ),
                )
            )
        ).one()

        return {
            "total_applications": sum(by_status.values()),
            "by_status": by_status,
            "by_category": by_category,
            "total_requested": float(totals[0] or 0),
            "total_approved": float(totals[1] or 0),
            "total_disbursed": float((totals[2] or 0) + (totals[3] or 0)),
        }


def report_object_path(user_id: uuid.UUID, application_id: str, file_name: str) -> str:
    """Blob path ``<user>/<app>/<millis>-<name>`` for an uploaded report."""
    millis = int(utcnow().timestamp() * 1000)
    safe_name = file_name.replace("/", "_").replace("\\", "_")
    return f"{user_id}/{application_id}/{millis}-{safe_name}"
