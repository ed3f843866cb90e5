"""Create the Tourism Hub schema.

Revision ID: 0001_tourism_schema
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "0001_tourism_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), server_default="User", nullable=False),
        sa.Column("tier", sa.Text(), server_default="Free", nullable=False),
        sa.Column("hashed_password", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('Admin','Editor','Tourism Player','User')",
            name="users_role_check",
        ),
        sa.CheckConstraint("tier IN ('Free','Premium')", name="users_tier_check"),
    )

    # --- grant_applications ---
    op.create_table(
        "grant_applications",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column(
            "applicant_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("applicant_name", sa.Text(), nullable=False),
        sa.Column("organization_name", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.Text(), nullable=True),
        sa.Column("contact_phone", sa.Text(), nullable=True),
        sa.Column("project_name", sa.Text(), nullable=False),
        sa.Column("project_description", sa.Text(), nullable=True),
        sa.Column("grant_category_id", sa.Text(), nullable=True),
        sa.Column("amount_requested", sa.Numeric(14, 2), nullable=True),
        sa.Column("status", sa.Text(), server_default="Pending", nullable=False),
        sa.Column("submission_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_update_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("amount_approved", sa.Numeric(14, 2), nullable=True),
        sa.Column("initial_disbursement_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("final_disbursement_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column(
            "early_report_files", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False
        ),
        sa.Column(
            "final_report_files", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False
        ),
        sa.Column(
            "early_report_rejection_count", sa.Integer(), server_default="0", nullable=False
        ),
        sa.Column(
            "final_report_rejection_count", sa.Integer(), server_default="0", nullable=False
        ),
        sa.Column(
            "resubmitted_from_id",
            sa.Text(),
            sa.ForeignKey("grant_applications.id"),
            nullable=True,
        ),
        sa.Column("resubmission_count", sa.Integer(), server_default="0", nullable=False),
        sa.CheckConstraint(
            "status IN ('Pending','Rejected','Conditional Offer','Early Report Required',"
            "'Early Report Submitted','Final Report Required','Final Report Submitted',"
            "'Complete')",
            name="grant_applications_status_check",
        ),
        sa.CheckConstraint(
            "amount_approved IS NULL OR amount_approved >= 0",
            name="grant_applications_amount_approved_check",
        ),
    )
    op.create_index(
        "ix_grant_applications_applicant_id", "grant_applications", ["applicant_id"]
    )
    op.create_index(
        "ix_grant_applications_last_update",
        "grant_applications",
        ["last_update_timestamp"],
    )

    # --- grant_status_history (append-only) ---
    op.create_table(
        "grant_status_history",
        _uuid_pk(),
        sa.Column(
            "application_id",
            sa.Text(),
            sa.ForeignKey("grant_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.Text(), nullable=False),
        sa.Column("changed_by_id", UUID(as_uuid=True), nullable=True),
        sa.UniqueConstraint("application_id", "position", name="uq_status_history_pos"),
    )
    op.create_index(
        "ix_grant_status_history_application_id",
        "grant_status_history",
        ["application_id"],
    )
    # History rows may be inserted and deleted with their application, never edited
    op.execute(
        """
        CREATE OR REPLACE FUNCTION grant_status_history_no_update()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'grant_status_history is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        "CREATE TRIGGER grant_status_history_append_only "
        "BEFORE UPDATE ON grant_status_history "
        "FOR EACH ROW EXECUTE FUNCTION grant_status_history_no_update()"
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        _uuid_pk(),
        sa.Column("recipient_id", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "related_application_id",
            sa.Text(),
            sa.ForeignKey("grant_applications.id"),
            nullable=True,
        ),
        sa.Column("type", sa.Text(), server_default="info", nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_by", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column(
            "cleared_by", JSONB(), server_default=sa.text("'[]'::jsonb"), nullable=False
        ),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])

    # --- clusters ---
    op.create_table(
        "clusters",
        _uuid_pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("display_address", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("is_hidden", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("owner_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("view_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("click_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("average_rating", sa.Float(), nullable=True),
        sa.Column("review_count", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_clusters_owner_id", "clusters", ["owner_id"])

    op.create_table(
        "cluster_reviews",
        _uuid_pk(),
        sa.Column(
            "cluster_id",
            UUID(as_uuid=True),
            sa.ForeignKey("clusters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("cluster_id", "user_id", name="uq_cluster_review_user"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="cluster_reviews_rating_check"),
    )
    op.create_index("ix_cluster_reviews_cluster_id", "cluster_reviews", ["cluster_id"])

    op.create_table(
        "cluster_analytics",
        _uuid_pk(),
        sa.Column(
            "cluster_id",
            UUID(as_uuid=True),
            sa.ForeignKey("clusters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("views", sa.Integer(), server_default="0", nullable=False),
        sa.Column("clicks", sa.Integer(), server_default="0", nullable=False),
        sa.UniqueConstraint("cluster_id", "date", name="uq_cluster_analytics_day"),
    )

    # --- events ---
    op.create_table(
        "events",
        _uuid_pk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("image", sa.Text(), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_events_start_date", "events", ["start_date"])

    # --- itineraries ---
    op.create_table(
        "itineraries",
        _uuid_pk(),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_table(
        "itinerary_items",
        _uuid_pk(),
        sa.Column(
            "itinerary_id",
            UUID(as_uuid=True),
            sa.ForeignKey("itineraries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("item_type", sa.Text(), nullable=False),
        sa.Column("item_name", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("itinerary_id", "item_id", name="uq_itinerary_item"),
        sa.CheckConstraint(
            "item_type IN ('cluster','event')", name="itinerary_items_type_check"
        ),
    )

    # --- feedback ---
    op.create_table(
        "feedback",
        _uuid_pk(),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("page_context", sa.Text(), nullable=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=True),
        sa.Column("user_email", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="new", nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('new','seen','in_progress','resolved')",
            name="feedback_status_check",
        ),
    )

    # --- visitor_analytics / ai_insights ---
    op.create_table(
        "visitor_analytics",
        _uuid_pk(),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("country", sa.Text(), nullable=False),
        sa.Column("visitor_type", sa.Text(), nullable=False),
        sa.Column("count", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "year", "month", "country", "visitor_type", name="uq_visitor_analytics_row"
        ),
        sa.CheckConstraint("month BETWEEN 1 AND 12", name="visitor_analytics_month_check"),
    )
    op.create_table(
        "ai_insights",
        _uuid_pk(),
        sa.Column("view_name", sa.Text(), nullable=False),
        sa.Column("filter_key", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("data_last_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("view_name", "filter_key", name="uq_ai_insight_view_filter"),
    )

    # --- app_config ---
    op.create_table(
        "app_config",
        sa.Column("key", sa.Text(), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_by", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("app_config")
    op.drop_table("ai_insights")
    op.drop_table("visitor_analytics")
    op.drop_table("feedback")
    op.drop_table("itinerary_items")
    op.drop_table("itineraries")
    op.drop_index("ix_events_start_date", table_name="events")
    op.drop_table("events")
    op.drop_table("cluster_analytics")
    op.drop_index("ix_cluster_reviews_cluster_id", table_name="cluster_reviews")
    op.drop_table("cluster_reviews")
    op.drop_index("ix_clusters_owner_id", table_name="clusters")
    op.drop_table("clusters")
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.execute(
        "DROP TRIGGER IF EXISTS grant_status_history_append_only ON grant_status_history"
    )
    op.execute("DROP FUNCTION IF EXISTS grant_status_history_no_update()")
    op.drop_index(
        "ix_grant_status_history_application_id", table_name="grant_status_history"
    )
    op.drop_table("grant_status_history")
    op.drop_index(
        "ix_grant_applications_last_update", table_name="grant_applications"
    )
    op.drop_index(
        "ix_grant_applications_applicant_id", table_name="grant_applications"
    )
    op.drop_table("grant_applications")
    op.drop_table("users")
