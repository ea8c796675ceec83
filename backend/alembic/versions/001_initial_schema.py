"""Initial schema: users, categories, locations, activities, bookings.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'user'")),
        sa.Column("dob", sa.Date(), nullable=True),
        sa.Column("profile_image", sa.Text(), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False, server_default=""),
        *_timestamps(),
        sa.CheckConstraint("role IN ('admin', 'user')", name="check_user_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Categories table
    op.create_table(
        "categories",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # Locations table
    op.create_table(
        "locations",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("address", sa.String(500), nullable=False, server_default=""),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column(
            "category_id",
            sa.String(64),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("icon", sa.Text(), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("lat >= -90 AND lat <= 90", name="check_location_lat"),
        sa.CheckConstraint("lng >= -180 AND lng <= 180", name="check_location_lng"),
    )
    op.create_index("ix_locations_category_id", "locations", ["category_id"])

    # Activities table
    op.create_table(
        "activities",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(5000), nullable=False, server_default=""),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.String(10), nullable=False, server_default=""),
        sa.Column("end_time", sa.String(10), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_expired", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("difficulty", sa.String(20), nullable=False, server_default=sa.text("'easy'")),
        sa.Column("age_group", sa.String(20), nullable=False, server_default=sa.text("'all'")),
        sa.Column("estimated_duration", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_cost", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("participant_limit", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_participants", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("participant_limit >= 0", name="check_participant_limit_non_negative"),
        sa.CheckConstraint("current_participants >= 0", name="check_current_participants_non_negative"),
        sa.CheckConstraint("difficulty IN ('easy', 'moderate', 'hard')", name="check_activity_difficulty"),
        sa.CheckConstraint(
            "age_group IN ('all', 'adults', 'children', 'seniors')", name="check_activity_age_group"
        ),
    )
    # Upcoming-activity lookups and dashboard range counts
    op.create_index("ix_activities_start_date", "activities", ["start_date"])
    op.create_index("ix_activities_created_at", "activities", ["created_at"])

    op.create_table(
        "activity_locations",
        sa.Column(
            "activity_id",
            sa.String(64),
            sa.ForeignKey("activities.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "location_id",
            sa.String(64),
            sa.ForeignKey("locations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # Bookings table
    # No unique (user_id, activity_id): cancelled bookings may repeat. The
    # one-active-booking rule is checked inside the admission transaction.
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("activity_id", sa.String(64), sa.ForeignKey("activities.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('confirmed', 'pending', 'cancelled')", name="check_booking_status"
        ),
    )
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_activity_id", "bookings", ["activity_id"])
    # Duplicate check: WHERE user_id = ? AND activity_id = ? AND status IN (...)
    op.create_index("ix_bookings_user_activity", "bookings", ["user_id", "activity_id"])
    op.create_index("ix_bookings_created_at", "bookings", ["created_at"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("activity_locations")
    op.drop_table("activities")
    op.drop_table("locations")
    op.drop_table("categories")
    op.drop_table("users")
