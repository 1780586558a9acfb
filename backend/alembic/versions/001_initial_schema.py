"""Create users, tours, tour_guides and reviews

Revision ID: 001
Revises: None
Create Date: 2026-10-17 00:00:00.000000+00:00

Foreign keys cascade on delete: removing a tour removes its reviews and
guide links; removing a user removes their reviews and guide links.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("photo", sa.String(255), nullable=False, server_default="default.jpg"),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_reset_token", sa.String(64), nullable=True),
        sa.Column("password_reset_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_password_reset_token", "users", ["password_reset_token"])

    op.create_table(
        "tours",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(40), nullable=False),
        sa.Column("slug", sa.String(80), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("max_group_size", sa.Integer(), nullable=False),
        sa.Column("difficulty", sa.String(20), nullable=False),
        sa.Column("ratings_average", sa.Float(), nullable=False, server_default="4.5"),
        sa.Column("ratings_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("price_discount", sa.Float(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_cover", sa.String(255), nullable=False),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_dates", sa.JSON(), nullable=False),
        sa.Column("secret_tour", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("start_lat", sa.Float(), nullable=True),
        sa.Column("start_lng", sa.Float(), nullable=True),
        sa.Column("start_address", sa.String(255), nullable=True),
        sa.Column("start_description", sa.String(255), nullable=True),
        sa.Column("locations", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_tours"),
        sa.UniqueConstraint("name", name="uq_tours_name"),
    )
    op.create_index("idx_tours_price_ratings", "tours", ["price", "ratings_average"])
    op.create_index("idx_tours_slug", "tours", ["slug"])
    op.create_index("idx_tours_start_point", "tours", ["start_lat", "start_lng"])

    op.create_table(
        "tour_guides",
        sa.Column("tour_id", sa.Uuid(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("tour_id", "user_id", name="pk_tour_guides"),
    )

    op.create_table(
        "reviews",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("review", sa.Text(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("tour_id", sa.Uuid(), sa.ForeignKey("tours.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_reviews"),
        sa.UniqueConstraint("tour_id", "user_id", name="uq_reviews_tour_user"),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )
    op.create_index("ix_reviews_tour_id", "reviews", ["tour_id"])
    op.create_index("ix_reviews_user_id", "reviews", ["user_id"])


def downgrade() -> None:
    op.drop_table("reviews")
    op.drop_table("tour_guides")
    op.drop_table("tours")
    op.drop_table("users")
