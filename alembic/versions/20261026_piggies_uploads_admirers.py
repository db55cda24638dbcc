"""piggies: media uploads ownership, admirers, looking now, favorite users

- media_uploads (кто загрузил ключ хранилища)
- waves / profile_views
- looking_now_posts
- favorite_users
"""

from alembic import op
import sqlalchemy as sa

revision = "20261026_piggies_uploads_admirers"
down_revision = "20261019_piggies_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "media_uploads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False, comment="photos|albums|messages|snaps"),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("storage_key", name="uq_media_uploads_storage_key"),
    )
    op.create_index("ix_media_uploads_user", "media_uploads", ["user_id", "uploaded_at"])

    # --- поклонники ---
    op.create_table(
        "waves",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("waver_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("waved_at_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("waved_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("waver_id", "waved_at_id", name="uq_wave_pair"),
    )
    op.create_index("ix_waves_waved_at_id", "waves", ["waved_at_id", "waved_at"])

    op.create_table(
        "profile_views",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("viewer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("viewed_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("view_date", sa.Date(), nullable=False),
        sa.Column("viewed_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("viewer_id", "viewed_id", "view_date", name="uq_profile_view_day"),
    )
    op.create_index("ix_profile_views_viewer_date", "profile_views", ["viewer_id", "view_date"])
    op.create_index("ix_profile_views_viewed", "profile_views", ["viewed_id", "viewed_at"])

    # --- ищу сейчас ---
    op.create_table(
        "looking_now_posts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location_name", sa.String(128), nullable=True),
        sa.Column("can_host", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_looking_now_user", "looking_now_posts", ["user_id", "created_at"])
    op.create_index("ix_looking_now_active", "looking_now_posts", ["is_active", "created_at"])

    # --- избранные пользователи ---
    op.create_table(
        "favorite_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("favorite_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("favorited_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "favorite_id", name="uq_favorite_user"),
    )
    op.create_index("ix_favorite_users_favorite", "favorite_users", ["favorite_id"])


def downgrade():
    for table in ("favorite_users", "looking_now_posts", "profile_views", "waves", "media_uploads"):
        op.drop_table(table)
