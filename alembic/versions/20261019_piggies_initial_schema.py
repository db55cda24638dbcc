"""piggies: initial schema

- users / profiles
- conversations / messages (квитанции прочтения, снапы, скрытие админом)
- private_albums / album_photos / album_access_grants
- referrals / referral_rewards
- appeals / moderation_notifications / moderation_rules
- user_reports / message_reports / blocked_users
- venues / venue_favorites / venue_reports
- push_subscriptions / events
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_piggies_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # --- пользователи ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("last_active", sa.DateTime(), nullable=True),
        sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("subscription_tier", sa.String(16), nullable=False, server_default="free", comment="free|pro|ultra"),
        sa.Column("subscription_status", sa.String(16), nullable=True, comment="active|canceled|revoked"),
        sa.Column("show_online_status", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("hide_from_discovery", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("push_notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("referral_code", sa.String(8), nullable=True),
        sa.Column("referred_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("referral_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("referral_ultra_expires_at", sa.DateTime(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_banned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("banned_at", sa.DateTime(), nullable=True),
        sa.Column("banned_reason", sa.String(), nullable=True),
        sa.Column("is_suspended", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("suspended_until", sa.DateTime(), nullable=True),
        sa.Column("suspended_reason", sa.String(), nullable=True),
        sa.Column("warning_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_referral_code", "users", ["referral_code"], unique=True)
    op.create_index("ix_users_is_admin", "users", ["is_admin"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("display_name", sa.String(64), nullable=True),
        sa.Column("bio", sa.String(1000), nullable=True),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("photo_keys", sa.JSON(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location_name", sa.String(128), nullable=True),
        sa.Column("onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("looking_for", sa.String(255), nullable=True),
        sa.Column("interests", sa.JSON(), nullable=False),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)

    # --- диалоги и сообщения ---
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_min", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_max", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("last_message_id", sa.Integer(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_min", "user_max", name="uq_conversation_pair"),
        sa.CheckConstraint("user_min < user_max", name="ck_conversation_min_lt_max"),
    )
    op.create_index("ix_conversations_user_min", "conversations", ["user_min"])
    op.create_index("ix_conversations_user_max", "conversations", ["user_max"])
    op.create_index("ix_conversations_last_message_at", "conversations", ["last_message_at"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("format", sa.String(16), nullable=False, server_default="text"),
        sa.Column("storage_key", sa.String(512), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=False),
        sa.Column("read_at", sa.JSON(), nullable=False),
        sa.Column("snap_view_mode", sa.String(16), nullable=True),
        sa.Column("snap_duration", sa.Integer(), nullable=True),
        sa.Column("snap_viewed_at", sa.DateTime(), nullable=True),
        sa.Column("snap_expired", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hidden_at", sa.DateTime(), nullable=True),
        sa.Column("hidden_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("hidden_reason", sa.String(), nullable=True),
    )
    op.create_index("ix_messages_conversation_sent_at", "messages", ["conversation_id", "sent_at"])
    op.create_index("ix_messages_sender", "messages", ["sender_id"])

    # --- приватные альбомы ---
    op.create_table(
        "private_albums",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("cover_photo_id", sa.Integer(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("default_owner_id", sa.Integer(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_private_albums_user_id", "private_albums", ["user_id"])

    op.create_table(
        "album_photos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("album_id", sa.Integer(), sa.ForeignKey("private_albums.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("caption", sa.String(280), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_album_photos_album_order", "album_photos", ["album_id", "order"])
    op.create_index("ix_album_photos_user", "album_photos", ["user_id"])

    op.create_table(
        "album_access_grants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("album_id", sa.Integer(), sa.ForeignKey("private_albums.id", ondelete="CASCADE"), nullable=False),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("granted_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True),
        sa.Column("granted_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("album_id", "granted_user_id", name="uq_album_grant_album_grantee"),
    )
    op.create_index("ix_album_grants_owner_granted", "album_access_grants", ["owner_user_id", "granted_user_id"])
    op.create_index("ix_album_grants_granted", "album_access_grants", ["granted_user_id"])

    # --- рефералы ---
    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("referrer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referred_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("referral_code", sa.String(8), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("activated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_referrals_referrer_status", "referrals", ["referrer_id", "status"])
    op.create_index("ix_referrals_status", "referrals", ["status"])

    op.create_table(
        "referral_rewards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referral_id", sa.Integer(), sa.ForeignKey("referrals.id", ondelete="CASCADE"), nullable=False),
        sa.Column("days_granted", sa.Integer(), nullable=False),
        sa.Column("granted_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_referral_rewards_user_id", "referral_rewards", ["user_id"])

    # --- модерация ---
    op.create_table(
        "appeals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("appeal_type", sa.String(16), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("additional_info", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("admin_response", sa.Text(), nullable=True),
        sa.Column("original_banned_reason", sa.String(), nullable=True),
        sa.Column("original_suspended_until", sa.DateTime(), nullable=True),
        sa.Column("original_warning_count", sa.Integer(), nullable=True),
    )
    op.create_index("ix_appeals_user_status", "appeals", ["user_id", "status"])
    op.create_index("ix_appeals_status", "appeals", ["status"])
    op.create_index("ix_appeals_submitted_at", "appeals", ["submitted_at"])

    op.create_table(
        "moderation_notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("suspended_until", sa.DateTime(), nullable=True),
        sa.Column("warning_number", sa.Integer(), nullable=True),
        sa.Column("appeal_id", sa.Integer(), sa.ForeignKey("appeals.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("read_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_moderation_notifications_user_read", "moderation_notifications", ["user_id", "read_at"])

    op.create_table(
        "moderation_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("trigger_type", sa.String(32), nullable=False, comment="warning_count|report_count"),
        sa.Column("threshold", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(16), nullable=False, comment="warning|suspension|ban"),
        sa.Column("suspension_days", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_moderation_rules_enabled_trigger", "moderation_rules", ["enabled", "trigger_type"])

    op.create_table(
        "user_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reporter_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reported_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("details", sa.String(), nullable=True),
        sa.Column("reported_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("admin_notes", sa.String(), nullable=True),
        sa.Column("action_taken", sa.String(16), nullable=True),
    )
    op.create_index("ix_user_reports_status", "user_reports", ["status"])
    op.create_index("ix_user_reports_reported", "user_reports", ["reported_id"])
    op.create_index("ix_user_reports_reporter", "user_reports", ["reporter_id"])

    op.create_table(
        "message_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reporter_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message_id", sa.Integer(), sa.ForeignKey("messages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message_sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("details", sa.String(), nullable=True),
        sa.Column("reported_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("admin_notes", sa.String(), nullable=True),
        sa.Column("action_taken", sa.String(32), nullable=True),
        sa.UniqueConstraint("message_id", "reporter_id", name="uq_message_report_once"),
    )
    op.create_index("ix_message_reports_status", "message_reports", ["status"])
    op.create_index("ix_message_reports_sender", "message_reports", ["message_sender_id"])

    op.create_table(
        "blocked_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("blocker_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("blocked_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("blocked_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("blocker_id", "blocked_id", name="uq_blocked_pair"),
    )
    op.create_index("ix_blocked_users_blocked", "blocked_users", ["blocked_id"])

    # --- каталог мест ---
    op.create_table(
        "venues",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("address", sa.String(255), nullable=False),
        sa.Column("city", sa.String(128), nullable=False),
        sa.Column("state", sa.String(128), nullable=True),
        sa.Column("country", sa.String(128), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("website", sa.String(512), nullable=True),
        sa.Column("instagram", sa.String(128), nullable=True),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("hours_note", sa.String(255), nullable=True),
        sa.Column("submitted_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("favorite_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_venues_status", "venues", ["status"])
    op.create_index("ix_venues_category_status", "venues", ["category", "status"])
    op.create_index("ix_venues_submitted_by", "venues", ["submitted_by", "submitted_at"])
    op.create_index("ix_venues_city", "venues", ["city"])

    op.create_table(
        "venue_favorites",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("favorited_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "venue_id", name="uq_venue_favorite"),
    )
    op.create_index("ix_venue_favorites_venue", "venue_favorites", ["venue_id"])

    op.create_table(
        "venue_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("venue_id", sa.Integer(), sa.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reporter_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("details", sa.String(1000), nullable=True),
        sa.Column("reported_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("venue_id", "reporter_id", name="uq_venue_report_once"),
    )
    op.create_index("ix_venue_reports_status", "venue_reports", ["status"])

    # --- push и журнал событий ---
    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.String(1024), nullable=False),
        sa.Column("p256dh", sa.String(255), nullable=False),
        sa.Column("auth", sa.String(255), nullable=False),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("endpoint", name="uq_push_subscriptions_endpoint"),
    )
    op.create_index("ix_push_subscriptions_user", "push_subscriptions", ["user_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("target_user_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("data", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("idempotency_key", sa.String(64), nullable=True),
        sa.UniqueConstraint("idempotency_key", name="uq_events_idempotency_key"),
    )
    op.create_index("ix_events_target_user", "events", ["target_user_id"])


def downgrade():
    # обратный порядок из-за внешних ключей
    for table in (
        "events",
        "push_subscriptions",
        "venue_reports",
        "venue_favorites",
        "venues",
        "blocked_users",
        "message_reports",
        "user_reports",
        "moderation_rules",
        "moderation_notifications",
        "appeals",
        "referral_rewards",
        "referrals",
        "album_access_grants",
        "album_photos",
        "private_albums",
        "messages",
        "conversations",
        "profiles",
        "users",
    ):
        op.drop_table(table)
