"""Baseline schema: accounts, audit, cities, ads and category details, moderation, notifications.

Revision ID: a0c1d2e3f4a5
Revises:
Create Date: 2026-10-01
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a0c1d2e3f4a5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _bool(name: str, default: bool = False) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true() if default else sa.false())


def upgrade() -> None:
    op.create_table(
        "cities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("slug", sa.String(128), nullable=False),
        sa.Column("region", sa.String(128), nullable=True),
        sa.Column("province", sa.String(128), nullable=True),
        sa.Column("province_code", sa.String(8), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        _bool("is_active", True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("idx_cities_active_sort", "cities", ["is_active", "sort_order"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("handle", sa.String(30), nullable=True),
        sa.Column("telegram_handle", sa.String(64), nullable=True),
        sa.Column("city_id", sa.Integer(), nullable=True),
        sa.Column("city_last_changed_at", sa.DateTime(), nullable=True),
        _bool("is_active", True),
        _bool("verified"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["city_id"], ["cities.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("email"),
        sa.UniqueConstraint("handle"),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("key"),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("role_id", sa.Integer(), primary_key=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), primary_key=True),
        sa.Column("permission_id", sa.Integer(), primary_key=True),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["permission_id"], ["permissions.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("actor_role", sa.String(32), nullable=False, server_default="SYSTEM"),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=False, server_default="SUCCESS"),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("ip", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_events_action", "audit_events", ["action"])
    op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])
    op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])

    # ads.cover_media_id -> media_assets is added after media_assets exists.
    op.create_table(
        "ads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("city_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("expiration_date", sa.DateTime(), nullable=True),
        sa.Column("views_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("contact_clicks_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cover_media_id", sa.Integer(), nullable=True),
        sa.Column("media_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["city_id"], ["cities.id"]),
    )
    op.create_index("idx_ads_user", "ads", ["user_id"])
    op.create_index("idx_ads_status_category", "ads", ["status", "category"])
    op.create_index("idx_ads_city_status", "ads", ["city_id", "status"])
    op.create_index("idx_ads_expiration", "ads", ["expiration_date"])

    op.create_table(
        "media_assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ad_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False, server_default="IMAGE"),
        sa.Column("role", sa.String(16), nullable=False, server_default="GALLERY"),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("mime_type", sa.String(64), nullable=True),
        sa.Column("checksum", sa.String(64), nullable=True),
        sa.Column("alt", sa.String(255), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("bytes", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_media_assets_ad_order", "media_assets", ["ad_id", "order"])

    with op.batch_alter_table("ads") as batch:
        batch.create_foreign_key(
            "fk_ads_cover_media_id", "media_assets", ["cover_media_id"], ["id"], ondelete="SET NULL"
        )

    op.create_table(
        "ad_housing",
        sa.Column("ad_id", sa.Integer(), primary_key=True),
        sa.Column("rental_kind", sa.String(16), nullable=False),
        sa.Column("unit_type", sa.String(32), nullable=False),
        sa.Column("property_type", sa.String(32), nullable=False),
        sa.Column("availability_start_date", sa.Date(), nullable=False),
        sa.Column("availability_end_date", sa.Date(), nullable=True),
        sa.Column("contract_type", sa.String(16), nullable=False, server_default="NONE"),
        _bool("residenza_available"),
        sa.Column("price_type", sa.String(16), nullable=False),
        sa.Column("price_amount", sa.Integer(), nullable=True),
        _bool("price_negotiable"),
        sa.Column("deposit_amount", sa.Integer(), nullable=True),
        sa.Column("agency_fee_amount", sa.Integer(), nullable=True),
        sa.Column("bills_policy", sa.String(16), nullable=False, server_default="EXCLUDED"),
        sa.Column("bills_monthly_estimate", sa.Integer(), nullable=True),
        sa.Column("bills_notes", sa.Text(), nullable=True),
        sa.Column("heating_type", sa.String(16), nullable=False, server_default="UNKNOWN"),
        sa.Column("floor_number", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("number_of_bathrooms", sa.Integer(), nullable=False, server_default="1"),
        _bool("furnished"),
        _bool("has_elevator"),
        _bool("private_bathroom"),
        _bool("kitchen_equipped"),
        _bool("wifi"),
        _bool("washing_machine"),
        _bool("dishwasher"),
        _bool("balcony"),
        _bool("air_conditioning"),
        _bool("double_glazed_windows"),
        _bool("newly_renovated"),
        _bool("clothes_dryer"),
        sa.Column("household_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("household_gender", sa.String(16), nullable=True),
        sa.Column("gender_preference", sa.String(16), nullable=False, server_default="ANY"),
        sa.Column("household_description", sa.String(1000), nullable=True),
        sa.Column("neighborhood", sa.String(255), nullable=True),
        sa.Column("street_hint", sa.String(255), nullable=True),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("transit_lines", sa.JSON(), nullable=True),
        sa.Column("shops_nearby", sa.JSON(), nullable=True),
        sa.Column("notes", sa.String(2000), nullable=True),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_ad_housing_rental_kind", "ad_housing", ["rental_kind"])
    op.create_index("idx_ad_housing_start", "ad_housing", ["availability_start_date"])

    op.create_table(
        "housing_drafts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("ad_id", sa.Integer(), nullable=True),
        sa.Column("mode", sa.String(16), nullable=False, server_default="create"),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("state_json", sa.JSON(), nullable=False),
        sa.Column("images_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_housing_drafts_user", "housing_drafts", ["user_id", "updated_at"])

    op.create_table(
        "ad_transportation",
        sa.Column("ad_id", sa.Integer(), primary_key=True),
        sa.Column("direction", sa.String(32), nullable=False),
        sa.Column("departure_city", sa.String(128), nullable=False),
        sa.Column("departure_country", sa.String(16), nullable=False),
        sa.Column("arrival_city", sa.String(128), nullable=False),
        sa.Column("arrival_country", sa.String(16), nullable=False),
        sa.Column("additional_pickup_cities", sa.JSON(), nullable=True),
        sa.Column("additional_delivery_cities", sa.JSON(), nullable=True),
        sa.Column("route_notes", sa.Text(), nullable=True),
        sa.Column("flight_date", sa.Date(), nullable=False),
        sa.Column("capacity_kg", sa.Float(), nullable=True),
        sa.Column("min_accept_kg", sa.Float(), nullable=True),
        _bool("subject_to_inspection", True),
        _bool("documents_accepted"),
        sa.Column("accepted_item_types", sa.JSON(), nullable=True),
        sa.Column("restricted_item_types", sa.JSON(), nullable=True),
        sa.Column("special_capacity_notes", sa.Text(), nullable=True),
        _bool("offers_postal_forwarding"),
        _bool("accepts_postal_dropoff"),
        sa.Column("postal_notes", sa.Text(), nullable=True),
        sa.Column("delivery_eta_days", sa.Integer(), nullable=True),
        sa.Column("price_mode", sa.String(16), nullable=False, server_default="NEGOTIABLE"),
        sa.Column("price_per_kg", sa.Float(), nullable=True),
        sa.Column("fixed_total_price", sa.Float(), nullable=True),
        sa.Column("price_notes", sa.Text(), nullable=True),
        sa.Column("terms_notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "idx_ad_transportation_direction_date", "ad_transportation", ["direction", "flight_date"]
    )

    op.create_table(
        "ad_marketplace",
        sa.Column("ad_id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("condition", sa.String(16), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_ad_marketplace_category", "ad_marketplace", ["category"])

    op.create_table(
        "ad_service",
        sa.Column("ad_id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=False),
        sa.Column("service_category", sa.String(32), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("rate_basis", sa.String(16), nullable=True),
        sa.Column("rate_amount", sa.Float(), nullable=True),
        sa.Column("availability_days", sa.JSON(), nullable=True),
        sa.Column("service_area", sa.String(255), nullable=True),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("portfolio_links", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_ad_service_category", "ad_service", ["service_category"])

    op.create_table(
        "moderation_actions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("ad_id", sa.Integer(), nullable=True),
        sa.Column("target_type", sa.String(16), nullable=False, server_default="AD"),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("reason_code", sa.String(32), nullable=True),
        sa.Column("reason_text", sa.Text(), nullable=True),
        sa.Column("prev_status", sa.String(32), nullable=True),
        sa.Column("next_status", sa.String(32), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_moderation_actions_ad", "moderation_actions", ["ad_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="AD_EVENT"),
        sa.Column("severity", sa.String(16), nullable=False, server_default="INFO"),
        sa.Column("title", sa.String(140), nullable=False),
        sa.Column("body", sa.String(1000), nullable=True),
        sa.Column("ad_id", sa.Integer(), nullable=True),
        sa.Column("deep_link", sa.String(512), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["ad_id"], ["ads.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_notifications_user_read", "notifications", ["user_id", "read_at"])
    op.create_index("idx_notifications_user_created", "notifications", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("moderation_actions")
    op.drop_table("ad_service")
    op.drop_table("ad_marketplace")
    op.drop_table("ad_transportation")
    op.drop_table("housing_drafts")
    op.drop_table("ad_housing")
    with op.batch_alter_table("ads") as batch:
        batch.drop_constraint("fk_ads_cover_media_id", type_="foreignkey")
    op.drop_table("media_assets")
    op.drop_table("ads")
    op.drop_table("audit_events")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_table("cities")
