"""lucky draw schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "role IN ('guest','organizer','super_admin')", name=op.f("ck_users_role_enum")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_index(op.f("ix_users_tenant_id"), "users", ["tenant_id"])

    op.create_table(
        "events",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_events")),
    )
    op.create_index(op.f("ix_events_tenant_id"), "events", ["tenant_id"])

    op.create_table(
        "photos",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("contributor_name", sa.String(length=100), nullable=True),
        sa.Column("full_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','approved','rejected')",
            name=op.f("ck_photos_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_photos_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_photos")),
    )
    op.create_index(op.f("ix_photos_event_id"), "photos", ["event_id"])

    op.create_table(
        "draw_configurations",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("prize_tiers", sa.JSON(), nullable=False),
        sa.Column("max_entries_per_participant", sa.Integer(), nullable=False),
        sa.Column("prevent_duplicate_winners", sa.Boolean(), nullable=False),
        sa.Column("require_photo_upload", sa.Boolean(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("presentation", sa.JSON(), nullable=True),
        sa.Column("total_entries", sa.Integer(), nullable=False),
        sa.Column("created_by", ID_TYPE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('scheduled','in_progress','completed','archived')",
            name=op.f("ck_draw_configurations_status_enum"),
        ),
        sa.CheckConstraint(
            "max_entries_per_participant >= 1",
            name=op.f("ck_draw_configurations_max_entries_positive"),
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_draw_configurations_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["created_by"],
            ["users.id"],
            name=op.f("fk_draw_configurations_created_by_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_configurations")),
    )
    op.create_index(
        op.f("ix_draw_configurations_event_id"), "draw_configurations", ["event_id"]
    )
    op.create_index(
        "ix_draw_configurations_event_status",
        "draw_configurations",
        ["event_id", "status"],
    )

    op.create_table(
        "draw_entries",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("configuration_id", ID_TYPE, nullable=False),
        sa.Column("participant_fingerprint", sa.String(length=255), nullable=False),
        sa.Column("participant_name", sa.String(length=100), nullable=True),
        sa.Column("photo_id", ID_TYPE, nullable=True),
        sa.Column("contact", sa.String(length=255), nullable=True),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "source IN ('photo','manual')", name=op.f("ck_draw_entries_source_enum")
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_draw_entries_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["configuration_id"],
            ["draw_configurations.id"],
            name=op.f("fk_draw_entries_configuration_id_draw_configurations"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["photo_id"],
            ["photos.id"],
            name=op.f("fk_draw_entries_photo_id_photos"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_entries")),
    )
    op.create_index(op.f("ix_draw_entries_event_id"), "draw_entries", ["event_id"])
    op.create_index(
        "ix_draw_entries_configuration_fingerprint",
        "draw_entries",
        ["configuration_id", "participant_fingerprint"],
    )

    op.create_table(
        "draw_executions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("configuration_id", ID_TYPE, nullable=False),
        sa.Column("kind", sa.String(length=10), nullable=False),
        sa.Column("executed_by", sa.String(length=255), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("statistics", sa.JSON(), nullable=True),
        sa.CheckConstraint(
            "kind IN ('draw','redraw')", name=op.f("ck_draw_executions_kind_enum")
        ),
        sa.ForeignKeyConstraint(
            ["configuration_id"],
            ["draw_configurations.id"],
            name=op.f("fk_draw_executions_configuration_id_draw_configurations"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_executions")),
    )
    op.create_index(
        op.f("ix_draw_executions_configuration_id"),
        "draw_executions",
        ["configuration_id"],
    )

    op.create_table(
        "draw_winners",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("event_id", ID_TYPE, nullable=False),
        sa.Column("configuration_id", ID_TYPE, nullable=False),
        sa.Column("execution_id", ID_TYPE, nullable=True),
        sa.Column("entry_id", ID_TYPE, nullable=False),
        sa.Column("tier", sa.String(length=20), nullable=False),
        sa.Column("prize_name", sa.String(length=255), nullable=False),
        sa.Column("prize_description", sa.Text(), nullable=True),
        sa.Column("tier_rank", sa.Integer(), nullable=False),
        sa.Column("selection_order", sa.Integer(), nullable=False),
        sa.Column("participant_name", sa.String(length=100), nullable=False),
        sa.Column("selfie_url", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("forfeit_reason", sa.Text(), nullable=True),
        sa.Column("forfeited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("replaced_by_id", ID_TYPE, nullable=True),
        sa.Column("drawn_by", sa.String(length=255), nullable=True),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('drawn','claimed','forfeited')",
            name=op.f("ck_draw_winners_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name=op.f("fk_draw_winners_event_id_events"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["configuration_id"],
            ["draw_configurations.id"],
            name=op.f("fk_draw_winners_configuration_id_draw_configurations"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["execution_id"],
            ["draw_executions.id"],
            name=op.f("fk_draw_winners_execution_id_draw_executions"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["entry_id"],
            ["draw_entries.id"],
            name=op.f("fk_draw_winners_entry_id_draw_entries"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["replaced_by_id"],
            ["draw_winners.id"],
            name=op.f("fk_draw_winners_replaced_by_id_draw_winners"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_winners")),
    )
    op.create_index(op.f("ix_draw_winners_event_id"), "draw_winners", ["event_id"])
    op.create_index(
        op.f("ix_draw_winners_configuration_id"), "draw_winners", ["configuration_id"]
    )
    op.create_index(
        "ix_draw_winners_configuration_tier",
        "draw_winners",
        ["configuration_id", "tier"],
    )


def downgrade() -> None:
    op.drop_index("ix_draw_winners_configuration_tier", table_name="draw_winners")
    op.drop_index(op.f("ix_draw_winners_configuration_id"), table_name="draw_winners")
    op.drop_index(op.f("ix_draw_winners_event_id"), table_name="draw_winners")
    op.drop_table("draw_winners")
    op.drop_index(
        op.f("ix_draw_executions_configuration_id"), table_name="draw_executions"
    )
    op.drop_table("draw_executions")
    op.drop_index("ix_draw_entries_configuration_fingerprint", table_name="draw_entries")
    op.drop_index(op.f("ix_draw_entries_event_id"), table_name="draw_entries")
    op.drop_table("draw_entries")
    op.drop_index("ix_draw_configurations_event_status", table_name="draw_configurations")
    op.drop_index(
        op.f("ix_draw_configurations_event_id"), table_name="draw_configurations"
    )
    op.drop_table("draw_configurations")
    op.drop_index(op.f("ix_photos_event_id"), table_name="photos")
    op.drop_table("photos")
    op.drop_index(op.f("ix_events_tenant_id"), table_name="events")
    op.drop_table("events")
    op.drop_index(op.f("ix_users_tenant_id"), table_name="users")
    op.drop_table("users")
