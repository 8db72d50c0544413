"""initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


entity_kind = postgresql.ENUM("company", "project", name="entity_kind", create_type=False)


def upgrade() -> None:
    entity_kind.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "entities",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("kind", entity_kind, nullable=False),
        sa.Column("source_system", sa.String(length=64), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("source_name", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("first_seen_month", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "first_seen_month IS NULL OR EXTRACT(DAY FROM first_seen_month) = 1",
            name="ck_entities_first_seen_first_of_month",
        ),
    )
    op.create_index("ix_entities_kind", "entities", ["kind"])
    op.create_unique_constraint(
        "uq_entities_kind_source_external", "entities", ["kind", "source_system", "external_id"]
    )

    op.create_table(
        "entity_groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("kind", entity_kind, nullable=False),
        sa.Column(
            "primary_entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("created_by", sa.String(length=320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_entity_groups_kind", "entity_groups", ["kind"])
    op.create_unique_constraint("uq_entity_groups_primary_entity", "entity_groups", ["primary_entity_id"])

    op.create_table(
        "entity_group_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "group_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entity_groups.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "member_entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_entity_group_members_group_id", "entity_group_members", ["group_id"])
    op.create_unique_constraint(
        "uq_entity_group_members_member_entity", "entity_group_members", ["member_entity_id"]
    )

    op.create_table(
        "entity_monthly_rates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rate_month", sa.Date(), nullable=False),
        sa.Column("rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("rate >= 0", name="ck_entity_monthly_rates_rate_non_negative"),
        sa.CheckConstraint(
            "EXTRACT(DAY FROM rate_month) = 1",
            name="ck_entity_monthly_rates_month_first_of_month",
        ),
    )
    op.create_index("ix_entity_monthly_rates_month", "entity_monthly_rates", ["rate_month"])
    op.create_unique_constraint(
        "uq_entity_monthly_rates_entity_month", "entity_monthly_rates", ["entity_id", "rate_month"]
    )

    op.create_table(
        "entity_monthly_rounding",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rounding_month", sa.Date(), nullable=False),
        sa.Column("rounding_increment", sa.Integer(), nullable=False, server_default=sa.text("15")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "rounding_increment IN (0, 5, 15, 30)",
            name="ck_entity_monthly_rounding_valid_increment",
        ),
        sa.CheckConstraint(
            "EXTRACT(DAY FROM rounding_month) = 1",
            name="ck_entity_monthly_rounding_month_first_of_month",
        ),
    )
    op.create_index("ix_entity_monthly_rounding_month", "entity_monthly_rounding", ["rounding_month"])
    op.create_unique_constraint(
        "uq_entity_monthly_rounding_entity_month",
        "entity_monthly_rounding",
        ["entity_id", "rounding_month"],
    )

    op.create_table(
        "time_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("source_system", sa.String(length=64), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("task_name", sa.String(length=500), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("duration_minutes >= 0", name="ck_time_entries_duration_non_negative"),
    )
    op.create_index("ix_time_entries_entity_work_date", "time_entries", ["entity_id", "work_date"])
    op.create_unique_constraint(
        "uq_time_entries_source_external", "time_entries", ["source_system", "external_id"]
    )

    op.create_table(
        "entity_monthly_billing_limits",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("limits_month", sa.Date(), nullable=False),
        sa.Column("minimum_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("maximum_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("carryover_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("carryover_max_hours", sa.Numeric(10, 2), nullable=True),
        sa.Column("carryover_expiry_months", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "EXTRACT(DAY FROM limits_month) = 1",
            name="ck_entity_billing_limits_month_first_of_month",
        ),
        sa.CheckConstraint(
            "minimum_hours IS NULL OR (minimum_hours >= 0 AND minimum_hours <= 744)",
            name="ck_entity_billing_limits_minimum_range",
        ),
        sa.CheckConstraint(
            "maximum_hours IS NULL OR (maximum_hours >= 0 AND maximum_hours <= 744)",
            name="ck_entity_billing_limits_maximum_range",
        ),
        sa.CheckConstraint(
            "minimum_hours IS NULL OR maximum_hours IS NULL OR minimum_hours <= maximum_hours",
            name="ck_entity_billing_limits_min_le_max",
        ),
        sa.CheckConstraint(
            "carryover_max_hours IS NULL OR (carryover_max_hours >= 0 AND carryover_max_hours <= 744)",
            name="ck_entity_billing_limits_carryover_max_range",
        ),
        sa.CheckConstraint(
            "carryover_expiry_months IS NULL OR carryover_expiry_months > 0",
            name="ck_entity_billing_limits_carryover_expiry_positive",
        ),
    )
    op.create_index("ix_entity_billing_limits_month", "entity_monthly_billing_limits", ["limits_month"])
    op.create_unique_constraint(
        "uq_entity_billing_limits_entity_month",
        "entity_monthly_billing_limits",
        ["entity_id", "limits_month"],
    )

    op.create_table(
        "entity_monthly_active_status",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "entity_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status_month", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "EXTRACT(DAY FROM status_month) = 1",
            name="ck_entity_active_status_month_first_of_month",
        ),
    )
    op.create_index("ix_entity_active_status_month", "entity_monthly_active_status", ["status_month"])
    op.create_unique_constraint(
        "uq_entity_active_status_entity_month",
        "entity_monthly_active_status",
        ["entity_id", "status_month"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_entity_active_status_entity_month", "entity_monthly_active_status", type_="unique")
    op.drop_index("ix_entity_active_status_month", table_name="entity_monthly_active_status")
    op.drop_table("entity_monthly_active_status")

    op.drop_constraint("uq_entity_billing_limits_entity_month", "entity_monthly_billing_limits", type_="unique")
    op.drop_index("ix_entity_billing_limits_month", table_name="entity_monthly_billing_limits")
    op.drop_table("entity_monthly_billing_limits")

    op.drop_constraint("uq_time_entries_source_external", "time_entries", type_="unique")
    op.drop_index("ix_time_entries_entity_work_date", table_name="time_entries")
    op.drop_table("time_entries")

    op.drop_constraint("uq_entity_monthly_rounding_entity_month", "entity_monthly_rounding", type_="unique")
    op.drop_index("ix_entity_monthly_rounding_month", table_name="entity_monthly_rounding")
    op.drop_table("entity_monthly_rounding")

    op.drop_constraint("uq_entity_monthly_rates_entity_month", "entity_monthly_rates", type_="unique")
    op.drop_index("ix_entity_monthly_rates_month", table_name="entity_monthly_rates")
    op.drop_table("entity_monthly_rates")

    op.drop_constraint("uq_entity_group_members_member_entity", "entity_group_members", type_="unique")
    op.drop_index("ix_entity_group_members_group_id", table_name="entity_group_members")
    op.drop_table("entity_group_members")

    op.drop_constraint("uq_entity_groups_primary_entity", "entity_groups", type_="unique")
    op.drop_index("ix_entity_groups_kind", table_name="entity_groups")
    op.drop_table("entity_groups")

    op.drop_constraint("uq_entities_kind_source_external", "entities", type_="unique")
    op.drop_index("ix_entities_kind", table_name="entities")
    op.drop_table("entities")

    entity_kind.drop(op.get_bind(), checkfirst=True)
