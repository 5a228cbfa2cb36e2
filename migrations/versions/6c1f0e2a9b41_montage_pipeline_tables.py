"""montage_pipeline_tables

Create persons, montages, montage_checklist_items and app_settings.

Revision ID: 6c1f0e2a9b41
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "6c1f0e2a9b41"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "persons" not in existing_tables:
        op.create_table(
            "persons",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("roles", sa.JSON(), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "montages" not in existing_tables:
        op.create_table(
            "montages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("client_name", sa.String(length=200), nullable=False),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("contact_phone", sa.String(length=50), nullable=True),
            sa.Column("installation_address", sa.String(length=300), nullable=True),
            sa.Column("installation_city", sa.String(length=120), nullable=True),
            sa.Column("status", sa.String(length=50), nullable=False, server_default="new_lead"),
            sa.Column("installer_id", sa.Integer(), nullable=True),
            sa.Column("measurer_id", sa.Integer(), nullable=True),
            sa.Column("architect_id", sa.Integer(), nullable=True),
            sa.Column("scheduled_installation_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("forecasted_installation_date", sa.Date(), nullable=True),
            sa.Column("material_status", sa.String(length=20), nullable=False, server_default="none"),
            sa.Column("material_claim_type", sa.String(length=30), nullable=True),
            sa.Column("installer_status", sa.String(length=20), nullable=False, server_default="none"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["installer_id"], ["persons.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["measurer_id"], ["persons.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["architect_id"], ["persons.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )
        op.create_index("ix_montages_status", "montages", ["status"])
        op.create_index("ix_montages_installer_id", "montages", ["installer_id"])
        op.create_index("ix_montages_measurer_id", "montages", ["measurer_id"])
        op.create_index("ix_montages_architect_id", "montages", ["architect_id"])
        op.create_index("ix_montages_updated_at", "montages", ["updated_at"])
        op.create_index("ix_montages_deleted_at", "montages", ["deleted_at"])

    if "montage_checklist_items" not in existing_tables:
        op.create_table(
            "montage_checklist_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("montage_id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.String(length=80), nullable=False),
            sa.Column("label", sa.String(length=255), nullable=False),
            sa.Column("allow_attachment", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("attachment_ref", sa.String(length=500), nullable=True),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["montage_id"], ["montages.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("montage_id", "template_id", name="uq_checklist_montage_template"),
        )
        op.create_index("ix_montage_checklist_items_montage_id", "montage_checklist_items", ["montage_id"])
        op.create_index("ix_montage_checklist_items_completed", "montage_checklist_items", ["completed"])

    if "app_settings" not in existing_tables:
        op.create_table(
            "app_settings",
            sa.Column("key", sa.String(length=120), nullable=False),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("updated_by", sa.Integer(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["updated_by"], ["persons.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("key"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "app_settings" in existing_tables:
        op.drop_table("app_settings")
    if "montage_checklist_items" in existing_tables:
        op.drop_index("ix_montage_checklist_items_completed", table_name="montage_checklist_items")
        op.drop_index("ix_montage_checklist_items_montage_id", table_name="montage_checklist_items")
        op.drop_table("montage_checklist_items")
    if "montages" in existing_tables:
        for column in ("deleted_at", "updated_at", "architect_id", "measurer_id", "installer_id", "status"):
            op.drop_index(f"ix_montages_{column}", table_name="montages")
        op.drop_table("montages")
    if "persons" in existing_tables:
        op.drop_table("persons")
