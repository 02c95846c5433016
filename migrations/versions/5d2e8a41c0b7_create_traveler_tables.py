"""create_traveler_tables

Create form templates, travelers with their form snapshots / data / notes,
and binders with their works.

Revision ID: 5d2e8a41c0b7
Revises:
Create Date: 2026-10-18 09:12:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5d2e8a41c0b7"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_on", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "form_templates" not in existing_tables:
        op.create_table(
            "form_templates",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("html", sa.Text(), nullable=True),
            sa.Column("mapping", sa.JSON(), nullable=True),
            sa.Column("labels", sa.JSON(), nullable=True),
            *_audit_columns(),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_on", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "travelers" not in existing_tables:
        op.create_table(
            "travelers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("devices", sa.JSON(), nullable=True),
            sa.Column("locations", sa.JSON(), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("man_power", sa.JSON(), nullable=True),
            sa.Column("owner", sa.String(length=100), nullable=True),
            sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.Float(), nullable=False, server_default="0"),
            *_audit_columns(),
            sa.Column("cloned_by", sa.String(length=100), nullable=True),
            sa.Column("cloned_from", sa.String(length=36), nullable=True),
            sa.Column("updated_by", sa.String(length=100), nullable=True),
            sa.Column("updated_on", sa.DateTime(timezone=True), nullable=True),
            sa.Column("archived_on", sa.DateTime(timezone=True), nullable=True),
            sa.Column("transferred_on", sa.DateTime(timezone=True), nullable=True),
            sa.Column("public_access", sa.Integer(), nullable=False, server_default="-1"),
            sa.Column("shared_with", sa.JSON(), nullable=True),
            sa.Column("shared_group", sa.JSON(), nullable=True),
            sa.Column("reference_form", sa.String(length=36), nullable=True),
            sa.Column("mapping", sa.JSON(), nullable=True),
            sa.Column("labels", sa.JSON(), nullable=True),
            sa.Column("active_form_id", sa.String(length=36), nullable=True),
            sa.Column("active_discrepancy_form_id", sa.String(length=36), nullable=True),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("notes", sa.JSON(), nullable=True),
            sa.Column("total_input", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("finished_input", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("touched_inputs", sa.JSON(), nullable=True),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.CheckConstraint("status IN (0, 1, 1.5, 2, 3, 4)", name="ck_traveler_status"),
            sa.CheckConstraint("public_access IN (-1, 0, 1)", name="ck_traveler_public_access"),
            sa.CheckConstraint("total_input >= 0", name="ck_traveler_total_input"),
            sa.CheckConstraint("finished_input >= 0", name="ck_traveler_finished_input"),
            sa.ForeignKeyConstraint(["cloned_from"], ["travelers.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "traveler_forms" not in existing_tables:
        op.create_table(
            "traveler_forms",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("traveler_id", sa.String(length=36), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False, server_default="normal"),
            sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("html", sa.Text(), nullable=True),
            sa.Column("mapping", sa.JSON(), nullable=True),
            sa.Column("labels", sa.JSON(), nullable=True),
            sa.Column("activated_on", sa.JSON(), nullable=True),
            sa.Column("reference", sa.String(length=36), nullable=True),
            sa.Column("alias", sa.String(length=200), nullable=True),
            sa.Column("created_on", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint("kind IN ('normal', 'discrepancy')", name="ck_traveler_form_kind"),
            sa.ForeignKeyConstraint(["traveler_id"], ["travelers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_traveler_forms_traveler_id", "traveler_forms", ["traveler_id"])

    if "traveler_data" not in existing_tables:
        op.create_table(
            "traveler_data",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("traveler_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("file", sa.JSON(), nullable=True),
            sa.Column("input_type", sa.String(length=20), nullable=False),
            sa.Column("input_by", sa.String(length=100), nullable=True),
            sa.Column("input_on", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["traveler_id"], ["travelers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_traveler_data_traveler_id", "traveler_data", ["traveler_id"])

    if "traveler_notes" not in existing_tables:
        op.create_table(
            "traveler_notes",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("traveler_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("value", sa.Text(), nullable=True),
            sa.Column("input_by", sa.String(length=100), nullable=True),
            sa.Column("input_on", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["traveler_id"], ["travelers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_traveler_notes_traveler_id", "traveler_notes", ["traveler_id"])

    if "binders" not in existing_tables:
        op.create_table(
            "binders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("total_value", sa.Float(), nullable=False, server_default="0"),
            sa.Column("finished_value", sa.Float(), nullable=False, server_default="0"),
            sa.Column("in_progress_value", sa.Float(), nullable=False, server_default="0"),
            *_audit_columns(),
            sa.Column("updated_on", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "binder_works" not in existing_tables:
        op.create_table(
            "binder_works",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("binder_id", sa.String(length=36), nullable=False),
            sa.Column("traveler_id", sa.String(length=36), nullable=False),
            sa.Column("value", sa.Float(), nullable=False, server_default="10"),
            sa.Column("status", sa.Float(), nullable=True),
            sa.Column("finished", sa.Float(), nullable=False, server_default="0"),
            sa.Column("in_progress", sa.Float(), nullable=False, server_default="0"),
            sa.Column("added_by", sa.String(length=100), nullable=True),
            sa.Column("added_on", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["binder_id"], ["binders.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["traveler_id"], ["travelers.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("binder_id", "traveler_id", name="uq_binder_work_traveler"),
        )
        op.create_index("ix_binder_works_binder_id", "binder_works", ["binder_id"])
        op.create_index("ix_binder_works_traveler_id", "binder_works", ["traveler_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("binder_works", "binders", "traveler_notes", "traveler_data",
                  "traveler_forms", "travelers", "form_templates"):
        if table in existing_tables:
            op.drop_table(table)
