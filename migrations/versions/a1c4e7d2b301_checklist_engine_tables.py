"""Checklist engine tables: phases, task templates, deal tasks, deal guard rows.

Revision ID: a1c4e7d2b301
Revises:
"""

from alembic import op
import sqlalchemy as sa

revision = "a1c4e7d2b301"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(name):
    return name in sa.inspect(op.get_bind()).get_table_names()


def upgrade():
    if not _has_table("checklist_phases"):
        op.create_table(
            "checklist_phases",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(120), nullable=False),
            sa.Column("deal_type", sa.String(10), nullable=False, comment="compra | venta | ambos"),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("color", sa.String(20), nullable=False, server_default="#6366f1"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint("deal_type", "name", name="uq_checklist_phase_type_name"),
        )
        op.create_index("ix_checklist_phases_deal_type", "checklist_phases", ["deal_type"])

    if not _has_table("checklist_task_templates"):
        op.create_table(
            "checklist_task_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("deal_type", sa.String(10), nullable=False, comment="compra | venta"),
            sa.Column("phase", sa.String(120), nullable=False),
            sa.Column("title", sa.String(300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("responsible", sa.String(100), nullable=True),
            sa.Column("system", sa.String(100), nullable=True),
            sa.Column("workstream", sa.String(20), nullable=True),
            sa.Column("is_critical", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("estimated_days", sa.Integer(), nullable=True),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_checklist_task_templates_deal_type", "checklist_task_templates", ["deal_type"])

    if not _has_table("checklist_tasks"):
        op.create_table(
            "checklist_tasks",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("deal_id", sa.String(64), nullable=False),
            sa.Column(
                "template_id", sa.Integer(),
                sa.ForeignKey("checklist_task_templates.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("phase", sa.String(120), nullable=False, server_default=""),
            sa.Column("order", sa.Integer(), nullable=False, server_default="999"),
            sa.Column("title", sa.String(300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("url", sa.String(500), nullable=True),
            sa.Column("responsible", sa.String(100), nullable=True),
            sa.Column("system", sa.String(100), nullable=True),
            sa.Column("workstream", sa.String(20), nullable=False, server_default="other"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("estimated_days", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
            sa.Column("is_critical", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.CheckConstraint(
                "status IN ('pending', 'in_progress', 'complete')",
                name="ck_checklist_task_status",
            ),
            sa.CheckConstraint(
                "workstream IN ('legal', 'financial', 'commercial', 'ops', 'it', 'tax', 'other')",
                name="ck_checklist_task_workstream",
            ),
        )
        op.create_index("ix_checklist_tasks_deal_id", "checklist_tasks", ["deal_id"])
        op.create_index("ix_checklist_tasks_deal_phase", "checklist_tasks", ["deal_id", "phase"])

    if not _has_table("deal_checklists"):
        op.create_table(
            "deal_checklists",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("deal_id", sa.String(64), nullable=False, unique=True),
            sa.Column("deal_type", sa.String(10), nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="staged"),
            sa.Column("tasks_created", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("initialized_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_deal_checklists_deal_type", "deal_checklists", ["deal_type"])


def downgrade():
    op.drop_table("deal_checklists")
    op.drop_table("checklist_tasks")
    op.drop_table("checklist_task_templates")
    op.drop_table("checklist_phases")
