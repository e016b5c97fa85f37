"""approval_engine_initial

Create organisation directory, approval workflow template, requisition and
approval decision tables.

Revision ID: a1c4e7f0b201
Revises:
Create Date: 2026-10-19 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c4e7f0b201"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "holdings" not in existing_tables:
        op.create_table(
            "holdings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "talent_users" not in existing_tables:
        op.create_table(
            "talent_users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("holding_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=50), nullable=False, server_default="member"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["holding_id"], ["holdings.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("holding_id", "email", name="uq_talent_user_holding_email"),
        )
        op.create_index("ix_talent_users_holding_id", "talent_users", ["holding_id"])
        op.create_index("ix_talent_users_email", "talent_users", ["email"])

    if "gerencias" not in existing_tables:
        op.create_table(
            "gerencias",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("holding_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("manager_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["holding_id"], ["holdings.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["manager_id"], ["talent_users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_gerencias_holding_id", "gerencias", ["holding_id"])

    if "areas" not in existing_tables:
        op.create_table(
            "areas",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("holding_id", sa.Integer(), nullable=False),
            sa.Column("gerencia_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("manager_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["holding_id"], ["holdings.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["gerencia_id"], ["gerencias.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["manager_id"], ["talent_users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_areas_holding_id", "areas", ["holding_id"])
        op.create_index("ix_areas_gerencia_id", "areas", ["gerencia_id"])

    if "puestos" not in existing_tables:
        op.create_table(
            "puestos",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("holding_id", sa.Integer(), nullable=False),
            sa.Column("area_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.ForeignKeyConstraint(["holding_id"], ["holdings.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["area_id"], ["areas.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_puestos_holding_id", "puestos", ["holding_id"])
        op.create_index("ix_puestos_area_id", "puestos", ["area_id"])

    if "approval_workflows" not in existing_tables:
        op.create_table(
            "approval_workflows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("holding_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("steps", sa.JSON(), nullable=False),
            sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.String(length=255), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["holding_id"], ["holdings.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_approval_workflows_holding_id", "approval_workflows", ["holding_id"])
        op.create_index(
            "uq_approval_workflow_default_per_holding",
            "approval_workflows",
            ["holding_id"],
            unique=True,
            postgresql_where=sa.text("is_default IS TRUE"),
            sqlite_where=sa.text("is_default = 1"),
        )

    if "requisitions" not in existing_tables:
        op.create_table(
            "requisitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("holding_id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("positions", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("puesto_id", sa.Integer(), nullable=True),
            sa.Column("area_id", sa.Integer(), nullable=True),
            sa.Column("gerencia_id", sa.Integer(), nullable=True),
            sa.Column("created_by_id", sa.Integer(), nullable=True),
            sa.Column("created_by_email", sa.String(length=255), nullable=False),
            sa.Column("created_by_name", sa.String(length=200), nullable=True),
            sa.Column("workflow_id", sa.Integer(), nullable=True),
            sa.Column("workflow_name", sa.String(length=120), nullable=True),
            sa.Column("resolved_approvers", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
            sa.Column("current_step", sa.Integer(), nullable=True),
            sa.Column("current_approver_email", sa.String(length=255), nullable=True),
            sa.Column("assigned_recruiter_email", sa.String(length=255), nullable=True),
            sa.Column("assigned_recruiter_name", sa.String(length=200), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["holding_id"], ["holdings.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["puesto_id"], ["puestos.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["area_id"], ["areas.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["gerencia_id"], ["gerencias.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by_id"], ["talent_users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["workflow_id"], ["approval_workflows.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )
        op.create_index("ix_requisitions_holding_id", "requisitions", ["holding_id"])
        op.create_index("ix_requisitions_current_approver_email", "requisitions", ["current_approver_email"])
        op.create_index("ix_requisitions_status_approver", "requisitions", ["status", "current_approver_email"])

    if "approval_decisions" not in existing_tables:
        op.create_table(
            "approval_decisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("requisition_id", sa.Integer(), nullable=False),
            sa.Column("step", sa.Integer(), nullable=False),
            sa.Column("step_name", sa.String(length=200), nullable=False),
            sa.Column("approver_email", sa.String(length=255), nullable=False),
            sa.Column("approver_name", sa.String(length=200), nullable=True),
            sa.Column("action", sa.String(length=20), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["requisition_id"], ["requisitions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("requisition_id", "step", name="uq_approval_decision_step"),
        )
        op.create_index("ix_approval_decisions_requisition_id", "approval_decisions", ["requisition_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "approval_decisions" in existing_tables:
        op.drop_index("ix_approval_decisions_requisition_id", table_name="approval_decisions")
        op.drop_table("approval_decisions")

    if "requisitions" in existing_tables:
        op.drop_index("ix_requisitions_status_approver", table_name="requisitions")
        op.drop_index("ix_requisitions_current_approver_email", table_name="requisitions")
        op.drop_index("ix_requisitions_holding_id", table_name="requisitions")
        op.drop_table("requisitions")

    if "approval_workflows" in existing_tables:
        op.drop_index("uq_approval_workflow_default_per_holding", table_name="approval_workflows")
        op.drop_index("ix_approval_workflows_holding_id", table_name="approval_workflows")
        op.drop_table("approval_workflows")

    for table, indexes in (
        ("puestos", ("ix_puestos_area_id", "ix_puestos_holding_id")),
        ("areas", ("ix_areas_gerencia_id", "ix_areas_holding_id")),
        ("gerencias", ("ix_gerencias_holding_id",)),
        ("talent_users", ("ix_talent_users_email", "ix_talent_users_holding_id")),
    ):
        if table in existing_tables:
            for index_name in indexes:
                op.drop_index(index_name, table_name=table)
            op.drop_table(table)

    if "holdings" in existing_tables:
        op.drop_table("holdings")
