"""billing schema: organizations, bills, occurrences, approvals, audit, notifications

Revision ID: 0001_billing_schema
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_billing_schema"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "member_role": ("admin", "approver", "accountant", "analyst", "viewer"),
    "member_status": ("active", "invited", "disabled"),
    "bill_status": ("draft", "active", "paid", "cancelled"),
    "occurrence_state": (
        "scheduled", "pending_approval", "approved", "paid", "failed", "on_hold", "canceled",
    ),
    "approval_decision": ("approved", "hold", "rejected"),
    "audit_action": (
        "create", "update", "cancel", "generate", "transition",
        "approve", "hold", "reject", "invite", "remove",
    ),
    "audit_target": (
        "organization", "org_member", "vendor", "project", "bill", "bill_occurrence", "approval",
    ),
    "notification_type": ("info", "success", "warning", "error"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns():
    return [
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _org_column():
    return sa.Column(
        "org_id", sa.UUID(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )


def upgrade() -> None:
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    op.create_table(
        "organizations",
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "org_members",
        _org_column(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", _enum("member_role"), nullable=False),
        sa.Column("status", _enum("member_status"), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_org_members_org_user"),
    )
    op.create_index("ix_org_members_org_id", "org_members", ["org_id"])
    op.create_index("ix_org_members_user_id", "org_members", ["user_id"])
    op.create_index("ix_org_members_status", "org_members", ["status"])

    op.create_table(
        "vendors",
        _org_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vendors_org_id", "vendors", ["org_id"])

    op.create_table(
        "projects",
        _org_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_org_id", "projects", ["org_id"])

    op.create_table(
        "bills",
        _org_column(),
        sa.Column("project_id", sa.UUID(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("vendor_id", sa.UUID(), sa.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("recurring_rule", postgresql.JSONB(), nullable=True),
        sa.Column("installments_total", sa.Integer(), nullable=True),
        sa.Column("auto_approve", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("status", _enum("bill_status"), nullable=False),
        sa.Column("created_by", sa.UUID(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bills_org_id", "bills", ["org_id"])
    op.create_index("ix_bills_project_id", "bills", ["project_id"])
    op.create_index("ix_bills_vendor_id", "bills", ["vendor_id"])
    op.create_index("ix_bills_status", "bills", ["status"])

    op.create_table(
        "bill_occurrences",
        _org_column(),
        sa.Column("bill_id", sa.UUID(), sa.ForeignKey("bills.id", ondelete="CASCADE"), nullable=False),
        sa.Column("project_id", sa.UUID(), sa.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True),
        sa.Column("vendor_id", sa.UUID(), sa.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("amount_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("suggested_submission_date", sa.Date(), nullable=False),
        sa.Column("state", _enum("occurrence_state"), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bill_id", "sequence", name="uq_bill_occurrences_bill_sequence"),
        sa.CheckConstraint("sequence >= 1", name="ck_bill_occurrences_sequence_positive"),
        sa.CheckConstraint(
            "suggested_submission_date <= due_date", name="ck_bill_occurrences_submission_before_due"
        ),
    )
    op.create_index("ix_bill_occurrences_org_id", "bill_occurrences", ["org_id"])
    op.create_index("ix_bill_occurrences_bill_id", "bill_occurrences", ["bill_id"])
    op.create_index("ix_bill_occurrences_due_date", "bill_occurrences", ["due_date"])
    op.create_index("ix_bill_occurrences_state", "bill_occurrences", ["state"])
    # Daily sweep: scheduled rows that have come due
    op.create_index(
        "ix_bill_occurrences_sweep",
        "bill_occurrences",
        ["due_date"],
        postgresql_where=sa.text("state = 'scheduled'"),
    )

    op.create_table(
        "approvals",
        _org_column(),
        sa.Column(
            "bill_occurrence_id", sa.UUID(),
            sa.ForeignKey("bill_occurrences.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("approver_id", sa.UUID(), nullable=False),
        sa.Column("decision", _enum("approval_decision"), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bill_occurrence_id", "approver_id", name="uq_approvals_occurrence_approver"),
    )
    op.create_index("ix_approvals_org_id", "approvals", ["org_id"])
    op.create_index("ix_approvals_bill_occurrence_id", "approvals", ["bill_occurrence_id"])
    op.create_index("ix_approvals_approver_id", "approvals", ["approver_id"])

    op.create_table(
        "audit_log",
        _org_column(),
        sa.Column("actor_id", sa.UUID(), nullable=True),
        sa.Column("action", _enum("audit_action"), nullable=False),
        sa.Column("target_type", _enum("audit_target"), nullable=False),
        sa.Column("target_id", sa.UUID(), nullable=False),
        sa.Column("diff", postgresql.JSONB(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_org_id", "audit_log", ["org_id"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_target_id", "audit_log", ["target_id"])

    op.create_table(
        "notifications",
        _org_column(),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_org_id", "notifications", ["org_id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    for table in (
        "notifications", "audit_log", "approvals", "bill_occurrences",
        "bills", "projects", "vendors", "org_members", "organizations",
    ):
        op.drop_table(table)
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
