"""permit core tables

Revision ID: 0001_permit_core
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_permit_core'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

STATUSES = "'Pending','Assessed','Pending Approval','Approved','Rejected','Paid','Issued','Released'"


def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    # ---- collaborator tables (read by the core) ----
    op.create_table(
        "entities",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("entity_name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(128), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role_name", sa.String(64), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_users_role_name", "users", ["role_name"])

    op.create_table(
        "fee_categories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("category_name", sa.String(128), nullable=False, unique=True),
        _ts("created_at"),
    )

    op.create_table(
        "fees",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("category_id", sa.Uuid(), sa.ForeignKey("fee_categories.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("fee_name", sa.String(255), nullable=False),
        sa.Column("default_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("default_amount >= 0", name="ck_fees_default_amount_nonneg"),
    )
    op.create_index("ix_fees_category_id", "fees", ["category_id"])

    op.create_table(
        "permit_types",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("validity_type", sa.String(16), server_default=sa.text("'fixed'"), nullable=False),
        sa.Column("validity_date", sa.Date(), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("validity_type IN ('fixed','custom')", name="ck_permit_types_validity_type"),
    )

    op.create_table(
        "assessment_rules",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("permit_type_id", sa.Uuid(), sa.ForeignKey("permit_types.id", ondelete="CASCADE"), nullable=False),
        sa.Column("attribute", sa.String(128), nullable=True),
        sa.Column("rule_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_assessment_rules_permit_type_id", "assessment_rules", ["permit_type_id"])

    op.create_table(
        "assessment_rule_fees",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("rule_id", sa.Uuid(), sa.ForeignKey("assessment_rules.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fee_id", sa.Uuid(), sa.ForeignKey("fees.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("formula_json", JSONType, nullable=True),
        sa.Column("fee_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.CheckConstraint("amount IS NULL OR amount >= 0", name="ck_rule_fees_amount_nonneg"),
    )
    op.create_index("ix_assessment_rule_fees_rule_id", "assessment_rule_fees", ["rule_id"])

    # ---- core ----
    op.create_table(
        "applications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("application_number", sa.String(32), nullable=True, unique=True),
        sa.Column("entity_id", sa.Uuid(), sa.ForeignKey("entities.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("permit_type_id", sa.Uuid(), sa.ForeignKey("permit_types.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("permit_type_name", sa.String(128), nullable=False),
        sa.Column("attribute", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), server_default=sa.text("'Pending'"), nullable=False),
        sa.Column("creator_id", sa.Uuid(), nullable=False),
        sa.Column("assessor_id", sa.Uuid(), nullable=True),
        sa.Column("approver_id", sa.Uuid(), nullable=True),
        sa.Column("issued_by_id", sa.Uuid(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("validity_date", sa.String(128), nullable=True),
        sa.Column("permit_document_ref", sa.String(128), nullable=True),
        sa.Column("released_by", sa.String(255), nullable=True),
        sa.Column("received_by", sa.String(255), nullable=True),
        sa.Column("renewed_from_id", sa.Uuid(), sa.ForeignKey("applications.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("assessed_at", nullable=True),
        _ts("approved_at", nullable=True),
        _ts("rejected_at", nullable=True),
        _ts("paid_at", nullable=True),
        _ts("issued_at", nullable=True),
        _ts("released_at", nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint(f"status IN ({STATUSES})", name="ck_applications_status_valid"),
    )
    op.create_index("ix_applications_entity_id", "applications", ["entity_id"])
    op.create_index("ix_applications_creator_id", "applications", ["creator_id"])
    op.create_index("ix_applications_status", "applications", ["status"])
    op.create_index("ix_applications_created_at", "applications", ["created_at"])

    op.create_table(
        "application_parameters",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("application_id", sa.Uuid(), sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("param_name", sa.String(255), nullable=False),
        sa.Column("param_value", sa.Text(), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("length(param_name) > 0", name="ck_app_params_name_nonempty"),
    )
    op.create_index("ix_application_parameters_application_id", "application_parameters", ["application_id"])

    op.create_table(
        "assessed_fees",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("application_id", sa.Uuid(), sa.ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
        sa.Column("fee_id", sa.Uuid(), sa.ForeignKey("fees.id", ondelete="SET NULL"), nullable=True),
        sa.Column("fee_name", sa.String(255), nullable=False),
        sa.Column("category_name", sa.String(128), nullable=True),
        sa.Column("assessed_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("position", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("formula_json", JSONType, nullable=True),
        sa.Column("is_adhoc", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("assessed_by_id", sa.Uuid(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        _ts("locked_at", nullable=True),
        sa.CheckConstraint("assessed_amount >= 0", name="ck_assessed_fees_amount_nonneg"),
    )
    op.create_index("ix_assessed_fees_application_id", "assessed_fees", ["application_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("application_id", sa.Uuid(), sa.ForeignKey("applications.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("official_receipt_no", sa.String(64), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("recorded_by_id", sa.Uuid(), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=True),
        sa.Column("request_hash", sa.String(128), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.UniqueConstraint("application_id", "official_receipt_no", name="uq_payments_app_receipt"),
        sa.UniqueConstraint("application_id", "idempotency_key", name="uq_payments_app_idem"),
    )
    op.create_index("ix_payments_application_id", "payments", ["application_id"])
    op.create_index("ix_payments_app_date", "payments", ["application_id", "payment_date"])

    op.create_table(
        "application_sequences",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("period", sa.String(16), nullable=False, unique=True),
        sa.Column("current_value", sa.BigInteger(), nullable=False),
    )

    # ---- sinks ----
    op.create_table(
        "audit_log_records",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _ts("created_at"),
        sa.Column("request_id", sa.String(128), nullable=True),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("application_id", sa.Uuid(), sa.ForeignKey("applications.id", ondelete="SET NULL"), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("details_json", JSONType, nullable=False),
    )
    op.create_index("ix_audit_log_records_request_id", "audit_log_records", ["request_id"])
    op.create_index("ix_audit_application", "audit_log_records", ["application_id"])
    op.create_index("ix_audit_action", "audit_log_records", ["action"])
    op.create_index("ix_audit_created", "audit_log_records", ["created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("event", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(255), nullable=True),
        sa.Column("is_read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("audit_log_records")
    op.drop_table("application_sequences")
    op.drop_table("payments")
    op.drop_table("assessed_fees")
    op.drop_table("application_parameters")
    op.drop_table("applications")
    op.drop_table("assessment_rule_fees")
    op.drop_table("assessment_rules")
    op.drop_table("permit_types")
    op.drop_table("fees")
    op.drop_table("fee_categories")
    op.drop_table("users")
    op.drop_table("entities")
