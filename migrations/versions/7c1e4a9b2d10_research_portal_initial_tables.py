"""research_portal_initial_tables

Creates the regulatory application tables:
  - scientists                       - people who own or act on applications
  - research_activities              - SDRs the applications are filed for
  - research_applications            - IRB / IBC applications + milestones
  - application_research_activities  - IBC ↔ SDR many-to-many links
  - application_comments             - append-only comment / audit log
  - role_permissions                 - job title × navigation item access

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 7c1e4a9b2d10
Revises:
Create Date: 2026-10-19 09:12:40.118305
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e4a9b2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Scientists ────────────────────────────────────────────────────────
    if "scientists" not in existing:
        op.create_table(
            "scientists",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("job_title", sa.String(length=100), nullable=True,
                      comment="Investigator | Staff Scientist | PhD Student | IRB Office | ..."),
            sa.Column("department", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    # ── Research activities (SDR) ─────────────────────────────────────────
    if "research_activities" not in existing:
        op.create_table(
            "research_activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("sdr_number", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="planning"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("sdr_number"),
        )

    # ── Research applications ─────────────────────────────────────────────
    if "research_applications" not in existing:
        op.create_table(
            "research_applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_type", sa.String(length=3), nullable=False,
                      comment="irb | ibc"),
            sa.Column("protocol_number", sa.String(length=40), nullable=False,
                      comment="Human-readable protocol number, e.g. IRB-2023-045"),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("short_title", sa.String(length=150), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft",
                      comment="draft | submitted | vetted | under_review | approved | expired | rejected"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("principal_investigator_id", sa.Integer(), nullable=False),
            sa.Column("research_activity_id", sa.Integer(), nullable=True,
                      comment="Primary SDR (IRB); IBC applications also use the link table"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("submission_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("vetted_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("under_review_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["principal_investigator_id"], ["scientists.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["research_activity_id"], ["research_activities.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("protocol_number"),
        )
        op.create_index("ix_research_app_type_status", "research_applications",
                        ["application_type", "status"])
        op.create_index("ix_research_applications_principal_investigator_id", "research_applications",
                        ["principal_investigator_id"])
        op.create_index("ix_research_applications_research_activity_id", "research_applications",
                        ["research_activity_id"])

    # ── IBC ↔ research activity links ─────────────────────────────────────
    if "application_research_activities" not in existing:
        op.create_table(
            "application_research_activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("research_activity_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["research_applications.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["research_activity_id"], ["research_activities.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("application_id", "research_activity_id",
                                name="uq_application_research_activity"),
        )
        op.create_index("ix_application_research_activities_application_id",
                        "application_research_activities", ["application_id"])
        op.create_index("ix_application_research_activities_research_activity_id",
                        "application_research_activities", ["research_activity_id"])

    # ── Comments ──────────────────────────────────────────────────────────
    if "application_comments" not in existing:
        op.create_table(
            "application_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("comment_type", sa.String(length=30), nullable=False,
                      comment="office_comment | reviewer_feedback | pi_response | status_change"),
            sa.Column("comment", sa.Text(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=True,
                      comment="Actor id from the gateway; a scientist id only for PI responses"),
            sa.Column("author_name", sa.String(length=200), nullable=True),
            sa.Column("author_type", sa.String(length=20), nullable=False, server_default="system",
                      comment="office | reviewer | pi | system"),
            sa.Column("status_from", sa.String(length=20), nullable=True),
            sa.Column("status_to", sa.String(length=20), nullable=True),
            sa.Column("recommendation", sa.String(length=30), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["application_id"], ["research_applications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_app_comment_app_created", "application_comments",
                        ["application_id", "created_at"])

    # ── Role permissions ──────────────────────────────────────────────────
    if "role_permissions" not in existing:
        op.create_table(
            "role_permissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_title", sa.String(length=100), nullable=False),
            sa.Column("navigation_item", sa.String(length=100), nullable=False),
            sa.Column("access_level", sa.String(length=10), nullable=False,
                      comment="hidden | readonly | full"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_title", "navigation_item", name="uq_role_permission_pair"),
        )
        op.create_index("ix_role_permissions_job_title", "role_permissions", ["job_title"])


def downgrade():
    op.drop_table("role_permissions")
    op.drop_table("application_comments")
    op.drop_table("application_research_activities")
    op.drop_table("research_applications")
    op.drop_table("research_activities")
    op.drop_table("scientists")
