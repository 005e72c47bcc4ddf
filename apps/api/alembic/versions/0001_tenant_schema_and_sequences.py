"""tenant schema and admission sequences

Revision ID: 0001_tenant_schema
Revises:
Create Date: 2026-10-18 12:00:00.000000

This migration:
1. Creates schools and branches (the tenant hierarchy)
2. Creates users bound to a school and optionally a branch
3. Creates the per-(school, academic year) admission counters and learners
4. Creates the per-school staff counter and staff

Counters are unique per tenant key so that concurrent first issuance
resolves through ON CONFLICT instead of inserting two rows.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_tenant_schema"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ROLE_LABELS = (
    "PLATFORM_ADMIN",
    "SCHOOL_ADMIN",
    "HEAD_TEACHER",
    "TEACHER",
    "RECEPTIONIST",
    "FINANCE_OFFICER",
    "PARENT",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _tenant_column() -> sa.Column:
    return sa.Column(
        "school_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("schools.id", ondelete="RESTRICT"),
        nullable=False,
    )


def _branch_column() -> sa.Column:
    return sa.Column(
        "branch_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True,
    )


def upgrade() -> None:
    """Create tenant tables, counters and identifier-bearing records."""
    admission_format = postgresql.ENUM(
        "NO_BRANCH",
        "BRANCH_PREFIX_START",
        "BRANCH_PREFIX_MIDDLE",
        "BRANCH_PREFIX_END",
        name="admission_format",
        create_type=False,
    )
    school_status = postgresql.ENUM(
        "ACTIVE", "SUSPENDED", "DEACTIVATED", name="school_status", create_type=False
    )
    user_role = postgresql.ENUM(*ROLE_LABELS, name="user_role", create_type=False)
    staff_role = postgresql.ENUM(*ROLE_LABELS, name="staff_role", create_type=False)
    for enum_type in (admission_format, school_status, user_role, staff_role):
        enum_type.create(op.get_bind(), checkfirst=True)

    # Schools
    op.create_table(
        "schools",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("admission_format", admission_format, nullable=False),
        sa.Column("branch_separator", sa.String(length=5), nullable=False, server_default="-"),
        sa.Column("status", school_status, nullable=False, server_default="ACTIVE"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_schools_name"), "schools", ["name"], unique=False)

    # Branches
    op.create_table(
        "branches",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        _tenant_column(),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("school_id", "code", name="uq_branches_school_code"),
        sa.CheckConstraint("length(code) > 0", name="ck_branches_code_not_empty"),
    )
    op.create_index(op.f("ix_branches_school_id"), "branches", ["school_id"], unique=False)

    # Users (platform admins have no school)
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        sa.Column(
            "school_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("schools.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _branch_column(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_school_id"), "users", ["school_id"], unique=False)
    op.create_index(op.f("ix_users_branch_id"), "users", ["branch_id"], unique=False)

    # Admission counters: one row per (school, academic year)
    op.create_table(
        "admission_sequences",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        _tenant_column(),
        sa.Column("academic_year", sa.Integer(), nullable=False),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "school_id", "academic_year", name="uq_admission_sequences_school_year"
        ),
        sa.CheckConstraint("current_value >= 0", name="ck_admission_sequences_non_negative"),
    )
    op.create_index(
        op.f("ix_admission_sequences_school_id"),
        "admission_sequences",
        ["school_id"],
        unique=False,
    )

    # Learners
    op.create_table(
        "learners",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        _tenant_column(),
        _branch_column(),
        sa.Column("admission_number", sa.String(length=64), nullable=False),
        sa.Column("academic_year", sa.Integer(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "school_id", "admission_number", name="uq_learners_school_admission_number"
        ),
    )
    op.create_index(op.f("ix_learners_school_id"), "learners", ["school_id"], unique=False)
    op.create_index(op.f("ix_learners_branch_id"), "learners", ["branch_id"], unique=False)
    op.create_index(
        op.f("ix_learners_admission_number"), "learners", ["admission_number"], unique=False
    )

    # Staff counter: one row per school
    op.create_table(
        "staff_sequences",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        _tenant_column(),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("school_id", name="uq_staff_sequences_school"),
        sa.CheckConstraint("current_value >= 0", name="ck_staff_sequences_non_negative"),
    )
    op.create_index(
        op.f("ix_staff_sequences_school_id"), "staff_sequences", ["school_id"], unique=False
    )

    # Staff
    op.create_table(
        "staff",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        *_timestamps(),
        _tenant_column(),
        _branch_column(),
        sa.Column("staff_number", sa.String(length=32), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("role", staff_role, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("school_id", "staff_number", name="uq_staff_school_staff_number"),
    )
    op.create_index(op.f("ix_staff_school_id"), "staff", ["school_id"], unique=False)
    op.create_index(op.f("ix_staff_branch_id"), "staff", ["branch_id"], unique=False)
    op.create_index(op.f("ix_staff_staff_number"), "staff", ["staff_number"], unique=False)


def downgrade() -> None:
    """Drop every table and enum type created above, dependents first."""
    for table in (
        "staff",
        "staff_sequences",
        "learners",
        "admission_sequences",
        "users",
        "branches",
        "schools",
    ):
        op.drop_table(table)

    for enum_name in ("staff_role", "user_role", "school_status", "admission_format"):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
