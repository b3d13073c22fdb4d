"""Initial schema: users, councils, permit types, applications, reference counters

Revision ID: 001
Revises: None
Create Date: 2024-06-01 00:00:00.000000+00:00

What:  Creates every table of the permit intake service.
How:   Portable column types (sa.Uuid, sa.JSON with a JSONB variant) so the
       same migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops all tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "email",
            sa.String(255),
            nullable=False,
            comment="Login identifier, stored lower-cased",
        ),
        sa.Column(
            "password_hash",
            sa.String(255),
            nullable=True,
            comment="bcrypt hash; NULL until the user sets a password",
        ),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", JSON_TYPE, nullable=True),
        sa.Column(
            "role",
            sa.String(32),
            nullable=False,
            server_default=sa.text("'citizen'"),
            comment="citizen, staff or admin",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_login_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "councils",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "code",
            sa.String(16),
            nullable=False,
            comment="Upper-case letters; prefix of application references (e.g. KCDC)",
        ),
        sa.Column("country", sa.String(2), nullable=False, server_default=sa.text("'NZ'")),
        sa.Column("region", sa.String(100), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "permit_types",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("council_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requirements", JSON_TYPE, nullable=True),
        sa.Column("fees", JSON_TYPE, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["council_id"], ["councils.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("council_id", "code", name="uq_permit_types_council_code"),
    )
    op.create_index("ix_permit_types_council_id", "permit_types", ["council_id"])

    op.create_table(
        "applications",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "reference",
            sa.String(32),
            nullable=False,
            comment="Human-readable unique reference",
        ),
        sa.Column(
            "status",
            sa.String(32),
            nullable=False,
            server_default=sa.text("'SUBMITTED'"),
        ),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("council_id", sa.Uuid(), nullable=False),
        sa.Column("permit_type_id", sa.Uuid(), nullable=False),
        sa.Column("data", JSON_TYPE, nullable=False),
        sa.Column("ai_analysis", JSON_TYPE, nullable=True),
        sa.Column(
            "submitted_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["council_id"], ["councils.id"]),
        sa.ForeignKeyConstraint(["permit_type_id"], ["permit_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        # Global uniqueness of references is what the allocator relies on
        sa.UniqueConstraint("reference"),
    )
    op.create_index("ix_applications_user_id", "applications", ["user_id"])
    op.create_index("ix_applications_council_id", "applications", ["council_id"])
    # Staff listing: ORDER BY submitted_at DESC
    op.create_index(
        "idx_applications_submitted_at",
        "applications",
        [sa.text("submitted_at DESC")],
    )

    op.create_table(
        "reference_counters",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("prefix", sa.String(16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix", "year", name="uq_reference_counters_prefix_year"),
    )


def downgrade() -> None:
    op.drop_table("reference_counters")
    op.drop_index("idx_applications_submitted_at", table_name="applications")
    op.drop_index("ix_applications_council_id", table_name="applications")
    op.drop_index("ix_applications_user_id", table_name="applications")
    op.drop_table("applications")
    op.drop_index("ix_permit_types_council_id", table_name="permit_types")
    op.drop_table("permit_types")
    op.drop_table("councils")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
