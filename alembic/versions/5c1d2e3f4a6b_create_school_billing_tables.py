"""create school billing tables

Revision ID: 5c1d2e3f4a6b
Revises:
Create Date: 2025-05-16 09:12:41.530218
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c1d2e3f4a6b"
down_revision = None
branch_labels = None
depends_on = None

ENTITLED_STATUSES_SQL = "status IN ('ACTIVE', 'TRIALING')"


def upgrade():
    op.create_table(
        "school",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("payment_gateway_customer_ref", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("modified_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("school_pkey")),
        sa.UniqueConstraint("name", name=op.f("uq_school_name")),
        sa.UniqueConstraint(
            "payment_gateway_customer_ref", name=op.f("uq_school_payment_gateway_customer_ref")
        ),
    )

    op.create_table(
        "subscription_plan",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("billing_cycle", sa.String(length=20), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("max_students", sa.Integer(), nullable=True),
        sa.Column("max_teachers", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("modified_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("price >= 0", name="check_plan_price_non_negative"),
        sa.PrimaryKeyConstraint("id", name=op.f("subscription_plan_pkey")),
        sa.UniqueConstraint("name", name=op.f("uq_subscription_plan_name")),
    )

    op.create_table(
        "school_subscription",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("school_id", sa.UUID(), nullable=False),
        sa.Column("plan_id", sa.UUID(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("current_period_start", sa.DateTime(), nullable=False),
        sa.Column("next_billing_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("external_gateway_ref", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("modified_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "next_billing_date >= current_period_start",
            name="check_next_billing_after_period_start",
        ),
        sa.CheckConstraint(
            "end_date IS NULL OR end_date >= current_period_start",
            name="check_end_date_after_period_start",
        ),
        sa.ForeignKeyConstraint(
            ["school_id"], ["school.id"], name=op.f("school_subscription_school_id_fkey")
        ),
        sa.ForeignKeyConstraint(
            ["plan_id"],
            ["subscription_plan.id"],
            name=op.f("school_subscription_plan_id_fkey"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("school_subscription_pkey")),
        sa.UniqueConstraint(
            "external_gateway_ref", name=op.f("uq_school_subscription_external_gateway_ref")
        ),
    )

    # At most one ACTIVE or TRIALING subscription per school
    op.create_index(
        "uq_school_subscription_one_entitled_per_school",
        "school_subscription",
        ["school_id"],
        unique=True,
        postgresql_where=sa.text(ENTITLED_STATUSES_SQL),
    )
    op.create_index(
        "ix_school_subscription_school_status",
        "school_subscription",
        ["school_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_school_subscription_plan", "school_subscription", ["plan_id"], unique=False
    )


def downgrade():
    op.drop_index("ix_school_subscription_plan", table_name="school_subscription")
    op.drop_index("ix_school_subscription_school_status", table_name="school_subscription")
    op.drop_index(
        "uq_school_subscription_one_entitled_per_school", table_name="school_subscription"
    )
    op.drop_table("school_subscription")
    op.drop_table("subscription_plan")
    op.drop_table("school")
