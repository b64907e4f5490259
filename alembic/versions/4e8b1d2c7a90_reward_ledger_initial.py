"""reward ledger initial tables

Revision ID: 4e8b1d2c7a90
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "4e8b1d2c7a90"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing = set(insp.get_table_names())

    if "reward_programs" not in existing:
        op.create_table(
            "reward_programs",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.String(length=2000), nullable=True),
            sa.Column("start_date", sa.TIMESTAMP(), nullable=True),
            sa.Column("end_date", sa.TIMESTAMP(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("default_giving_budget", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("banner_url", sa.String(length=500), nullable=True),
            sa.Column("activated_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("deactivated_at", sa.TIMESTAMP(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("default_giving_budget >= 0", name="ck_reward_programs_budget_non_negative"),
        )
        op.create_index(
            "uq_reward_programs_single_active",
            "reward_programs",
            ["status"],
            unique=True,
            postgresql_where=sa.text("status = 'ACTIVE'"),
            sqlite_where=sa.text("status = 'ACTIVE'"),
        )

    if "reward_policies" not in existing:
        op.create_table(
            "reward_policies",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=False),
            sa.Column("policy_type", sa.String(length=30), nullable=False),
            sa.Column("unit_value", sa.Integer(), nullable=False),
            sa.Column("points_per_unit", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint("reward_program_id", "policy_type", name="uq_reward_policies_program_type"),
            sa.CheckConstraint("unit_value >= 1", name="ck_reward_policies_unit_value_positive"),
            sa.CheckConstraint("points_per_unit >= 0", name="ck_reward_policies_points_non_negative"),
        )

    if "reward_items" not in existing:
        op.create_table(
            "reward_items",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("required_points", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="-1"),
            sa.Column("image_url", sa.String(length=500), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.CheckConstraint("required_points >= 0", name="ck_reward_items_required_points_non_negative"),
            sa.CheckConstraint("quantity >= -1", name="ck_reward_items_quantity_valid"),
        )

    if "user_wallets" not in existing:
        op.create_table(
            "user_wallets",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("user_id", sa.String(length=100), nullable=False),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="EMPLOYEE"),
            sa.Column("personal_point", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("manager_giving_budget", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            sa.UniqueConstraint("user_id", "reward_program_id", name="uq_user_wallets_user_program"),
            sa.CheckConstraint("personal_point >= 0", name="ck_user_wallets_personal_point_non_negative"),
            sa.CheckConstraint("manager_giving_budget >= 0", name="ck_user_wallets_budget_non_negative"),
        )

    if "point_transactions" not in existing:
        op.create_table(
            "point_transactions",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("type", sa.String(length=20), nullable=False),
            sa.Column("amount", sa.Integer(), nullable=False),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=False),
            sa.Column("source_wallet_id", sa.Uuid(), sa.ForeignKey("user_wallets.id"), nullable=True),
            sa.Column("destination_wallet_id", sa.Uuid(), sa.ForeignKey("user_wallets.id"), nullable=True),
            sa.Column("reason", sa.String(length=500), nullable=True),
            sa.Column("policy_id", sa.Uuid(), sa.ForeignKey("reward_policies.id"), nullable=True),
            sa.Column("policy_type", sa.String(length=30), nullable=True),
            sa.Column("unit_value", sa.Integer(), nullable=True),
            sa.Column("points_per_unit", sa.Integer(), nullable=True),
            sa.Column("units", sa.Integer(), nullable=True),
            sa.Column("attendance_fact_id", sa.Uuid(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), nullable=False),
            sa.CheckConstraint("amount >= 0", name="ck_point_transactions_amount_non_negative"),
        )
        op.create_index("ix_point_transactions_source_wallet", "point_transactions", ["source_wallet_id", "created_at"])
        op.create_index(
            "ix_point_transactions_destination_wallet", "point_transactions", ["destination_wallet_id", "created_at"]
        )
        op.create_index("ix_point_transactions_program", "point_transactions", ["reward_program_id", "created_at"])

    if "point_transaction_items" not in existing:
        op.create_table(
            "point_transaction_items",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("transaction_id", sa.Uuid(), sa.ForeignKey("point_transactions.id"), nullable=False),
            sa.Column("reward_item_id", sa.Uuid(), sa.ForeignKey("reward_items.id"), nullable=False),
            sa.Column("reward_item_name", sa.String(length=200), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_points", sa.Integer(), nullable=False),
            sa.Column("total_points", sa.Integer(), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.CheckConstraint("quantity >= 1", name="ck_point_transaction_items_quantity_positive"),
        )

    if "attendance_facts" not in existing:
        op.create_table(
            "attendance_facts",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("employee_id", sa.String(length=100), nullable=False),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=False),
            sa.Column("policy_type", sa.String(length=30), nullable=False),
            sa.Column("period_key", sa.String(length=50), nullable=False),
            sa.Column("magnitude", sa.Integer(), nullable=False),
            sa.Column("point_transaction_id", sa.Uuid(), nullable=True),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
            sa.UniqueConstraint(
                "employee_id",
                "reward_program_id",
                "policy_type",
                "period_key",
                name="uq_attendance_facts_natural_key",
            ),
        )

    if "budget_resets" not in existing:
        op.create_table(
            "budget_resets",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=False),
            sa.Column("period_key", sa.String(length=50), nullable=False),
            sa.Column("budget", sa.Integer(), nullable=False),
            sa.Column("wallets_reset", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.TIMESTAMP(), server_default=sa.func.now(), nullable=True),
            sa.UniqueConstraint("reward_program_id", "period_key", name="uq_budget_resets_program_period"),
        )

    if "scheduled_jobs" not in existing:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("job_key", sa.String(length=100), nullable=False, unique=True),
            sa.Column("job_type", sa.String(length=50), nullable=False, server_default="RESET_BUDGETS"),
            sa.Column("reward_program_id", sa.Uuid(), sa.ForeignKey("reward_programs.id"), nullable=True),
            sa.Column("schedule", sa.JSON(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=True),
            sa.Column("next_run_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("last_run_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("locked_at", sa.TIMESTAMP(), nullable=True),
            sa.Column("locked_by", sa.String(length=100), nullable=True),
            sa.Column("last_status", sa.String(length=20), nullable=True),
            sa.Column("last_error", sa.String(length=2000), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_scheduled_jobs_next_run_at", "scheduled_jobs", ["next_run_at"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing = set(insp.get_table_names())

    for table in (
        "scheduled_jobs",
        "budget_resets",
        "attendance_facts",
        "point_transaction_items",
        "point_transactions",
        "user_wallets",
        "reward_items",
        "reward_policies",
        "reward_programs",
    ):
        if table in existing:
            op.drop_table(table)
