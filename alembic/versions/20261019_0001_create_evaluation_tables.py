"""create ledger_accounts, ledger_transactions, evaluations, phase_results, reports

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    # ---------------------------------------------------------------------------
    # ledger_accounts
    # One row per user. Money in integer cents.
    # ---------------------------------------------------------------------------
    op.create_table(
        "ledger_accounts",
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("balance_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "outstanding_cents",
            sa.BigInteger(),
            nullable=False,
            server_default="0",
            comment="Pay-as-you-go charges not covered by the balance",
        ),
        sa.Column("is_pay_as_you_go", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("has_payment_method", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_spent_cents", sa.BigInteger(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("balance_cents >= 0", name="ck_ledger_accounts_balance_non_negative"),
        sa.CheckConstraint("outstanding_cents >= 0", name="ck_ledger_accounts_outstanding_non_negative"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    # ---------------------------------------------------------------------------
    # ledger_transactions
    # FK → ledger_accounts.user_id ON DELETE CASCADE
    # ---------------------------------------------------------------------------
    op.create_table(
        "ledger_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("evaluation_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False, comment="reserve, refund, top_up"),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("balance_after_cents", sa.BigInteger(), nullable=False),
        sa.Column("outstanding_after_cents", sa.BigInteger(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["user_id"], ["ledger_accounts.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_ledger_transactions_user_id_evaluation_id",
        "ledger_transactions",
        ["user_id", "evaluation_id"],
    )
    op.create_index("ix_ledger_transactions_created_at", "ledger_transactions", ["created_at"])

    # ---------------------------------------------------------------------------
    # evaluations
    # Row id doubles as the session id.
    # ---------------------------------------------------------------------------
    op.create_table(
        "evaluations",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column(
            "snapshot",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Raw metrics returned by the capture service",
        ),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_evaluations_user_id_created_at", "evaluations", ["user_id", "created_at"])

    # ---------------------------------------------------------------------------
    # phase_results
    # FK → evaluations.id ON DELETE CASCADE
    # ---------------------------------------------------------------------------
    op.create_table(
        "phase_results",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("evaluation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("phase", sa.String(length=32), nullable=False),
        sa.Column("narrative", sa.Text(), nullable=False),
        sa.Column("metrics_subset", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("screenshot_ref", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["evaluation_id"], ["evaluations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_phase_results_user_id", "phase_results", ["user_id"])
    op.create_index(
        "ix_phase_results_evaluation_id_created_at",
        "phase_results",
        ["evaluation_id", "created_at"],
    )

    # ---------------------------------------------------------------------------
    # reports
    # FK → evaluations.id ON DELETE CASCADE
    # ---------------------------------------------------------------------------
    op.create_table(
        "reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("evaluation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("phase_scores", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("essential_metrics", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "validation",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="Per-section confidence, issues and warnings",
        ),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["evaluation_id"], ["evaluations.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reports_user_id_created_at", "reports", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_reports_user_id_created_at", table_name="reports")
    op.drop_table("reports")

    op.drop_index("ix_phase_results_evaluation_id_created_at", table_name="phase_results")
    op.drop_index("ix_phase_results_user_id", table_name="phase_results")
    op.drop_table("phase_results")

    op.drop_index("ix_evaluations_user_id_created_at", table_name="evaluations")
    op.drop_table("evaluations")

    op.drop_index("ix_ledger_transactions_created_at", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_user_id_evaluation_id", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")

    op.drop_table("ledger_accounts")
