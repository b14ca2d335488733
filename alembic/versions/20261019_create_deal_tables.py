"""create deals, score history, audit entries, communications and sweep runs

Revision ID: 20261019_deals
Revises:
Create Date: 2026-10-19

Deal confidence scoring: deals with lifecycle state and persisted score,
append-only score history and audit trail, the logged message timeline,
and one row per daily sweep.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_deals"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "deals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("client_id", sa.String(length=64), nullable=False),
        sa.Column("rep_id", sa.String(length=64), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("budget_clarity", sa.String(length=32), nullable=True),
        sa.Column("competition", sa.String(length=32), nullable=True),
        sa.Column("engagement", sa.String(length=32), nullable=True),
        sa.Column("plan_fit", sa.String(length=32), nullable=True),
        _ts("call_scored_at"),
        sa.Column("call_scored_by", sa.String(length=64), nullable=True),
        sa.Column("predicted_tier", sa.String(length=16), nullable=True),
        _ts("sent_at"),
        _ts("first_email_opened_at"),
        _ts("first_proposal_viewed_at"),
        _ts("first_account_created_at"),
        _ts("first_reply_at"),
        _ts("last_inbound_at"),
        _ts("last_outbound_at"),
        sa.Column("unanswered_outbound_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_invites", sa.Integer(), server_default="0", nullable=False),
        sa.Column("invites_opened", sa.Integer(), server_default="0", nullable=False),
        sa.Column("invites_viewed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("state", sa.String(length=16), server_default="active", nullable=False),
        _ts("snoozed_until"),
        sa.Column("snooze_reason", sa.Text(), nullable=True),
        _ts("archived_at"),
        sa.Column("archive_reason", sa.String(length=32), nullable=True),
        sa.Column("archive_notes", sa.Text(), nullable=True),
        _ts("revived_at"),
        _ts("terminal_at"),
        sa.Column("terminal_reason", sa.Text(), nullable=True),
        _ts("penalty_clock_reset_at"),
        sa.Column("confidence_score", sa.Integer(), server_default="50", nullable=False),
        sa.Column("score_breakdown", _JSON, nullable=True),
        sa.Column("scored_state", sa.String(length=16), nullable=True),
        _ts("last_scored_at"),
        sa.Column("config_version", sa.String(length=32), nullable=True),
        sa.Column("predicted_monthly", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("predicted_onetime", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
        sa.CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 100",
            name="ck_deals_confidence_score_range",
        ),
        sa.CheckConstraint("unanswered_outbound_count >= 0", name="ck_deals_unanswered_nonneg"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_deals_client_id", "deals", ["client_id"])
    op.create_index("ix_deals_rep_id", "deals", ["rep_id"])
    op.create_index("ix_deals_state", "deals", ["state"])

    op.create_table(
        "deal_score_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deal_id", sa.Integer(), nullable=False),
        _ts("computed_at", nullable=False),
        _ts("as_of", nullable=False),
        sa.Column("confidence_score", sa.Integer(), nullable=False),
        sa.Column("previous_score", sa.Integer(), nullable=True),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("trigger", sa.String(length=64), nullable=False),
        sa.Column("config_version", sa.String(length=32), nullable=False),
        sa.Column("breakdown", _JSON, nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_deal_score_history_deal_computed",
        "deal_score_history",
        ["deal_id", "computed_at"],
    )

    op.create_table(
        "deal_audit_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deal_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        _ts("occurred_at", nullable=False),
        sa.Column("details", _JSON, nullable=True),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_deal_audit_entries_deal_occurred",
        "deal_audit_entries",
        ["deal_id", "occurred_at"],
    )

    op.create_table(
        "deal_communications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("deal_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("channel", sa.String(length=16), nullable=False),
        _ts("occurred_at", nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        _ts("created_at", nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_deal_communications_deal_occurred",
        "deal_communications",
        ["deal_id", "occurred_at"],
    )

    op.create_table(
        "sweep_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("run_type", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        _ts("started_at", nullable=False),
        _ts("finished_at"),
        sa.Column("processed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("succeeded", sa.Integer(), server_default="0", nullable=False),
        sa.Column("skipped", sa.Integer(), server_default="0", nullable=False),
        sa.Column("failed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("diagnostics", _JSON, nullable=True),
        sa.Column("config_version", sa.String(length=32), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("sweep_runs")
    op.drop_index("ix_deal_communications_deal_occurred", table_name="deal_communications")
    op.drop_table("deal_communications")
    op.drop_index("ix_deal_audit_entries_deal_occurred", table_name="deal_audit_entries")
    op.drop_table("deal_audit_entries")
    op.drop_index("ix_deal_score_history_deal_computed", table_name="deal_score_history")
    op.drop_table("deal_score_history")
    op.drop_index("ix_deals_state", table_name="deals")
    op.drop_index("ix_deals_rep_id", table_name="deals")
    op.drop_index("ix_deals_client_id", table_name="deals")
    op.drop_table("deals")
