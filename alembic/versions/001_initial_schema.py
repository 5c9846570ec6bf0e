"""initial schema - publishers, websites, offerings, pricing rules, email processing

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-16

Natural-key unique indexes (websites.domain, publisher/website pairs,
offering/website pairs, pricing rule keys) back the reconciler's
existence checks against concurrent inserts.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list:
    cols = [sa.Column("created_at", sa.DateTime())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime()))
    return cols


def upgrade() -> None:
    op.create_table(
        "publishers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255)),
        sa.Column("company_name", sa.String(255)),
        sa.Column("phone", sa.String(100)),
        sa.Column("account_status", sa.String(20), nullable=False, server_default="shadow"),
        sa.Column("status", sa.String(20)),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("confidence_score", sa.Float()),
        sa.Column("source", sa.String(50)),
        sa.Column("source_metadata", sa.JSON()),
        sa.Column("invitation_token", sa.String(64)),
        sa.Column("invitation_expires_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_publishers_email", "publishers", ["email"])
    op.create_index("ix_publishers_email_status", "publishers", ["email", "account_status"])
    op.create_index("ix_publishers_invitation_token", "publishers", ["invitation_token"])

    op.create_table(
        "websites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20)),
        sa.Column("source", sa.String(50)),
        *_timestamps(),
    )
    op.create_index("ix_websites_domain", "websites", ["domain"], unique=True)

    op.create_table(
        "publisher_websites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("website_id", sa.String(36), sa.ForeignKey("websites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("added_at", sa.DateTime()),
    )
    op.create_index("ix_publisher_websites_pair", "publisher_websites", ["publisher_id", "website_id"], unique=True)

    op.create_table(
        "shadow_publisher_websites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("website_id", sa.String(36), sa.ForeignKey("websites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("confidence", sa.Float()),
        sa.Column("source", sa.String(50)),
        sa.Column("extraction_method", sa.String(100)),
        sa.Column("verified", sa.Boolean(), server_default=sa.false()),
        sa.Column("migration_status", sa.String(20)),
        *_timestamps(updated=False),
    )
    op.create_index("ix_shadow_websites_pair", "shadow_publisher_websites", ["publisher_id", "website_id"], unique=True)
    op.create_index("ix_shadow_websites_verified", "shadow_publisher_websites", ["verified"])

    op.create_table(
        "publisher_offerings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("offering_type", sa.String(50), nullable=False),
        sa.Column("offering_name", sa.String(255)),
        sa.Column("base_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("turnaround_days", sa.Integer()),
        sa.Column("current_availability", sa.String(30)),
        sa.Column("express_available", sa.Boolean()),
        sa.Column("express_price", sa.Integer()),
        sa.Column("express_days", sa.Integer()),
        sa.Column("min_word_count", sa.Integer()),
        sa.Column("max_word_count", sa.Integer()),
        sa.Column("niches", sa.JSON()),
        sa.Column("languages", sa.JSON()),
        sa.Column("attributes", sa.JSON()),
        sa.Column("is_active", sa.Boolean()),
        *_timestamps(),
    )
    op.create_index("ix_offerings_publisher_type", "publisher_offerings", ["publisher_id", "offering_type"])
    op.create_index("ix_offerings_active", "publisher_offerings", ["is_active"])

    op.create_table(
        "publisher_offering_relationships",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "offering_id", sa.String(36), sa.ForeignKey("publisher_offerings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("website_id", sa.String(36), sa.ForeignKey("websites.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_primary", sa.Boolean()),
        sa.Column("is_active", sa.Boolean()),
        *_timestamps(),
    )
    op.create_index(
        "ix_offering_rel_pair", "publisher_offering_relationships", ["offering_id", "website_id"], unique=True
    )
    op.create_index("ix_offering_rel_publisher", "publisher_offering_relationships", ["publisher_id"])

    op.create_table(
        "publisher_pricing_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "offering_id", sa.String(36), sa.ForeignKey("publisher_offerings.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("rule_type", sa.String(50), nullable=False),
        sa.Column("rule_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("conditions", sa.JSON(), nullable=False),
        sa.Column("actions", sa.JSON(), nullable=False),
        sa.Column("priority", sa.Integer()),
        sa.Column("is_cumulative", sa.Boolean()),
        sa.Column("auto_apply", sa.Boolean()),
        sa.Column("requires_approval", sa.Boolean()),
        sa.Column("is_active", sa.Boolean()),
        *_timestamps(),
    )
    op.create_index(
        "ix_pricing_rules_natural_key",
        "publisher_pricing_rules",
        ["offering_id", "rule_type", "rule_name"],
        unique=True,
    )

    op.create_table(
        "email_processing_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("campaign_id", sa.String(255)),
        sa.Column("campaign_type", sa.String(50)),
        sa.Column("email_from", sa.String(255), nullable=False),
        sa.Column("email_subject", sa.String(500)),
        sa.Column("email_message_id", sa.String(255)),
        sa.Column("received_at", sa.DateTime()),
        sa.Column("raw_content", sa.Text(), nullable=False),
        sa.Column("parsed_data", sa.JSON()),
        sa.Column("confidence_score", sa.Float()),
        sa.Column("parsing_errors", sa.JSON()),
        sa.Column("status", sa.String(50)),
        sa.Column("error_message", sa.Text()),
        sa.Column("processed_at", sa.DateTime()),
        sa.Column("processing_duration_ms", sa.Integer()),
        sa.Column("qualification_status", sa.String(50)),
        sa.Column("disqualification_reason", sa.String(100)),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="SET NULL")),
        *_timestamps(),
    )
    op.create_index("ix_email_logs_status", "email_processing_logs", ["status"])
    op.create_index("ix_email_logs_email_from", "email_processing_logs", ["email_from"])
    op.create_index("ix_email_logs_message_id", "email_processing_logs", ["email_message_id"])
    op.create_index("ix_email_logs_created", "email_processing_logs", ["created_at"])

    op.create_table(
        "email_review_queue",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "log_id", sa.String(36), sa.ForeignKey("email_processing_logs.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="SET NULL")),
        sa.Column("priority", sa.Integer()),
        sa.Column("status", sa.String(50)),
        sa.Column("queue_reason", sa.String(100)),
        sa.Column("suggested_actions", sa.JSON()),
        sa.Column("missing_fields", sa.JSON()),
        sa.Column("review_notes", sa.Text()),
        sa.Column("reviewed_at", sa.DateTime()),
        sa.Column("auto_approve_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_review_queue_status", "email_review_queue", ["status"])
    op.create_index("ix_review_queue_priority", "email_review_queue", ["priority"])
    op.create_index("ix_review_queue_auto_approve", "email_review_queue", ["auto_approve_at"])

    op.create_table(
        "publisher_automation_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email_log_id", sa.String(36), sa.ForeignKey("email_processing_logs.id", ondelete="SET NULL")),
        sa.Column("publisher_id", sa.String(36), sa.ForeignKey("publishers.id", ondelete="SET NULL")),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("action_status", sa.String(50)),
        sa.Column("previous_data", sa.JSON()),
        sa.Column("new_data", sa.JSON()),
        sa.Column("fields_updated", sa.JSON()),
        sa.Column("confidence", sa.Float()),
        sa.Column("match_method", sa.String(50)),
        sa.Column("metadata", sa.JSON()),
        *_timestamps(updated=False),
    )
    op.create_index("ix_automation_logs_publisher", "publisher_automation_logs", ["publisher_id"])
    op.create_index("ix_automation_logs_email", "publisher_automation_logs", ["email_log_id"])
    op.create_index("ix_automation_logs_action", "publisher_automation_logs", ["action"])


def downgrade() -> None:
    """Drop all tables. DESTRUCTIVE — dev/test only."""
    for table in (
        "publisher_automation_logs",
        "email_review_queue",
        "email_processing_logs",
        "publisher_pricing_rules",
        "publisher_offering_relationships",
        "publisher_offerings",
        "shadow_publisher_websites",
        "publisher_websites",
        "websites",
        "publishers",
    ):
        op.drop_table(table)
