"""lottery schema

Revision ID: 0001_lottery_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import tierdraw.models.id_type


revision: str = "0001_lottery_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _amount():
    return tierdraw.models.id_type.BigUint()


def upgrade() -> None:
    op.create_table(
        "lotteries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("escrow_address", sa.String(length=255), nullable=False),
        sa.Column("phase", sa.String(length=30), nullable=False),
        sa.Column("reward_token", sa.String(length=255), nullable=True),
        sa.Column("cap", _amount(), nullable=True),
        sa.Column("mint_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("burn_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lottery_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_supply", sa.Integer(), nullable=False),
        sa.Column("initialized_organizations", sa.Integer(), nullable=False),
        sa.Column("random_request_id", sa.String(length=64), nullable=True),
        sa.Column("random_salt", _amount(), nullable=True),
        sa.Column("next_tier_position", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "phase IN ('pending_setup', 'configured', 'initializing', 'initialized', "
            "'randomness_requested', 'drawn', 'settling', 'settled')",
            name=op.f("ck_lotteries_phase_enum"),
        ),
        sa.CheckConstraint(
            "total_supply >= 0", name=op.f("ck_lotteries_total_supply_non_negative")
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lotteries")),
        sa.UniqueConstraint("name", name="lotteries_name_key"),
    )
    op.create_table(
        "role_grants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("account", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=50), nullable=False),
        sa.Column("granted_by", sa.String(length=255), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_role_grants")),
        sa.UniqueConstraint("account", "role", name="uq_role_grant"),
    )
    op.create_index(
        op.f("ix_role_grants_account"), "role_grants", ["account"], unique=False
    )
    op.create_table(
        "lottery_organizations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lottery_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("share_bps", sa.Integer(), nullable=True),
        sa.Column("first_ticket_id", sa.Integer(), nullable=True),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("initialized", sa.Boolean(), nullable=False),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "ticket_count >= 0",
            name=op.f("ck_lottery_organizations_org_ticket_count_non_negative"),
        ),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_lottery_organizations_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_organizations")),
        sa.UniqueConstraint(
            "lottery_id", "address", name="uq_lottery_organization_address"
        ),
        sa.UniqueConstraint(
            "lottery_id", "position", name="uq_lottery_organization_position"
        ),
    )
    op.create_table(
        "lottery_tiers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lottery_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("tier_type", sa.String(length=20), nullable=False),
        sa.Column("winners_share", sa.Integer(), nullable=False),
        sa.Column("winners_count", sa.Integer(), nullable=True),
        sa.Column("reward_amount", _amount(), nullable=False),
        sa.Column("organization_quotas", sa.JSON(), nullable=True),
        sa.Column("draw_counter", sa.Integer(), nullable=False),
        sa.Column("fill_position", sa.Integer(), nullable=False),
        sa.Column("selection_complete", sa.Boolean(), nullable=False),
        sa.Column("rewarded", sa.Boolean(), nullable=False),
        sa.CheckConstraint(
            "tier_type IN ('jackpot','random_share','fixed_count')",
            name=op.f("ck_lottery_tiers_tier_type_enum"),
        ),
        sa.CheckConstraint(
            "winners_share >= 0 AND winners_share <= 10000",
            name=op.f("ck_lottery_tiers_winners_share_bps"),
        ),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_lottery_tiers_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_tiers")),
        sa.UniqueConstraint("lottery_id", "position", name="uq_lottery_tier_position"),
    )
    op.create_index(
        op.f("ix_lottery_tiers_lottery_id"), "lottery_tiers", ["lottery_id"], unique=False
    )
    op.create_table(
        "randomness_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("request_id", sa.String(length=64), nullable=False),
        sa.Column("lottery_id", sa.Integer(), nullable=False),
        sa.Column("raw_word", _amount(), nullable=True),
        sa.Column("salt", _amount(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_randomness_requests_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_randomness_requests")),
        sa.UniqueConstraint(
            "request_id", name=op.f("uq_randomness_requests_request_id")
        ),
    )
    op.create_index(
        op.f("ix_randomness_requests_lottery_id"),
        "randomness_requests",
        ["lottery_id"],
        unique=False,
    )
    op.create_table(
        "lottery_campaigns",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lottery_id", sa.Integer(), nullable=False),
        sa.Column("organization_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("ticket_contract", sa.String(length=255), nullable=False),
        sa.Column("first_ticket_id", sa.Integer(), nullable=True),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "ticket_count >= 0",
            name=op.f("ck_lottery_campaigns_campaign_ticket_count_non_negative"),
        ),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_lottery_campaigns_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["lottery_organizations.id"],
            name=op.f("fk_lottery_campaigns_organization_id_lottery_organizations"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_campaigns")),
        sa.UniqueConstraint(
            "lottery_id", "ticket_contract", name="uq_lottery_campaign_contract"
        ),
    )
    op.create_index(
        "ix_lottery_campaign_first_ticket",
        "lottery_campaigns",
        ["lottery_id", "first_ticket_id"],
        unique=False,
    )
    op.create_table(
        "lottery_winners",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("lottery_id", sa.Integer(), nullable=False),
        sa.Column("tier_id", sa.Integer(), nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("organization_position", sa.Integer(), nullable=True),
        sa.Column("owner", sa.String(length=255), nullable=True),
        sa.Column("amount", _amount(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('selected','paid','over_cap')",
            name=op.f("ck_lottery_winners_winner_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["lottery_id"],
            ["lotteries.id"],
            name=op.f("fk_lottery_winners_lottery_id_lotteries"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["tier_id"],
            ["lottery_tiers.id"],
            name=op.f("fk_lottery_winners_tier_id_lottery_tiers"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_lottery_winners")),
        sa.UniqueConstraint("lottery_id", "ticket_id", name="uq_lottery_winner_ticket"),
    )
    op.create_index(
        op.f("ix_lottery_winners_tier_id"), "lottery_winners", ["tier_id"], unique=False
    )
    op.create_index(
        "ix_lottery_winner_status", "lottery_winners", ["lottery_id", "status"], unique=False
    )
    op.create_index(
        "ix_lottery_winner_owner", "lottery_winners", ["lottery_id", "owner"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_lottery_winner_owner", table_name="lottery_winners")
    op.drop_index("ix_lottery_winner_status", table_name="lottery_winners")
    op.drop_index(op.f("ix_lottery_winners_tier_id"), table_name="lottery_winners")
    op.drop_table("lottery_winners")
    op.drop_index("ix_lottery_campaign_first_ticket", table_name="lottery_campaigns")
    op.drop_table("lottery_campaigns")
    op.drop_index(
        op.f("ix_randomness_requests_lottery_id"), table_name="randomness_requests"
    )
    op.drop_table("randomness_requests")
    op.drop_index(op.f("ix_lottery_tiers_lottery_id"), table_name="lottery_tiers")
    op.drop_table("lottery_tiers")
    op.drop_table("lottery_organizations")
    op.drop_index(op.f("ix_role_grants_account"), table_name="role_grants")
    op.drop_table("role_grants")
    op.drop_table("lotteries")
