from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker
from tierdraw.db.engine import make_engine
from tierdraw.models import (
    Base,
    Lottery,
    LotteryCampaign,
    LotteryOrganization,
    LotteryPhase,
    LotteryTier,
    RoleGrant,
    TierType,
)
from tierdraw.draw.tiers import organization_quotas
from tierdraw.security import (
    ADMIN_ROLE,
    OPERATOR_ROLE,
    ORACLE_ROLE,
    REGISTRAR_ROLE,
    REWARDER_ROLE,
)

DEMO_ORGANIZATIONS = [
    # (address, share in bps, [ticket contracts])
    ("org-sendai@example.com", 8000, ["tickets-sendai-spring", "tickets-sendai-autumn"]),
    ("org-sapporo@example.com", 2000, ["tickets-sapporo-summer"]),
]


def main() -> None:
    """Seed the development database with a configured demo lottery.

    Ticket ranges are left unallocated: they depend on the live ticket
    counts and are assigned by ``LotteryEngine.initialize_lottery``.
    """
    engine = make_engine()

    # SQLite cannot drop tables with foreign keys pointing at them while the
    # check is enabled.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        session.add_all(
            [
                RoleGrant(account="admin@example.com", role=ADMIN_ROLE),
                RoleGrant(account="registrar@example.com", role=REGISTRAR_ROLE),
                RoleGrant(account="operator@example.com", role=OPERATOR_ROLE),
                RoleGrant(account="rewarder@example.com", role=REWARDER_ROLE),
                RoleGrant(account="oracle@example.com", role=ORACLE_ROLE),
            ]
        )

        lottery = Lottery(
            name="demo-2026",
            escrow_address="escrow@example.com",
            phase=LotteryPhase.CONFIGURED.value,
            reward_token="reward-token",
            cap=500,
            mint_deadline=now + timedelta(days=7),
            burn_deadline=now + timedelta(days=14),
            lottery_time=now + timedelta(days=15),
            total_supply=0,
            initialized_organizations=0,
            next_tier_position=0,
        )
        session.add(lottery)

        for position, (address, share, contracts) in enumerate(DEMO_ORGANIZATIONS):
            organization = LotteryOrganization(
                position=position,
                address=address,
                share_bps=share,
                ticket_count=0,
                initialized=False,
            )
            lottery.organizations.append(organization)
            for campaign_position, contract in enumerate(contracts):
                lottery.campaigns.append(
                    LotteryCampaign(
                        organization=organization,
                        position=campaign_position,
                        ticket_contract=contract,
                        ticket_count=0,
                    )
                )

        shares = [share for _, share, _ in DEMO_ORGANIZATIONS]
        lottery.tiers.extend(
            [
                LotteryTier(
                    position=0,
                    tier_type=TierType.JACKPOT,
                    reward_amount=1000,
                    winners_count=1,
                ),
                LotteryTier(
                    position=1,
                    tier_type=TierType.RANDOM_SHARE,
                    reward_amount=100,
                    winners_share=500,
                ),
                LotteryTier(
                    position=2,
                    tier_type=TierType.FIXED_COUNT,
                    reward_amount=10,
                    winners_count=10,
                    organization_quotas=organization_quotas(10, shares),
                ),
            ]
        )
        session.flush()

    print("Development database seeded.")


if __name__ == "__main__":
    main()
