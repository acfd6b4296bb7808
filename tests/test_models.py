import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from tierdraw.models import (
    Base,
    Lottery,
    LotteryOrganization,
    LotteryPhase,
    LotteryTier,
    LotteryWinner,
    RandomnessRequest,
    RoleGrant,
    TierType,
)
from tierdraw.models.utils import generate_unique_request_id
from tierdraw.security import ADMIN_ROLE, REWARDER_ROLE, RoleAuthorizer

WHEN = datetime(2026, 3, 1, tzinfo=timezone.utc)


def make_lottery(name: str = "model-draw") -> Lottery:
    return Lottery(
        name=name,
        escrow_address="escrow@example.com",
        phase=LotteryPhase.PENDING_SETUP.value,
        mint_deadline=WHEN,
        burn_deadline=WHEN,
        lottery_time=WHEN,
    )


class DBTestCase(unittest.TestCase):
    def setUp(self):
        # In-memory SQLite for isolation
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()

    def test_lottery_get_by_name(self):
        with self.Session() as session:
            session.add(make_lottery())
            session.commit()

            fetched = Lottery.get_by_name(session, "model-draw")
            self.assertIsNotNone(fetched)
            self.assertEqual(fetched.current_phase, LotteryPhase.PENDING_SETUP)
            self.assertIsNone(Lottery.get_by_name(session, "missing"))

    def test_lottery_name_unique(self):
        with self.Session() as session:
            session.add(make_lottery())
            session.commit()
            session.add(make_lottery())
            with self.assertRaises(IntegrityError):
                session.commit()

    def test_big_amounts_survive_round_trip(self):
        huge = 2**255 + 12345
        with self.Session() as session:
            lottery = make_lottery()
            lottery.cap = huge
            lottery.random_salt = 2**256 - 1
            session.add(lottery)
            session.commit()
            lottery_id = lottery.id

        with self.Session() as session:
            loaded = session.get(Lottery, lottery_id)
            self.assertEqual(loaded.cap, huge)
            self.assertEqual(loaded.random_salt, 2**256 - 1)

    def test_amount_column_rejects_out_of_range_values(self):
        with self.Session() as session:
            lottery = make_lottery()
            lottery.cap = -1
            session.add(lottery)
            with self.assertRaises(Exception):
                session.commit()
            session.rollback()

            lottery = make_lottery("other")
            lottery.cap = 2**256
            session.add(lottery)
            with self.assertRaises(Exception):
                session.commit()

    def test_ticket_wins_only_once_per_lottery(self):
        with self.Session() as session:
            lottery = make_lottery()
            lottery.tiers.extend(
                [
                    LotteryTier(position=0, tier_type=TierType.JACKPOT, reward_amount=5, winners_count=1),
                    LotteryTier(position=1, tier_type=TierType.FIXED_COUNT, reward_amount=1, winners_count=2),
                ]
            )
            session.add(lottery)
            session.flush()
            jackpot, fixed = lottery.tiers
            jackpot.winners.append(LotteryWinner(lottery_id=lottery.id, ticket_id=3, amount=5))
            session.flush()
            fixed.winners.append(LotteryWinner(lottery_id=lottery.id, ticket_id=3, amount=1))
            with self.assertRaises(IntegrityError):
                session.flush()

    def test_winner_defaults_to_selected(self):
        with self.Session() as session:
            lottery = make_lottery()
            tier = LotteryTier(position=0, tier_type="jackpot", reward_amount=5, winners_count=1)
            lottery.tiers.append(tier)
            session.add(lottery)
            session.flush()
            winner = LotteryWinner(lottery_id=lottery.id, ticket_id=0, amount=5)
            tier.winners.append(winner)
            session.commit()
            self.assertEqual(winner.status, "selected")
            self.assertFalse(winner.paid)
            self.assertEqual(tier.type, TierType.JACKPOT)

    def test_organization_range_helpers(self):
        organization = LotteryOrganization(
            position=0, address="org", first_ticket_id=10, ticket_count=5, initialized=True
        )
        self.assertEqual(organization.last_ticket_id, 14)
        self.assertTrue(organization.contains(10))
        self.assertTrue(organization.contains(14))
        self.assertFalse(organization.contains(15))
        empty = LotteryOrganization(
            position=1, address="empty", first_ticket_id=15, ticket_count=0, initialized=True
        )
        self.assertIsNone(empty.last_ticket_id)
        self.assertFalse(empty.contains(15))

    def test_request_id_without_session_is_unchecked(self):
        request_id = generate_unique_request_id("rnd", length=8)
        self.assertRegex(request_id, r"^rnd-[0-9A-Za-z]{8}$")

    def test_request_ids_are_unique_base62(self):
        with self.Session() as session:
            lottery = make_lottery()
            session.add(lottery)
            session.flush()
            seen = set()
            for _ in range(20):
                request_id = generate_unique_request_id("rnd", session)
                self.assertTrue(request_id.startswith("rnd-"))
                self.assertTrue(request_id[4:].isalnum())
                session.add(RandomnessRequest(request_id=request_id, lottery_id=lottery.id))
                session.flush()
                seen.add(request_id)
            self.assertEqual(len(seen), 20)


class RoleGrantTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)

    def tearDown(self):
        self.engine.dispose()

    def test_accounts_are_normalized(self):
        with self.Session() as session:
            session.add(RoleGrant(account="  Rewarder@Example.com ", role=REWARDER_ROLE))
            session.commit()
            self.assertTrue(RoleGrant.has_role(session, "rewarder@example.com", REWARDER_ROLE))
            self.assertTrue(RoleGrant.has_role(session, "REWARDER@example.com", REWARDER_ROLE))
            self.assertFalse(RoleGrant.has_role(session, "rewarder@example.com", ADMIN_ROLE))

    def test_grant_is_idempotent(self):
        with self.Session() as session:
            authorizer = RoleAuthorizer(session)
            first = authorizer.grant("ops@example.com", REWARDER_ROLE, granted_by="admin")
            second = authorizer.grant("OPS@example.com", REWARDER_ROLE)
            self.assertEqual(first.id, second.id)
            count = len(session.scalars(select(RoleGrant)).all())
            self.assertEqual(count, 1)

    def test_admin_implies_every_action(self):
        with self.Session() as session:
            authorizer = RoleAuthorizer(session)
            authorizer.grant("root@example.com", ADMIN_ROLE)
            authorizer.grant("ops@example.com", REWARDER_ROLE)
            self.assertTrue(authorizer.is_authorized("root@example.com", "reward_over_cap_winners"))
            self.assertTrue(authorizer.is_authorized("root@example.com", "fulfill_random_number"))
            self.assertTrue(authorizer.is_authorized("ops@example.com", "reward_over_cap_winners"))
            self.assertFalse(authorizer.is_authorized("ops@example.com", "setup_lottery"))
            with self.assertRaises(KeyError):
                authorizer.is_authorized("root@example.com", "mint_tickets")


if __name__ == "__main__":
    unittest.main()
