import unittest
from datetime import timedelta

from fakes import (
    BURN_DEADLINE,
    ESCROW,
    LOTTERY_TIME,
    MINT_DEADLINE,
    Clock,
    configured_engine,
    drawn_engine,
    memory_sessionmaker,
    two_organization_client,
)
from tierdraw.draw.engine import LotteryEngine
from tierdraw.errors import (
    AuthorizationError,
    PhaseError,
    ResourceNotFound,
    ValidationError,
)
from tierdraw.models import LotteryPhase
from tierdraw.oracle import RandomnessOracle, normalize_salt
from tierdraw.security import REGISTRAR_ROLE, RoleAuthorizer
from tierdraw.workflows import create_lottery, lottery_summary, settle_lottery


class CreateLotteryTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = memory_sessionmaker()

    def tearDown(self):
        self.engine.dispose()

    def test_create_lottery_persists_pending_lottery(self):
        with self.Session() as session:
            lottery = create_lottery(
                session, "autumn", ESCROW, MINT_DEADLINE, BURN_DEADLINE, LOTTERY_TIME
            )
            self.assertIsNotNone(lottery.id)
            self.assertEqual(lottery.current_phase, LotteryPhase.PENDING_SETUP)
            self.assertEqual(lottery.total_supply, 0)

    def test_schedule_must_increase(self):
        with self.Session() as session:
            with self.assertRaises(ValidationError) as ctx:
                create_lottery(
                    session, "autumn", ESCROW, BURN_DEADLINE, MINT_DEADLINE, LOTTERY_TIME
                )
            self.assertEqual(str(ctx.exception), "Incorrect time values")
            with self.assertRaises(ValidationError):
                create_lottery(
                    session, "autumn", ESCROW, MINT_DEADLINE, LOTTERY_TIME, LOTTERY_TIME
                )

    def test_naive_datetimes_are_treated_as_utc(self):
        with self.Session() as session:
            lottery = create_lottery(
                session,
                "naive",
                ESCROW,
                MINT_DEADLINE.replace(tzinfo=None),
                BURN_DEADLINE.replace(tzinfo=None),
                LOTTERY_TIME.replace(tzinfo=None),
            )
            self.assertEqual(lottery.lottery_time, LOTTERY_TIME)

    def test_duplicate_name_rejected(self):
        with self.Session() as session:
            create_lottery(session, "autumn", ESCROW, MINT_DEADLINE, BURN_DEADLINE, LOTTERY_TIME)
            with self.assertRaises(ValidationError):
                create_lottery(
                    session, "autumn", ESCROW, MINT_DEADLINE, BURN_DEADLINE, LOTTERY_TIME
                )


class AuthorizationTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = memory_sessionmaker()
        self.session = self.Session()
        self.client = two_organization_client()
        lottery = create_lottery(
            self.session, "guarded", ESCROW, MINT_DEADLINE, BURN_DEADLINE, LOTTERY_TIME
        )
        self.lottery_engine = LotteryEngine(
            self.session, lottery, caller="mallory@example.com", client=self.client, clock=Clock()
        )

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def test_unprivileged_caller_rejected(self):
        with self.assertRaises(AuthorizationError) as ctx:
            self.lottery_engine.register_ticket_contract("tickets-a1")
        self.assertEqual(
            str(ctx.exception), "account mallory@example.com is missing role REGISTRAR"
        )
        self.assertEqual(self.lottery_engine.organizations(), [])

    def test_registrar_can_only_register(self):
        RoleAuthorizer(self.session).grant("mallory@example.com", REGISTRAR_ROLE)
        self.lottery_engine.register_ticket_contract("tickets-a1")
        with self.assertRaises(AuthorizationError):
            self.lottery_engine.setup_lottery("reward-token", 10, [], [10000])
        with self.assertRaises(AuthorizationError):
            self.lottery_engine.withdraw_all_tokens()
        with self.assertRaises(AuthorizationError):
            self.lottery_engine.fulfill_random_number("rnd-x", 5)

    def test_custom_authorizer_is_used(self):
        class AllowList:
            def __init__(self, allowed):
                self.allowed = allowed
                self.calls = []

            def is_authorized(self, caller, action):
                self.calls.append((caller, action))
                return action in self.allowed

        authorizer = AllowList({"register_ticket_contract"})
        lottery_engine = LotteryEngine(
            self.session,
            self.lottery_engine.lottery,
            caller="bot",
            client=self.client,
            authorizer=authorizer,
        )
        lottery_engine.register_ticket_contract("tickets-b1")
        self.assertEqual(authorizer.calls, [("bot", "register_ticket_contract")])


class RandomnessTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = memory_sessionmaker()
        self.session = self.Session()
        self.clock = Clock()
        self.lottery_engine = configured_engine(
            self.session, two_organization_client(), clock=self.clock
        )
        self.clock.now = BURN_DEADLINE + timedelta(hours=2)
        self.lottery_engine.initialize_lottery(0)
        self.clock.now = LOTTERY_TIME + timedelta(minutes=1)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def test_normalize_salt(self):
        self.assertEqual(normalize_salt(0), 1)
        self.assertEqual(normalize_salt(17), 17)
        with self.assertRaises(ValidationError):
            normalize_salt(2**256)
        with self.assertRaises(TypeError):
            normalize_salt(True)

    def test_single_delivery_per_request(self):
        request = self.lottery_engine.run_lottery()
        lottery = self.lottery_engine.lottery
        self.assertEqual(lottery.current_phase, LotteryPhase.RANDOMNESS_REQUESTED)
        self.assertEqual(lottery.random_request_id, request.request_id)

        oracle = RandomnessOracle(self.session)
        with self.assertRaises(PhaseError):
            oracle.get_random_number(request.request_id)

        self.assertEqual(self.lottery_engine.fulfill_random_number(request.request_id, 0), 1)
        self.assertEqual(lottery.current_phase, LotteryPhase.DRAWN)
        self.assertEqual(oracle.get_random_number(request.request_id), 1)
        self.assertEqual(request.raw_word, 0)

        with self.assertRaises(PhaseError):
            self.lottery_engine.fulfill_random_number(request.request_id, 99)
        self.assertEqual(self.lottery_engine.random_salt(), 1)

    def test_unknown_request_rejected(self):
        self.lottery_engine.run_lottery()
        with self.assertRaises(ResourceNotFound):
            self.lottery_engine.fulfill_random_number("rnd-unknown", 5)

    def test_second_request_rejected(self):
        self.lottery_engine.run_lottery()
        oracle = RandomnessOracle(self.session)
        with self.assertRaises(PhaseError) as ctx:
            oracle.request_random_number(self.lottery_engine.lottery)
        self.assertEqual(
            str(ctx.exception), "Lottery already has random number or request id pending"
        )


class SummaryTestCase(unittest.TestCase):
    def test_summary_after_settlement(self):
        engine, Session = memory_sessionmaker()
        session = Session()
        lottery_engine = drawn_engine(session, two_organization_client())
        settle_lottery(lottery_engine, tier_batch_count=0)

        summary = lottery_summary(lottery_engine)
        self.assertEqual(summary["phase"], LotteryPhase.SETTLED.value)
        self.assertEqual(summary["total_supply"], 20)
        self.assertEqual(summary["cap"], "1000")
        self.assertEqual(summary["lottery_time"], LOTTERY_TIME.isoformat())
        self.assertEqual([o["address"] for o in summary["organizations"]], ["org-a", "org-b"])
        self.assertEqual([t["type"] for t in summary["tiers"]], [
            "jackpot", "random_share", "fixed_count"
        ])
        self.assertEqual(len(summary["tiers"][0]["winners"]), 1)
        self.assertTrue(all(t["rewarded"] for t in summary["tiers"]))
        self.assertEqual(summary["over_cap"], [])
        session.close()
        engine.dispose()


if __name__ == "__main__":
    unittest.main()
