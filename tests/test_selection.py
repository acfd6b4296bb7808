import hashlib
import unittest
from datetime import timedelta

from fakes import (
    BURN_DEADLINE,
    Clock,
    FakeChainClient,
    configured_engine,
    drawn_engine,
    memory_sessionmaker,
    two_organization_client,
)
from tierdraw.draw.selection import (
    MAX_REJECTIONS,
    SelectionProgress,
    SelectionWindow,
    WinnerSelector,
    candidate_ticket_id,
    selection_hash,
)
from tierdraw.draw.tiers import TierDefinition
from tierdraw.errors import PhaseError
from tierdraw.models import TierType


class SelectionHashTests(unittest.TestCase):
    def test_hash_uses_three_big_endian_words(self):
        expected = hashlib.sha256(
            (7).to_bytes(32, "big") + (1).to_bytes(32, "big") + (3).to_bytes(32, "big")
        ).digest()
        self.assertEqual(selection_hash(7, 1, 3), int.from_bytes(expected, "big"))

    def test_candidate_stays_inside_window(self):
        for counter in range(50):
            candidate = candidate_ticket_id(99, 0, counter, span=5, offset=10)
            self.assertGreaterEqual(candidate, 10)
            self.assertLess(candidate, 15)

    def test_salt_must_be_positive(self):
        with self.assertRaises(ValueError):
            selection_hash(0, 0, 0)


class WinnerSelectorTests(unittest.TestCase):
    def test_same_inputs_same_winners(self):
        windows = [SelectionWindow(offset=0, span=1000, quota=25)]
        first = WinnerSelector(12345, 1, windows).run()
        second = WinnerSelector(12345, 1, windows).run()
        self.assertEqual(first.found, second.found)
        self.assertEqual(first.counter, second.counter)
        self.assertTrue(first.complete)

    def test_different_tier_index_changes_winners(self):
        windows = [SelectionWindow(offset=0, span=1000, quota=25)]
        self.assertNotEqual(
            WinnerSelector(12345, 1, windows).run().found,
            WinnerSelector(12345, 2, windows).run().found,
        )

    def test_no_duplicates_even_when_every_ticket_wins(self):
        progress = WinnerSelector(5, 0, [SelectionWindow(offset=0, span=30, quota=30)]).run()
        self.assertEqual(sorted(progress.found), list(range(30)))

    def test_excluded_tickets_never_win(self):
        excluded = {0, 1, 2, 3, 4}
        progress = WinnerSelector(
            5, 1, [SelectionWindow(offset=0, span=10, quota=10)], excluded
        ).run()
        self.assertEqual(sorted(progress.found), [5, 6, 7, 8, 9])

    def test_quota_capped_at_free_tickets(self):
        selector = WinnerSelector(
            8,
            2,
            [
                SelectionWindow(offset=0, span=3, quota=8, organization_position=0),
                SelectionWindow(offset=3, span=10, quota=2, organization_position=1),
            ],
            excluded=[1],
        )
        self.assertEqual(selector.targets, [2, 2])
        progress = selector.run()
        self.assertEqual(len(progress.found), 4)
        self.assertEqual(sorted(t for t in progress.found if t < 3), [0, 2])

    def test_windows_fill_in_order(self):
        progress = WinnerSelector(
            77,
            2,
            [
                SelectionWindow(offset=0, span=50, quota=4, organization_position=0),
                SelectionWindow(offset=50, span=50, quota=3, organization_position=1),
            ],
        ).run()
        self.assertTrue(all(t < 50 for t in progress.found[:4]))
        self.assertTrue(all(50 <= t < 100 for t in progress.found[4:]))

    def test_resumed_selection_matches_single_run(self):
        windows = [
            SelectionWindow(offset=0, span=40, quota=6, organization_position=0),
            SelectionWindow(offset=40, span=40, quota=6, organization_position=1),
        ]
        expected = WinnerSelector(31, 2, windows).run()

        selector = WinnerSelector(31, 2, windows)
        progress = SelectionProgress()
        calls = 0
        while not progress.complete:
            progress = selector.advance(progress, max_attempts=1)
            calls += 1
        self.assertEqual(progress.found, expected.found)
        self.assertEqual(progress.counter, expected.counter)
        self.assertGreater(calls, 1)

    def test_dense_window_terminates_with_linear_probe(self):
        # With one of two tickets taken, the free one may never be hashed to.
        selector = WinnerSelector(
            3, 0, [SelectionWindow(offset=0, span=2, quota=2)]
        )
        progress = selector.run()
        self.assertEqual(sorted(progress.found), [0, 1])
        self.assertLessEqual(progress.counter, 1 + MAX_REJECTIONS)


class DrawTierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, self.Session = memory_sessionmaker()
        self.session = self.Session()

    def tearDown(self) -> None:
        self.session.close()
        self.engine.dispose()

    def test_draw_requires_salt(self):
        clock = Clock()
        lottery_engine = configured_engine(self.session, two_organization_client(), clock=clock)
        clock.now = BURN_DEADLINE + timedelta(hours=1)
        lottery_engine.initialize_lottery(0)
        with self.assertRaises(PhaseError) as ctx:
            lottery_engine.draw_tier(0)
        self.assertEqual(str(ctx.exception), "Request is pending or lottery is not run")

    def test_tiers_are_drawn_in_order(self):
        lottery_engine = drawn_engine(self.session, two_organization_client())
        with self.assertRaises(PhaseError):
            lottery_engine.draw_tier(1)
        self.assertEqual(lottery_engine.tier_winners(1), [])

    def test_full_population_draw_has_no_cross_tier_repeats(self):
        lottery_engine = drawn_engine(self.session, two_organization_client())
        for position in range(3):
            self.assertTrue(lottery_engine.draw_tier(position))

        jackpot = lottery_engine.tier_winners(0)
        random_share = lottery_engine.tier_winners(1)
        fixed = lottery_engine.tier_winners(2)
        self.assertEqual(len(jackpot), 1)
        self.assertEqual(len(random_share), 9)
        self.assertLessEqual(len(fixed), 10)
        every = jackpot + random_share + fixed
        self.assertEqual(len(every), len(set(every)))
        self.assertTrue(all(0 <= t < 20 for t in every))

        org_a = [t for t in fixed if t < 10]
        org_b = [t for t in fixed if t >= 10]
        self.assertLessEqual(len(org_a), 8)
        self.assertLessEqual(len(org_b), 2)

    def test_redrawing_complete_tier_is_noop(self):
        lottery_engine = drawn_engine(self.session, two_organization_client())
        lottery_engine.draw_tier(0)
        winners = lottery_engine.tier_winners(0)
        counter = lottery_engine.tier(0).draw_counter
        self.assertTrue(lottery_engine.draw_tier(0))
        self.assertEqual(lottery_engine.tier_winners(0), winners)
        self.assertEqual(lottery_engine.tier(0).draw_counter, counter)

    def test_fixed_count_quotas_met_with_ample_tickets(self):
        client = two_organization_client(first=60, second=40)
        lottery_engine = drawn_engine(self.session, client)
        lottery_engine.reward_winners(0)

        fixed = lottery_engine.tier(2)
        self.assertEqual(fixed.type, TierType.FIXED_COUNT)
        per_org = {0: 0, 1: 0}
        for winner in fixed.winners:
            per_org[winner.organization_position] += 1
        self.assertEqual(per_org, {0: 8, 1: 2})
        self.assertTrue(all(w.ticket_id < 60 for w in fixed.winners[:8]))
        self.assertTrue(all(60 <= w.ticket_id < 100 for w in fixed.winners[8:]))

    def test_same_salt_same_winners_across_databases(self):
        results = []
        for _ in range(2):
            engine, Session = memory_sessionmaker()
            session = Session()
            lottery_engine = drawn_engine(
                session, two_organization_client(first=60, second=40), raw_word=2**200 + 17
            )
            for position in range(3):
                lottery_engine.draw_tier(position)
            results.append([lottery_engine.tier_winners(p) for p in range(3)])
            session.close()
            engine.dispose()
        self.assertEqual(results[0], results[1])

    def test_batched_draw_matches_single_call(self):
        single = drawn_engine(self.session, two_organization_client(first=60, second=40))
        for position in range(3):
            single.draw_tier(position)

        engine, Session = memory_sessionmaker()
        session = Session()
        batched = drawn_engine(session, two_organization_client(first=60, second=40))
        for position in range(3):
            while not batched.draw_tier(position, max_attempts=1):
                pass
        for position in range(3):
            self.assertEqual(batched.tier_winners(position), single.tier_winners(position))
            self.assertEqual(
                batched.tier(position).draw_counter, single.tier(position).draw_counter
            )
        session.close()
        engine.dispose()

    def test_zero_word_normalizes_to_salt_one(self):
        first = drawn_engine(self.session, two_organization_client(), raw_word=0)
        self.assertEqual(first.random_salt(), 1)
        first.draw_tier(0)

        engine, Session = memory_sessionmaker()
        session = Session()
        second = drawn_engine(session, two_organization_client(), raw_word=1)
        second.draw_tier(0)
        self.assertEqual(first.tier_winners(0), second.tier_winners(0))
        session.close()
        engine.dispose()

    def test_empty_random_share_tier_completes(self):
        client = FakeChainClient()
        client.add_campaign("org-a", "tickets-a1", 3)
        lottery_engine = drawn_engine(
            self.session,
            client,
            tiers=[TierDefinition.jackpot(5), TierDefinition.random_share(100, 1)],
            shares=(10000,),
        )
        self.assertEqual(lottery_engine.tier(1).winners_count, 0)
        lottery_engine.draw_tier(0)
        self.assertTrue(lottery_engine.draw_tier(1))
        self.assertEqual(lottery_engine.tier_winners(1), [])


if __name__ == "__main__":
    unittest.main()
