from django.core.cache import cache
from django.test import SimpleTestCase

from election import lifecycle
from election.exceptions import (
    AlreadyVotedError,
    ElectionError,
    InvalidInputError,
    NotEligibleError,
    NotVotingPhaseError,
    PipelineDisabledError,
    UnauthorizedError,
)
from election.ledger.base import TX_ADD_CANDIDATE, TX_VOTE
from election.ledger.exceptions import LedgerOperationFailed
from election.state import Phase
from election.tests.utils_ledger import (
    ADMIN_KEY,
    ALICE,
    ALICE_KEY,
    BOB,
    BOB_KEY,
    CAROL,
    CAROL_KEY,
    DAVE_KEY,
    FakeLedger,
    open_test_session,
)


class LifecycleTests(SimpleTestCase):
    def setUp(self) -> None:
        cache.clear()

    def tearDown(self) -> None:
        cache.clear()

    async def test_alice_wins_with_two_of_three_votes(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.add_candidate(admin, "Bob")
            for voter in (ALICE, BOB, CAROL):
                await lifecycle.register_voter(admin, voter)
            await lifecycle.start_election(admin)

            for key, candidate_id in ((ALICE_KEY, 1), (BOB_KEY, 1), (CAROL_KEY, 2)):
                async with open_test_session(ledger, key) as voter:
                    await lifecycle.vote(voter, candidate_id)

            await lifecycle.end_election(admin)

            view = admin.require_view()
            self.assertEqual(view.phase, Phase.ENDED)
            self.assertEqual([(c.name, c.vote_count) for c in view.candidates], [("Alice", 2), ("Bob", 1)])
            assert view.winner is not None
            self.assertEqual(view.winner.candidate_id, 1)
            self.assertEqual(view.winner.name, "Alice")
            self.assertEqual(view.winner.votes, 2)

    async def test_second_vote_in_same_round_is_rejected_locally(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.register_voter(admin, ALICE)
            await lifecycle.start_election(admin)

        async with open_test_session(ledger, ALICE_KEY) as voter:
            await lifecycle.vote(voter, 1)
            self.assertTrue(voter.caller_status.has_voted_this_round)

            with self.assertRaises(AlreadyVotedError):
                await lifecycle.vote(voter, 1)

        self.assertEqual([f for f, _args in ledger.transactions].count(TX_VOTE), 1)

    async def test_vote_preconditions_are_checked_in_order(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.register_voter(admin, ALICE)

        async with open_test_session(ledger, ALICE_KEY) as voter:
            with self.assertRaises(NotVotingPhaseError):
                await lifecycle.vote(voter, 1)

        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.start_election(admin)

        async with open_test_session(ledger, DAVE_KEY) as outsider:
            with self.assertRaises(NotEligibleError):
                await lifecycle.vote(outsider, 1)

        async with open_test_session(ledger, ALICE_KEY) as voter:
            for bad_id in (0, 2, "abc"):
                with self.subTest(candidate_id=bad_id):
                    with self.assertRaises(InvalidInputError):
                        await lifecycle.vote(voter, bad_id)

        self.assertNotIn(TX_VOTE, [f for f, _args in ledger.transactions])

    async def test_admin_actions_require_admin(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ALICE_KEY) as session:
            actions = [
                lambda: lifecycle.add_candidate(session, "Mallory"),
                lambda: lifecycle.register_voter(session, BOB),
                lambda: lifecycle.start_election(session),
                lambda: lifecycle.end_election(session),
                lambda: lifecycle.reset_all(session),
            ]
            for action in actions:
                with self.subTest(action=action):
                    with self.assertRaises(UnauthorizedError):
                        await action()

        self.assertEqual(ledger.transactions, [])

    async def test_add_candidate_rejects_blank_name(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            with self.assertRaises(InvalidInputError):
                await lifecycle.add_candidate(admin, "   ")

            await lifecycle.add_candidate(admin, "  Alice  ")
            self.assertEqual([c.name for c in admin.require_view().candidates], ["Alice"])

        self.assertEqual(ledger.transactions, [(TX_ADD_CANDIDATE, ("Alice",))])

    async def test_register_voter_validates_address(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            for bad in ("", "0x123", "not-an-address", ALICE[2:]):
                with self.subTest(address=bad):
                    with self.assertRaises(InvalidInputError):
                        await lifecycle.register_voter(admin, bad)

            await lifecycle.register_voter(admin, ALICE.lower())

        async with open_test_session(ledger, ALICE_KEY) as voter:
            self.assertTrue(voter.caller_status.is_registered_legacy)

    async def test_register_voter_closed_once_finalized(self) -> None:
        ledger = FakeLedger()
        ledger.finalized = True
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            with self.assertRaises(PipelineDisabledError):
                await lifecycle.register_voter(admin, ALICE)

    async def test_start_requires_idle_and_candidates(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            with self.assertRaises(ElectionError):
                await lifecycle.start_election(admin)

            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.start_election(admin)
            self.assertEqual(admin.require_view().phase, Phase.VOTING)

            with self.assertRaises(ElectionError):
                await lifecycle.start_election(admin)

    async def test_end_requires_voting(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            with self.assertRaises(NotVotingPhaseError):
                await lifecycle.end_election(admin)

    async def test_reset_starts_a_new_round(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.add_candidate(admin, "Bob")
            await lifecycle.register_voter(admin, ALICE)
            await lifecycle.start_election(admin)

            async with open_test_session(ledger, ALICE_KEY) as voter:
                await lifecycle.vote(voter, 2)

            await lifecycle.end_election(admin)
            await lifecycle.reset_all(admin)

            view = admin.require_view()
            self.assertEqual(view.phase, Phase.IDLE)
            self.assertEqual(view.round, 2)
            self.assertEqual(view.candidates, ())
            self.assertIsNone(view.winner)

            await lifecycle.add_candidate(admin, "Carol")
            await lifecycle.start_election(admin)

        async with open_test_session(ledger, ALICE_KEY) as voter:
            self.assertFalse(voter.caller_status.has_voted_this_round)
            # Candidate #2 belonged to the previous round.
            with self.assertRaises(InvalidInputError):
                await lifecycle.vote(voter, 2)
            await lifecycle.vote(voter, 1)
            self.assertEqual(voter.require_view().candidate(1).vote_count, 1)

    async def test_ledger_rejection_propagates_verbatim(self) -> None:
        ledger = FakeLedger()
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.start_election(admin)

            with self.assertRaises(LedgerOperationFailed) as ctx:
                await lifecycle.add_candidate(admin, "Latecomer")

            self.assertEqual(ctx.exception.reason, "Cannot add candidates after election started")
            self.assertFalse(admin.is_pending("add_candidate"))
            self.assertEqual([c.name for c in admin.require_view().candidates], ["Alice"])
