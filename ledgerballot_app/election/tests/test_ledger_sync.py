from django.test import SimpleTestCase

from election.ledger.base import (
    FN_CANDIDATE,
    FN_IS_WALLET_LINKED,
    FN_TITLE,
    FN_VOTER_BY_WALLET,
    FN_VOTER_LIST_STATUS,
    FN_WINNER,
)
from election.ledger.exceptions import LedgerCallError, LedgerUnavailableError
from election.ledger_sync import sync_election
from election.state import Phase, VoterIdentity
from election.tests.utils_ledger import ADMIN, ALICE, BOB, FakeLedger, seed_election


class SyncElectionTests(SimpleTestCase):
    async def test_reads_candidates_in_id_order(self) -> None:
        ledger = FakeLedger()
        await seed_election(ledger, "Alice", "Bob", "Carol")
        ledger.candidates[1][1] = 4

        result = await sync_election(ledger, ALICE, generation=7)

        self.assertEqual(result.view.generation, 7)
        self.assertEqual([c.id for c in result.view.candidates], [1, 2, 3])
        self.assertEqual(result.view.candidate(2).vote_count, 4)
        self.assertEqual(result.view.candidate_ids, frozenset({1, 2, 3}))
        self.assertIsNone(result.view.candidate(4))

    async def test_phase_is_derived_from_flags(self) -> None:
        ledger = FakeLedger()
        cases = [
            (False, False, Phase.IDLE),
            (True, False, Phase.VOTING),
            (True, True, Phase.ENDED),
        ]
        for started, ended, expected in cases:
            with self.subTest(started=started, ended=ended):
                ledger.started = started
                ledger.ended = ended
                result = await sync_election(ledger, ALICE)
                self.assertEqual(result.view.phase, expected)

    async def test_winner_only_read_once_ended(self) -> None:
        ledger = FakeLedger()
        await seed_election(ledger, "Alice", "Bob")
        ledger.started = True

        result = await sync_election(ledger, ALICE)
        self.assertIsNone(result.view.winner)
        self.assertEqual(ledger.calls[FN_WINNER], 0)

        ledger.candidates[1][1] = 2
        ledger.ended = True
        result = await sync_election(ledger, ALICE)
        assert result.view.winner is not None
        self.assertEqual(result.view.winner.name, "Bob")
        self.assertEqual(result.view.winner.votes, 2)

    async def test_winner_with_no_candidates_is_none(self) -> None:
        ledger = FakeLedger()
        ledger.started = True
        ledger.ended = True

        result = await sync_election(ledger, ALICE)

        self.assertEqual(result.view.phase, Phase.ENDED)
        self.assertIsNone(result.view.winner)

    async def test_admin_comparison_ignores_case(self) -> None:
        ledger = FakeLedger(admin=ADMIN.lower())

        result = await sync_election(ledger, ADMIN)

        self.assertTrue(result.caller_status.is_admin)

    async def test_without_caller_reads_public_state_only(self) -> None:
        ledger = FakeLedger()
        await seed_election(ledger, "Alice")

        result = await sync_election(ledger, None)

        self.assertIsNone(result.caller_status.address)
        self.assertFalse(result.caller_status.is_admin)
        self.assertEqual(len(result.view.candidates), 1)

    async def test_linked_wallet_is_authenticated_automatically(self) -> None:
        ledger = FakeLedger()
        ledger.add_voter_record("Alice A.", "STU-1", ALICE)
        ledger.finalized = True

        result = await sync_election(ledger, ALICE)

        self.assertTrue(result.view.voter_list_finalized)
        self.assertEqual(result.view.total_voters, 1)
        self.assertTrue(result.caller_status.is_wallet_linked)
        self.assertEqual(result.caller_status.authenticated_voter, VoterIdentity(name="Alice A.", unique_id="STU-1"))

    async def test_existing_authentication_is_kept(self) -> None:
        ledger = FakeLedger()
        ledger.add_voter_record("Alice A.", "STU-1", ALICE)
        voter = VoterIdentity(name="Alice A.", unique_id="STU-1")

        result = await sync_election(ledger, ALICE, authenticated_voter=voter)

        self.assertIs(result.caller_status.authenticated_voter, voter)
        self.assertEqual(ledger.calls[FN_VOTER_BY_WALLET], 0)

    async def test_unsupported_voter_database_falls_back_to_legacy(self) -> None:
        ledger = FakeLedger(voter_database=False)
        ledger.registered.add(BOB)

        with self.assertLogs("election.ledger_sync", level="INFO"):
            result = await sync_election(ledger, BOB)

        self.assertFalse(result.view.voter_list_finalized)
        self.assertEqual(result.view.total_voters, 0)
        self.assertTrue(result.caller_status.is_registered_legacy)
        self.assertFalse(result.caller_status.is_wallet_linked)

    async def test_unavailable_ledger_aborts_sync(self) -> None:
        ledger = FakeLedger()
        ledger.read_error = LedgerUnavailableError("connection refused")

        with self.assertRaises(LedgerUnavailableError):
            await sync_election(ledger, ALICE)

    async def test_reverted_core_read_aborts_sync(self) -> None:
        ledger = FakeLedger()
        await seed_election(ledger, "Alice")

        original_call = ledger.call

        async def call(function: str, *args: object, caller: str | None = None) -> object:
            if function == FN_CANDIDATE:
                raise LedgerCallError("getCandidate failed: Invalid candidate ID")
            return await original_call(function, *args, caller=caller)

        ledger.call = call  # type: ignore[method-assign]

        with self.assertRaises(LedgerUnavailableError) as ctx:
            await sync_election(ledger, ALICE)
        self.assertIsInstance(ctx.exception.__cause__, LedgerCallError)

    async def test_unreachable_voter_database_aborts_instead_of_going_legacy(self) -> None:
        for failing in (FN_VOTER_LIST_STATUS, FN_IS_WALLET_LINKED):
            with self.subTest(function=failing):
                ledger = FakeLedger()
                ledger.registered.add(ALICE)
                original_call = ledger.call

                async def call(
                    function: str,
                    *args: object,
                    caller: str | None = None,
                    _failing: str = failing,
                    _original=original_call,
                ) -> object:
                    if function == _failing:
                        raise LedgerUnavailableError("connection reset")
                    return await _original(function, *args, caller=caller)

                ledger.call = call  # type: ignore[method-assign]

                with self.assertRaises(LedgerUnavailableError):
                    await sync_election(ledger, ALICE)
                self.assertEqual(ledger.calls[FN_TITLE], 1)
