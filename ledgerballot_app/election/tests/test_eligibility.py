from django.core.cache import cache
from django.test import SimpleTestCase

from election import lifecycle
from election.eligibility import (
    FINALIZED,
    LEGACY,
    authenticate_voter,
    eligibility_regime,
    forget_authentication,
    ineligibility_reason,
    is_vote_eligible,
)
from election.exceptions import InvalidCredentialError, InvalidInputError, NotEligibleError
from election.state import CallerStatus, ElectionView, Phase, VoterIdentity
from election.tests.utils_ledger import (
    ADMIN,
    ADMIN_KEY,
    ALICE,
    ALICE_KEY,
    BOB,
    BOB_KEY,
    CAROL,
    CAROL_KEY,
    FakeLedger,
    open_test_session,
)
from election.voter_import import finalize_voter_list, import_voters, parse_voter_csv


def _view(*, finalized: bool) -> ElectionView:
    return ElectionView(title="t", admin=ADMIN, phase=Phase.VOTING, round=1, voter_list_finalized=finalized)


class EligibilityRuleTests(SimpleTestCase):
    def test_legacy_regime_uses_allow_list(self) -> None:
        view = _view(finalized=False)

        self.assertEqual(eligibility_regime(view), LEGACY)
        self.assertTrue(is_vote_eligible(view, CallerStatus(address=ALICE, is_registered_legacy=True)))
        self.assertFalse(is_vote_eligible(view, CallerStatus(address=ALICE)))
        self.assertIn("not registered", ineligibility_reason(view, CallerStatus(address=ALICE)) or "")

    def test_finalized_regime_ignores_allow_list(self) -> None:
        view = _view(finalized=True)
        registered_only = CallerStatus(address=ALICE, is_registered_legacy=True)
        authenticated = CallerStatus(address=ALICE, authenticated_voter=VoterIdentity(name="A", unique_id="1"))

        self.assertEqual(eligibility_regime(view), FINALIZED)
        self.assertFalse(is_vote_eligible(view, registered_only))
        self.assertTrue(is_vote_eligible(view, authenticated))
        self.assertIsNone(ineligibility_reason(view, authenticated))
        self.assertIn("Authenticate", ineligibility_reason(view, registered_only) or "")


class AuthenticationFlowTests(SimpleTestCase):
    def setUp(self) -> None:
        cache.clear()

    def tearDown(self) -> None:
        cache.clear()

    async def _finalized_election(self, ledger: FakeLedger) -> None:
        parsed = parse_voter_csv(
            "name,unique_id,wallet_id\n"
            f"Bob,STU-2,{BOB}\n"
            f"Carol,STU-3,{CAROL}\n"
        )
        async with open_test_session(ledger, ADMIN_KEY) as admin:
            await lifecycle.add_candidate(admin, "Alice")
            await lifecycle.add_candidate(admin, "Bob")
            await lifecycle.register_voter(admin, ALICE)
            result = await import_voters(admin, parsed)
            self.assertEqual(result.succeeded, 2)
            await finalize_voter_list(admin)
            await lifecycle.start_election(admin)

    async def test_legacy_voter_loses_eligibility_after_finalize(self) -> None:
        ledger = FakeLedger()
        await self._finalized_election(ledger)

        async with open_test_session(ledger, ALICE_KEY) as legacy_voter:
            self.assertTrue(legacy_voter.caller_status.is_registered_legacy)
            with self.assertRaises(NotEligibleError):
                await lifecycle.vote(legacy_voter, 1)

        async with open_test_session(ledger, BOB_KEY) as listed_voter:
            status = listed_voter.caller_status
            self.assertTrue(status.is_wallet_linked)
            self.assertEqual(status.authenticated_voter, VoterIdentity(name="Bob", unique_id="STU-2"))
            await lifecycle.vote(listed_voter, 2)
            self.assertEqual(listed_voter.require_view().candidate(2).vote_count, 1)

    async def test_authenticate_by_unique_id(self) -> None:
        ledger = FakeLedger()
        await self._finalized_election(ledger)

        async with open_test_session(ledger, CAROL_KEY) as session:
            forget_authentication(session)
            self.assertIsNone(session.authenticated_voter)

            voter = await authenticate_voter(session, "  STU-3 ")

            self.assertEqual(voter, VoterIdentity(name="Carol", unique_id="STU-3"))
            self.assertEqual(session.caller_status.authenticated_voter, voter)
            await lifecycle.vote(session, 1)

    async def test_forgotten_credential_blocks_vote_before_resync(self) -> None:
        ledger = FakeLedger()
        await self._finalized_election(ledger)

        async with open_test_session(ledger, CAROL_KEY) as session:
            voter = await authenticate_voter(session, "STU-3")
            self.assertEqual(session.caller_status.authenticated_voter, voter)

            gate = ledger.hold_reads()
            forget_authentication(session)

            self.assertIsNone(session.caller_status.authenticated_voter)
            with self.assertRaises(NotEligibleError):
                await lifecycle.vote(session, 1)

            # Carol's wallet is linked to her record, so a fresh sync restores it.
            gate.set()
            await session.refresh()
            self.assertEqual(session.caller_status.authenticated_voter, voter)

    async def test_unique_id_of_someone_else_is_rejected(self) -> None:
        ledger = FakeLedger()
        await self._finalized_election(ledger)

        async with open_test_session(ledger, ALICE_KEY) as session:
            for unique_id in ("STU-2", "NOPE"):
                with self.subTest(unique_id=unique_id):
                    with self.assertRaises(InvalidCredentialError):
                        await authenticate_voter(session, unique_id)
            self.assertIsNone(session.authenticated_voter)

            with self.assertRaises(InvalidInputError):
                await authenticate_voter(session, "   ")
