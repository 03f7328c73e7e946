"""Immutable snapshots of ledger state.

Every instance is built by one reconciliation run and replaced wholesale by the
next; nothing in the engine mutates them.
"""

import enum
from dataclasses import dataclass, field


class Phase(enum.StrEnum):
    IDLE = "Idle"
    VOTING = "Voting"
    ENDED = "Ended"

    @classmethod
    def from_flags(cls, *, started: bool, ended: bool) -> "Phase":
        if ended:
            return cls.ENDED
        if started:
            return cls.VOTING
        return cls.IDLE


@dataclass(frozen=True)
class Candidate:
    id: int
    name: str
    vote_count: int


@dataclass(frozen=True)
class Winner:
    candidate_id: int
    name: str
    votes: int


@dataclass(frozen=True)
class VoterIdentity:
    name: str
    unique_id: str


@dataclass(frozen=True)
class ElectionView:
    title: str
    admin: str
    phase: Phase
    round: int
    candidates: tuple[Candidate, ...] = ()
    voter_list_finalized: bool = False
    total_voters: int = 0
    winner: Winner | None = None
    generation: int = 0

    def candidate(self, candidate_id: int) -> Candidate | None:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None

    @property
    def candidate_ids(self) -> frozenset[int]:
        return frozenset(c.id for c in self.candidates)


@dataclass(frozen=True)
class CallerStatus:
    address: str | None = None
    is_admin: bool = False
    is_registered_legacy: bool = False
    is_wallet_linked: bool = False
    authenticated_voter: VoterIdentity | None = None
    has_voted_this_round: bool = False


@dataclass(frozen=True)
class SyncResult:
    view: ElectionView
    caller_status: CallerStatus = field(default_factory=CallerStatus)
