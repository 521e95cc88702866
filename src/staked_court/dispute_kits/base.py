from __future__ import annotations

from typing import Protocol

from staked_court.types import StakePath


class DisputeKit(Protocol):
    """What the core needs from a voting scheme.

    Degrees of coherence are fixed-point values in ``[0, ALPHA_DIVISOR]``.
    ``draw`` only selects a stake path; ``record_draw`` is called once the
    core has accepted the whole batch of selections and appends the vote slot.
    """

    address: str

    def create_dispute(self, core_dispute_id: int, number_of_choices: int, nb_votes: int) -> None:
        ...

    def draw(self, core_dispute_id: int, nonce: int) -> StakePath | None:
        ...

    def record_draw(self, core_dispute_id: int, path: StakePath) -> int:
        ...

    def current_ruling(self, core_dispute_id: int) -> int:
        ...

    def get_degree_of_coherence(self, core_dispute_id: int, round_index: int, vote_id: int) -> int:
        ...

    def get_coherent_count(self, core_dispute_id: int, round_index: int) -> int:
        ...

    def is_vote_active(self, core_dispute_id: int, round_index: int, vote_id: int) -> bool:
        ...

    def are_commits_all_cast(self, core_dispute_id: int) -> bool:
        ...

    def are_votes_all_cast(self, core_dispute_id: int) -> bool:
        ...
