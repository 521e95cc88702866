"""Plurality voting with optional commit-reveal and crowdfunded appeals."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from staked_court.collaborators.rng import RandomNumberGenerator, mix_random_number
from staked_court.domain.events import ChoiceFunded, CommitCast, Contribution, VoteCast, Withdrawal
from staked_court.errors import (
    CommitMismatchError,
    InsufficientFundsError,
    InvariantViolationError,
    NotOwnerError,
    PreconditionError,
    TransferError,
    UnknownEntityError,
    WrongPeriodError,
)
from staked_court.observability.logging import get_logger
from staked_court.types import ALPHA_DIVISOR, Period, StakePath

if TYPE_CHECKING:
    from staked_court.core import ArbitrationCore

WINNER_STAKE_MULTIPLIER = 10_000
LOSER_STAKE_MULTIPLIER = 20_000
LOSER_APPEAL_PERIOD_MULTIPLIER = 5_000
MULTIPLIER_DIVISOR = 10_000


def hash_vote(choice: int, salt: int) -> str:
    """Commitment to a hidden vote: sha256 over two 32-byte big-endian words."""
    if choice < 0 or salt < 0:
        raise PreconditionError("choice and salt must be non-negative")
    material = choice.to_bytes(32, byteorder="big") + salt.to_bytes(32, byteorder="big")
    return hashlib.sha256(material).hexdigest()


@dataclass(slots=True)
class Vote:
    account: str
    commit: str | None = None
    choice: int = 0
    voted: bool = False


@dataclass(slots=True)
class KitRound:
    votes: list[Vote] = field(default_factory=list)
    winning_choice: int = 0
    counts: dict[int, int] = field(default_factory=dict)
    # No votes yet means no decided winner.
    tied: bool = True
    total_voted: int = 0
    total_committed: int = 0
    paid_fees: dict[int, int] = field(default_factory=dict)
    has_paid: set[int] = field(default_factory=set)
    contributions: dict[str, dict[int, int]] = field(default_factory=dict)
    fee_rewards: int = 0
    funded_choices: list[int] = field(default_factory=list)

    def count(self, choice: int) -> int:
        return self.counts.get(choice, 0)

    def contribution(self, account: str, choice: int) -> int:
        return self.contributions.get(account, {}).get(choice, 0)


@dataclass(slots=True)
class KitDispute:
    core_dispute_id: int
    number_of_choices: int
    rounds: list[KitRound] = field(default_factory=list)


class ClassicDisputeKit:
    def __init__(self, core: ArbitrationCore, rng: RandomNumberGenerator, *, address: str) -> None:
        self.core = core
        self.rng = rng
        self.address = address
        self.disputes: list[KitDispute] = []
        self.core_to_local: dict[int, int] = {}
        self._logger = get_logger("staked_court.dispute_kits.classic")

    def _dispute(self, core_dispute_id: int) -> KitDispute:
        local_id = self.core_to_local.get(core_dispute_id)
        if local_id is None:
            raise UnknownEntityError(f"dispute {core_dispute_id} is not handled by this kit")
        return self.disputes[local_id]

    def _round(self, core_dispute_id: int, round_index: int) -> KitRound:
        dispute = self._dispute(core_dispute_id)
        if not 0 <= round_index < len(dispute.rounds):
            raise UnknownEntityError(f"unknown round {round_index} of dispute {core_dispute_id}")
        return dispute.rounds[round_index]

    def _require_period(self, core_dispute_id: int, period: Period) -> None:
        current = self.core.get_dispute(core_dispute_id).period
        if current != period:
            raise WrongPeriodError(
                f"dispute {core_dispute_id} is in the {current.name.lower()} period, "
                f"not {period.name.lower()}"
            )

    # Called by the core

    def create_dispute(self, core_dispute_id: int, number_of_choices: int, nb_votes: int) -> None:
        if core_dispute_id in self.core_to_local:
            raise InvariantViolationError(f"dispute {core_dispute_id} already exists in this kit")
        self.core_to_local[core_dispute_id] = len(self.disputes)
        self.disputes.append(
            KitDispute(
                core_dispute_id=core_dispute_id,
                number_of_choices=number_of_choices,
                rounds=[KitRound()],
            )
        )
        self._logger.info(
            "kit_dispute_created",
            dispute_id=core_dispute_id,
            number_of_choices=number_of_choices,
            nb_votes=nb_votes,
        )

    def draw(self, core_dispute_id: int, nonce: int) -> StakePath | None:
        self._dispute(core_dispute_id)
        court_id = self.core.get_dispute(core_dispute_id).court_id
        trees = self.core.registry.trees
        nodes = trees.nodes(court_id)
        k = trees.k(court_id)
        if nodes[0] == 0:
            return None

        random_number = self.rng.get_uncorrelated_rn(self.core.clock.now())
        current = mix_random_number(random_number, core_dispute_id, nonce) % nodes[0]
        tree_index = 0
        while k * tree_index + 1 < len(nodes):
            for offset in range(1, k + 1):
                node_index = k * tree_index + offset
                if node_index >= len(nodes):
                    raise InvariantViolationError("sortition descent ran past the last node")
                if current >= nodes[node_index]:
                    current -= nodes[node_index]
                else:
                    tree_index = node_index
                    break
        return trees.id_at(court_id, tree_index)

    def record_draw(self, core_dispute_id: int, path: StakePath) -> int:
        round_ = self._dispute(core_dispute_id).rounds[-1]
        round_.votes.append(Vote(account=path.account))
        return len(round_.votes) - 1

    # Voting

    def cast_commit(self, caller: str, core_dispute_id: int, vote_ids: list[int], commit: str) -> None:
        self._require_period(core_dispute_id, Period.COMMIT)
        if not commit:
            raise PreconditionError("empty commit")
        round_ = self._checked_slots(caller, core_dispute_id, vote_ids)
        for vote_id in vote_ids:
            if round_.votes[vote_id].commit is not None:
                raise PreconditionError(f"vote {vote_id} is already committed")

        for vote_id in vote_ids:
            round_.votes[vote_id].commit = commit
        round_.total_committed += len(vote_ids)
        self.core.events.emit(
            CommitCast(dispute_id=core_dispute_id, account=caller, vote_ids=tuple(vote_ids), commit=commit)
        )
        if round_.total_committed == len(round_.votes):
            self.core.pass_period(core_dispute_id, caller=self.address)

    def cast_vote(
        self,
        caller: str,
        core_dispute_id: int,
        vote_ids: list[int],
        choice: int,
        salt: int = 0,
    ) -> None:
        """Cast (or reveal) ``choice`` for every listed slot.

        In hidden-vote courts every slot must hold ``hash_vote(choice, salt)``;
        a single mismatch rejects the whole call.
        """
        self._require_period(core_dispute_id, Period.VOTE)
        dispute = self._dispute(core_dispute_id)
        if not 0 <= choice <= dispute.number_of_choices:
            raise PreconditionError(f"choice {choice} is out of bounds")
        round_ = self._checked_slots(caller, core_dispute_id, vote_ids)
        hidden = self.core.are_votes_hidden(self.core.get_dispute(core_dispute_id).court_id)
        expected = hash_vote(choice, salt) if hidden else None
        for vote_id in vote_ids:
            vote = round_.votes[vote_id]
            if vote.voted:
                raise PreconditionError(f"vote {vote_id} was already cast")
            if hidden and vote.commit != expected:
                raise CommitMismatchError(f"the revealed vote does not match the commit of vote {vote_id}")

        for vote_id in vote_ids:
            round_.votes[vote_id].choice = choice
            round_.votes[vote_id].voted = True
        round_.total_voted += len(vote_ids)
        round_.counts[choice] = round_.count(choice) + len(vote_ids)
        if choice == round_.winning_choice:
            round_.tied = False
        elif round_.count(choice) == round_.count(round_.winning_choice):
            round_.tied = True
        elif round_.count(choice) > round_.count(round_.winning_choice):
            round_.winning_choice = choice
            round_.tied = False

        self.core.events.emit(
            VoteCast(dispute_id=core_dispute_id, account=caller, vote_ids=tuple(vote_ids), choice=choice)
        )
        if round_.total_voted == len(round_.votes):
            self.core.pass_period(core_dispute_id, caller=self.address)

    def _checked_slots(self, caller: str, core_dispute_id: int, vote_ids: list[int]) -> KitRound:
        round_ = self._dispute(core_dispute_id).rounds[-1]
        if not vote_ids:
            raise PreconditionError("no vote ids given")
        if len(set(vote_ids)) != len(vote_ids):
            raise PreconditionError("duplicate vote ids")
        for vote_id in vote_ids:
            if not 0 <= vote_id < len(round_.votes):
                raise UnknownEntityError(f"unknown vote id {vote_id}")
            if round_.votes[vote_id].account != caller:
                raise NotOwnerError(f"{caller} does not own vote {vote_id}")
        return round_

    # Appeals

    def fund_appeal(self, caller: str, core_dispute_id: int, choice: int, value: int) -> int:
        """Contribute up to ``value`` towards funding ``choice``; returns what was taken.

        Only the part needed to complete the choice's funding is pulled from
        ``caller``, so nothing needs refunding.
        """
        dispute = self._dispute(core_dispute_id)
        if not 0 <= choice <= dispute.number_of_choices:
            raise PreconditionError(f"there is no ruling option {choice} to fund")
        if value < 0:
            raise PreconditionError("value must be non-negative")
        start, end = self.core.appeal_period(core_dispute_id)
        now = self.core.clock.now()
        if not start <= now < end:
            raise WrongPeriodError("the appeal period is over")

        if choice == self.current_ruling(core_dispute_id):
            multiplier = WINNER_STAKE_MULTIPLIER
        else:
            if now - start >= (end - start) * LOSER_APPEAL_PERIOD_MULTIPLIER // MULTIPLIER_DIVISOR:
                raise WrongPeriodError("the appeal period is over for the losing side")
            multiplier = LOSER_STAKE_MULTIPLIER

        round_ = dispute.rounds[-1]
        round_index = self.core.number_of_rounds(core_dispute_id) - 1
        if choice in round_.has_paid:
            raise PreconditionError(f"the appeal fee of choice {choice} is already paid")
        appeal_cost = self.core.appeal_cost(core_dispute_id)
        total_cost = appeal_cost + appeal_cost * multiplier // MULTIPLIER_DIVISOR

        paid = round_.paid_fees.get(choice, 0)
        contribution = max(0, min(value, total_cost - paid))
        if contribution > 0:
            try:
                self.core.fee_token.transfer_from(self.address, caller, self.address, contribution)
            except TransferError as exc:
                raise InsufficientFundsError(f"could not collect {contribution} from {caller}: {exc}") from exc
            self.core.events.emit(
                Contribution(
                    dispute_id=core_dispute_id,
                    round=round_index,
                    choice=choice,
                    contributor=caller,
                    amount=contribution,
                )
            )
        contributions = round_.contributions.setdefault(caller, {})
        contributions[choice] = contributions.get(choice, 0) + contribution
        round_.paid_fees[choice] = paid + contribution

        if round_.paid_fees[choice] >= total_cost:
            round_.fee_rewards += round_.paid_fees[choice]
            round_.funded_choices.append(choice)
            round_.has_paid.add(choice)
            self.core.events.emit(ChoiceFunded(dispute_id=core_dispute_id, round=round_index, choice=choice))

        if len(round_.funded_choices) > 1:
            round_.fee_rewards -= appeal_cost
            dispute.rounds.append(KitRound())
            self.core.fee_token.approve(self.address, self.core.address, appeal_cost)
            self.core.appeal(core_dispute_id, caller=self.address, value=appeal_cost)
            self._logger.info(
                "appeal_funded",
                dispute_id=core_dispute_id,
                round=round_index,
                funded_choices=list(round_.funded_choices),
                appeal_cost=appeal_cost,
            )
        return contribution

    def withdraw_fees_and_rewards(
        self, core_dispute_id: int, beneficiary: str, round_index: int, choice: int
    ) -> int:
        if not self.core.is_ruled(core_dispute_id):
            raise WrongPeriodError("the dispute should be resolved first")
        round_ = self._round(core_dispute_id, round_index)
        final_ruling = self.core.current_ruling(core_dispute_id)
        contributed = round_.contribution(beneficiary, choice)

        amount = 0
        if choice not in round_.has_paid:
            amount = contributed
        elif choice == final_ruling:
            paid = round_.paid_fees.get(choice, 0)
            amount = contributed * round_.fee_rewards // paid if paid > 0 else 0
        elif final_ruling not in round_.has_paid:
            funded_total = sum(round_.paid_fees.get(funded, 0) for funded in round_.funded_choices)
            amount = contributed * round_.fee_rewards // funded_total

        if amount > 0:
            try:
                self.core.fee_token.transfer(self.address, beneficiary, amount)
            except TransferError as exc:
                # The contribution stays claimable for a later withdrawal.
                self._logger.warning(
                    "payment_failed",
                    dispute_id=core_dispute_id,
                    round=round_index,
                    account=beneficiary,
                    amount=amount,
                    error=str(exc),
                )
                return 0
        if contributed:
            round_.contributions[beneficiary][choice] = 0
        if amount > 0:
            self.core.events.emit(
                Withdrawal(
                    dispute_id=core_dispute_id,
                    round=round_index,
                    choice=choice,
                    beneficiary=beneficiary,
                    amount=amount,
                )
            )
        return amount

    # Queries

    def current_ruling(self, core_dispute_id: int) -> int:
        round_ = self._dispute(core_dispute_id).rounds[-1]
        return 0 if round_.tied else round_.winning_choice

    def get_degree_of_coherence(self, core_dispute_id: int, round_index: int, vote_id: int) -> int:
        vote = self._round(core_dispute_id, round_index).votes[vote_id]
        last_round = self._dispute(core_dispute_id).rounds[-1]
        if vote.voted and (vote.choice == last_round.winning_choice or last_round.tied):
            return ALPHA_DIVISOR
        return 0

    def get_coherent_count(self, core_dispute_id: int, round_index: int) -> int:
        last_round = self._dispute(core_dispute_id).rounds[-1]
        round_ = self._round(core_dispute_id, round_index)
        winning_choice = last_round.winning_choice
        if round_.total_voted == 0 or (not last_round.tied and round_.count(winning_choice) == 0):
            return 0
        if last_round.tied:
            return round_.total_voted
        return round_.count(winning_choice)

    def is_vote_active(self, core_dispute_id: int, round_index: int, vote_id: int) -> bool:
        return self._round(core_dispute_id, round_index).votes[vote_id].voted

    def are_commits_all_cast(self, core_dispute_id: int) -> bool:
        round_ = self._dispute(core_dispute_id).rounds[-1]
        return round_.total_committed == len(round_.votes)

    def are_votes_all_cast(self, core_dispute_id: int) -> bool:
        round_ = self._dispute(core_dispute_id).rounds[-1]
        return round_.total_voted == len(round_.votes)

    def get_vote(self, core_dispute_id: int, round_index: int, vote_id: int) -> Vote:
        votes = self._round(core_dispute_id, round_index).votes
        if not 0 <= vote_id < len(votes):
            raise UnknownEntityError(f"unknown vote id {vote_id}")
        return votes[vote_id]

    def get_contribution(self, core_dispute_id: int, round_index: int, account: str, choice: int) -> int:
        return self._round(core_dispute_id, round_index).contribution(account, choice)

    def funded_choices(self, core_dispute_id: int, round_index: int) -> list[int]:
        return list(self._round(core_dispute_id, round_index).funded_choices)

    def get_round_info(self, core_dispute_id: int, round_index: int) -> dict[str, Any]:
        round_ = self._round(core_dispute_id, round_index)
        return {
            "winning_choice": round_.winning_choice,
            "tied": round_.tied,
            "total_voted": round_.total_voted,
            "total_committed": round_.total_committed,
            "nb_voters": len(round_.votes),
            "counts": {str(choice): count for choice, count in sorted(round_.counts.items())},
            "paid_fees": {str(choice): paid for choice, paid in sorted(round_.paid_fees.items())},
            "fee_rewards": round_.fee_rewards,
            "funded_choices": list(round_.funded_choices),
        }
