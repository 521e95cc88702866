"""Dispute lifecycle: creation, period machine, drawing, appeals, settlement.

Drawing and settlement are chunked. Each call does a bounded amount of work
and persists a cursor (the number of drawn jurors, ``Round.repartitions``),
so any sequence of chunk sizes processes every index exactly once.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from staked_court.collaborators.arbitrable import Arbitrable
from staked_court.collaborators.clock import Clock
from staked_court.collaborators.token import FungibleToken
from staked_court.dispute_kits.base import DisputeKit
from staked_court.domain.dispute import Dispute, Round
from staked_court.domain.events import (
    AppealDecision,
    AppealPossible,
    DisputeCreation,
    Draw,
    EventLog,
    NewPeriod,
    Ruling,
    TokenAndFeeShift,
)
from staked_court.errors import (
    AlreadyRuledError,
    AppealNotPossibleError,
    InsufficientFundsError,
    InvariantViolationError,
    NotAuthorizedError,
    PreconditionError,
    TransferError,
    UnknownEntityError,
    UnsupportedDisputeKitError,
    WrongPeriodError,
)
from staked_court.observability.logging import get_logger
from staked_court.registry import StakeRegistry
from staked_court.types import (
    ALPHA_DIVISOR,
    DISPUTE_KIT_CLASSIC,
    FORKING_COURT,
    GENERAL_COURT,
    MIN_JURORS,
    DisputeStatus,
    Period,
    StakePath,
)


class ArbitrationCore:
    def __init__(
        self,
        *,
        address: str,
        registry: StakeRegistry,
        fee_token: FungibleToken,
        clock: Clock,
        events: EventLog,
    ) -> None:
        self.address = address
        self.registry = registry
        self.fee_token = fee_token
        self.clock = clock
        self.events = events
        self.dispute_kits: dict[int, DisputeKit] = {}
        self.disputes: list[Dispute] = []
        self._arbitrables: dict[int, Arbitrable] = {}
        self._logger = get_logger("staked_court.core")

    @property
    def governor(self) -> str:
        return self.registry.governor

    @property
    def stake_token(self) -> FungibleToken:
        return self.registry.stake_token

    # Administration

    def add_dispute_kit(self, caller: str, kit: DisputeKit) -> int:
        if caller != self.governor:
            raise NotAuthorizedError("only the governor can register dispute kits")
        kit_id = len(self.dispute_kits) + 1
        self.dispute_kits[kit_id] = kit
        self._logger.info("dispute_kit_added", dispute_kit_id=kit_id, address=kit.address)
        return kit_id

    def enable_dispute_kits(
        self, caller: str, court_id: int, dispute_kit_ids: Iterable[int], enable: bool
    ) -> None:
        if caller != self.governor:
            raise NotAuthorizedError("only the governor can configure courts")
        court = self.registry.court(court_id)
        kit_ids = set(dispute_kit_ids)
        unknown = kit_ids - set(self.dispute_kits)
        if unknown:
            raise UnknownEntityError(f"unknown dispute kits: {sorted(unknown)}")
        if enable:
            court.supported_dispute_kits |= kit_ids
        else:
            court.supported_dispute_kits -= kit_ids

    # Queries

    def get_dispute(self, dispute_id: int) -> Dispute:
        if not 0 <= dispute_id < len(self.disputes):
            raise UnknownEntityError(f"unknown dispute: {dispute_id}")
        return self.disputes[dispute_id]

    def get_round(self, dispute_id: int, round_index: int) -> Round:
        dispute = self.get_dispute(dispute_id)
        if not 0 <= round_index < len(dispute.rounds):
            raise UnknownEntityError(f"unknown round {round_index} of dispute {dispute_id}")
        return dispute.rounds[round_index]

    def number_of_rounds(self, dispute_id: int) -> int:
        return len(self.get_dispute(dispute_id).rounds)

    def current_period(self, dispute_id: int) -> Period:
        return self.get_dispute(dispute_id).period

    def are_votes_hidden(self, court_id: int) -> bool:
        return self.registry.court(court_id).hidden_votes

    def is_ruled(self, dispute_id: int) -> bool:
        return self.get_dispute(dispute_id).ruled

    def dispute_kit_of(self, dispute_id: int) -> DisputeKit:
        return self.dispute_kits[self.get_dispute(dispute_id).dispute_kit_id]

    def current_ruling(self, dispute_id: int) -> int:
        return self.dispute_kit_of(dispute_id).current_ruling(dispute_id)

    def dispute_status(self, dispute_id: int) -> DisputeStatus:
        period = self.get_dispute(dispute_id).period
        if period < Period.APPEAL:
            return DisputeStatus.WAITING
        if period < Period.EXECUTION:
            return DisputeStatus.APPEALABLE
        return DisputeStatus.SOLVED

    def open_dispute_ids(self) -> list[int]:
        return [index for index, dispute in enumerate(self.disputes) if not dispute.ruled]

    def arbitration_cost(self, court_id: int = GENERAL_COURT, min_jurors: int = MIN_JURORS) -> int:
        return self.registry.court(court_id).fee_for_juror * min_jurors

    def appeal_cost(self, dispute_id: int) -> int:
        """Fee for the next round: twice the current panel plus one juror.

        Raises ``AppealNotPossibleError`` when the panel would have to jump
        above the forking court, or into a court that does not support the
        dispute's kit.
        """
        dispute = self.get_dispute(dispute_id)
        court = self.registry.court(dispute.court_id)
        next_nb_votes = dispute.nb_votes * 2 + 1
        if dispute.nb_votes < court.jurors_for_court_jump:
            return court.fee_for_juror * next_nb_votes
        if dispute.court_id == FORKING_COURT:
            raise AppealNotPossibleError("the forking court has no parent court to jump to")
        parent = self.registry.court(court.parent)
        if not parent.supports(dispute.dispute_kit_id):
            raise AppealNotPossibleError(
                f"court {parent.court_id} does not support dispute kit {dispute.dispute_kit_id}"
            )
        return parent.fee_for_juror * next_nb_votes

    def appeal_period(self, dispute_id: int) -> tuple[int, int]:
        dispute = self.get_dispute(dispute_id)
        if dispute.period != Period.APPEAL:
            return 0, 0
        court = self.registry.court(dispute.court_id)
        start = dispute.last_period_change
        return start, start + court.time_for(Period.APPEAL)

    def settlement_limit(self, dispute_id: int, round_index: int) -> int:
        """Total cursor positions of a round: one pass, or two when rewards are due."""
        round_ = self.get_round(dispute_id, round_index)
        coherent_count = self.dispute_kit_of(dispute_id).get_coherent_count(dispute_id, round_index)
        juror_count = len(round_.drawn_jurors)
        return juror_count if coherent_count == 0 else juror_count * 2

    # Lifecycle

    def create_dispute(
        self,
        arbitrable: Arbitrable,
        number_of_choices: int,
        *,
        value: int,
        court_id: int = GENERAL_COURT,
        min_jurors: int = MIN_JURORS,
        dispute_kit_id: int = DISPUTE_KIT_CLASSIC,
    ) -> int:
        court = self.registry.court(court_id)
        if dispute_kit_id not in self.dispute_kits:
            raise UnknownEntityError(f"unknown dispute kit: {dispute_kit_id}")
        if not court.supports(dispute_kit_id):
            raise UnsupportedDisputeKitError(
                f"dispute kit {dispute_kit_id} is not supported by court {court_id}"
            )
        if number_of_choices < 1:
            raise PreconditionError("a dispute needs at least one ruling option")
        if min_jurors <= 0:
            min_jurors = MIN_JURORS
        cost = self.arbitration_cost(court_id, min_jurors)
        if value < cost:
            raise InsufficientFundsError(f"arbitration costs {cost}, got {value}")
        self._collect(arbitrable.address, value)

        dispute_id = len(self.disputes)
        nb_votes = value // court.fee_for_juror
        dispute = Dispute(
            court_id=court_id,
            arbitrable=arbitrable.address,
            dispute_kit_id=dispute_kit_id,
            number_of_choices=number_of_choices,
            last_period_change=self.clock.now(),
            nb_votes=nb_votes,
        )
        dispute.rounds.append(
            Round(
                court_id=court_id,
                tokens_at_stake_per_juror=court.min_stake * court.alpha // ALPHA_DIVISOR,
                total_fees_for_jurors=value,
            )
        )
        self.disputes.append(dispute)
        self._arbitrables[dispute_id] = arbitrable
        self.dispute_kits[dispute_kit_id].create_dispute(dispute_id, number_of_choices, nb_votes)
        self.events.emit(DisputeCreation(dispute_id=dispute_id, arbitrable=arbitrable.address))
        return dispute_id

    def pass_period(self, dispute_id: int, *, caller: str | None = None) -> Period:
        dispute = self.get_dispute(dispute_id)
        court = self.registry.court(dispute.court_id)
        kit = self.dispute_kits[dispute.dispute_kit_id]
        now = self.clock.now()
        elapsed = now - dispute.last_period_change
        timed_out = elapsed >= court.time_for(dispute.period) if dispute.period < Period.EXECUTION else False
        by_kit = caller is not None and caller == kit.address

        if dispute.period == Period.EVIDENCE:
            if dispute.current_round_index == 0 and not timed_out:
                raise WrongPeriodError("the evidence period has not passed yet and this is not an appeal")
            if len(dispute.current_round.drawn_jurors) != dispute.nb_votes:
                raise WrongPeriodError("the dispute has not finished drawing yet")
            next_period = Period.COMMIT if court.hidden_votes else Period.VOTE
        elif dispute.period == Period.COMMIT:
            if not (timed_out or by_kit or kit.are_commits_all_cast(dispute_id)):
                raise WrongPeriodError("the commit period has not passed yet")
            next_period = Period.VOTE
        elif dispute.period == Period.VOTE:
            if not (timed_out or by_kit or kit.are_votes_all_cast(dispute_id)):
                raise WrongPeriodError("the vote period has not passed yet")
            next_period = Period.APPEAL
        elif dispute.period == Period.APPEAL:
            if not timed_out:
                raise WrongPeriodError("the appeal period has not passed yet")
            next_period = Period.EXECUTION
        else:
            raise WrongPeriodError("the dispute is already in the execution period")

        dispute.period = next_period
        dispute.last_period_change = now
        if next_period == Period.APPEAL:
            self.events.emit(AppealPossible(dispute_id=dispute_id, arbitrable=dispute.arbitrable))
        self.events.emit(NewPeriod(dispute_id=dispute_id, period=next_period))
        return next_period

    def draw(self, dispute_id: int, iterations: int) -> int:
        """Draw up to ``iterations`` panelists; returns how many were drawn."""
        dispute = self.get_dispute(dispute_id)
        if dispute.period != Period.EVIDENCE:
            raise WrongPeriodError("jurors can only be drawn during the evidence period")
        if iterations < 0:
            raise PreconditionError("iterations must be non-negative")

        kit = self.dispute_kits[dispute.dispute_kit_id]
        round_ = dispute.current_round
        round_index = dispute.current_round_index
        start = len(round_.drawn_jurors)
        end = min(start + iterations, dispute.nb_votes)

        picks: list[StakePath] = []
        pending: defaultdict[StakePath, int] = defaultdict(int)
        for nonce in range(start, end):
            path = kit.draw(dispute_id, nonce)
            if path is None:
                continue
            pending[path] += round_.tokens_at_stake_per_juror
            if not self.registry.can_lock(path, pending[path]):
                raise InvariantViolationError(
                    f"locking {pending[path]} for {path.account} would exceed its stake in court {path.court_id}"
                )
            picks.append(path)

        for path in picks:
            self.registry.lock(path, round_.tokens_at_stake_per_juror)
            vote_id = kit.record_draw(dispute_id, path)
            round_.drawn_jurors.append(path)
            self.events.emit(
                Draw(account=path.account, dispute_id=dispute_id, round=round_index, vote_id=vote_id)
            )

        self._logger.info(
            "draw_chunk",
            dispute_id=dispute_id,
            round=round_index,
            drawn=len(picks),
            total_drawn=len(round_.drawn_jurors),
            nb_votes=dispute.nb_votes,
        )
        return len(picks)

    def appeal(self, dispute_id: int, *, caller: str, value: int) -> None:
        dispute = self.get_dispute(dispute_id)
        kit = self.dispute_kits[dispute.dispute_kit_id]
        if caller != kit.address:
            raise NotAuthorizedError("only the dispute's kit can appeal")
        if dispute.period != Period.APPEAL:
            raise WrongPeriodError("the dispute is not appealable")
        cost = self.appeal_cost(dispute_id)
        if value < cost:
            raise InsufficientFundsError(f"appeal costs {cost}, got {value}")
        self._collect(caller, value)

        court = self.registry.court(dispute.court_id)
        if dispute.nb_votes >= court.jurors_for_court_jump:
            dispute.court_id = court.parent
            court = self.registry.court(dispute.court_id)
        dispute.period = Period.EVIDENCE
        dispute.last_period_change = self.clock.now()
        dispute.nb_votes = value // court.fee_for_juror
        dispute.rounds.append(
            Round(
                court_id=dispute.court_id,
                tokens_at_stake_per_juror=court.min_stake * court.alpha // ALPHA_DIVISOR,
                total_fees_for_jurors=value,
            )
        )
        self.events.emit(AppealDecision(dispute_id=dispute_id, arbitrable=dispute.arbitrable))
        self.events.emit(NewPeriod(dispute_id=dispute_id, period=Period.EVIDENCE))

    def execute(self, dispute_id: int, round_index: int, iterations: int) -> int:
        """Settle up to ``iterations`` cursor positions of a round.

        Positions ``[0, n)`` apply penalties, positions ``[n, 2n)`` pay rewards
        to coherent jurors. Returns the new cursor.
        """
        dispute = self.get_dispute(dispute_id)
        if dispute.period != Period.EXECUTION:
            raise WrongPeriodError("rounds can only be settled during the execution period")
        if iterations < 0:
            raise PreconditionError("iterations must be non-negative")
        round_ = self.get_round(dispute_id, round_index)
        kit = self.dispute_kits[dispute.dispute_kit_id]

        juror_count = len(round_.drawn_jurors)
        coherent_count = kit.get_coherent_count(dispute_id, round_index)
        limit = juror_count if coherent_count == 0 else juror_count * 2
        end = min(round_.repartitions + iterations, limit)

        for index in range(round_.repartitions, end):
            if index < juror_count:
                round_.penalties += self._apply_penalty(dispute_id, round_index, round_, kit, index)
                if index == juror_count - 1 and coherent_count == 0:
                    self._forward_to_governor(dispute_id, round_)
            else:
                self._pay_reward(dispute_id, round_index, round_, kit, index % juror_count, coherent_count)
            round_.repartitions = index + 1

        self._logger.info(
            "settlement_chunk",
            dispute_id=dispute_id,
            round=round_index,
            repartitions=round_.repartitions,
            limit=limit,
            penalties=round_.penalties,
        )
        return round_.repartitions

    def _apply_penalty(
        self, dispute_id: int, round_index: int, round_: Round, kit: DisputeKit, vote_id: int
    ) -> int:
        path = round_.drawn_jurors[vote_id]
        degree = min(kit.get_degree_of_coherence(dispute_id, round_index, vote_id), ALPHA_DIVISOR)
        penalty = round_.tokens_at_stake_per_juror * (ALPHA_DIVISOR - degree) // ALPHA_DIVISOR
        self.registry.unlock(path, penalty)

        staked, _ = self.registry.juror_balance(path.account, path.court_id)
        min_stake = self.registry.court(path.court_id).min_stake
        if penalty > 0:
            # Keep the juror in the court only if the reduced stake still covers the minimum.
            if staked >= min_stake + penalty:
                new_stake = staked - penalty
            else:
                new_stake = 0
            if staked != 0:
                self.registry.set_stake_for_account(
                    path.account, path.court_id, new_stake, penalty=penalty, best_effort=True
                )

        if not kit.is_vote_active(dispute_id, round_index, vote_id):
            for court_id in self.registry.juror_courts(path.account):
                self.registry.set_stake_for_account(
                    path.account, court_id, 0, penalty=0, best_effort=True
                )

        self.events.emit(
            TokenAndFeeShift(account=path.account, dispute_id=dispute_id, token_amount=-penalty, fee_amount=0)
        )
        return penalty

    def _pay_reward(
        self,
        dispute_id: int,
        round_index: int,
        round_: Round,
        kit: DisputeKit,
        vote_id: int,
        coherent_count: int,
    ) -> None:
        path = round_.drawn_jurors[vote_id]
        degree = min(kit.get_degree_of_coherence(dispute_id, round_index, vote_id), ALPHA_DIVISOR)
        released = round_.tokens_at_stake_per_juror * degree // ALPHA_DIVISOR
        self.registry.unlock(path, released)

        staked, _ = self.registry.juror_balance(path.account, path.court_id)
        if staked == 0 and released > 0:
            self._pay(self.stake_token, path.account, released)

        token_reward = round_.penalties // coherent_count * degree // ALPHA_DIVISOR
        fee_reward = round_.total_fees_for_jurors // coherent_count * degree // ALPHA_DIVISOR
        self._pay(self.stake_token, path.account, token_reward)
        self._pay(self.fee_token, path.account, fee_reward)
        self.events.emit(
            TokenAndFeeShift(
                account=path.account,
                dispute_id=dispute_id,
                token_amount=token_reward,
                fee_amount=fee_reward,
            )
        )

    def _forward_to_governor(self, dispute_id: int, round_: Round) -> None:
        self._logger.info(
            "no_coherent_juror",
            dispute_id=dispute_id,
            fees=round_.total_fees_for_jurors,
            penalties=round_.penalties,
        )
        self._pay(self.fee_token, self.governor, round_.total_fees_for_jurors)
        self._pay(self.stake_token, self.governor, round_.penalties)

    def execute_ruling(self, dispute_id: int) -> int:
        dispute = self.get_dispute(dispute_id)
        if dispute.period != Period.EXECUTION:
            raise WrongPeriodError("the ruling can only be executed in the execution period")
        if dispute.ruled:
            raise AlreadyRuledError(f"dispute {dispute_id} was already ruled")
        ruling = self.current_ruling(dispute_id)
        dispute.ruled = True
        self._arbitrables[dispute_id].rule(dispute_id, ruling)
        self.events.emit(Ruling(dispute_id=dispute_id, arbitrable=dispute.arbitrable, ruling=ruling))
        return ruling

    # Value transfer

    def _collect(self, payer: str, value: int) -> None:
        if value == 0:
            return
        try:
            self.fee_token.transfer_from(self.address, payer, self.address, value)
        except TransferError as exc:
            raise InsufficientFundsError(f"could not collect {value} from {payer}: {exc}") from exc

    def _pay(self, token: FungibleToken, to: str, amount: int) -> bool:
        if amount <= 0:
            return True
        try:
            token.transfer(self.address, to, amount)
        except TransferError as exc:
            self._logger.warning("payment_failed", account=to, amount=amount, error=str(exc))
            return False
        return True
