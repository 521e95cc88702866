"""Court hierarchy, juror stakes and the per-court sortition trees.

A stake placed in a court is mirrored into the sortition tree of that court
and of every ancestor up to the forking court, always under the same stake
path ``(account, court_id)``. A juror staked in a leaf court can therefore be
drawn for disputes in any court above it, while the tokens stay accounted in
the court where they were staked.
"""
from __future__ import annotations

from collections.abc import Iterable

from staked_court.collaborators.token import FungibleToken
from staked_court.domain.court import Court, Juror
from staked_court.domain.events import EventLog, StakeSet
from staked_court.errors import (
    InvariantViolationError,
    NotAuthorizedError,
    PreconditionError,
    StakingError,
    TransferError,
    UnknownEntityError,
)
from staked_court.observability.logging import get_logger
from staked_court.sortition.tree import SortitionSumTree, SortitionTrees
from staked_court.types import ALPHA_DIVISOR, FORKING_COURT, MAX_STAKE_PATHS, StakePath


class StakeRegistry:
    def __init__(
        self,
        *,
        custody: str,
        governor: str,
        stake_token: FungibleToken,
        events: EventLog,
    ) -> None:
        self.custody = custody
        self.governor = governor
        self.stake_token = stake_token
        self.events = events
        self.courts: list[Court] = []
        self.jurors: dict[str, Juror] = {}
        self.trees: SortitionTrees[StakePath] = SortitionTrees()
        self._logger = get_logger("staked_court.registry")

    # Court administration

    def _only_governor(self, caller: str) -> None:
        if caller != self.governor:
            raise NotAuthorizedError(f"only the governor can configure courts, got {caller}")

    def court(self, court_id: int) -> Court:
        if not 0 <= court_id < len(self.courts):
            raise UnknownEntityError(f"unknown court: {court_id}")
        return self.courts[court_id]

    def create_court(
        self,
        caller: str,
        *,
        parent: int,
        hidden_votes: bool,
        min_stake: int,
        alpha: int,
        fee_for_juror: int,
        jurors_for_court_jump: int,
        times_per_period: Iterable[int],
        supported_dispute_kits: Iterable[int],
        sortition_k: int,
    ) -> int:
        """Create a court; the first court created is the forking court."""
        self._only_governor(caller)
        times = tuple(times_per_period)
        if len(times) != 4 or any(duration < 0 for duration in times):
            raise PreconditionError("times_per_period needs four non-negative durations")
        if not 0 <= alpha <= ALPHA_DIVISOR:
            raise PreconditionError(f"alpha must be within [0, {ALPHA_DIVISOR}]")
        if fee_for_juror <= 0:
            raise PreconditionError("fee_for_juror must be positive")
        if jurors_for_court_jump <= 0:
            raise PreconditionError("jurors_for_court_jump must be positive")
        if min_stake < 0:
            raise PreconditionError("min_stake must be non-negative")
        if sortition_k <= 1:
            raise PreconditionError("K must be greater than one")

        court_id = len(self.courts)
        if court_id == FORKING_COURT:
            if parent != FORKING_COURT:
                raise PreconditionError("the forking court is its own parent")
        else:
            parent_court = self.court(parent)
            if min_stake < parent_court.min_stake:
                raise PreconditionError("a court's min_stake cannot be below its parent's")

        self.trees.create_tree(court_id, sortition_k)
        self.courts.append(
            Court(
                court_id=court_id,
                parent=parent,
                hidden_votes=hidden_votes,
                min_stake=min_stake,
                alpha=alpha,
                fee_for_juror=fee_for_juror,
                jurors_for_court_jump=jurors_for_court_jump,
                times_per_period=times,  # type: ignore[arg-type]
                supported_dispute_kits=set(supported_dispute_kits),
            )
        )
        if court_id != FORKING_COURT:
            self.courts[parent].children.add(court_id)
        self._logger.info("court_created", court_id=court_id, parent=parent, min_stake=min_stake)
        return court_id

    def set_court_min_stake(self, caller: str, court_id: int, min_stake: int) -> None:
        self._only_governor(caller)
        court = self.court(court_id)
        if court_id != FORKING_COURT and min_stake < self.courts[court.parent].min_stake:
            raise PreconditionError("a court's min_stake cannot be below its parent's")
        if any(self.courts[child].min_stake < min_stake for child in court.children):
            raise PreconditionError("a court's min_stake cannot exceed any child's")
        court.min_stake = min_stake

    def set_court_alpha(self, caller: str, court_id: int, alpha: int) -> None:
        self._only_governor(caller)
        if not 0 <= alpha <= ALPHA_DIVISOR:
            raise PreconditionError(f"alpha must be within [0, {ALPHA_DIVISOR}]")
        self.court(court_id).alpha = alpha

    def set_court_fee_for_juror(self, caller: str, court_id: int, fee_for_juror: int) -> None:
        self._only_governor(caller)
        if fee_for_juror <= 0:
            raise PreconditionError("fee_for_juror must be positive")
        self.court(court_id).fee_for_juror = fee_for_juror

    def set_court_jurors_for_jump(self, caller: str, court_id: int, jurors: int) -> None:
        self._only_governor(caller)
        if jurors <= 0:
            raise PreconditionError("jurors_for_court_jump must be positive")
        self.court(court_id).jurors_for_court_jump = jurors

    def set_court_times_per_period(
        self, caller: str, court_id: int, times_per_period: Iterable[int]
    ) -> None:
        self._only_governor(caller)
        times = tuple(times_per_period)
        if len(times) != 4 or any(duration < 0 for duration in times):
            raise PreconditionError("times_per_period needs four non-negative durations")
        self.court(court_id).times_per_period = times  # type: ignore[assignment]

    def set_court_hidden_votes(self, caller: str, court_id: int, hidden_votes: bool) -> None:
        self._only_governor(caller)
        self.court(court_id).hidden_votes = hidden_votes

    # Juror stakes

    def juror(self, account: str) -> Juror:
        return self.jurors.get(account) or Juror(account=account)

    def juror_balance(self, account: str, court_id: int) -> tuple[int, int]:
        juror = self.juror(account)
        return juror.staked(court_id), juror.locked(court_id)

    def juror_courts(self, account: str) -> list[int]:
        return list(self.juror(account).court_ids)

    def stake_of(self, court_id: int, path: StakePath) -> int:
        return self.trees.stake_of(court_id, path)

    def sortition_tree(self, court_id: int) -> SortitionSumTree[StakePath]:
        return self.trees.tree(court_id)

    def draw(self, court_id: int, random_number: int) -> StakePath | None:
        return self.trees.draw(court_id, random_number)

    def set_stake(self, account: str, court_id: int, stake: int) -> None:
        """Stake, restake or unstake ``account`` in ``court_id``."""
        self.set_stake_for_account(account, court_id, stake, penalty=0, best_effort=False)

    def set_stake_for_account(
        self,
        account: str,
        court_id: int,
        stake: int,
        *,
        penalty: int,
        best_effort: bool,
    ) -> None:
        court = self.court(court_id)
        if stake < 0:
            raise StakingError("stake must be non-negative")

        juror = self.juror(account)
        current = juror.staked(court_id)
        locked = juror.locked(court_id)
        if stake != 0:
            if stake < court.min_stake:
                raise StakingError(
                    f"stake {stake} is below the minimum stake {court.min_stake} of court {court_id}"
                )
            if stake < locked:
                raise StakingError(f"stake {stake} is below the {locked} tokens locked in court {court_id}")
            if current == 0 and len(juror.court_ids) >= MAX_STAKE_PATHS:
                raise StakingError(f"cannot stake in more than {MAX_STAKE_PATHS} courts")

        if stake >= current:
            # Tokens still locked after an unstake stay in custody and count toward a new stake.
            held = current if current > 0 else locked
            collected = stake - held
            if collected > 0:
                try:
                    self.stake_token.transfer_from(self.custody, account, self.custody, collected)
                except TransferError as exc:
                    raise StakingError(f"could not collect {collected} staked tokens: {exc}") from exc
        else:
            kept = locked if stake == 0 else stake
            released = current - kept - penalty
            if released < 0:
                raise InvariantViolationError(
                    f"releasing stake of {account} in court {court_id} would go negative"
                )
            if released > 0:
                self._release(account, released, best_effort=best_effort)

        self.jurors[account] = juror
        path = StakePath(account, court_id)
        node = court_id
        self.trees.set(node, stake, path)
        while node != FORKING_COURT:
            node = self.courts[node].parent
            self.trees.set(node, stake, path)

        if current == 0 and stake > 0:
            juror.court_ids.append(court_id)
        elif current > 0 and stake == 0:
            juror.court_ids.remove(court_id)
        juror.staked_tokens[court_id] = stake

        self.events.emit(StakeSet(account=account, court_id=court_id, amount=stake))

    def _release(self, account: str, amount: int, *, best_effort: bool) -> None:
        try:
            self.stake_token.transfer(self.custody, account, amount)
        except TransferError as exc:
            if not best_effort:
                raise StakingError(f"could not release {amount} staked tokens: {exc}") from exc
            self._logger.warning("payment_failed", account=account, amount=amount, error=str(exc))

    def lock(self, path: StakePath, amount: int) -> None:
        juror = self.juror(path.account)
        locked = juror.locked(path.court_id) + amount
        if locked > juror.staked(path.court_id):
            raise InvariantViolationError(
                f"locked amount {locked} would exceed the stake of {path.account} in court {path.court_id}"
            )
        juror.locked_tokens[path.court_id] = locked
        self.jurors[path.account] = juror

    def can_lock(self, path: StakePath, amount: int) -> bool:
        juror = self.juror(path.account)
        return juror.locked(path.court_id) + amount <= juror.staked(path.court_id)

    def unlock(self, path: StakePath, amount: int) -> None:
        juror = self.juror(path.account)
        locked = juror.locked(path.court_id) - amount
        if locked < 0:
            raise InvariantViolationError(
                f"unlocking {amount} from {path.account} in court {path.court_id} goes below zero"
            )
        juror.locked_tokens[path.court_id] = locked
        self.jurors[path.account] = juror
