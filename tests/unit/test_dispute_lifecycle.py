from __future__ import annotations

import pytest

from staked_court.collaborators.arbitrable import RecordingArbitrable
from staked_court.domain.events import AppealPossible, DisputeCreation, Draw, NewPeriod
from staked_court.errors import (
    AlreadyRuledError,
    InsufficientFundsError,
    InvariantViolationError,
    NotAuthorizedError,
    UnknownEntityError,
    UnsupportedDisputeKitError,
    WrongPeriodError,
)
from staked_court.types import DISPUTE_KIT_CLASSIC, GENERAL_COURT, DisputeStatus, Period

ALICE = "alice"


class TestCreateDispute:
    def test_fee_is_collected_and_panel_sized_from_value(self, driver) -> None:
        arbitrable = RecordingArbitrable(address="app")
        driver.engine.fund_account("app", 45)

        dispute_id = driver.core.create_dispute(arbitrable, 2, value=45)

        dispute = driver.core.get_dispute(dispute_id)
        assert dispute.nb_votes == 4
        assert dispute.period == Period.EVIDENCE
        assert dispute.rounds[0].tokens_at_stake_per_juror == 200
        assert dispute.rounds[0].total_fees_for_jurors == 45
        assert driver.engine.fee_token.balance_of(driver.core.address) == 45
        assert driver.engine.events.of_type(DisputeCreation) == [
            DisputeCreation(dispute_id=dispute_id, arbitrable="app")
        ]

    def test_value_below_arbitration_cost_is_rejected(self, driver) -> None:
        driver.engine.fund_account("app", 100)

        with pytest.raises(InsufficientFundsError):
            driver.core.create_dispute(RecordingArbitrable(address="app"), 2, value=29)
        assert driver.core.disputes == []

    def test_unpaid_fee_is_rejected(self, driver) -> None:
        with pytest.raises(InsufficientFundsError):
            driver.core.create_dispute(RecordingArbitrable(address="app"), 2, value=30)
        assert driver.core.disputes == []

    def test_court_must_support_the_kit(self, driver) -> None:
        driver.core.enable_dispute_kits(driver.engine.governor, GENERAL_COURT, [DISPUTE_KIT_CLASSIC], False)
        driver.engine.fund_account("app", 30)

        with pytest.raises(UnsupportedDisputeKitError):
            driver.core.create_dispute(RecordingArbitrable(address="app"), 2, value=30)

    def test_unknown_kit_is_rejected(self, driver) -> None:
        driver.engine.fund_account("app", 30)

        with pytest.raises(UnknownEntityError):
            driver.core.create_dispute(RecordingArbitrable(address="app"), 2, value=30, dispute_kit_id=7)

    def test_only_governor_configures_kits(self, driver) -> None:
        with pytest.raises(NotAuthorizedError):
            driver.core.enable_dispute_kits(ALICE, GENERAL_COURT, [DISPUTE_KIT_CLASSIC], False)

    def test_arbitration_cost_defaults_to_three_jurors(self, driver) -> None:
        assert driver.core.arbitration_cost(GENERAL_COURT) == 30
        assert driver.core.arbitration_cost(GENERAL_COURT, 5) == 50


class TestDraw:
    def test_draw_is_chunked_and_resumable(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()

        assert driver.core.draw(dispute_id, 1) == 1
        assert driver.core.draw(dispute_id, 1) == 1
        assert driver.core.draw(dispute_id, 5) == 1
        assert driver.core.draw(dispute_id, 5) == 0

        draws = driver.engine.events.of_type(Draw)
        assert [event.vote_id for event in draws] == [0, 1, 2]
        assert driver.registry.juror_balance(ALICE, GENERAL_COURT) == (1_000, 600)

    def test_draw_skips_when_nobody_is_staked(self, driver) -> None:
        dispute_id, _ = driver.open_dispute()

        assert driver.core.draw(dispute_id, 3) == 0
        assert driver.core.get_dispute(dispute_id).current_round.drawn_jurors == []

    def test_draw_exceeding_stake_fails_without_partial_locks(self, driver) -> None:
        driver.stake(ALICE, 200)
        dispute_id, _ = driver.open_dispute()

        with pytest.raises(InvariantViolationError):
            driver.core.draw(dispute_id, 3)

        assert driver.core.get_dispute(dispute_id).current_round.drawn_jurors == []
        assert driver.registry.juror_balance(ALICE, GENERAL_COURT) == (200, 0)
        assert driver.engine.events.of_type(Draw) == []

        assert driver.core.draw(dispute_id, 1) == 1
        with pytest.raises(InvariantViolationError):
            driver.core.draw(dispute_id, 1)

    def test_draw_only_during_evidence(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()
        driver.start_voting(dispute_id)

        with pytest.raises(WrongPeriodError):
            driver.core.draw(dispute_id, 1)

    def test_drawn_jurors_are_staked_accounts(self, driver) -> None:
        for account in ("alice", "bob", "carol"):
            driver.stake(account, 2_000)
        dispute_id, _ = driver.open_dispute(min_jurors=9)

        driver.draw_panel(dispute_id, chunk=4)

        panel = driver.core.get_dispute(dispute_id).current_round.drawn_jurors
        assert len(panel) == 9
        assert {path.account for path in panel} <= {"alice", "bob", "carol"}
        assert all(path.court_id == GENERAL_COURT for path in panel)


class TestPassPeriod:
    def test_evidence_needs_elapsed_time_and_full_panel(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()

        driver.draw_panel(dispute_id)
        with pytest.raises(WrongPeriodError):
            driver.core.pass_period(dispute_id)

        driver.elapse(dispute_id)
        assert driver.core.pass_period(dispute_id) == Period.VOTE

    def test_evidence_cannot_pass_before_drawing_completes(self, driver) -> None:
        dispute_id, _ = driver.open_dispute()
        driver.elapse(dispute_id)

        with pytest.raises(WrongPeriodError):
            driver.core.pass_period(dispute_id)

    def test_hidden_votes_go_through_commit(self, driver_factory) -> None:
        driver = driver_factory(general_court_hidden_votes=True)
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()

        driver.start_voting(dispute_id)

        assert driver.core.current_period(dispute_id) == Period.COMMIT
        assert driver.core.are_votes_hidden(GENERAL_COURT)

    def test_vote_period_waits_for_time_or_all_votes(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()
        driver.start_voting(dispute_id)

        with pytest.raises(WrongPeriodError):
            driver.core.pass_period(dispute_id)

        driver.elapse(dispute_id)
        assert driver.core.pass_period(dispute_id) == Period.APPEAL
        assert driver.engine.events.of_type(AppealPossible) == [
            AppealPossible(dispute_id=dispute_id, arbitrable="arbitrable")
        ]
        assert driver.engine.events.of_type(NewPeriod)[-1] == NewPeriod(
            dispute_id=dispute_id, period=Period.APPEAL
        )

    def test_kit_can_close_the_vote_period_early(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()
        driver.start_voting(dispute_id)

        assert driver.core.pass_period(dispute_id, caller=driver.kit.address) == Period.APPEAL

    def test_status_and_appeal_window_follow_the_period(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()

        assert driver.core.dispute_status(dispute_id) == DisputeStatus.WAITING
        assert driver.core.appeal_period(dispute_id) == (0, 0)

        driver.start_voting(dispute_id)
        driver.vote_all(dispute_id, 1)
        start = driver.clock.now()

        assert driver.core.dispute_status(dispute_id) == DisputeStatus.APPEALABLE
        assert driver.core.appeal_period(dispute_id) == (start, start + 240)

        driver.to_execution(dispute_id)
        assert driver.core.dispute_status(dispute_id) == DisputeStatus.SOLVED
        with pytest.raises(WrongPeriodError):
            driver.core.pass_period(dispute_id)


class TestExecuteRuling:
    def test_ruling_is_executed_once(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, arbitrable = driver.open_dispute()
        driver.start_voting(dispute_id)
        driver.vote_all(dispute_id, 2)

        with pytest.raises(WrongPeriodError):
            driver.core.execute_ruling(dispute_id)

        driver.to_execution(dispute_id)
        assert driver.core.execute_ruling(dispute_id) == 2
        with pytest.raises(AlreadyRuledError):
            driver.core.execute_ruling(dispute_id)

        assert arbitrable.rulings == [(dispute_id, 2)]
        assert driver.core.is_ruled(dispute_id)
        assert driver.core.open_dispute_ids() == []

    def test_execute_only_in_execution_period(self, driver) -> None:
        driver.stake(ALICE, 1_000)
        dispute_id, _ = driver.open_dispute()

        with pytest.raises(WrongPeriodError):
            driver.core.execute(dispute_id, 0, 10)
