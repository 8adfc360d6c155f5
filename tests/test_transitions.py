"""Tests for the transition state machine."""

import pytest
from datetime import datetime, date

from nowline.engine.errors import AlreadyResolved, InvalidDuration, InvalidState, NotFound
from nowline.engine.ledger import BlockLedger
from nowline.engine.monitor import tick
from nowline.engine.transitions import apply_transition
from nowline.models.time_block import BlockStatus
from nowline.models.transition import (
    CompleteAgo,
    CompleteNow,
    CompleteOnTime,
    Delay,
    TransitionKind,
    action_from_kind,
)

DAY = date(2024, 1, 1)


def _at(hour, minute=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute)


@pytest.fixture
def ledger(make_block):
    """NOW block 10:00-11:00 followed by two WILL blocks."""
    return BlockLedger(
        "ws",
        DAY,
        [
            make_block("10:00", "11:00", block_id="current", status=BlockStatus.NOW),
            make_block("11:00", "12:00", block_id="next"),
            make_block("12:00", "13:00", block_id="later"),
        ],
    )


@pytest.fixture
def pending_ledger(make_block):
    """Overdue PENDING block 10:00-11:00 followed by two WILL blocks."""
    return BlockLedger(
        "ws",
        DAY,
        [
            make_block("10:00", "11:00", block_id="current", status=BlockStatus.PENDING),
            make_block("11:00", "12:00", block_id="next"),
            make_block("12:00", "13:00", block_id="later"),
        ],
    )


class TestCompletions:
    """Test the three completion actions."""

    def test_complete_on_time_keeps_scheduled_end(self, ledger):
        ledger.set_status("current", BlockStatus.PENDING)

        outcome = apply_transition(ledger, "current", CompleteOnTime(), _at(11, 5))

        assert outcome.block.status == BlockStatus.DONE
        assert outcome.block.end_time == _at(11)
        assert outcome.shifted_ids == []
        assert outcome.promoted.id == "next"
        assert ledger.get("next").start_time == _at(11)

    def test_complete_now_early_pulls_later_blocks_in(self, ledger):
        outcome = apply_transition(ledger, "current", CompleteNow(), _at(10, 40))

        assert outcome.block.end_time == _at(10, 40)
        assert outcome.shifted_ids == ["next", "later"]
        assert (ledger.get("next").start_time, ledger.get("next").end_time) == (_at(10, 40), _at(11, 40))
        assert ledger.get("later").start_time == _at(11, 40)
        assert ledger.get("next").status == BlockStatus.NOW

    def test_complete_ago_late_pushes_later_blocks_out(self, ledger):
        ledger.set_status("current", BlockStatus.PENDING)

        outcome = apply_transition(ledger, "current", CompleteAgo(minutes=10), _at(11, 20))

        assert outcome.block.end_time == _at(11, 10)
        assert outcome.block.last_action == TransitionKind.COMPLETE_AGO.value
        assert ledger.get("next").start_time == _at(11, 10)
        assert ledger.get("later").end_time == _at(13, 10)

    @pytest.mark.parametrize("minutes", [0, 5, 25, 49])
    def test_complete_ago_ends_minutes_before_now(self, ledger, minutes):
        now = _at(10, 50)
        outcome = apply_transition(ledger, "current", CompleteAgo(minutes=minutes), now)
        assert (now - outcome.block.end_time).total_seconds() == minutes * 60

    @pytest.mark.parametrize("minutes", [50, 90])
    def test_complete_ago_before_start_rejected(self, ledger, minutes):
        with pytest.raises(InvalidDuration):
            apply_transition(ledger, "current", CompleteAgo(minutes=minutes), _at(10, 50))
        assert ledger.get("current").status == BlockStatus.NOW
        assert ledger.get("current").end_time == _at(11)

    def test_complete_ago_negative_rejected(self, ledger):
        with pytest.raises(InvalidDuration):
            apply_transition(ledger, "current", CompleteAgo(minutes=-5), _at(10, 50))

    def test_review_memo_is_stored(self, ledger):
        outcome = apply_transition(ledger, "current", CompleteNow(), _at(10, 30), review_memo="Went well")
        assert outcome.block.review_memo == "Went well"


class TestDelay:
    """Test DELAY."""

    def test_delay_shifts_following_blocks(self, ledger):
        outcome = apply_transition(ledger, "current", Delay(minutes=15), _at(10, 30))

        assert outcome.shifted_ids == ["next", "later"]
        assert ledger.get("next").start_time == _at(11, 15)
        assert ledger.get("later").start_time == _at(12, 15)
        # Still started before now, so it is current again
        current = ledger.get("current")
        assert (current.start_time, current.end_time) == (_at(10, 15), _at(11, 15))
        assert current.status == BlockStatus.NOW

    def test_delay_past_now_waits_as_will(self, ledger):
        outcome = apply_transition(ledger, "current", Delay(minutes=15), _at(10, 5))

        assert outcome.block.status == BlockStatus.WILL
        assert outcome.block.last_action == TransitionKind.DELAY.value
        assert outcome.promoted is None

    def test_second_delay_submission_is_already_resolved(self, ledger):
        apply_transition(ledger, "current", Delay(minutes=15), _at(10, 5))
        with pytest.raises(AlreadyResolved):
            apply_transition(ledger, "current", Delay(minutes=15), _at(10, 5))

    def test_delay_pending_block_shifts_following(self, pending_ledger):
        outcome = apply_transition(pending_ledger, "current", Delay(minutes=15), _at(11, 5))

        assert outcome.shifted_ids == ["next", "later"]
        assert (pending_ledger.get("next").start_time, pending_ledger.get("next").end_time) == (_at(11, 15), _at(12, 15))
        assert (pending_ledger.get("later").start_time, pending_ledger.get("later").end_time) == (_at(12, 15), _at(13, 15))
        assert outcome.block.status == BlockStatus.NOW

    def test_second_delay_after_repromotion_is_already_resolved(self, pending_ledger):
        apply_transition(pending_ledger, "current", Delay(minutes=15), _at(11, 5))

        with pytest.raises(AlreadyResolved):
            apply_transition(pending_ledger, "current", Delay(minutes=15), _at(11, 5))

        assert pending_ledger.get("current").end_time == _at(11, 15)
        assert pending_ledger.get("next").start_time == _at(11, 15)

    def test_delayed_block_can_still_be_completed(self, pending_ledger):
        apply_transition(pending_ledger, "current", Delay(minutes=15), _at(11, 5))

        outcome = apply_transition(pending_ledger, "current", CompleteNow(), _at(11, 10))

        assert outcome.block.status == BlockStatus.DONE
        assert pending_ledger.get("next").start_time == _at(11, 10)

    def test_delay_allowed_again_once_flagged(self, pending_ledger):
        apply_transition(pending_ledger, "current", Delay(minutes=15), _at(11, 5))
        tick(pending_ledger, _at(11, 15))
        assert pending_ledger.get("current").status == BlockStatus.PENDING

        apply_transition(pending_ledger, "current", Delay(minutes=10), _at(11, 20))

        assert pending_ledger.get("current").end_time == _at(11, 25)
        assert pending_ledger.get("next").start_time == _at(11, 25)

    @pytest.mark.parametrize("minutes", [0, -10])
    def test_non_positive_delay_rejected(self, ledger, minutes):
        with pytest.raises(InvalidDuration):
            apply_transition(ledger, "current", Delay(minutes=minutes), _at(10, 30))


class TestPreconditions:
    """Test actionable-state checks."""

    def test_done_block_is_already_resolved(self, ledger):
        apply_transition(ledger, "current", CompleteNow(), _at(10, 30))
        with pytest.raises(AlreadyResolved):
            apply_transition(ledger, "current", CompleteNow(), _at(10, 31))

    def test_will_block_is_invalid_state(self, ledger):
        with pytest.raises(InvalidState):
            apply_transition(ledger, "later", CompleteOnTime(), _at(10, 30))

    def test_unknown_block(self, ledger):
        with pytest.raises(NotFound):
            apply_transition(ledger, "missing", CompleteOnTime(), _at(10, 30))

    def test_unknown_action_type(self, ledger):
        with pytest.raises(TypeError):
            apply_transition(ledger, "current", object(), _at(10, 30))


class TestActionFromKind:
    """Test building actions from kind names."""

    def test_builds_each_kind(self):
        assert isinstance(action_from_kind("COMPLETE_ON_TIME"), CompleteOnTime)
        assert isinstance(action_from_kind("COMPLETE_NOW"), CompleteNow)
        assert action_from_kind("COMPLETE_AGO", 5).minutes == 5
        assert action_from_kind("DELAY", 10).extra_minutes == 10

    def test_missing_minutes(self):
        with pytest.raises(ValueError):
            action_from_kind("DELAY")
