"""
Finish Validator Tests.
"""

import pytest

from pokerleague.models import TournamentStatus
from pokerleague.tournament.finish import can_finish, validate_transition
from pokerleague.utils.errors import (
    BoundsError,
    DuplicateRanksError,
    ErrorCode,
    IncompleteRanksError,
    OutOfBoundsError,
    StateError,
)


class TestCanFinish:
    def test_incomplete(self):
        check = can_finish([1, 2, None], ["a", "b", "c"])
        assert not check.ok
        assert isinstance(check.error, IncompleteRanksError)
        assert check.error.details["playersWithoutRank"] == ["c"]

    def test_duplicate(self):
        check = can_finish([1, 2, 2])
        assert isinstance(check.error, DuplicateRanksError)
        assert check.error.details["duplicateRanks"] == [2]

    def test_out_of_bounds(self):
        check = can_finish([1, 2, 5])
        assert isinstance(check.error, OutOfBoundsError)
        assert isinstance(check.error, BoundsError)
        assert check.error.details == {"unexpectedRanks": [5], "expectedCount": 3}

    def test_ok(self):
        check = can_finish([3, 1, 2])
        assert check.ok
        check.raise_for_error()

    def test_incomplete_checked_before_duplicates(self):
        assert isinstance(can_finish([2, 2, None]).error, IncompleteRanksError)

    def test_duplicates_checked_before_bounds(self):
        assert isinstance(can_finish([7, 7, 1]).error, DuplicateRanksError)

    def test_zero_rank_is_out_of_bounds(self):
        assert isinstance(can_finish([0, 1]).error, OutOfBoundsError)

    def test_empty_field_is_complete(self):
        assert can_finish([]).ok

    def test_raise_for_error(self):
        with pytest.raises(IncompleteRanksError):
            can_finish([None]).raise_for_error()


class TestTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (TournamentStatus.PLANNED, TournamentStatus.REGISTRATION),
            (TournamentStatus.REGISTRATION, TournamentStatus.IN_PROGRESS),
            (TournamentStatus.IN_PROGRESS, TournamentStatus.FINISHED),
            (TournamentStatus.PLANNED, TournamentStatus.CANCELLED),
            (TournamentStatus.REGISTRATION, TournamentStatus.CANCELLED),
            (TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target):
        validate_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (TournamentStatus.PLANNED, TournamentStatus.IN_PROGRESS),
            (TournamentStatus.IN_PROGRESS, TournamentStatus.REGISTRATION),
            (TournamentStatus.FINISHED, TournamentStatus.CANCELLED),
            (TournamentStatus.FINISHED, TournamentStatus.IN_PROGRESS),
            (TournamentStatus.CANCELLED, TournamentStatus.PLANNED),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(StateError) as exc_info:
            validate_transition(current, target)
        assert exc_info.value.code == ErrorCode.INVALID_TRANSITION.value
