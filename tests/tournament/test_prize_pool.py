"""
Prize Pool Tests.

상금 풀 계산 및 배분 검증 테스트.
"""

from types import SimpleNamespace

import pytest

from pokerleague.tournament.models import PrizePoolConfig
from pokerleague.tournament.prize_pool import (
    breakdown_from_percents,
    compute_pool,
    summarize,
    validate_allocation,
    validate_payout_config,
)
from pokerleague.utils.errors import ErrorCode, OverBudgetError, ValidationError


class TestComputePool:
    def test_example(self):
        # 5 paid players at 10, two standard rebuys, +20 adjustment
        assert compute_pool(5, 10, 2, 0, 0, 20) == 90

    def test_light_rebuys_use_light_amount(self):
        assert compute_pool(4, 20, 1, 2, 7.5) == 80 + 20 + 15

    def test_negative_adjustment(self):
        assert compute_pool(3, 10, 0, 0, 0, -5) == 25

    def test_rounds_to_cents(self):
        assert compute_pool(3, 0.1, 0, 0, 0) == 0.3


class TestValidateAllocation:
    def test_exact(self):
        check = validate_allocation([50, 30, 10], 90)
        assert check.warning is None
        assert check.remaining == 0

    def test_under_allocation_warns(self):
        check = validate_allocation([50, 30], 90)
        assert check.allocated == 80
        assert check.remaining == 10
        assert "10.00" in check.warning

    def test_over_allocation_rejected(self):
        with pytest.raises(OverBudgetError) as exc_info:
            validate_allocation([60, 40], 90)
        assert exc_info.value.code == ErrorCode.OVER_BUDGET.value
        assert exc_info.value.details == {"allocated": 100.0, "prizePool": 90.0}

    def test_within_tolerance(self):
        check = validate_allocation([33.34, 33.33, 33.34], 100)
        assert check.warning is None

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            validate_allocation([100, -10], 90)

    def test_payout_count_must_match(self):
        config = PrizePoolConfig(payout_count=3, amounts=(50, 40))
        with pytest.raises(ValidationError) as exc_info:
            validate_payout_config(config, 90)
        assert exc_info.value.code == ErrorCode.INVALID_PAYOUT.value


class TestBreakdown:
    def test_amounts_rounded(self):
        rows = breakdown_from_percents(95, [50, 30, 20])
        assert rows == [
            {"rank": 1, "percent": 50, "amount": 47.5},
            {"rank": 2, "percent": 30, "amount": 28.5},
            {"rank": 3, "percent": 20, "amount": 19.0},
        ]

    def test_thirds(self):
        rows = breakdown_from_percents(100, [33.33, 33.33, 33.34])
        assert [r["amount"] for r in rows] == [33.33, 33.33, 33.34]

    @pytest.mark.parametrize("percents", [[], [60, 50], [100, 0], [110, -10]])
    def test_invalid(self, percents):
        with pytest.raises(ValidationError):
            breakdown_from_percents(100, percents)


def test_summarize():
    tournament = SimpleNamespace(
        buy_in_amount=10,
        light_rebuy_amount=5,
        prize_pool_adjustment=20,
        adjustment_reason="house bonus",
    )
    entries = [
        SimpleNamespace(has_paid=True, rebuys_count=1, light_rebuy_used=False),
        SimpleNamespace(has_paid=True, rebuys_count=1, light_rebuy_used=True),
        SimpleNamespace(has_paid=True, rebuys_count=0, light_rebuy_used=False),
        SimpleNamespace(has_paid=False, rebuys_count=0, light_rebuy_used=False),
    ]

    summary = summarize(tournament, entries)

    assert summary.paid_players == 3
    assert summary.rebuys == 2
    assert summary.light_rebuys == 1
    assert summary.calculated_pool == 30 + 20 + 5
    assert summary.total_pool == 75
    assert summary.to_dict()["adjustmentReason"] == "house bonus"
