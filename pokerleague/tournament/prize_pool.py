"""
Prize Pool Calculator.

상금 풀 계산 및 배분 검증.

Features:
- 바이인 / 리바이 / 라이트 리바이 합산 + 수동 조정
- 순위별 배분 금액 검증 (초과 배분 거부, 미달 배분은 경고)
- 퍼센트 기반 배분표 생성

Usage:
    pool = compute_pool(5, 10, 2, 0, 0, 20)       # 90.0
    check = validate_allocation([50, 30], pool)   # warning: 10.00 unallocated
"""

from typing import Any, Dict, List, Optional, Sequence

from pokerleague.logging_config import get_logger
from pokerleague.models import Tournament, TournamentPlayer
from pokerleague.utils.errors import ErrorCode, OverBudgetError, ValidationError

from .models import AllocationCheck, PrizePoolConfig, PrizePoolSummary

logger = get_logger(__name__)

DEFAULT_TOLERANCE = 0.01


def _money(value: Any) -> float:
    return round(float(value or 0), 2)


def compute_pool(
    paid_players: int,
    buy_in: float,
    rebuys: int,
    light_rebuys: int,
    light_rebuy_amount: float,
    adjustment: float = 0.0,
) -> float:
    """paid*buy_in + rebuys*buy_in + light*light_amount + adjustment."""
    return _money(
        paid_players * float(buy_in)
        + rebuys * float(buy_in)
        + light_rebuys * float(light_rebuy_amount)
        + float(adjustment)
    )


def validate_allocation(
    amounts: Sequence[float],
    pool: float,
    tolerance: float = DEFAULT_TOLERANCE,
) -> AllocationCheck:
    """
    Validate payout amounts against the pool.

    Raises:
        ValidationError: Negative amount
        OverBudgetError: Sum exceeds the pool beyond tolerance
    """
    for index, amount in enumerate(amounts):
        if amount < 0:
            raise ValidationError(
                f"Payout for rank {index + 1} cannot be negative",
                code=ErrorCode.INVALID_PAYOUT,
                details={"rank": index + 1, "amount": amount},
            )

    allocated = _money(sum(float(a) for a in amounts))
    pool = _money(pool)

    if allocated > pool + tolerance:
        raise OverBudgetError(allocated, pool)

    warning: Optional[str] = None
    if allocated < pool - tolerance:
        warning = f"{pool - allocated:.2f} of the prize pool is not allocated"
        logger.warning(
            "prize_pool_under_allocated",
            allocated=allocated,
            prize_pool=pool,
        )

    return AllocationCheck(allocated=allocated, pool=pool, warning=warning)


def validate_payout_config(
    config: PrizePoolConfig,
    pool: float,
    tolerance: float = DEFAULT_TOLERANCE,
) -> AllocationCheck:
    """validate_allocation plus payout_count consistency."""
    if config.payout_count < 1:
        raise ValidationError(
            "At least one paid place is required",
            code=ErrorCode.INVALID_PAYOUT,
        )
    if len(config.amounts) != config.payout_count:
        raise ValidationError(
            "Number of amounts must match the number of paid places",
            code=ErrorCode.INVALID_PAYOUT,
            details={"payoutCount": config.payout_count, "amounts": len(config.amounts)},
        )
    return validate_allocation(config.amounts, pool, tolerance)


def summarize(
    tournament: Tournament,
    entries: Sequence[TournamentPlayer],
) -> PrizePoolSummary:
    """Pool totals from the tournament's entries."""
    buy_in = float(tournament.buy_in_amount or 0)
    light_amount = float(tournament.light_rebuy_amount or 0)
    adjustment = _money(tournament.prize_pool_adjustment)

    paid = sum(1 for e in entries if e.has_paid)
    rebuys = sum(e.rebuys_count for e in entries)
    lights = sum(1 for e in entries if e.light_rebuy_used)

    calculated = compute_pool(paid, buy_in, rebuys, lights, light_amount)

    return PrizePoolSummary(
        paid_players=paid,
        rebuys=rebuys,
        light_rebuys=lights,
        buy_in_total=_money(paid * buy_in),
        rebuy_total=_money(rebuys * buy_in),
        light_rebuy_total=_money(lights * light_amount),
        calculated_pool=calculated,
        adjustment=adjustment,
        total_pool=_money(calculated + adjustment),
        adjustment_reason=tournament.adjustment_reason,
    )


def breakdown_from_percents(
    pool: float,
    percents: Sequence[float],
    tolerance: float = DEFAULT_TOLERANCE,
) -> List[Dict[str, Any]]:
    """
    Payout table from percentages.

    Every percentage must be positive and they must sum to 100.
    Amounts are rounded to cents.
    """
    if not percents:
        raise ValidationError(
            "At least one percentage is required",
            code=ErrorCode.INVALID_PAYOUT,
        )
    if any(p <= 0 for p in percents):
        raise ValidationError(
            "Each percentage must be > 0",
            code=ErrorCode.INVALID_PAYOUT,
            details={"percents": list(percents)},
        )
    total = sum(percents)
    if abs(total - 100) >= tolerance:
        raise ValidationError(
            "Percentages must sum to 100",
            code=ErrorCode.INVALID_PAYOUT,
            details={"sum": total},
        )

    return [
        {
            "rank": index + 1,
            "percent": percent,
            "amount": _money(float(pool) * percent / 100),
        }
        for index, percent in enumerate(percents)
    ]
