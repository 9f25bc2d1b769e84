"""
Rebuy Penalty Engine.

시즌 규칙에 따른 리바이 페널티 계산.

Tiers are NOT cumulative: a player is charged the penalty of the single
highest threshold they reached. With free_rebuys_count=2 and tiers
3/-50, 4/-100, 5/-150:

    rebuys  0  1  2    3     4     5     6
    penalty 0  0  0  -50  -100  -150  -150

Light rebuys are not counted here; they only feed the prize pool.
"""

from typing import Any, Iterable, List, Optional, Sequence

from .models import PenaltyPreviewRow, PenaltyTier, SeasonPenaltyRules

DEFAULT_PREVIEW_MAX_REBUYS = 7


def compute_penalty(total_rebuys: int, rules: SeasonPenaltyRules) -> int:
    """
    Penalty points (<= 0) for a rebuy count.

    Args:
        total_rebuys: Standard rebuys taken by the player
        rules: Season penalty rules

    Returns:
        Penalty of the highest qualifying tier, or 0
    """
    if total_rebuys <= rules.free_rebuys_count:
        return 0

    for tier in sorted(rules.tiers, key=lambda t: t.from_recaves, reverse=True):
        if tier.from_recaves <= total_rebuys:
            return tier.penalty_points

    return 0


def _whole_number(value: Any) -> Optional[int]:
    """JSON numbers may arrive as 3 or 3.0; both mean 3."""
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _parse_tier(raw: Any) -> Optional[PenaltyTier]:
    if not isinstance(raw, dict):
        return None
    from_recaves = _whole_number(raw.get("fromRecaves"))
    penalty = _whole_number(raw.get("penaltyPoints"))
    if from_recaves is None or penalty is None:
        return None
    if from_recaves < 1 or penalty > 0:
        return None
    return PenaltyTier(from_recaves, penalty)


def parse_penalty_rules(season: Any) -> SeasonPenaltyRules:
    """
    Normalize a season's penalty configuration.

    The structured tier list wins when every entry is well formed.
    Otherwise three tiers are derived from the legacy flat fields at
    free+1, free+2 and free+3 rebuys.
    """
    free = season.free_rebuys_count
    raw_tiers = season.recave_penalty_tiers

    if isinstance(raw_tiers, list):
        parsed = [_parse_tier(t) for t in raw_tiers]
        if all(tier is not None for tier in parsed):
            return SeasonPenaltyRules(free_rebuys_count=free, tiers=tuple(parsed))

    # 레거시 포맷
    return SeasonPenaltyRules(
        free_rebuys_count=free,
        tiers=(
            PenaltyTier(free + 1, season.rebuy_penalty_tier1),
            PenaltyTier(free + 2, season.rebuy_penalty_tier2),
            PenaltyTier(free + 3, season.rebuy_penalty_tier3),
        ),
    )


def validate_tier_configuration(
    free_rebuys_count: int,
    tiers: Sequence[PenaltyTier],
) -> List[str]:
    """Return human-readable problems with a tier list; empty when valid."""
    if not tiers:
        return ["At least one penalty tier is required"]

    errors: List[str] = []
    seen: set[int] = set()

    for tier in tiers:
        if tier.from_recaves < 1:
            errors.append(f"Rebuy threshold must be >= 1 (got {tier.from_recaves})")
        if tier.from_recaves <= free_rebuys_count:
            errors.append(
                f"Tier at {tier.from_recaves} rebuys must be above the "
                f"free rebuys ({free_rebuys_count})"
            )
        if tier.penalty_points > 0:
            errors.append(f"Penalty must be <= 0 (got {tier.penalty_points})")
        if tier.from_recaves in seen:
            errors.append(f"Duplicate tier: {tier.from_recaves} rebuys")
        seen.add(tier.from_recaves)

    return errors


def serialize_tiers(rules: SeasonPenaltyRules) -> List[dict]:
    """Storage form, ascending by threshold."""
    return [t.to_dict() for t in sorted(rules.tiers, key=lambda t: t.from_recaves)]


def tiers_from_payload(payload: Iterable[dict]) -> List[PenaltyTier]:
    return [PenaltyTier(int(t["fromRecaves"]), int(t["penaltyPoints"])) for t in payload]


def penalty_preview(
    rules: SeasonPenaltyRules,
    max_rebuys: int = DEFAULT_PREVIEW_MAX_REBUYS,
) -> List[PenaltyPreviewRow]:
    """Penalty for 0..max_rebuys rebuys, for display next to the season form."""
    return [
        PenaltyPreviewRow(rebuys=i, penalty=compute_penalty(i, rules))
        for i in range(max_rebuys + 1)
    ]
