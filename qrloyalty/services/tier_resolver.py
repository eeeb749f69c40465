"""
Tier resolution.

Pure functions mapping a point balance to a tier name given an ordered
threshold table. No database access; callers load the merchant's table
(see LoyaltyProgramService.get_thresholds) and pass it in.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class TierThreshold:
    name: str
    min_points: int

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'min_points': self.min_points}


DEFAULT_THRESHOLDS = (
    TierThreshold('Bronze', 0),
    TierThreshold('Silver', 100),
    TierThreshold('Gold', 300),
    TierThreshold('Platinum', 600),
)

# Used when a merchant's table is present but empty
FALLBACK_TIER = 'Bronze'


def normalize_thresholds(raw: Optional[Iterable[Any]]) -> List[TierThreshold]:
    """
    Parse a configured threshold table into ascending TierThresholds.

    Accepts TierThreshold instances or dicts with ``name`` and
    ``min_points`` (or ``minPoints``). Entries without a name are skipped.
    Ties on min_points keep their configured order.
    """
    thresholds = []
    for entry in raw or []:
        if isinstance(entry, TierThreshold):
            thresholds.append(entry)
            continue
        name = entry.get('name')
        if not name:
            continue
        min_points = entry.get('min_points', entry.get('minPoints', 0))
        thresholds.append(TierThreshold(str(name), int(min_points or 0)))
    return sorted(thresholds, key=lambda t: t.min_points)


def _current_and_next(points: int, thresholds: List[TierThreshold]) -> Tuple[Optional[TierThreshold], Optional[TierThreshold]]:
    # Single pass over an ascending table
    current = None
    upcoming = None
    for threshold in thresholds:
        if threshold.min_points <= points:
            current = threshold
        else:
            upcoming = threshold
            break
    return current, upcoming


def resolve_tier(points: int, thresholds: Optional[Iterable[Any]] = None) -> str:
    """
    Highest tier whose min_points <= points.

    None means "no merchant configuration" and uses DEFAULT_THRESHOLDS; an
    explicitly empty table falls back to a single default tier. Points
    below the lowest configured threshold resolve to the lowest tier.
    """
    table = normalize_thresholds(DEFAULT_THRESHOLDS if thresholds is None else thresholds)
    if not table:
        return FALLBACK_TIER
    current, _ = _current_and_next(points, table)
    return (current or table[0]).name


def tier_progress(points: int, thresholds: Optional[Iterable[Any]] = None) -> Dict[str, Any]:
    """
    Current tier plus distance to the next one.

    Returns:
        {'tier', 'next_tier', 'points_to_next_tier'}; the last two are None
        at the top tier.
    """
    table = normalize_thresholds(DEFAULT_THRESHOLDS if thresholds is None else thresholds)
    if not table:
        return {'tier': FALLBACK_TIER, 'next_tier': None, 'points_to_next_tier': None}

    current, upcoming = _current_and_next(points, table)
    if current is None:
        # Below the lowest threshold: sits in the lowest tier
        current = table[0]
        upcoming = table[1] if len(table) > 1 else None

    if upcoming is None:
        return {'tier': current.name, 'next_tier': None, 'points_to_next_tier': None}

    return {
        'tier': current.name,
        'next_tier': upcoming.name,
        'points_to_next_tier': max(0, upcoming.min_points - points),
    }


def tier_rank(tier: str, thresholds: Optional[Iterable[Any]] = None) -> int:
    """Position of a tier in the ascending table, -1 if unknown."""
    table = normalize_thresholds(DEFAULT_THRESHOLDS if thresholds is None else thresholds)
    for index, threshold in enumerate(table):
        if threshold.name == tier:
            return index
    return -1
