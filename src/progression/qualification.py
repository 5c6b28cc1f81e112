"""
Qualification from group standings into knockout play.

Qualified ids are ordered by finishing position first (every group winner,
then every runner-up, ...) and by group name within a position, so bracket
seeding keeps same-rank finishers together.
"""
import logging
import math
from typing import List, Dict, Iterable

from .stages import KNOCKOUT_STAGE_SIZES, INDIVIDUAL_KNOCKOUT_STAGE_SIZES
from .tiebreak import resolve

logger = logging.getLogger(__name__)


def next_power_of_two(count: int) -> int:
    if count <= 0:
        return 0
    return 2 ** math.ceil(math.log2(count))


def _by_rank(standings: Dict[str, List[Dict]], ranks: int) -> List:
    qualified = []
    for rank_index in range(ranks):
        for group_name in sorted(standings):
            group = standings[group_name]
            if rank_index < len(group):
                qualified.append(group[rank_index]['id'])
    return qualified


def best_of_rank(standings: Dict[str, List[Dict]], rank_index: int, count: int,
                 matches: Iterable[Dict] = ()) -> List:
    """Best ``count`` finishers at 0-based ``rank_index``, pooled across groups."""
    if count <= 0:
        return []
    pool = [standings[g][rank_index] for g in sorted(standings) if rank_index < len(standings[g])]
    ranked = resolve(pool, list(matches))
    if len(ranked) < count:
        logger.warning(f'Only {len(ranked)} candidates at rank {rank_index + 1} to fill {count} wildcard places')
    return [record['id'] for record in ranked[:count]]


def qualify_from_groups(standings: Dict[str, List[Dict]], qualified_per_group: int,
                        matches: Iterable[Dict] = ()) -> List:
    """
    Select the top ``qualified_per_group`` of every group.

    When two qualify per group and the total is not a power of two, the best
    third-placed finishers are promoted until the next power of two.
    """
    qualified = _by_rank(standings, qualified_per_group)
    target = next_power_of_two(len(qualified))
    if len(qualified) != target and qualified_per_group == 2:
        qualified.extend(best_of_rank(standings, 2, target - len(qualified), matches))
    return qualified


def qualify_for_knockout_stage(standings: Dict[str, List[Dict]], knockout_stage: str,
                               matches: Iterable[Dict] = ()) -> List:
    """
    Select entrants for a knockout that starts at ``knockout_stage``.

    The guaranteed places per group derive from the target bracket size; any
    remainder is filled with best third-placed finishers when two per group
    are guaranteed.
    """
    target = KNOCKOUT_STAGE_SIZES.get(knockout_stage)
    if not target:
        logger.warning(f'Unknown knockout stage {knockout_stage!r}; nobody qualifies')
        return []
    if not standings:
        logger.info('No group standings available; nobody qualifies')
        return []

    guaranteed = target // len(standings)
    qualified = _by_rank(standings, guaranteed)[:target]
    need = target - len(qualified)
    if need > 0 and guaranteed == 2:
        qualified.extend(best_of_rank(standings, 2, need, matches))
    elif need > 0:
        logger.info(f'{knockout_stage}: {len(qualified)} of {target} places filled from {len(standings)} groups')
    return qualified


def qualify_players_from_groups(standings: Dict[str, List[Dict]], qualified_per_group: int,
                                matches: Iterable[Dict] = (), extra_best_needed: int = 0) -> List:
    """Per-player variant: top places plus the best ``extra_best_needed`` of the next rank."""
    qualified = _by_rank(standings, qualified_per_group)
    qualified.extend(best_of_rank(standings, qualified_per_group, extra_best_needed, matches))
    return qualified


def seed_players_for_knockout(standings: Dict[str, List[Dict]], knockout_stage: str,
                              matches: Iterable[Dict] = ()) -> List:
    """
    Seed order for an individual knockout that starts at ``knockout_stage``.

    The stage fixes how many players qualify (4, 8, 16 or 32). Each group
    sends the same number and the best finishers of the next rank fill the
    rest. Non-qualified players follow by group finishing rank, so they
    still land in the lower placement tiers.
    """
    target = INDIVIDUAL_KNOCKOUT_STAGE_SIZES.get(knockout_stage)
    everyone = _by_rank(standings, max((len(group) for group in standings.values()), default=0))
    if not target or not standings:
        return everyone

    per_group = target // len(standings)
    extra = target - per_group * len(standings)
    qualified = qualify_players_from_groups(standings, per_group, matches, extra)[:target]
    if len(qualified) < target:
        logger.info(f'{knockout_stage}: only {len(qualified)} of {target} players qualified')
    return qualified + [player_id for player_id in everyone if player_id not in qualified]
