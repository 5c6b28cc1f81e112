"""
Final positions once a category's placement matches are decided.

Positions are handed out in blocks from a running counter:
1. Each terminal match in order (final, 3rd_place, 5th_place, ...): winners, then losers.
   Semifinal losers with no 3rd place match rank right after it, ahead of the
   5th place tier; quarterfinal losers likewise after the 7th place match.
2. Remaining knockout losers, deepest round first.
3. Everyone else by group finishing rank, then by the tiebreak resolver.
Inside each block competitors are ranked by their group-stage stats, so the
result is always a dense 1..N permutation.
"""
import logging
from typing import List, Dict, Optional, Iterable

from .models import (
    CANCELLED, CROSSED_PLAYOFFS, by_match_number, is_completed, is_decided, is_resolved,
    winning_members, losing_members,
)
from .stages import (
    Stage, TERMINAL_STAGES, CROSSED_TERMINAL_STAGES, CROSSED_STAGES, ELIMINATION_ORDER, LOSERS_RANKED_AFTER,
    MAIN_LINE, MIXED_STAGES, MIXED_TERMINAL_STAGES, PLAYOFF_STAGES, is_tier_semifinal, resolve_stage,
)
from .tiebreak import collect_stats, group_standings, new_stats, resolve, round_robin_ranking

logger = logging.getLogger(__name__)

_RANKING_STAGES = (Stage.GROUP, Stage.ROUND)


def _ranking_matches(matches: List[Dict]) -> List[Dict]:
    """Matches that feed within-pair ranking: the group stage, else everything."""
    ranking = [m for m in matches if resolve_stage(m.get('round')) in _RANKING_STAGES]
    return ranking or matches


class _PositionCounter:
    """Hands out consecutive positions to blocks of competitors."""

    def __init__(self, stats: Dict, ranking_matches: List[Dict]):
        self.stats = stats
        self.ranking_matches = ranking_matches
        self.positions = {}

    def place(self, competitor_ids: Iterable):
        block = []
        for competitor_id in competitor_ids:
            if is_resolved(competitor_id) and competitor_id not in self.positions and competitor_id not in block:
                block.append(competitor_id)
        records = [self.stats.get(c) or new_stats(c) for c in block]
        for record in resolve(records, self.ranking_matches):
            self.positions[record['id']] = len(self.positions) + 1


def calculate_final_positions(participants: List[Dict], matches: List[Dict],
                              fmt: Optional[str] = None) -> Optional[Dict]:
    """
    Compute ``{participant_id: position}`` for a category.

    Returns None until the whole bracket is decided: every main-line round
    and tier semifinal, the final itself and every terminal match. Categories
    without knockout matches are ranked as a round robin once every match is
    completed.
    """
    stages = {resolve_stage(m.get('round')) for m in matches}
    if fmt == CROSSED_PLAYOFFS or stages & set(CROSSED_STAGES):
        terminal_order = CROSSED_TERMINAL_STAGES
    elif stages & set(MIXED_STAGES):
        terminal_order = MIXED_TERMINAL_STAGES
    else:
        terminal_order = TERMINAL_STAGES

    live = [m for m in matches if m.get('status') != CANCELLED]
    terminal = [m for m in live if resolve_stage(m.get('round')) in terminal_order]

    if not terminal:
        if stages & set(MAIN_LINE + PLAYOFF_STAGES):
            logger.info('Knockout still in progress; final positions not computed yet')
            return None
        return _round_robin_positions(participants, live)

    if terminal_order is TERMINAL_STAGES and not _bracket_decided(live):
        return None

    for match in terminal:
        if not is_completed(match):
            logger.info(f"Terminal match {match.get('id')} ({match.get('round')}) not completed yet")
            return None
        if winning_members(match) is None:
            logger.warning(f"Terminal match {match.get('id')} ({match.get('round')}) is tied on games; "
                           'positions cannot be computed until it is corrected')
            return None

    ranking_matches = _ranking_matches(live)
    stats = collect_stats(participants, ranking_matches)
    counter = _PositionCounter(stats, ranking_matches)

    for stage in terminal_order:
        for match in by_match_number([m for m in terminal if resolve_stage(m.get('round')) == stage]):
            counter.place(winning_members(match))
            counter.place(losing_members(match))
        if stage in LOSERS_RANKED_AFTER:
            counter.place(_losers_of(live, LOSERS_RANKED_AFTER[stage]))

    for stage in ELIMINATION_ORDER:
        counter.place(_losers_of(live, stage))

    standings = group_standings(participants, live)
    deepest = max((len(group) for group in standings.values()), default=0)
    for rank_index in range(deepest):
        counter.place([standings[g][rank_index]['id'] for g in sorted(standings)
                       if rank_index < len(standings[g])])

    counter.place([p['id'] for p in participants])
    return counter.positions


def _round_robin_positions(participants: List[Dict], matches: List[Dict]) -> Optional[Dict]:
    if not matches:
        logger.info('No matches played; final positions not computed')
        return None
    if any(not is_completed(m) for m in matches):
        logger.info('Round robin still in progress; final positions not computed yet')
        return None
    ranked = round_robin_ranking(collect_stats(participants, matches).values())
    return {record['id']: position for position, record in enumerate(ranked, start=1)}


def _bracket_decided(matches: List[Dict]) -> bool:
    """Every main-line round and tier semifinal is decided and the final exists."""
    bracket = [m for m in matches
               if resolve_stage(m.get('round')) in MAIN_LINE or is_tier_semifinal(resolve_stage(m.get('round')))]
    if not any(resolve_stage(m.get('round')) == Stage.FINAL for m in bracket):
        logger.info('No final yet; final positions not computed')
        return False
    undecided = [m for m in bracket if not is_decided(m)]
    if undecided:
        logger.info(f'{len(undecided)} knockout match(es) still undecided; final positions not computed yet')
        return False
    return True


def _losers_of(matches: List[Dict], stage: Stage) -> List:
    eliminated = []
    for match in by_match_number([m for m in matches if resolve_stage(m.get('round')) == stage]):
        if losing_members(match):
            eliminated.extend(losing_members(match))
    return eliminated
