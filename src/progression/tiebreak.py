"""
Competitor statistics and the tiebreak resolver.

Ranking inside a group, in strict priority:
wins -> head-to-head -> game differential -> games won -> registration order

Head-to-head is looked up pairwise inside the comparator, for the two
competitors being compared only. Cycles among three or more tied
competitors therefore fall through to game differential.
"""
import functools
from typing import List, Dict, Tuple, Optional, Iterable

from .models import is_completed, side_members, game_totals, is_resolved
from .stages import Stage, resolve_stage, group_of_round

DEFAULT_REGISTRATION_ORDER = 999


def new_stats(competitor_id, registration_order: Optional[int] = None, group_name: Optional[str] = None) -> Dict:
    return {
        'id': competitor_id,
        'group_name': group_name,
        'wins': 0,
        'draws': 0,
        'losses': 0,
        'games_won': 0,
        'games_lost': 0,
        'game_diff': 0,
        'matches_played': 0,
        'registration_order': DEFAULT_REGISTRATION_ORDER if registration_order is None else registration_order,
    }


def collect_stats(participants: Iterable[Dict], matches: Iterable[Dict]) -> Dict:
    """
    Aggregate results of completed matches for each participant.

    Returns: {participant_id: stats}. Every participant gets a record, even
    without a completed match. A completed match with tied aggregate games
    counts as a draw for both sides.
    """
    stats = {}
    for participant in participants:
        stats[participant['id']] = new_stats(
            participant['id'],
            participant.get('registration_order'),
            participant.get('group_name'),
        )

    for match in matches:
        if not is_completed(match):
            continue
        side1 = side_members(match, 1)
        side2 = side_members(match, 2)
        if not all(is_resolved(m) for m in side1 + side2):
            continue
        games1, games2 = game_totals(match.get('sets'))
        for members, won, lost in ((side1, games1, games2), (side2, games2, games1)):
            for member in members:
                record = stats.get(member)
                if record is None:
                    continue
                record['games_won'] += won
                record['games_lost'] += lost
                record['matches_played'] += 1
                if won > lost:
                    record['wins'] += 1
                elif won < lost:
                    record['losses'] += 1
                else:
                    record['draws'] += 1

    for record in stats.values():
        record['game_diff'] = record['games_won'] - record['games_lost']
    return stats


def head_to_head_index(matches: Iterable[Dict]) -> Dict[Tuple, Tuple[int, int]]:
    """
    Aggregate games between every pair of competitors that met on opposite sides.

    Returns: {(a, b): (games_a, games_b)} for both orderings of each pair.
    """
    index = {}
    for match in matches:
        if not is_completed(match):
            continue
        games1, games2 = game_totals(match.get('sets'))
        for a in side_members(match, 1):
            for b in side_members(match, 2):
                if not (is_resolved(a) and is_resolved(b)):
                    continue
                won, lost = index.get((a, b), (0, 0))
                index[(a, b)] = (won + games1, lost + games2)
                index[(b, a)] = (lost + games2, won + games1)
    return index


def compare_competitors(a: Dict, b: Dict, head_to_head: Dict[Tuple, Tuple[int, int]]) -> int:
    """Comparator for two stat records; negative when ``a`` ranks first."""
    if a['wins'] != b['wins']:
        return -1 if a['wins'] > b['wins'] else 1

    direct = head_to_head.get((a['id'], b['id']))
    if direct and direct[0] != direct[1]:
        return -1 if direct[0] > direct[1] else 1

    if a['game_diff'] != b['game_diff']:
        return -1 if a['game_diff'] > b['game_diff'] else 1
    if a['games_won'] != b['games_won']:
        return -1 if a['games_won'] > b['games_won'] else 1
    if a['registration_order'] != b['registration_order']:
        return -1 if a['registration_order'] < b['registration_order'] else 1
    return 0


def resolve(stats: List[Dict], matches: Iterable[Dict]) -> List[Dict]:
    """Order stat records best first using the tiebreak criteria."""
    head_to_head = head_to_head_index(matches)
    return sorted(stats, key=functools.cmp_to_key(
        lambda a, b: compare_competitors(a, b, head_to_head)))


def group_stage_matches(matches: Iterable[Dict]) -> List[Dict]:
    return [m for m in matches if resolve_stage(m.get('round')) == Stage.GROUP]


def group_standings(participants: List[Dict], matches: List[Dict]) -> Dict[str, List[Dict]]:
    """
    Resolve the standings of every group.

    Groups come from each participant's ``group_name``; only ``group_<letter>``
    matches count. Each returned record carries its 1-based ``rank``.

    Returns: {group_name: [stats, ...]} best first.
    """
    group_matches = group_stage_matches(matches)
    stats = collect_stats(participants, group_matches)

    standings = {}
    for group_name in sorted({p.get('group_name') for p in participants if p.get('group_name')}):
        members = [stats[p['id']] for p in participants if p.get('group_name') == group_name]
        own_matches = [m for m in group_matches if group_of_round(m.get('round')) == group_name]
        ordered = resolve(members, own_matches)
        for rank, record in enumerate(ordered, start=1):
            record['rank'] = rank
        standings[group_name] = ordered
    return standings


def round_robin_ranking(stats: Iterable[Dict]) -> List[Dict]:
    """
    Rank a whole round robin by points (2 per win, 1 per draw).

    Ranking: points -> game differential -> games won -> registration order
    """
    return sorted(
        stats,
        key=lambda x: (-(2 * x['wins'] + x['draws']), -x['game_diff'], -x['games_won'], x['registration_order'])
    )
