"""
Bracket construction: the matches created up front for each format.

Builders only return new match records; inserting them is the caller's job.
"""
import logging
import math
from itertools import combinations
from typing import List, Dict, Tuple, Optional

from .models import new_match, TBD
from .pairing import AmericanoGenerator, MixedAmericanScheduler, PairingStrategy, order_matches_for_rest
from .stages import (
    Stage, PLACEMENT_TIERS, TERMINAL_STAGES, first_round_stage, group_round, numbered_round,
)

logger = logging.getLogger(__name__)

MAX_TIER_PLAYERS = 8
# Ranked players each category brings to crossed or mixed playoffs
CROSSED_GROUP_SIZE = 4


def calculate_bracket_size(num_entrants: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_entrants <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_entrants))


def generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Standard bracket order so that, if higher seeds win, they meet as late as possible.

    For 8 entrants: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    """
    if bracket_size <= 2:
        return list(range(1, bracket_size + 1))

    upper_half = generate_bracket_order(bracket_size // 2)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def interleave_seeds(standings: Dict[str, List[Dict]]) -> List:
    """All group winners (by group name), then all runners-up, and so on."""
    seeds = []
    deepest = max((len(group) for group in standings.values()), default=0)
    for rank_index in range(deepest):
        for group_name in sorted(standings):
            if rank_index < len(standings[group_name]):
                seeds.append(standings[group_name][rank_index]['id'])
    return seeds


def build_group_matches(tournament_id, category_id, participants: List[Dict]) -> List[Dict]:
    """Round robin of every pair of teams inside each group."""
    groups = {}
    for participant in participants:
        if participant.get('group_name'):
            groups.setdefault(participant['group_name'], []).append(participant['id'])

    matches = []
    for group_name in sorted(groups):
        members = groups[group_name]
        if len(members) < 2:
            logger.warning(f'Group {group_name} has fewer than 2 teams; no matches generated')
            continue
        for number, (team1, team2) in enumerate(combinations(members, 2), start=1):
            matches.append(new_match(tournament_id, category_id, group_round(group_name), number,
                                     side1=(team1,), side2=(team2,)))
    return matches


def build_individual_group_matches(tournament_id, category_id, participants: List[Dict],
                                   strategy: Optional[PairingStrategy] = None) -> List[Dict]:
    """Americano combinations inside each group, ordered to spread out each player's games."""
    strategy = strategy or AmericanoGenerator()
    groups = {}
    for participant in participants:
        if participant.get('group_name'):
            groups.setdefault(participant['group_name'], []).append(participant['id'])

    matches = []
    for group_name in sorted(groups):
        pairings = order_matches_for_rest(strategy.pair(groups[group_name]))
        for number, (pair1, pair2) in enumerate(pairings, start=1):
            matches.append(new_match(tournament_id, category_id, group_round(group_name), number,
                                     individual=True, side1=pair1, side2=pair2))
    return matches


def build_mixed_american_matches(tournament_id, category_id, men: List, women: List,
                                 matches_per_player: int,
                                 strategy: Optional[PairingStrategy] = None) -> List[Dict]:
    """Whole Mixed American schedule; player1/3 are men and player2/4 women."""
    strategy = strategy or MixedAmericanScheduler()
    matches = []
    match_number = 1
    for round_number, pairings in enumerate(strategy.schedule(men, women, matches_per_player), start=1):
        for team1, team2 in pairings:
            matches.append(new_match(tournament_id, category_id, numbered_round(round_number), match_number,
                                     individual=True, side1=team1, side2=team2))
            match_number += 1
    return matches


def build_knockout_round(tournament_id, category_id, entrants: List,
                         third_place_match: bool = True,
                         classification_rounds: bool = False) -> List[Dict]:
    """
    First knockout round for a team bracket, in standard bracket order.

    Later main-line rounds are created once the previous round completes.
    The 3rd-place match and the 5th-8th classification matches are created
    empty up front so eliminated teams have somewhere to go.
    """
    stage = first_round_stage(len(entrants))
    if stage is None:
        logger.warning(f'Cannot build a knockout round for {len(entrants)} entrants (need 2, 4, 8 or 16)')
        return []

    order = generate_bracket_order(len(entrants))
    matches = []
    for index in range(0, len(order), 2):
        matches.append(new_match(tournament_id, category_id, stage.value, index // 2 + 1,
                                 side1=(entrants[order[index] - 1],),
                                 side2=(entrants[order[index + 1] - 1],)))

    if third_place_match and stage != Stage.FINAL:
        matches.append(new_match(tournament_id, category_id, Stage.THIRD_PLACE.value, 1))
    if classification_rounds and stage == Stage.QUARTER_FINAL:
        matches.extend(_shells(tournament_id, category_id, Stage.FIFTH_SEMIFINAL, 2))
        matches.extend(_shells(tournament_id, category_id, Stage.FIFTH_PLACE, 1))
        matches.extend(_shells(tournament_id, category_id, Stage.SEVENTH_PLACE, 1))
    return matches


def _shells(tournament_id, category_id, stage: Stage, count: int, individual: bool = False) -> List[Dict]:
    return [new_match(tournament_id, category_id, stage.value, number, individual=individual)
            for number in range(1, count + 1)]


def _seeded_doubles(block: List) -> List[Tuple[Tuple, Tuple]]:
    """
    Doubles matches for a block of seeds, strongest paired with weakest.

    Match i is (s[i] + s[n-1-i]) vs (s[half-1-i] + s[half+i]) with half = n/2.
    """
    n = len(block)
    half = n // 2
    return [((block[i], block[n - 1 - i]), (block[half - 1 - i], block[half + i]))
            for i in range(n // 4)]


def build_placement_tiers(tournament_id, category_id, seeds: List,
                          knockout_stage: Optional[str] = None) -> List[Dict]:
    """
    Placement tree for an individual format, seeded from group standings.

    Every block of eight seeds plays one tier: two semifinals and empty
    shells for the tier final and the tier 3rd/4th match. A trailing block
    of four to seven players plays a single match at the next tier's final
    stage. With a quarterfinal knockout and at least sixteen players, the top
    sixteen play quarterfinals whose winners feed the semifinals and whose
    losers feed the 5th-place semifinals.
    """
    matches = []
    offset = 0
    tier_index = 0

    if knockout_stage == 'quarterfinals' and len(seeds) >= 16:
        for number, (pair1, pair2) in enumerate(_seeded_doubles(seeds[:16]), start=1):
            matches.append(new_match(tournament_id, category_id, Stage.QUARTER_FINAL.value, number,
                                     individual=True, side1=pair1, side2=pair2))
        for semi, final, third in PLACEMENT_TIERS[:2]:
            matches.extend(_shells(tournament_id, category_id, semi, 2, individual=True))
            matches.extend(_shells(tournament_id, category_id, final, 1, individual=True))
            matches.extend(_shells(tournament_id, category_id, third, 1, individual=True))
        offset = 16
        tier_index = 2

    while tier_index < len(PLACEMENT_TIERS):
        block = seeds[offset:offset + MAX_TIER_PLAYERS]
        semi, final, third = PLACEMENT_TIERS[tier_index]
        if len(block) == MAX_TIER_PLAYERS:
            for number, (pair1, pair2) in enumerate(_seeded_doubles(block), start=1):
                matches.append(new_match(tournament_id, category_id, semi.value, number,
                                         individual=True, side1=pair1, side2=pair2))
            matches.extend(_shells(tournament_id, category_id, final, 1, individual=True))
            matches.extend(_shells(tournament_id, category_id, third, 1, individual=True))
            offset += MAX_TIER_PLAYERS
            tier_index += 1
            continue
        if len(block) >= 4:
            (pair1, pair2), = _seeded_doubles(block[:4])
            matches.append(new_match(tournament_id, category_id, final.value, 1,
                                     individual=True, side1=pair1, side2=pair2))
            offset += 4
        break

    if offset < len(seeds):
        logger.info(f'{len(seeds) - offset} players in category {category_id} have no placement match; '
                    'they are ranked from group standings')
    return matches


def build_direct_finals(tournament_id, category_id, seeds: List, individual: bool = False) -> List[Dict]:
    """
    Placement matches without semifinals.

    Consecutive seeds fill final, 3rd_place, 5th_place, ... directly: two
    teams per match, or four players (s1 + s4 vs s2 + s3) per match.
    """
    size = 4 if individual else 2
    matches = []
    for index, stage in enumerate(TERMINAL_STAGES):
        block = seeds[index * size:(index + 1) * size]
        if len(block) < size:
            break
        if individual:
            (side1, side2), = _seeded_doubles(block)
        else:
            side1, side2 = (block[0],), (block[1],)
        matches.append(new_match(tournament_id, category_id, stage.value, 1,
                                 individual=individual, side1=side1, side2=side2))
    return matches


def build_crossed_round_one(tournament_id, rankings: Dict[str, List], category_id=None) -> List[Dict]:
    """
    Crossed playoffs: the three fixed round-1 matches plus empty later rounds.

    ``rankings`` maps each of exactly three category labels to its players
    best first. With labels A, B, C (sorted):
    J1 = A1+C4 vs A2+C3, J2 = A3+B1 vs A4+B2, J3 = B3+C2 vs B4+C1
    """
    if len(rankings) != 3:
        logger.warning(f'Crossed playoffs need exactly 3 categories, got {len(rankings)}')
        return []
    a, b, c = (rankings[label] for label in sorted(rankings))
    if any(len(ranked) < CROSSED_GROUP_SIZE for ranked in (a, b, c)):
        logger.warning('Crossed playoffs need at least 4 ranked players in every category')
        return []

    first_round = [
        (Stage.CROSSED_J1, (a[0], c[3]), (a[1], c[2])),
        (Stage.CROSSED_J2, (a[2], b[0]), (a[3], b[1])),
        (Stage.CROSSED_J3, (b[2], c[1]), (b[3], c[0])),
    ]
    matches = [new_match(tournament_id, category_id, stage.value, number, individual=True,
                         side1=side1, side2=side2)
               for number, (stage, side1, side2) in enumerate(first_round, start=1)]
    for number, stage in enumerate((Stage.CROSSED_J4, Stage.CROSSED_J5, Stage.CROSSED_J6,
                                    Stage.CROSSED_J7, Stage.CROSSED_J8), start=4):
        matches.append(new_match(tournament_id, category_id, stage.value, number, individual=True,
                                 side1=(TBD, TBD), side2=(TBD, TBD)))
    return matches


def build_mixed_playoffs(tournament_id, rankings: Dict[str, List], category_id=None) -> List[Dict]:
    """
    Mixed playoffs between two categories: two semifinals, then final and 3rd place.

    With labels A and B (sorted), each semifinal pairs a player from each
    category against the next two:
    semi 1 = A1+B2 vs A2+B1, semi 2 = A3+B4 vs A4+B3
    """
    if len(rankings) != 2:
        logger.warning(f'Mixed playoffs need exactly 2 categories, got {len(rankings)}')
        return []
    a, b = (rankings[label] for label in sorted(rankings))
    if len(a) < CROSSED_GROUP_SIZE or len(b) < CROSSED_GROUP_SIZE:
        logger.warning('Mixed playoffs need at least 4 ranked players in both categories')
        return []

    return [
        new_match(tournament_id, category_id, Stage.MIXED_SEMIFINAL_1.value, 1, individual=True,
                  side1=(a[0], b[1]), side2=(a[1], b[0])),
        new_match(tournament_id, category_id, Stage.MIXED_SEMIFINAL_2.value, 2, individual=True,
                  side1=(a[2], b[3]), side2=(a[3], b[2])),
        new_match(tournament_id, category_id, Stage.MIXED_FINAL.value, 3, individual=True),
        new_match(tournament_id, category_id, Stage.MIXED_THIRD_PLACE.value, 4, individual=True),
    ]
