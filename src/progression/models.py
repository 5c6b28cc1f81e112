"""
Match and participant record helpers.

Records are plain dicts as exchanged with the record store. Team formats
fill ``team1_id``/``team2_id``; individual formats fill ``player1_id`` ..
``player4_id``, where players 1+2 form side 1 and players 3+4 form side 2.
"""
import uuid
from typing import List, Dict, Tuple, Optional

# Formats
SINGLE_ELIMINATION = 'single_elimination'
ROUND_ROBIN_INDIVIDUAL = 'round_robin_individual'
ROUND_ROBIN_TEAMS = 'round_robin_teams'
GROUPS_KNOCKOUT = 'groups_knockout'
INDIVIDUAL_GROUPS_KNOCKOUT = 'individual_groups_knockout'
CROSSED_PLAYOFFS = 'crossed_playoffs'
MIXED_GENDER = 'mixed_gender'
MIXED_AMERICAN = 'mixed_american'
SUPER_TEAMS = 'super_teams'

INDIVIDUAL_FORMATS = {
    ROUND_ROBIN_INDIVIDUAL,
    INDIVIDUAL_GROUPS_KNOCKOUT,
    CROSSED_PLAYOFFS,
    MIXED_GENDER,
    MIXED_AMERICAN,
}

# Match status
SCHEDULED = 'scheduled'
COMPLETED = 'completed'
CANCELLED = 'cancelled'

# Placeholder for a slot that is known to exist but not yet resolved
TBD = 'TBD'

MAX_SETS = 3

_TEAM_SIDES = {1: ('team1_id',), 2: ('team2_id',)}
_PLAYER_SIDES = {1: ('player1_id', 'player2_id'), 2: ('player3_id', 'player4_id')}


class InvalidScoreError(ValueError):
    """Raised when submitted set scores cannot be recorded."""


def is_individual_format(fmt: Optional[str]) -> bool:
    return fmt in INDIVIDUAL_FORMATS


def is_individual_match(match: Dict) -> bool:
    """Individual matches carry player slots instead of team slots."""
    return 'player1_id' in match


def side_fields(match: Dict, side: int) -> Tuple[str, ...]:
    sides = _PLAYER_SIDES if is_individual_match(match) else _TEAM_SIDES
    return sides[side]


def side_members(match: Dict, side: int) -> Tuple:
    return tuple(match.get(field) for field in side_fields(match, side))


def is_resolved(member) -> bool:
    return member is not None and member != TBD


def side_is_filled(match: Dict, side: int) -> bool:
    return all(is_resolved(m) for m in side_members(match, side))


def side_is_empty(match: Dict, side: int) -> bool:
    return not any(is_resolved(m) for m in side_members(match, side))


def side_update(match: Dict, side: int, members) -> Dict:
    """Partial update writing ``members`` into one side of ``match``."""
    fields = side_fields(match, side)
    members = tuple(members) if members is not None else (None,) * len(fields)
    if len(members) != len(fields):
        raise ValueError(f"Side {side} of match {match.get('id')} takes {len(fields)} members, got {len(members)}")
    return dict(zip(fields, members))


def parse_sets(raw_sets) -> List[List[int]]:
    """
    Normalize submitted set scores.

    Accepts up to three ``[side1, side2]`` pairs; pairs where both values are
    empty are dropped. A pair with only one side filled is rejected.
    """
    if raw_sets is None:
        return []
    if not isinstance(raw_sets, (list, tuple)):
        raise InvalidScoreError('Sets must be a list of [side1, side2] pairs')

    sets = []
    for score in raw_sets:
        if not isinstance(score, (list, tuple)) or len(score) < 2:
            raise InvalidScoreError(f'Malformed set score: {score!r}')
        first_empty = score[0] is None or score[0] == ''
        second_empty = score[1] is None or score[1] == ''
        if first_empty and second_empty:
            continue
        if first_empty != second_empty:
            raise InvalidScoreError('Both scores must be filled or both must be empty')
        try:
            first, second = int(score[0]), int(score[1])
        except (TypeError, ValueError):
            raise InvalidScoreError(f'Scores must be integers: {score!r}')
        if first < 0 or second < 0:
            raise InvalidScoreError(f'Scores cannot be negative: {score!r}')
        sets.append([first, second])

    if len(sets) > MAX_SETS:
        raise InvalidScoreError(f'At most {MAX_SETS} sets can be recorded')
    return sets


def game_totals(sets) -> Tuple[int, int]:
    """Aggregate games across all sets for side 1 and side 2."""
    side1 = side2 = 0
    for set_score in sets or []:
        if len(set_score) >= 2 and set_score[0] is not None and set_score[1] is not None:
            side1 += set_score[0]
            side2 += set_score[1]
    return side1, side2


def determine_winner(sets) -> Optional[int]:
    """Winning side (1 or 2) by aggregate games, or None when tied or unplayed."""
    side1, side2 = game_totals(sets)
    if side1 > side2:
        return 1
    if side2 > side1:
        return 2
    return None


def sets_won(sets) -> Tuple[int, int]:
    """Sets taken by each side; drawn sets count for nobody."""
    side1 = side2 = 0
    for first, second in sets or []:
        if first > second:
            side1 += 1
        elif second > first:
            side2 += 1
    return side1, side2


def duo_game_winner(sets, best_of: int = 1) -> Optional[int]:
    """
    Winner of one doubles game inside a super-teams confrontation.

    A one-set game goes to whoever takes the first set. A best-of-three game
    needs two sets; the third set is only counted when the first two split.
    """
    sets = parse_sets(sets)
    if best_of == 1:
        return determine_winner(sets[:1]) if sets else None
    side1, side2 = sets_won(sets[:2])
    if side1 == 1 and side2 == 1 and len(sets) == 3:
        extra1, extra2 = sets_won(sets[2:])
        side1, side2 = side1 + extra1, side2 + extra2
    if side1 >= 2:
        return 1
    if side2 >= 2:
        return 2
    return None


def confrontation_result(duo1_sets, duo2_sets, super_tiebreak=None, best_of: int = 1) -> Tuple[Optional[int], bool]:
    """
    Resolve a super-teams confrontation from its two doubles games.

    Returns (winning side or None, whether a super tiebreak is needed). The
    ``super_tiebreak`` score ``[side1, side2]`` only counts when the doubles
    games are split one each.
    """
    wins = {1: 0, 2: 0}
    for game in (duo1_sets, duo2_sets):
        side = duo_game_winner(game, best_of)
        if side:
            wins[side] += 1

    needs_tiebreak = wins[1] == 1 and wins[2] == 1
    if needs_tiebreak and super_tiebreak:
        tiebreak = parse_sets([super_tiebreak])
        side = determine_winner(tiebreak)
        if side:
            wins[side] += 1

    if wins[1] >= 2:
        return 1, needs_tiebreak
    if wins[2] >= 2:
        return 2, needs_tiebreak
    return None, needs_tiebreak


def is_completed(match: Dict) -> bool:
    return match.get('status') == COMPLETED


def winner_side(match: Dict) -> Optional[int]:
    """Winning side of a completed match; None while open or undecidable."""
    if not is_completed(match):
        return None
    return determine_winner(match.get('sets'))


def is_decided(match: Dict) -> bool:
    return winner_side(match) is not None


def winning_members(match: Dict) -> Optional[Tuple]:
    side = winner_side(match)
    return side_members(match, side) if side else None


def losing_members(match: Dict) -> Optional[Tuple]:
    side = winner_side(match)
    return side_members(match, 3 - side) if side else None


def by_match_number(matches: List[Dict]) -> List[Dict]:
    return sorted(matches, key=lambda m: (m.get('match_number') or 0, str(m.get('id'))))


def new_match(tournament_id, category_id, round_name: str, match_number: int,
              individual: bool = False, side1=None, side2=None) -> Dict:
    """Create a scheduled match shell; sides may be left empty for later rounds."""
    match = {
        'id': uuid.uuid4().hex,
        'tournament_id': tournament_id,
        'category_id': category_id,
        'round': round_name,
        'match_number': match_number,
        'status': SCHEDULED,
        'sets': [],
        'winner_id': None,
        'winner_side': None,
        'court': None,
        'scheduled_time': None,
    }
    fields = _PLAYER_SIDES if individual else _TEAM_SIDES
    for side, members in ((1, side1), (2, side2)):
        members = tuple(members) if members is not None else (None,) * len(fields[side])
        match.update(dict(zip(fields[side], members)))
    return match
