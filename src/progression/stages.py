"""
Round vocabulary and the stage dependency graph.

Round names are a closed wire vocabulary shared with the rendering layer.
Every name, including legacy aliases, resolves to exactly one Stage, and
all wiring between stages lives in the tables below.
"""
import re
from enum import Enum
from typing import Dict, List, Optional, Tuple, NamedTuple


class Stage(Enum):
    GROUP = 'group'
    ROUND = 'round'
    ROUND_OF_16 = 'round_of_16'
    QUARTER_FINAL = 'quarter_final'
    SEMI_FINAL = 'semi_final'
    FINAL = 'final'
    THIRD_PLACE = '3rd_place'
    FIFTH_SEMIFINAL = '5th_semifinal'
    FIFTH_PLACE = '5th_place'
    SEVENTH_PLACE = '7th_place'
    NINTH_SEMIFINAL = '9th_semifinal'
    NINTH_PLACE = '9th_place'
    ELEVENTH_PLACE = '11th_place'
    THIRTEENTH_SEMIFINAL = '13th_semifinal'
    THIRTEENTH_PLACE = '13th_place'
    FIFTEENTH_PLACE = '15th_place'
    SEVENTEENTH_SEMIFINAL = '17th_semifinal'
    SEVENTEENTH_PLACE = '17th_place'
    NINETEENTH_PLACE = '19th_place'
    TWENTY_FIRST_SEMIFINAL = '21st_semifinal'
    TWENTY_FIRST_PLACE = '21st_place'
    TWENTY_THIRD_PLACE = '23rd_place'
    CROSSED_J1 = 'crossed_r1_j1'
    CROSSED_J2 = 'crossed_r1_j2'
    CROSSED_J3 = 'crossed_r1_j3'
    CROSSED_J4 = 'crossed_r2_j4'
    CROSSED_J5 = 'crossed_r2_j5'
    CROSSED_J6 = 'crossed_r2_j6'
    CROSSED_J7 = 'crossed_r3_j7'
    CROSSED_J8 = 'crossed_r3_j8'
    MIXED_SEMIFINAL_1 = 'mixed_semifinal1'
    MIXED_SEMIFINAL_2 = 'mixed_semifinal2'
    MIXED_FINAL = 'mixed_final'
    MIXED_THIRD_PLACE = 'mixed_3rd_place'


ALIASES = {
    'semifinal': Stage.SEMI_FINAL,
    '1st_semifinal': Stage.SEMI_FINAL,
    'quarterfinal': Stage.QUARTER_FINAL,
    'crossed_r2_semifinal1': Stage.CROSSED_J4,
    'crossed_r2_semifinal2': Stage.CROSSED_J5,
    'crossed_r2_5th_place': Stage.CROSSED_J6,
    'crossed_r3_final': Stage.CROSSED_J7,
    'crossed_r3_3rd_place': Stage.CROSSED_J8,
}

_BY_VALUE = {stage.value: stage for stage in Stage if stage not in (Stage.GROUP, Stage.ROUND)}
_GROUP_ROUND = re.compile(r'^group_([A-Za-z0-9]+)$')
_NUMBERED_ROUND = re.compile(r'^round_(\d+)$')


def resolve_stage(round_name: Optional[str]) -> Optional[Stage]:
    """Map a round name (canonical or legacy) to its Stage, or None if unknown."""
    if not round_name:
        return None
    if round_name in _BY_VALUE:
        return _BY_VALUE[round_name]
    if round_name in ALIASES:
        return ALIASES[round_name]
    if _GROUP_ROUND.match(round_name):
        return Stage.GROUP
    if _NUMBERED_ROUND.match(round_name):
        return Stage.ROUND
    return None


def group_round(group_name: str) -> str:
    return f'group_{group_name}'


def group_of_round(round_name: str) -> Optional[str]:
    found = _GROUP_ROUND.match(round_name or '')
    return found.group(1) if found else None


def numbered_round(number: int) -> str:
    return f'round_{number}'


# Slot selection rules
POSITION = 'position'        # next match floor(index/2); even index -> side 1
FIRST_EMPTY = 'first_empty'  # first side of the single destination match with no members
TIER_POOL = 'tier_pool'      # both tier semifinals pooled, shuffled and split


class Transition(NamedTuple):
    winner_to: Optional[Stage]
    winner_rule: Optional[str]
    loser_to: Optional[Stage]
    loser_rule: Optional[str]


# (semifinal, winners' match, losers' match) for each placement tier, best tier first
PLACEMENT_TIERS: List[Tuple[Stage, Stage, Stage]] = [
    (Stage.SEMI_FINAL, Stage.FINAL, Stage.THIRD_PLACE),
    (Stage.FIFTH_SEMIFINAL, Stage.FIFTH_PLACE, Stage.SEVENTH_PLACE),
    (Stage.NINTH_SEMIFINAL, Stage.NINTH_PLACE, Stage.ELEVENTH_PLACE),
    (Stage.THIRTEENTH_SEMIFINAL, Stage.THIRTEENTH_PLACE, Stage.FIFTEENTH_PLACE),
    (Stage.SEVENTEENTH_SEMIFINAL, Stage.SEVENTEENTH_PLACE, Stage.NINETEENTH_PLACE),
    (Stage.TWENTY_FIRST_SEMIFINAL, Stage.TWENTY_FIRST_PLACE, Stage.TWENTY_THIRD_PLACE),
]

TEAM_TRANSITIONS: Dict[Stage, Transition] = {
    Stage.ROUND_OF_16: Transition(Stage.QUARTER_FINAL, POSITION, None, None),
    Stage.QUARTER_FINAL: Transition(Stage.SEMI_FINAL, POSITION, Stage.FIFTH_SEMIFINAL, POSITION),
    Stage.SEMI_FINAL: Transition(Stage.FINAL, POSITION, Stage.THIRD_PLACE, FIRST_EMPTY),
}
for _semi, _final, _third in PLACEMENT_TIERS[1:]:
    TEAM_TRANSITIONS[_semi] = Transition(_final, FIRST_EMPTY, _third, FIRST_EMPTY)

INDIVIDUAL_TRANSITIONS: Dict[Stage, Transition] = dict(TEAM_TRANSITIONS)
for _semi, _final, _third in PLACEMENT_TIERS:
    INDIVIDUAL_TRANSITIONS[_semi] = Transition(_final, TIER_POOL, _third, TIER_POOL)


def transition_for(stage: Optional[Stage], individual: bool) -> Optional[Transition]:
    table = INDIVIDUAL_TRANSITIONS if individual else TEAM_TRANSITIONS
    return table.get(stage)


def tier_of(stage: Stage) -> Optional[Tuple[Stage, Stage, Stage]]:
    """The placement tier a semifinal or tier-final stage belongs to."""
    for tier in PLACEMENT_TIERS:
        if stage in tier:
            return tier
    return None


def is_tier_semifinal(stage: Optional[Stage]) -> bool:
    return any(stage == semi for semi, _, _ in PLACEMENT_TIERS)


# Main line of a standard elimination bracket; later rounds are created lazily
MAIN_LINE = [Stage.ROUND_OF_16, Stage.QUARTER_FINAL, Stage.SEMI_FINAL, Stage.FINAL]


def next_main_round(stage: Stage) -> Optional[Stage]:
    if stage not in MAIN_LINE or stage == Stage.FINAL:
        return None
    return MAIN_LINE[MAIN_LINE.index(stage) + 1]


def first_round_stage(entrants: int) -> Optional[Stage]:
    """Stage of the first knockout round for a bracket of ``entrants``."""
    return {2: Stage.FINAL, 4: Stage.SEMI_FINAL, 8: Stage.QUARTER_FINAL, 16: Stage.ROUND_OF_16}.get(entrants)


KNOCKOUT_STAGE_SIZES = {
    'round_of_16': 16,
    'quarterfinals': 8,
    'semifinals': 4,
    'final': 2,
}

# Individual formats play doubles, so every stage takes twice the players
INDIVIDUAL_KNOCKOUT_STAGE_SIZES = {stage: size * 2 for stage, size in KNOCKOUT_STAGE_SIZES.items()}


# Fixed playoff wiring: destination -> ((source rule, source stages) per side)
WINNER = 'winner'
LOSER = 'loser'
BEST_LOSER = 'best_loser'
WORST_LOSER = 'worst_loser'

WiringSide = Tuple[str, Tuple[Stage, ...]]

CROSSED_WIRING: Dict[Stage, Tuple[WiringSide, WiringSide]] = {
    Stage.CROSSED_J4: ((WINNER, (Stage.CROSSED_J1,)), (WINNER, (Stage.CROSSED_J2,))),
    Stage.CROSSED_J5: ((WINNER, (Stage.CROSSED_J3,)), (BEST_LOSER, (Stage.CROSSED_J1, Stage.CROSSED_J2))),
    Stage.CROSSED_J6: ((LOSER, (Stage.CROSSED_J3,)), (WORST_LOSER, (Stage.CROSSED_J1, Stage.CROSSED_J2))),
    Stage.CROSSED_J7: ((WINNER, (Stage.CROSSED_J4,)), (WINNER, (Stage.CROSSED_J5,))),
    Stage.CROSSED_J8: ((LOSER, (Stage.CROSSED_J4,)), (LOSER, (Stage.CROSSED_J5,))),
}

MIXED_WIRING: Dict[Stage, Tuple[WiringSide, WiringSide]] = {
    Stage.MIXED_FINAL: ((WINNER, (Stage.MIXED_SEMIFINAL_1,)), (WINNER, (Stage.MIXED_SEMIFINAL_2,))),
    Stage.MIXED_THIRD_PLACE: ((LOSER, (Stage.MIXED_SEMIFINAL_1,)), (LOSER, (Stage.MIXED_SEMIFINAL_2,))),
}

PLAYOFF_WIRING = {**CROSSED_WIRING, **MIXED_WIRING}

CROSSED_STAGES = [
    Stage.CROSSED_J1, Stage.CROSSED_J2, Stage.CROSSED_J3,
    Stage.CROSSED_J4, Stage.CROSSED_J5, Stage.CROSSED_J6,
    Stage.CROSSED_J7, Stage.CROSSED_J8,
]
MIXED_STAGES = [
    Stage.MIXED_SEMIFINAL_1, Stage.MIXED_SEMIFINAL_2, Stage.MIXED_FINAL, Stage.MIXED_THIRD_PLACE,
]
PLAYOFF_STAGES = CROSSED_STAGES + MIXED_STAGES


def playoff_dependents(stage: Stage) -> List[Stage]:
    """Fixed-playoff destinations fed directly by ``stage``."""
    return [dest for dest, sources in PLAYOFF_WIRING.items()
            if any(stage in stages for _, stages in sources)]


# Matches whose results decide final positions, in position order
TERMINAL_STAGES = [stage for _, final, third in PLACEMENT_TIERS for stage in (final, third)]
CROSSED_TERMINAL_STAGES = [Stage.CROSSED_J7, Stage.CROSSED_J8, Stage.CROSSED_J6]
MIXED_TERMINAL_STAGES = [Stage.MIXED_FINAL, Stage.MIXED_THIRD_PLACE]
PLAYOFF_TERMINAL_STAGES = CROSSED_TERMINAL_STAGES + MIXED_TERMINAL_STAGES

# Knockout rounds whose unplaced losers are ranked next, deepest round first
ELIMINATION_ORDER = [
    Stage.SEMI_FINAL, Stage.QUARTER_FINAL, Stage.ROUND_OF_16,
    Stage.CROSSED_J4, Stage.CROSSED_J5, Stage.CROSSED_J1, Stage.CROSSED_J2, Stage.CROSSED_J3,
]

# Terminal stage -> knockout round whose losers without a placement match rank right after it
LOSERS_RANKED_AFTER = {
    Stage.THIRD_PLACE: Stage.SEMI_FINAL,
    Stage.SEVENTH_PLACE: Stage.QUARTER_FINAL,
    Stage.FIFTEENTH_PLACE: Stage.ROUND_OF_16,
}
