"""
Unit tests for final position calculation.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import make_team
from progression.models import new_match, COMPLETED, ROUND_ROBIN_TEAMS
from progression.positions import calculate_final_positions


def played(round_name, team1, team2, sets, number=1):
    match = new_match('t1', 'c1', round_name, number, side1=(team1,), side2=(team2,))
    match.update({'status': COMPLETED, 'sets': sets})
    return match


@pytest.fixture
def two_groups():
    teams = [make_team(f'A{i}', i, 'A') for i in range(1, 4)]
    teams += [make_team(f'B{i}', i + 3, 'B') for i in range(1, 4)]
    matches = []
    for group_name in 'AB':
        matches += [
            played(f'group_{group_name}', f'{group_name}1', f'{group_name}2', [[6, 0]], 1),
            played(f'group_{group_name}', f'{group_name}1', f'{group_name}3', [[6, 0]], 2),
            played(f'group_{group_name}', f'{group_name}2', f'{group_name}3', [[6, 0]], 3),
        ]
    return teams, matches


class TestRoundRobin:
    """Categories without knockout matches."""

    def test_ranked_by_points(self):
        teams = [make_team(t, i) for i, t in enumerate('ABC', start=1)]
        matches = [
            played('round_1', 'C', 'A', [[6, 2]], 1),
            played('round_2', 'C', 'B', [[6, 3]], 2),
            played('round_3', 'A', 'B', [[6, 4]], 3),
        ]
        assert calculate_final_positions(teams, matches, ROUND_ROBIN_TEAMS) == {'C': 1, 'A': 2, 'B': 3}

    def test_open_match_blocks_positions(self):
        teams = [make_team(t, i) for i, t in enumerate('AB', start=1)]
        matches = [new_match('t1', 'c1', 'round_1', 1, side1=('A',), side2=('B',))]
        assert calculate_final_positions(teams, matches) is None

    def test_no_matches(self):
        assert calculate_final_positions([make_team('A', 1)], []) is None


class TestKnockout:
    """Categories decided by placement matches."""

    def test_knockout_in_progress(self, two_groups):
        teams, matches = two_groups
        matches.append(played('semi_final', 'A1', 'B2', [[6, 1]]))
        assert calculate_final_positions(teams, matches) is None

    def test_open_terminal_match(self, two_groups):
        teams, matches = two_groups
        matches.append(new_match('t1', 'c1', 'final', 1, side1=('A1',), side2=('B1',)))
        assert calculate_final_positions(teams, matches) is None

    def test_tied_terminal_match(self, two_groups):
        teams, matches = two_groups
        matches.append(played('final', 'A1', 'B1', [[6, 4], [4, 6]]))
        assert calculate_final_positions(teams, matches) is None

    def test_non_finalists_ranked_by_group_finish(self, two_groups):
        """Everyone outside the final is placed by group rank, then by tiebreak."""
        teams, matches = two_groups
        matches.append(played('final', 'A1', 'B1', [[3, 6]]))
        assert calculate_final_positions(teams, matches) == {
            'B1': 1, 'A1': 2, 'A2': 3, 'B2': 4, 'A3': 5, 'B3': 6,
        }

    def test_semifinal_losers_follow_placement_matches(self, two_groups):
        teams, matches = two_groups
        matches += [
            played('semi_final', 'A1', 'B2', [[6, 1]], 1),
            played('semi_final', 'B1', 'A2', [[6, 3]], 2),
            played('final', 'A1', 'B1', [[6, 2]]),
        ]
        positions = calculate_final_positions(teams, matches)
        assert positions == {'A1': 1, 'B1': 2, 'A2': 3, 'B2': 4, 'A3': 5, 'B3': 6}

    def test_positions_are_dense(self, two_groups):
        teams, matches = two_groups
        matches += [
            played('final', 'A1', 'B1', [[6, 2]]),
            played('3rd_place', 'A2', 'B2', [[1, 6]]),
        ]
        positions = calculate_final_positions(teams, matches)
        assert sorted(positions.values()) == list(range(1, 7))
        assert positions['B2'] == 3
        assert positions['A2'] == 4

    def test_open_semifinal_blocks_positions(self, two_groups):
        """A decided final is not enough while a main-line match is still open."""
        teams, matches = two_groups
        matches += [
            played('semi_final', 'A1', 'B2', [[6, 1]], 1),
            new_match('t1', 'c1', 'semi_final', 2, side1=('B1',), side2=('A2',)),
            played('final', 'A1', 'B1', [[6, 2]]),
        ]
        assert calculate_final_positions(teams, matches) is None

    def test_missing_final_blocks_positions(self, two_groups):
        teams, matches = two_groups
        matches += [
            played('semi_final', 'A1', 'B2', [[6, 1]], 1),
            played('semi_final', 'B1', 'A2', [[6, 3]], 2),
            played('3rd_place', 'B2', 'A2', [[6, 3]]),
        ]
        assert calculate_final_positions(teams, matches) is None

    def test_open_tier_semifinal_blocks_positions(self, two_groups):
        teams, matches = two_groups
        matches += [
            played('final', 'A1', 'B1', [[6, 2]]),
            new_match('t1', 'c1', '5th_semifinal', 1, side1=('A3',), side2=('B3',)),
        ]
        assert calculate_final_positions(teams, matches) is None

    def test_third_place_match_orders_semifinal_losers(self):
        """Final A beats D, 3rd place B beats C: A, D, B, C."""
        teams = [make_team(t, i) for i, t in enumerate('ABCD', start=1)]
        matches = [
            played('semi_final', 'A', 'B', [[6, 2]], 1),
            played('semi_final', 'C', 'D', [[3, 6]], 2),
            played('final', 'A', 'D', [[6, 4]]),
            played('3rd_place', 'B', 'C', [[6, 4]]),
        ]
        assert calculate_final_positions(teams, matches) == {'A': 1, 'D': 2, 'B': 3, 'C': 4}

    def test_semifinal_losers_rank_above_fifth_place_tier(self):
        """Without a 3rd place match, semifinal losers still take 3rd and 4th."""
        teams = [make_team(f'T{i}', i) for i in range(1, 9)]
        matches = [
            played('quarter_final', 'T1', 'T8', [[6, 0]], 1),
            played('quarter_final', 'T4', 'T5', [[6, 0]], 2),
            played('quarter_final', 'T2', 'T7', [[6, 0]], 3),
            played('quarter_final', 'T3', 'T6', [[6, 0]], 4),
            played('semi_final', 'T1', 'T4', [[6, 0]], 1),
            played('semi_final', 'T2', 'T3', [[6, 0]], 2),
            played('final', 'T1', 'T2', [[6, 0]]),
            played('5th_semifinal', 'T8', 'T5', [[6, 0]], 1),
            played('5th_semifinal', 'T7', 'T6', [[6, 0]], 2),
            played('5th_place', 'T8', 'T7', [[6, 0]]),
            played('7th_place', 'T5', 'T6', [[6, 0]]),
        ]
        assert calculate_final_positions(teams, matches) == {
            'T1': 1, 'T2': 2, 'T3': 3, 'T4': 4, 'T8': 5, 'T7': 6, 'T5': 7, 'T6': 8,
        }
