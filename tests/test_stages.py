"""
Unit tests for round names and the stage graph.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.stages import (
    Stage, resolve_stage, group_round, group_of_round, numbered_round, transition_for, tier_of,
    is_tier_semifinal, next_main_round, first_round_stage, playoff_dependents,
    POSITION, FIRST_EMPTY, TIER_POOL, TERMINAL_STAGES,
)


class TestResolveStage:
    """Every round name maps to exactly one stage."""

    @pytest.mark.parametrize('name,stage', [
        ('final', Stage.FINAL),
        ('semi_final', Stage.SEMI_FINAL),
        ('semifinal', Stage.SEMI_FINAL),
        ('1st_semifinal', Stage.SEMI_FINAL),
        ('quarterfinal', Stage.QUARTER_FINAL),
        ('3rd_place', Stage.THIRD_PLACE),
        ('13th_semifinal', Stage.THIRTEENTH_SEMIFINAL),
        ('crossed_r2_semifinal1', Stage.CROSSED_J4),
        ('crossed_r3_final', Stage.CROSSED_J7),
        ('crossed_r3_j8', Stage.CROSSED_J8),
        ('mixed_semifinal2', Stage.MIXED_SEMIFINAL_2),
        ('mixed_final', Stage.MIXED_FINAL),
        ('mixed_3rd_place', Stage.MIXED_THIRD_PLACE),
        ('group_A', Stage.GROUP),
        ('round_3', Stage.ROUND),
    ])
    def test_known_names(self, name, stage):
        assert resolve_stage(name) is stage

    @pytest.mark.parametrize('name', [None, '', 'group', 'round_x', 'playoffs'])
    def test_unknown_names(self, name):
        assert resolve_stage(name) is None

    def test_round_name_helpers(self):
        assert group_round('B') == 'group_B'
        assert group_of_round('group_B') == 'B'
        assert group_of_round('final') is None
        assert numbered_round(2) == 'round_2'


class TestTransitions:
    """Where winners and losers of each stage go."""

    def test_team_semifinal(self):
        """Team semifinals feed the final by position and 3rd place by first empty side."""
        transition = transition_for(Stage.SEMI_FINAL, individual=False)
        assert transition.winner_to is Stage.FINAL
        assert transition.winner_rule == POSITION
        assert transition.loser_to is Stage.THIRD_PLACE
        assert transition.loser_rule == FIRST_EMPTY

    def test_team_quarterfinal_losers(self):
        transition = transition_for(Stage.QUARTER_FINAL, individual=False)
        assert transition.loser_to is Stage.FIFTH_SEMIFINAL

    def test_individual_semifinals_pool(self):
        """Individual tier semifinals are pooled into the tier matches."""
        for stage in (Stage.SEMI_FINAL, Stage.NINTH_SEMIFINAL):
            assert transition_for(stage, individual=True).winner_rule == TIER_POOL

    def test_terminal_stage_has_no_transition(self):
        assert transition_for(Stage.FINAL, individual=False) is None
        assert transition_for(Stage.SEVENTH_PLACE, individual=True) is None

    def test_tiers(self):
        assert tier_of(Stage.NINTH_SEMIFINAL) == (Stage.NINTH_SEMIFINAL, Stage.NINTH_PLACE, Stage.ELEVENTH_PLACE)
        assert is_tier_semifinal(Stage.FIFTH_SEMIFINAL)
        assert not is_tier_semifinal(Stage.FIFTH_PLACE)

    def test_terminal_order(self):
        """Placement matches are ordered best tier first."""
        assert TERMINAL_STAGES[:4] == [Stage.FINAL, Stage.THIRD_PLACE, Stage.FIFTH_PLACE, Stage.SEVENTH_PLACE]
        assert TERMINAL_STAGES[-1] is Stage.TWENTY_THIRD_PLACE


class TestMainLine:
    """Lazily created rounds of a standard bracket."""

    def test_next_round(self):
        assert next_main_round(Stage.ROUND_OF_16) is Stage.QUARTER_FINAL
        assert next_main_round(Stage.SEMI_FINAL) is Stage.FINAL
        assert next_main_round(Stage.FINAL) is None
        assert next_main_round(Stage.FIFTH_SEMIFINAL) is None

    def test_first_round(self):
        assert first_round_stage(2) is Stage.FINAL
        assert first_round_stage(16) is Stage.ROUND_OF_16
        assert first_round_stage(6) is None


class TestPlayoffWiring:
    """Crossed and mixed playoff dependencies."""

    def test_round_one_dependents(self):
        assert playoff_dependents(Stage.CROSSED_J1) == [Stage.CROSSED_J4, Stage.CROSSED_J5, Stage.CROSSED_J6]
        assert playoff_dependents(Stage.CROSSED_J3) == [Stage.CROSSED_J5, Stage.CROSSED_J6]

    def test_round_two_dependents(self):
        assert playoff_dependents(Stage.CROSSED_J4) == [Stage.CROSSED_J7, Stage.CROSSED_J8]
        assert playoff_dependents(Stage.CROSSED_J6) == []

    def test_mixed_dependents(self):
        assert playoff_dependents(Stage.MIXED_SEMIFINAL_1) == [Stage.MIXED_FINAL, Stage.MIXED_THIRD_PLACE]
        assert playoff_dependents(Stage.MIXED_FINAL) == []
