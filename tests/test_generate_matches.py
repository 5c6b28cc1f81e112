"""
Unit tests for the schedule generation command.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import generate_matches
from generate_matches import load_players, format_pair


def write_players(tmp_path, data):
    path = tmp_path / 'players.yaml'
    path.write_text(yaml.dump(data, default_flow_style=False))
    return str(path)


class TestHelpers:
    """Tests for file loading and formatting."""

    def test_load_players(self, tmp_path):
        path = write_players(tmp_path, {'men': ['M1'], 'women': ['W1']})
        assert load_players(path) == {'men': ['M1'], 'women': ['W1']}

    def test_load_empty_file(self, tmp_path):
        path = tmp_path / 'players.yaml'
        path.write_text('')
        assert load_players(str(path)) == {}

    def test_format_pair(self):
        assert format_pair(('Ann', 'Bob')) == 'Ann + Bob'


class TestMain:
    """Tests for the command line entry point."""

    def test_mixed_american_rounds(self, tmp_path, monkeypatch, capsys):
        path = write_players(tmp_path, {'men': ['M1', 'M2', 'M3', 'M4'], 'women': ['W1', 'W2', 'W3', 'W4']})
        monkeypatch.setattr(sys, 'argv', ['generate_matches.py', path, '3', '42'])

        generate_matches.main()

        output = capsys.readouterr().out
        assert output.count('# Round') == 3
        match_lines = [line for line in output.splitlines() if ' vs ' in line]
        assert len(match_lines) == 6

    def test_seed_makes_output_repeatable(self, tmp_path, monkeypatch, capsys):
        path = write_players(tmp_path, {'men': ['M1', 'M2', 'M3'], 'women': ['W1', 'W2', 'W3']})
        monkeypatch.setattr(sys, 'argv', ['generate_matches.py', path, '4', '7'])

        generate_matches.main()
        first = capsys.readouterr().out
        generate_matches.main()
        second = capsys.readouterr().out
        assert first == second

    def test_americano(self, tmp_path, monkeypatch, capsys):
        path = write_players(tmp_path, {'players': ['P1', 'P2', 'P3', 'P4']})
        monkeypatch.setattr(sys, 'argv', ['generate_matches.py', path, '5', '1'])

        generate_matches.main()

        output = capsys.readouterr().out
        assert output.startswith('# Americano')
        assert len([line for line in output.splitlines() if ' vs ' in line]) == 3

    def test_not_enough_players_warns(self, tmp_path, monkeypatch, capsys):
        path = write_players(tmp_path, {'men': ['M1'], 'women': ['W1', 'W2']})
        monkeypatch.setattr(sys, 'argv', ['generate_matches.py', path])

        generate_matches.main()

        assert 'Warning' in capsys.readouterr().out
