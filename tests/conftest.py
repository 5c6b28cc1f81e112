"""
Shared pytest fixtures for the progression engine tests.

Running tests:
    pytest tests/
"""
import pytest
import random
import sys
import os
import yaml

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.advancement import BracketEngine
from progression.store import MemoryStore


def make_team(team_id, order, group=None, category='c1'):
    return {
        'id': team_id,
        'tournament_id': 't1',
        'category_id': category,
        'kind': 'team',
        'name': team_id,
        'group_name': group,
        'registration_order': order,
        'final_position': None,
    }


def make_player(player_id, order, group=None, category='c1', gender=None):
    player = make_team(player_id, order, group, category)
    player['kind'] = 'player'
    player['gender'] = gender
    return player


@pytest.fixture
def rng():
    """Seeded random source so shuffles are reproducible."""
    return random.Random(42)


@pytest.fixture
def build_store():
    """Factory for an in-memory store holding tournament t1 with category c1."""
    def _build(fmt, participants, matches=None, court_count=2, match_duration_minutes=60, **category_fields):
        category = {'id': 'c1', 'tournament_id': 't1', 'name': 'Open', 'format': fmt}
        category.update(category_fields)
        return MemoryStore({
            'tournaments': [{
                'id': 't1',
                'format': fmt,
                'court_count': court_count,
                'match_duration_minutes': match_duration_minutes,
            }],
            'categories': [category],
            'participants': participants,
            'matches': matches or [],
        })
    return _build


@pytest.fixture
def make_engine(rng):
    """Factory for an engine over a store, sharing the seeded random source."""
    def _make(store, **settings):
        return BracketEngine(store, rng=rng, settings=settings)
    return _make


@pytest.fixture
def client():
    """Create a Flask test client."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the API at a temporary data directory with an empty record file."""
    import app as app_module

    data_file = tmp_path / "engine.yaml"
    settings_file = tmp_path / "settings.yaml"
    data_file.write_text(yaml.dump({
        'tournaments': [],
        'categories': [],
        'participants': [],
        'matches': [],
    }, default_flow_style=False))
    settings_file.write_text(yaml.dump({'random_seed': 7}, default_flow_style=False))

    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    monkeypatch.setattr(app_module, 'DATA_FILE', str(data_file))
    monkeypatch.setattr(app_module, 'SETTINGS_FILE', str(settings_file))

    return str(tmp_path)
