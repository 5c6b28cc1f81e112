"""
Flask JSON API for the tournament progression engine.
"""
import os
import logging
import random
import yaml
from flask import Flask, request, jsonify

from progression.advancement import BracketEngine, CategoryLocks, DEFAULT_SETTINGS
from progression.models import InvalidScoreError
from progression.pairing import MixedAmericanScheduler
from progression.seeding import build_mixed_american_matches
from progression.store import YamlStore, StoreError, RecordNotFound
from progression.tiebreak import group_standings

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('ENGINE_DATA_DIR', os.path.join(BASE_DIR, 'data'))
DATA_FILE = os.path.join(DATA_DIR, 'engine.yaml')
SETTINGS_FILE = os.path.join(DATA_DIR, 'settings.yaml')

LOG_LEVEL = os.environ.get('ENGINE_LOG_LEVEL', 'INFO').upper()
logging.getLogger('progression').setLevel(LOG_LEVEL)
app.logger.setLevel(LOG_LEVEL)

# Shared by every request so concurrent results in one category queue up
CATEGORY_LOCKS = CategoryLocks()


def get_default_settings():
    """Get default engine settings."""
    settings = dict(DEFAULT_SETTINGS)
    settings['random_seed'] = None
    return settings


def load_settings():
    """Load settings from YAML file, falling back to defaults for anything missing."""
    settings = get_default_settings()
    if not os.path.exists(SETTINGS_FILE):
        return settings
    try:
        with open(SETTINGS_FILE, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        app.logger.warning(f'Failed to parse {SETTINGS_FILE}: {e}')
        return settings
    if isinstance(data, dict):
        settings.update(data)
    return settings


def get_engine() -> BracketEngine:
    """Build an engine over the data directory with the current settings."""
    settings = load_settings()
    rng = random.Random(settings['random_seed'])
    engine_settings = {key: settings[key] for key in DEFAULT_SETTINGS}
    return BracketEngine(YamlStore(DATA_FILE), rng=rng, settings=engine_settings, locks=CATEGORY_LOCKS)


@app.errorhandler(InvalidScoreError)
def handle_invalid_score(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(RecordNotFound)
def handle_not_found(e):
    return jsonify({'error': e.args[0] if e.args else 'Not found'}), 404


@app.errorhandler(StoreError)
def handle_store_error(e):
    app.logger.warning(f'Store failure: {e}')
    return jsonify({'error': 'Tournament data is temporarily unavailable'}), 503


@app.route('/api/matches/<match_id>/result', methods=['POST'])
def api_complete_match(match_id):
    """Record a match result and advance the bracket."""
    data = request.get_json(silent=True) or {}
    match = get_engine().complete_match(match_id, data.get('sets'))
    return jsonify({
        'success': True,
        'match': match,
        'winner_side': match.get('winner_side'),
    })


@app.route('/api/matches/<match_id>/revert', methods=['POST'])
def api_revert_match(match_id):
    """Undo a match result."""
    match = get_engine().revert_match(match_id)
    return jsonify({'success': True, 'match': match})


@app.route('/api/tournaments/<tournament_id>/categories/<category_id>/knockout', methods=['POST'])
def api_populate_knockout(tournament_id, category_id):
    """Create the knockout matches after the group stage."""
    created = get_engine().populate_knockout(tournament_id, category_id)
    return jsonify({'success': bool(created), 'created': created})


@app.route('/api/tournaments/<tournament_id>/categories/<category_id>/positions', methods=['POST'])
def api_recompute_positions(tournament_id, category_id):
    """Recompute final positions for a finished category."""
    positions = get_engine().recompute_positions(tournament_id, category_id)
    if positions is None:
        return jsonify({'success': False, 'error': 'Category has not finished yet', 'positions': {}})
    return jsonify({'success': True, 'positions': positions})


@app.route('/api/tournaments/<tournament_id>/categories/<category_id>/standings')
def api_group_standings(tournament_id, category_id):
    """Group standings for a category."""
    store = YamlStore(DATA_FILE)
    participants = store.list_participants(tournament_id, category_id)
    matches = store.list_matches(tournament_id, category_id=category_id)
    return jsonify({'standings': group_standings(participants, matches)})


@app.route('/api/tournaments/<tournament_id>/crossed', methods=['POST'])
def api_populate_crossed(tournament_id):
    """Create crossed-playoff round 1 from three finished categories."""
    data = request.get_json(silent=True) or {}
    category_ids = data.get('category_ids') or []
    if len(category_ids) != 3:
        return jsonify({'error': 'Exactly three category_ids are required'}), 400
    created = get_engine().populate_crossed(tournament_id, category_ids)
    return jsonify({'success': bool(created), 'created': created})


@app.route('/api/tournaments/<tournament_id>/mixed-playoffs', methods=['POST'])
def api_populate_mixed_playoffs(tournament_id):
    """Create the mixed semifinals, final and 3rd place match from two finished categories."""
    data = request.get_json(silent=True) or {}
    category_ids = data.get('category_ids') or []
    if len(category_ids) != 2:
        return jsonify({'error': 'Exactly two category_ids are required'}), 400
    created = get_engine().populate_mixed_playoffs(tournament_id, category_ids)
    return jsonify({'success': bool(created), 'created': created})


@app.route('/api/schedule/mixed-american', methods=['POST'])
def api_mixed_american_schedule():
    """Generate a Mixed American schedule; stored when a tournament is given."""
    data = request.get_json(silent=True) or {}
    men = data.get('men') or []
    women = data.get('women') or []
    try:
        matches_per_player = int(data.get('matches_per_player', 0))
    except (TypeError, ValueError):
        return jsonify({'error': 'matches_per_player must be an integer'}), 400
    if matches_per_player < 1:
        return jsonify({'error': 'matches_per_player must be at least 1'}), 400

    seed = data.get('seed', load_settings()['random_seed'])
    scheduler = MixedAmericanScheduler(random.Random(seed))
    tournament_id = data.get('tournament_id')
    matches = build_mixed_american_matches(tournament_id, data.get('category_id'), men, women,
                                           matches_per_player, scheduler)
    if not matches:
        return jsonify({'error': 'At least 2 men and 2 women are required'}), 400
    if tournament_id:
        YamlStore(DATA_FILE).insert_matches(matches)
    return jsonify({'success': True, 'matches': matches})


if __name__ == '__main__':
    logging.basicConfig(level=LOG_LEVEL)
    app.run(debug=True, port=5000)
