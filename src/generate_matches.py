import os
import sys
import random
import yaml
from progression.pairing import AmericanoGenerator, MixedAmericanScheduler, order_matches_for_rest


def load_players(file_path):
    with open(file_path, mode='r', encoding='utf-8') as file:
        return yaml.safe_load(file) or {}


def format_pair(pair):
    return ' + '.join(str(player) for player in pair)


def print_mixed_american(men, women, matches_per_player, rng):
    rounds = MixedAmericanScheduler(rng).schedule(men, women, matches_per_player)
    if not rounds:
        print(f"Warning: need at least 2 men and 2 women ({len(men)} men, {len(women)} women found).")
        return
    for number, pairings in enumerate(rounds, start=1):
        if number > 1:
            print()
        print(f"# Round {number}")
        for team1, team2 in pairings:
            print(f"{format_pair(team1)} vs {format_pair(team2)}")


def print_americano(players, rng):
    pairings = order_matches_for_rest(AmericanoGenerator(rng).pair(players))
    if not pairings:
        print(f"Warning: need at least 4 players ({len(players)} found).")
        return
    print("# Americano")
    for team1, team2 in pairings:
        print(f"{format_pair(team1)} vs {format_pair(team2)}")


def main():
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    # Use command line arguments if provided, otherwise use defaults
    players_file = sys.argv[1] if len(sys.argv) > 1 else os.path.join(base_dir, 'data', 'players.yaml')
    matches_per_player = int(sys.argv[2]) if len(sys.argv) > 2 else 5
    seed = int(sys.argv[3]) if len(sys.argv) > 3 else None

    data = load_players(players_file)
    rng = random.Random(seed)

    if 'players' in data:
        print_americano(data['players'] or [], rng)
    else:
        print_mixed_american(data.get('men') or [], data.get('women') or [], matches_per_player, rng)


if __name__ == '__main__':
    main()
