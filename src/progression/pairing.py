"""
Doubles pairing generators.

Both generators are greedy and single-pass. Callers depend only on the
PairingStrategy interface, so an optimal matcher can replace either one.
"""
import logging
import random
from collections import Counter
from itertools import combinations
from typing import List, Dict, Tuple, Optional

logger = logging.getLogger(__name__)

# Mixed American scoring weights
REPEATED_PARTNER_PENALTY = 200
REPEATED_OPPONENT_PENALTY = 100
NEW_PARTNERSHIP_BONUS = 50

# Rest gap for a player who has not played yet
UNPLAYED_GAP = 1000

Pair = Tuple
Pairing = Tuple[Pair, Pair]


class PairingStrategy:
    """Base for pairing generators; holds the random source used for tiebreaks and shuffles."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng if rng is not None else random.Random()

    def pair(self, players: List) -> List[Pairing]:
        """One batch of doubles matches from a flat pool of players."""
        raise NotImplementedError

    def schedule(self, men: List, women: List, matches_per_player: int) -> List[List[Pairing]]:
        """Full round-by-round mixed schedule; each pair is (man, woman)."""
        raise NotImplementedError


class AmericanoGenerator(PairingStrategy):
    """
    Americano combinations without repeated partnerships.

    Every unordered pair is a candidate partnership. Pairs are shuffled, then
    scanned once: each unused pair is matched with the first later unused pair
    sharing no player. This can produce fewer matches than a maximum matching.
    """

    def pair(self, players: List) -> List[Pairing]:
        if len(players) < 4:
            logger.warning(f'Americano needs at least 4 players, got {len(players)}')
            return []

        pairs = list(combinations(players, 2))
        self.rng.shuffle(pairs)

        used = set()
        matches = []
        for i, first in enumerate(pairs):
            if i in used:
                continue
            for j in range(i + 1, len(pairs)):
                if j in used or set(first) & set(pairs[j]):
                    continue
                matches.append((first, pairs[j]))
                used.update((i, j))
                break
        return matches


class MixedAmericanScheduler(PairingStrategy):
    """
    Round-robin schedule of man+woman vs man+woman matches.

    Each round fills floor(min(men, women) / 2) matches from the least-played
    players. Every match slot scores all 2 men x 2 women x 2 pairings:
    repeated partnerships cost 200 each, repeated opponent pairs 100 each
    (all four cross-team pairs), and every brand-new partnership earns 50.
    """

    def schedule(self, men: List, women: List, matches_per_player: int) -> List[List[Pairing]]:
        if len(men) < 2 or len(women) < 2:
            logger.warning(f'Mixed American needs at least 2 men and 2 women, got {len(men)} and {len(women)}')
            return []

        matches_per_round = min(len(men), len(women)) // 2
        players_per_round = matches_per_round * 2

        self.played = Counter()
        self.partnerships = Counter()
        self.opponents = Counter()

        rounds = []
        for _ in range(matches_per_player):
            available_men = self._least_played(men)[:players_per_round]
            available_women = self._least_played(women)[:players_per_round]

            round_matches = []
            for _ in range(matches_per_round):
                best = self._best_combination(available_men, available_women)
                if best is None:
                    break
                team1, team2 = best
                for man, woman in (team1, team2):
                    available_men.remove(man)
                    available_women.remove(woman)
                self._record(team1, team2)
                round_matches.append(best)
            rounds.append(round_matches)
        return rounds

    def _least_played(self, players: List) -> List:
        # Random tiebreak among equally played players
        return sorted(players, key=lambda p: (self.played[p], self.rng.random()))

    def _best_combination(self, men: List, women: List) -> Optional[Pairing]:
        best = None
        best_score = None
        for man1, man2 in combinations(men, 2):
            for woman1, woman2 in combinations(women, 2):
                for team1, team2 in (((man1, woman1), (man2, woman2)),
                                     ((man1, woman2), (man2, woman1))):
                    score = self.score(team1, team2)
                    if best_score is None or score > best_score:
                        best, best_score = (team1, team2), score
        return best

    def score(self, team1: Pair, team2: Pair) -> int:
        score = 0
        for team in (team1, team2):
            repeats = self.partnerships[team]
            score -= REPEATED_PARTNER_PENALTY * repeats
            if repeats == 0:
                score += NEW_PARTNERSHIP_BONUS
        for a in team1:
            for b in team2:
                score -= REPEATED_OPPONENT_PENALTY * self.opponents[_opponent_key(a, b)]
        return score

    def _record(self, team1: Pair, team2: Pair):
        for team in (team1, team2):
            self.partnerships[team] += 1
            for player in team:
                self.played[player] += 1
        for a in team1:
            for b in team2:
                self.opponents[_opponent_key(a, b)] += 1


def _opponent_key(a, b) -> Tuple:
    return tuple(sorted((str(a), str(b))))


def order_matches_for_rest(matches: List[Pairing]) -> List[Pairing]:
    """
    Reorder matches so players get the longest possible rest between games.

    Greedy: each next slot takes the remaining match whose most recently
    active player has rested longest; ties keep the input order.
    """
    remaining = list(matches)
    last_played: Dict = {}
    ordered = []
    for slot in range(len(matches)):
        best_index = 0
        best_gap = None
        for index, (team1, team2) in enumerate(remaining):
            gap = min(slot - last_played[p] if p in last_played else UNPLAYED_GAP
                      for p in team1 + team2)
            if best_gap is None or gap > best_gap:
                best_index, best_gap = index, gap
        chosen = remaining.pop(best_index)
        for player in chosen[0] + chosen[1]:
            last_played[player] = slot
        ordered.append(chosen)
    return ordered
