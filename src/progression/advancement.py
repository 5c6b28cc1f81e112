"""
Bracket advancement: what happens when a match result is recorded or reverted.

Every destination slot remembers which source match(es) wrote it
(``slot_sources``), so writes are upserts keyed by (destination, side):
re-processing a match rewrites the same slot instead of filling another
one, and reverting a match clears exactly the open slots it fed.
"""
import contextlib
import datetime
import logging
import random
import threading
from typing import List, Dict, Optional

from .models import (
    COMPLETED, SCHEDULED, CANCELLED, CROSSED_PLAYOFFS, GROUPS_KNOCKOUT, INDIVIDUAL_GROUPS_KNOCKOUT,
    MIXED_AMERICAN, MIXED_GENDER, ROUND_ROBIN_INDIVIDUAL, ROUND_ROBIN_TEAMS, SINGLE_ELIMINATION, SUPER_TEAMS,
    InvalidScoreError, by_match_number, determine_winner, game_totals, is_completed, is_decided,
    is_individual_format, is_individual_match, is_resolved, losing_members, new_match, parse_sets,
    side_is_empty, side_is_filled, side_members, side_update, winner_side, winning_members,
)
from .positions import calculate_final_positions
from .qualification import qualify_for_knockout_stage, qualify_from_groups, seed_players_for_knockout
from .seeding import (
    build_crossed_round_one, build_direct_finals, build_knockout_round, build_mixed_playoffs,
    build_placement_tiers, interleave_seeds,
)
from .stages import (
    Stage, PLAYOFF_STAGES, PLAYOFF_TERMINAL_STAGES, PLAYOFF_WIRING, TERMINAL_STAGES, MAIN_LINE,
    POSITION, FIRST_EMPTY, TIER_POOL, WINNER, LOSER, BEST_LOSER,
    next_main_round, playoff_dependents, resolve_stage, tier_of, transition_for,
)
from .tiebreak import group_standings, group_stage_matches

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    'court_count': 2,
    'match_duration_minutes': 60,
    'third_place_match': True,
}

ROUND_ROBIN_FORMATS = {ROUND_ROBIN_INDIVIDUAL, ROUND_ROBIN_TEAMS, MIXED_AMERICAN}

# Formats whose finished group stage seeds a knockout in the same category
KNOCKOUT_AFTER_GROUPS = {GROUPS_KNOCKOUT, INDIVIDUAL_GROUPS_KNOCKOUT, MIXED_GENDER}

# Another match starting this close to a candidate time occupies the court
COURT_CLASH_SECONDS = 60


class CategoryLocks:
    """Re-entrant lock per (tournament, category), shared by every engine built over the same data."""

    def __init__(self):
        self._locks = {}
        self._guard = threading.Lock()

    def get(self, tournament_id, category_id) -> threading.RLock:
        with self._guard:
            key = (tournament_id, category_id)
            if key not in self._locks:
                self._locks[key] = threading.RLock()
            return self._locks[key]


class BracketEngine:
    def __init__(self, store, rng: Optional[random.Random] = None, settings: Optional[Dict] = None,
                 locks: Optional[CategoryLocks] = None):
        self.store = store
        self.rng = rng if rng is not None else random.Random()
        self.settings = dict(DEFAULT_SETTINGS, **(settings or {}))
        self.locks = locks if locks is not None else CategoryLocks()

    @contextlib.contextmanager
    def _category_lock(self, tournament_id, category_id):
        """One writer per category; the store transaction keeps other processes out too."""
        with self.locks.get(tournament_id, category_id):
            with self.store.transaction():
                yield

    def _format(self, tournament_id, category_id) -> Optional[str]:
        category = self.store.get_category(category_id) if category_id is not None else None
        if category and category.get('format'):
            return category['format']
        tournament = self.store.get_tournament(tournament_id) or {}
        return tournament.get('format')

    def _category_matches(self, match: Dict) -> List[Dict]:
        return self.store.list_matches(match['tournament_id'], category_id=match.get('category_id'))

    def _stage_matches(self, match: Dict, stage: Stage, matches: Optional[List[Dict]] = None) -> List[Dict]:
        if matches is None:
            matches = self._category_matches(match)
        return by_match_number([m for m in matches if resolve_stage(m.get('round')) == stage])

    # Result events

    def complete_match(self, match_id, sets) -> Dict:
        """
        Record a result and propagate it.

        A match with an open (None or TBD) side is left untouched. Re-scoring
        a completed match clears the stored final positions; a re-score that
        ends tied also clears every open slot the match fed.

        Args:
            match_id: Match to complete
            sets: Up to three [side1, side2] game scores

        Returns:
            The updated match record.
        """
        sets = parse_sets(sets)
        if not sets:
            raise InvalidScoreError('At least one set score is required to complete a match')

        match = self.store.get_match(match_id)
        tournament_id, category_id = match['tournament_id'], match.get('category_id')
        with self._category_lock(tournament_id, category_id):
            match = self.store.get_match(match_id)
            if not (side_is_filled(match, 1) and side_is_filled(match, 2)):
                logger.warning(f"Match {match_id} ({match.get('round')}) still has an open side; "
                               f"result not recorded")
                return match

            rescored = is_completed(match)
            side = determine_winner(sets)
            fields = {'sets': sets, 'status': COMPLETED, 'winner_side': side, 'winner_id': None}
            if side and not is_individual_match(match):
                fields['winner_id'] = side_members(match, side)[0]
            self.store.update_match(match_id, fields)
            match.update(fields)
            if rescored or side is None:
                self.clear_final_positions(tournament_id, category_id)

            if side is None:
                logger.warning(f"Match {match_id} ({match.get('round')}) is tied on games; nothing advances")
                self._clear_dependents(match)
                return match
            self._advance(match)
        return match

    def advance(self, match_id):
        """Re-run propagation for an already completed match; a no-op if nothing changed."""
        match = self.store.get_match(match_id)
        with self._category_lock(match['tournament_id'], match.get('category_id')):
            match = self.store.get_match(match_id)
            if not is_decided(match):
                logger.info(f"Match {match_id} has no decided result; nothing to advance")
                return
            self._advance(match)

    def revert_match(self, match_id) -> Dict:
        """
        Undo a result.

        Resets scores and status, clears the open slots this match fed
        (including tier finals populated from it) and clears the category's
        final positions.
        """
        match = self.store.get_match(match_id)
        tournament_id, category_id = match['tournament_id'], match.get('category_id')
        with self._category_lock(tournament_id, category_id):
            fields = {'status': SCHEDULED, 'sets': [], 'winner_id': None, 'winner_side': None}
            self.store.update_match(match_id, fields)
            match.update(fields)
            self._clear_dependents(match)
            self.clear_final_positions(tournament_id, category_id)
        return match

    def _advance(self, match: Dict):
        stage = resolve_stage(match.get('round'))
        if stage is None:
            logger.warning(f"Unknown round {match.get('round')!r} on match {match['id']}; nothing to advance")
            return

        tournament_id, category_id = match['tournament_id'], match.get('category_id')
        fmt = self._format(tournament_id, category_id)

        if stage in PLAYOFF_STAGES:
            self._advance_playoff(match, stage)
        elif stage == Stage.GROUP:
            if fmt in KNOCKOUT_AFTER_GROUPS:
                self.populate_knockout(tournament_id, category_id)
        else:
            self._advance_bracket(match, stage)

        if stage in TERMINAL_STAGES or stage in PLAYOFF_TERMINAL_STAGES:
            self.recompute_positions(tournament_id, category_id)
        elif stage in (Stage.GROUP, Stage.ROUND) and fmt in ROUND_ROBIN_FORMATS:
            self.recompute_positions(tournament_id, category_id)

    def _advance_bracket(self, match: Dict, stage: Stage):
        individual = is_individual_match(match)
        transition = transition_for(stage, individual)
        if transition is not None:
            if transition.winner_rule == TIER_POOL:
                self._populate_tier_finals(match, stage)
            else:
                self._propagate(match, stage, winning_members(match), transition.winner_to, transition.winner_rule)
                self._propagate(match, stage, losing_members(match), transition.loser_to, transition.loser_rule)

        if stage in MAIN_LINE and not individual:
            self._create_next_round_if_ready(match, stage)

    def _propagate(self, match: Dict, stage: Stage, members, dest_stage: Optional[Stage], rule: Optional[str]):
        if dest_stage is None or members is None:
            return
        if not all(is_resolved(member) for member in members):
            logger.warning(f"Match {match['id']} ({stage.value}) has an open side; {dest_stage.value} not filled")
            return
        matches = self._category_matches(match)
        destinations = self._stage_matches(match, dest_stage, matches)
        if not destinations:
            logger.debug(f"No {dest_stage.value} match yet for category {match.get('category_id')}; "
                         f"{match['id']} not propagated")
            return

        if rule == POSITION:
            sources = self._stage_matches(match, stage, matches)
            position = [m['id'] for m in sources].index(match['id'])
            target = position // 2
            if target >= len(destinations):
                logger.info(f'{dest_stage.value} has no match {target + 1} for {stage.value} match {position + 1}')
                return
            side = 1 if position % 2 == 0 else 2
            self._write_side(destinations[target], side, members, [match['id']])
        elif rule == FIRST_EMPTY:
            for destination in destinations:
                for side in (1, 2):
                    if self._owned_by(destination, side, [match['id']]):
                        self._write_side(destination, side, members, [match['id']])
                        return
            for destination in destinations:
                for side in (1, 2):
                    if side_is_empty(destination, side) and not self._owners(destination, side):
                        self._write_side(destination, side, members, [match['id']])
                        return
            logger.warning(f"No free slot in {dest_stage.value} for {stage.value} match {match['id']}")

    @staticmethod
    def _owners(match: Dict, side: int) -> List:
        return list((match.get('slot_sources') or {}).get(str(side)) or [])

    def _owned_by(self, match: Dict, side: int, sources: List) -> bool:
        return self._owners(match, side) == list(sources)

    def _writable_by(self, match: Dict, side: int, sources: List) -> bool:
        """The side already belongs to ``sources`` or is empty and unclaimed."""
        if self._owned_by(match, side, sources):
            return True
        return side_is_empty(match, side) and not self._owners(match, side)

    def _write_side(self, destination: Dict, side: int, members, sources: List):
        """Upsert ``members`` into one side of ``destination`` on behalf of ``sources``."""
        members = tuple(members)
        if side_members(destination, side) == members and self._owned_by(destination, side, sources):
            return
        if is_completed(destination):
            logger.warning(f"Match {destination['id']} ({destination.get('round')}) is already completed; "
                           f'side {side} not overwritten')
            return
        fields = side_update(destination, side, members)
        slot_sources = dict(destination.get('slot_sources') or {})
        slot_sources[str(side)] = list(sources)
        fields['slot_sources'] = slot_sources
        self.store.update_match(destination['id'], fields)
        destination.update(fields)

    def _clear_dependents(self, match: Dict):
        for destination in self._category_matches(match):
            for side in (1, 2):
                if match['id'] not in self._owners(destination, side):
                    continue
                if is_completed(destination):
                    logger.warning(f"Match {destination['id']} ({destination.get('round')}) already completed; "
                                   f"revert of {match['id']} leaves it untouched")
                    continue
                fields = side_update(destination, side, None)
                slot_sources = dict(destination.get('slot_sources') or {})
                slot_sources.pop(str(side), None)
                fields['slot_sources'] = slot_sources
                self.store.update_match(destination['id'], fields)
                destination.update(fields)

    def _populate_tier_finals(self, match: Dict, stage: Stage):
        """
        Once both tier semifinals are decided, shuffle winners into the tier final and losers into its 3rd/4th match.

        The shuffle is drawn once and kept on the destination as ``pool_order``,
        so re-scoring a semifinal re-pools the same seats and a revert followed
        by the same result restores the same pairing.
        """
        _, final_stage, third_stage = tier_of(stage)
        matches = self._category_matches(match)
        semis = self._stage_matches(match, stage, matches)
        if len(semis) != 2:
            logger.info(f'{stage.value} in category {match.get("category_id")} has {len(semis)} matches, expected 2')
            return
        if not all(is_decided(s) for s in semis):
            logger.info(f'{stage.value}: waiting for the sibling semifinal before seeding the tier final')
            return

        sources = [s['id'] for s in semis]
        winners = [p for s in semis for p in winning_members(s)]
        losers = [p for s in semis for p in losing_members(s)]
        for dest_stage, pool in ((final_stage, winners), (third_stage, losers)):
            destinations = self._stage_matches(match, dest_stage, matches)
            if not destinations:
                logger.info(f'No {dest_stage.value} match to seed from {stage.value}')
                continue
            destination = destinations[0]
            if not all(self._writable_by(destination, side, sources) for side in (1, 2)):
                logger.info(f"{dest_stage.value} match {destination['id']} was filled from elsewhere; left as is")
                continue
            order = self._pool_order(destination, len(pool))
            pool = [pool[i] for i in order]
            half = len(pool) // 2
            self._write_side(destination, 1, pool[:half], sources)
            self._write_side(destination, 2, pool[half:], sources)
            if destination.get('pool_order') != order and not is_completed(destination):
                self.store.update_match(destination['id'], {'pool_order': order})
                destination['pool_order'] = order

    def _pool_order(self, destination: Dict, size: int) -> List[int]:
        order = list(destination.get('pool_order') or [])
        if sorted(order) != list(range(size)):
            order = list(range(size))
            self.rng.shuffle(order)
        return order

    def _advance_playoff(self, match: Dict, stage: Stage):
        """Fill the crossed or mixed playoff matches fed by ``stage`` using the fixed wiring table."""
        matches = self._category_matches(match)
        playoff = {}
        for m in matches:
            m_stage = resolve_stage(m.get('round'))
            if m_stage in PLAYOFF_STAGES:
                playoff[m_stage] = m

        for dest_stage in playoff_dependents(stage):
            destination = playoff.get(dest_stage)
            if destination is None:
                logger.info(f'Playoffs: no {dest_stage.value} match to fill')
                continue
            for side, (rule, source_stages) in enumerate(PLAYOFF_WIRING[dest_stage], start=1):
                sources = [playoff.get(s) for s in source_stages]
                if any(s is None or not is_decided(s) for s in sources):
                    logger.info(f'Playoffs: {dest_stage.value} side {side} waits for '
                                f'{", ".join(s.value for s in source_stages)}')
                    continue
                members = _playoff_members(rule, sources)
                if not all(is_resolved(member) for member in members):
                    logger.warning(f'Playoffs: {dest_stage.value} side {side} source has an open side')
                    continue
                self._write_side(destination, side, members, [s['id'] for s in sources])

    # Lazy next round

    def _create_next_round_if_ready(self, match: Dict, stage: Stage):
        next_stage = next_main_round(stage)
        if next_stage is None:
            return
        matches = self._category_matches(match)
        current_round = [m for m in self._stage_matches(match, stage, matches) if m.get('status') != CANCELLED]
        if not all(is_decided(m) for m in current_round):
            return
        if self._stage_matches(match, next_stage, matches):
            return

        count = len(current_round) // 2
        if count == 0:
            return
        created = [new_match(match['tournament_id'], match.get('category_id'), next_stage.value, number)
                   for number in range(1, count + 1)]
        self._assign_courts(match['tournament_id'], created)
        self.store.insert_matches(created)
        logger.info(f"Created {count} {next_stage.value} match(es) for category {match.get('category_id')}")

        for source in current_round:
            self._propagate(source, stage, winning_members(source), next_stage, POSITION)

    def _assign_courts(self, tournament_id, new_matches: List[Dict]):
        """
        Give new matches a court and start time after everything already scheduled.

        Scans forward from the latest scheduled start plus one match duration;
        a court is taken when another match starts within a minute of the
        candidate time. When every court is taken the candidate moves on by
        one duration.
        """
        booked = []
        for m in self.store.list_matches(tournament_id):
            if m.get('scheduled_time'):
                booked.append((datetime.datetime.fromisoformat(m['scheduled_time']), str(m.get('court'))))
        if not booked:
            return

        tournament = self.store.get_tournament(tournament_id) or {}
        duration = datetime.timedelta(minutes=tournament.get('match_duration_minutes')
                                      or self.settings['match_duration_minutes'])
        court_count = tournament.get('court_count') or self.settings['court_count']

        current = max(start for start, _ in booked) + duration
        for match in new_matches:
            while True:
                taken = {court for start, court in booked
                         if abs((start - current).total_seconds()) < COURT_CLASH_SECONDS}
                free = [court for court in range(1, court_count + 1) if str(court) not in taken]
                if free:
                    break
                current += duration
            match['court'] = free[0]
            match['scheduled_time'] = current.isoformat()
            booked.append((current, str(free[0])))

    # Knockout population

    def populate_knockout(self, tournament_id, category_id) -> List[Dict]:
        """
        Create the first knockout matches once the group stage is finished.

        Does nothing (and logs) while group matches are open or if knockout
        matches already exist.
        """
        with self._category_lock(tournament_id, category_id):
            category = (self.store.get_category(category_id) if category_id is not None else None) or {}
            fmt = self._format(tournament_id, category_id)
            participants = self.store.list_participants(tournament_id, category_id)
            matches = self.store.list_matches(tournament_id, category_id=category_id)

            if any(resolve_stage(m.get('round')) not in (Stage.GROUP, Stage.ROUND) for m in matches):
                logger.debug(f'Knockout already populated for category {category_id}')
                return []
            group_matches = group_stage_matches(matches)
            open_matches = [m for m in group_matches if m.get('status') not in (COMPLETED, CANCELLED)]
            if open_matches:
                logger.info(f'Category {category_id}: {len(open_matches)} group matches still open')
                return []
            if fmt == CROSSED_PLAYOFFS:
                logger.info('Crossed playoffs are populated across categories with populate_crossed')
                return []
            if fmt == SUPER_TEAMS:
                logger.info(f'Category {category_id}: super-teams confrontations have no knockout bracket')
                return []

            standings = group_standings(participants, matches)
            knockout_stage = category.get('knockout_stage')
            if is_individual_format(fmt):
                seeds = seed_players_for_knockout(standings, knockout_stage, group_matches)
                if knockout_stage == 'final':
                    created = build_direct_finals(tournament_id, category_id, seeds, individual=True)
                else:
                    created = build_placement_tiers(tournament_id, category_id, seeds, knockout_stage)
            else:
                if fmt == SINGLE_ELIMINATION or not standings:
                    ordered = sorted(participants, key=lambda p: p.get('registration_order') or 0)
                    entrants = [p['id'] for p in ordered]
                elif knockout_stage:
                    entrants = qualify_for_knockout_stage(standings, knockout_stage, group_matches)
                else:
                    entrants = qualify_from_groups(standings, category.get('qualified_per_group', 2), group_matches)
                created = build_knockout_round(tournament_id, category_id, entrants,
                                               third_place_match=self.settings['third_place_match'],
                                               classification_rounds=category.get('classification_rounds', False))

            if not created:
                logger.info(f'Category {category_id}: not enough participants to build a knockout')
                return []
            self._assign_courts(tournament_id, created)
            self.store.insert_matches(created)
            logger.info(f'Category {category_id}: created {len(created)} knockout matches')
            return created

    def _playoff_rankings(self, tournament_id, category_ids: List, existing: List[Dict]) -> Optional[Dict]:
        """Ranked participant ids per category label; None while any group stage is open."""
        rankings = {}
        for category_id in category_ids:
            category = self.store.get_category(category_id) or {}
            participants = self.store.list_participants(tournament_id, category_id)
            matches = [m for m in existing if m.get('category_id') == category_id]
            if any(m.get('status') not in (COMPLETED, CANCELLED) for m in group_stage_matches(matches)):
                logger.info(f'Playoffs: category {category_id} group stage still open')
                return None
            standings = group_standings(participants, matches)
            if standings:
                ranked = interleave_seeds(standings)
            else:
                ranked = [p['id'] for p in sorted(participants, key=lambda p: p.get('registration_order') or 0)]
            rankings[category.get('name') or str(category_id)] = ranked
        return rankings

    def populate_crossed(self, tournament_id, category_ids: List) -> List[Dict]:
        """Build crossed-playoff round 1 from the final group standings of three categories."""
        return self._populate_playoff(tournament_id, category_ids, build_crossed_round_one)

    def populate_mixed_playoffs(self, tournament_id, category_ids: List) -> List[Dict]:
        """Build the mixed semifinals, final and 3rd place match from the standings of two categories."""
        return self._populate_playoff(tournament_id, category_ids, build_mixed_playoffs)

    def _populate_playoff(self, tournament_id, category_ids: List, build) -> List[Dict]:
        with self._category_lock(tournament_id, None):
            existing = self.store.list_matches(tournament_id)
            if any(resolve_stage(m.get('round')) in PLAYOFF_STAGES for m in existing):
                logger.debug(f'Playoffs already populated for tournament {tournament_id}')
                return []

            rankings = self._playoff_rankings(tournament_id, category_ids, existing)
            if rankings is None:
                return []
            created = build(tournament_id, rankings)
            if created:
                self._assign_courts(tournament_id, created)
                self.store.insert_matches(created)
                logger.info(f'Tournament {tournament_id}: created {len(created)} playoff matches')
            return created

    # Final positions

    def recompute_positions(self, tournament_id, category_id) -> Optional[Dict]:
        """Compute and store final positions; None when the category is not finished."""
        with self._category_lock(tournament_id, category_id):
            participants = self.store.list_participants(tournament_id, category_id)
            matches = self.store.list_matches(tournament_id, category_id=category_id)
            positions = calculate_final_positions(participants, matches, self._format(tournament_id, category_id))
            if positions is None:
                return None
            for participant in participants:
                position = positions.get(participant['id'])
                if position is not None and participant.get('final_position') != position:
                    self.store.update_participant(participant['id'], {'final_position': position})
            logger.info(f'Final positions stored for {len(positions)} participants in category {category_id}')
            return positions

    def clear_final_positions(self, tournament_id, category_id):
        with self._category_lock(tournament_id, category_id):
            for participant in self.store.list_participants(tournament_id, category_id):
                if participant.get('final_position') is not None:
                    self.store.update_participant(participant['id'], {'final_position': None})


def _loser_games(match: Dict) -> int:
    side = winner_side(match)
    return game_totals(match.get('sets'))[2 - side]


def _playoff_members(rule: str, sources: List[Dict]):
    if rule == WINNER:
        return winning_members(sources[0])
    if rule == LOSER:
        return losing_members(sources[0])
    first, second = sources
    # More games for the losing side ranks a loser higher; ties favour the first source
    best, worst = (second, first) if _loser_games(second) > _loser_games(first) else (first, second)
    return losing_members(best if rule == BEST_LOSER else worst)
