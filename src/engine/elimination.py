"""
Single elimination bracket generation and management.

The whole bracket is built up front: round 1 holds the shuffled pairs, later
rounds hold match shells whose slots reference ``winner_<matchId>`` of the
feeding matches. Declaring a winner fills exactly one pre-existing slot in the
next round.
"""
import logging
import math
import random
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError, IllegalTransitionError, MatchNotFoundError
from .models import (
    MATCH_COMPLETED, Bracket, Match, PendingWinnerOf, Resolved, Round, Unassigned,
)
from .pairing import generate_knockout_pairs

logger = logging.getLogger(__name__)

STATE_ABSENT = 'absent'
STATE_ROUND_1_GENERATED = 'round-1-generated'
STATE_IN_PROGRESS = 'in-progress'
STATE_COMPLETE = 'complete'


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinals"
    elif teams_in_round == 8:
        return "Quarterfinals"
    else:
        return f"Round of {teams_in_round}"


def is_power_of_two(num_teams: int) -> bool:
    return num_teams >= 2 and (num_teams & (num_teams - 1)) == 0


def calculate_total_rounds(num_teams: int) -> int:
    if num_teams < 2:
        return 0
    return math.ceil(math.log2(num_teams))


def make_match_id(round_number: int, match_number: int) -> str:
    return f"r{round_number}-m{match_number}"


def build_bracket(event_id: str, team_ids: List[str], sport_type: str,
                  rng: Optional[random.Random] = None) -> Tuple[Bracket, List[Match]]:
    """
    Build every round of a knockout bracket.

    Round 1 is paired randomly; each later round has half as many matches
    (rounded up), its slots pointing at the winners of the two feeding matches.
    All matches start ``unscheduled``.
    """
    if not is_power_of_two(len(team_ids)):
        raise ConfigurationError(
            f"Knockout events need a power-of-two number of approved teams (2, 4, 8, ...); "
            f"got {len(team_ids)}."
        )

    pairs = generate_knockout_pairs(team_ids, rng)
    matches = []
    rounds = []

    round_ids = []
    for i, (team_a, team_b) in enumerate(pairs):
        match_id = make_match_id(1, i + 1)
        matches.append(Match(match_id, 1, Resolved(team_a), Resolved(team_b), sport_type))
        round_ids.append(match_id)
    rounds.append(Round(1, get_round_name(len(round_ids) * 2), round_ids))

    round_number = 1
    previous_ids = round_ids
    while len(previous_ids) > 1:
        round_number += 1
        num_matches = math.ceil(len(previous_ids) / 2)
        round_ids = []
        for i in range(num_matches):
            feeder_a = previous_ids[2 * i]
            team_a = PendingWinnerOf(feeder_a)
            team_b = PendingWinnerOf(previous_ids[2 * i + 1]) if 2 * i + 1 < len(previous_ids) else Unassigned()
            match_id = make_match_id(round_number, i + 1)
            matches.append(Match(match_id, round_number, team_a, team_b, sport_type))
            round_ids.append(match_id)
        rounds.append(Round(round_number, get_round_name(num_matches * 2), round_ids))
        previous_ids = round_ids

    logger.info(f"Built bracket for {event_id}: {len(team_ids)} teams, "
                f"{len(rounds)} rounds, {len(matches)} matches")
    return Bracket(event_id, rounds), matches


def get_bracket_state(bracket: Optional[Bracket], matches: List[Match]) -> str:
    if bracket is None or not bracket.rounds:
        return STATE_ABSENT
    by_id = {m.match_id: m for m in matches}
    final_ids = bracket.final.match_ids
    if final_ids and all(by_id.get(mid) is not None and by_id[mid].is_completed for mid in final_ids):
        return STATE_COMPLETE
    bracket_ids = [mid for r in bracket.rounds for mid in r.match_ids]
    if any(by_id.get(mid) is not None and by_id[mid].is_completed for mid in bracket_ids):
        return STATE_IN_PROGRESS
    return STATE_ROUND_1_GENERATED


def declare_winner(matches: List[Match], bracket: Optional[Bracket], match_id: str,
                   winner_team_id: str, team_a_score=None, team_b_score=None) -> Match:
    """
    Record a winner and, for knockout brackets, feed it into the next round.

    The winner of the match at index i in round k fills team A (i even) or
    team B (i odd) of match i // 2 in round k+1. ``matches`` is updated in
    place. Nothing changes if the transition is illegal.
    """
    by_id = {m.match_id: m for m in matches}
    match = by_id.get(match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found.")
    if match.is_completed:
        raise IllegalTransitionError(f"Match {match_id} already has a winner ({match.winner_team_id}).")
    if not match.teams_resolved:
        raise IllegalTransitionError(
            f"Match {match_id} is still waiting for its teams "
            f"({match.team_a_id} vs {match.team_b_id})."
        )
    if winner_team_id not in (match.team_a.team_id, match.team_b.team_id):
        raise IllegalTransitionError(
            f"{winner_team_id} is not playing in match {match_id} "
            f"({match.team_a_id} vs {match.team_b_id})."
        )

    next_match = None
    next_slot = None
    if bracket is not None:
        location = bracket.locate(match_id)
        if location is not None:
            position, index = location
            if position + 1 < len(bracket.rounds):
                next_round = bracket.rounds[position + 1]
                next_id = next_round.match_ids[index // 2]
                next_match = by_id.get(next_id)
                if next_match is None:
                    raise ConfigurationError(
                        f"Bracket references match {next_id} which is missing from the event."
                    )
                next_slot = 'team_a' if index % 2 == 0 else 'team_b'

    match.winner_team_id = winner_team_id
    match.status = MATCH_COMPLETED
    if team_a_score is not None:
        match.team_a_score = team_a_score
    if team_b_score is not None:
        match.team_b_score = team_b_score

    if next_match is not None:
        setattr(next_match, next_slot, Resolved(winner_team_id))
        logger.info(f"{winner_team_id} advances from {match_id} to {next_match.match_id} ({next_slot})")
    return match


def get_champion(bracket: Optional[Bracket], matches: List[Match]) -> Optional[str]:
    if bracket is None or bracket.final is None or not bracket.final.match_ids:
        return None
    by_id = {m.match_id: m for m in matches}
    final_match = by_id.get(bracket.final.match_ids[0])
    if final_match is not None and final_match.is_completed:
        return final_match.winner_team_id
    return None


def get_bracket_display(bracket: Optional[Bracket], matches: List[Match]) -> Dict:
    """Get bracket data formatted for the API."""
    by_id = {m.match_id: m for m in matches}
    rounds = []
    if bracket is not None:
        for bracket_round in bracket.rounds:
            round_matches = []
            for mid in bracket_round.match_ids:
                match = by_id.get(mid)
                if match is None:
                    continue
                view = match.to_dict()
                view['isPlaceholder'] = not match.teams_resolved
                view['isPlayable'] = match.teams_resolved and not match.is_completed
                round_matches.append(view)
            rounds.append({
                'roundIndex': bracket_round.round_index,
                'roundName': bracket_round.round_name,
                'matches': round_matches,
            })
    return {
        'state': get_bracket_state(bracket, matches),
        'rounds': rounds,
        'totalRounds': len(rounds),
        'champion': get_champion(bracket, matches),
    }
