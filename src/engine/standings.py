"""
Round-robin standings, computed on demand from completed matches.
"""
from typing import Dict, List

from .models import Match, Team

POINTS_PER_WIN = 2
POINTS_PER_LOSS = 0


def calculate_standings(teams: List[Team], matches: List[Match]) -> List[Dict]:
    """
    Fold completed matches into a standings table.

    Returns: [{'teamId', 'teamName', 'played', 'wins', 'losses', 'points',
               'scoreFor', 'scoreAgainst', 'scoreDiff'}, ...]

    Ranking: points -> score differential -> wins -> team name
    """
    team_stats = {}
    for team in teams:
        team_stats[team.team_id] = {
            'teamId': team.team_id,
            'teamName': team.name,
            'played': 0,
            'wins': 0,
            'losses': 0,
            'points': 0,
            'scoreFor': 0,
            'scoreAgainst': 0,
        }

    for match in matches:
        if not match.is_completed or not match.winner_team_id or not match.teams_resolved:
            continue
        team_a = match.team_a.team_id
        team_b = match.team_b.team_id
        if team_a not in team_stats or team_b not in team_stats:
            continue

        winner = match.winner_team_id
        loser = team_b if winner == team_a else team_a
        team_stats[winner]['wins'] += 1
        team_stats[winner]['points'] += POINTS_PER_WIN
        team_stats[loser]['losses'] += 1
        team_stats[loser]['points'] += POINTS_PER_LOSS

        score_a = match.team_a_score or 0
        score_b = match.team_b_score or 0
        team_stats[team_a]['scoreFor'] += score_a
        team_stats[team_a]['scoreAgainst'] += score_b
        team_stats[team_b]['scoreFor'] += score_b
        team_stats[team_b]['scoreAgainst'] += score_a
        team_stats[team_a]['played'] += 1
        team_stats[team_b]['played'] += 1

    for stats in team_stats.values():
        stats['scoreDiff'] = stats['scoreFor'] - stats['scoreAgainst']

    return sorted(
        team_stats.values(),
        key=lambda x: (-x['points'], -x['scoreDiff'], -x['wins'], x['teamName'])
    )
