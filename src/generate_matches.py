import argparse
import random
import sys
import yaml
from engine.elimination import is_power_of_two
from engine.models import Team
from engine.pairing import generate_knockout_pairs, generate_round_robin_rounds


def load_teams(file_path):
    """Load approved teams from a roster YAML (a list of names or {teams: [...]})."""
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or []
    if isinstance(data, dict):
        data = data.get('teams', [])

    teams = []
    for entry in data:
        if isinstance(entry, dict):
            teams.append(Team.from_dict(entry))
        else:
            teams.append(Team(team_id=str(entry)))
    return [team for team in teams if team.is_approved]


def format_rounds(rounds, names):
    lines = []
    for round_data in rounds:
        if lines:
            lines.append('')
        lines.append(f"# Round {round_data['round']}")
        for team_a, team_b in round_data['pairs']:
            lines.append(f"{names.get(team_a, team_a)} vs {names.get(team_b, team_b)}")
    return lines


def main(argv=None):
    parser = argparse.ArgumentParser(description='Print round-robin rounds or knockout pairs for a roster.')
    parser.add_argument('roster', help='YAML roster file')
    parser.add_argument('--format', choices=['round-robin', 'knockout'], default='round-robin')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the knockout shuffle')
    args = parser.parse_args(argv)

    teams = load_teams(args.roster)
    if len(teams) < 2:
        print(f"Need at least 2 approved teams, found {len(teams)}.", file=sys.stderr)
        return 1

    names = {team.team_id: team.name for team in teams}
    team_ids = [team.team_id for team in teams]
    if args.format == 'knockout':
        if not is_power_of_two(len(team_ids)):
            print(f"Knockout needs a power-of-two number of teams, found {len(team_ids)}.", file=sys.stderr)
            return 1
        pairs = generate_knockout_pairs(team_ids, random.Random(args.seed))
        rounds = [{'round': 1, 'pairs': pairs}]
    else:
        rounds = generate_round_robin_rounds(team_ids)

    for line in format_rounds(rounds, names):
        print(line)
    return 0


if __name__ == '__main__':
    sys.exit(main())
