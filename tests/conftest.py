"""
Shared pytest fixtures for event scheduler tests.

Running tests:
    pytest tests/
"""
import pytest
import asyncio
import sys
import os
import random
import yaml

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from engine.allocation import GreedyOracle
from engine.oracle import OracleClient
from engine.scheduler import EventScheduler
from engine.store import YamlDocumentStore


SPORTS = {
    'football': {'name': 'Football', 'defaultDurationMinutes': 90},
    'chess': {'name': 'Chess', 'defaultDurationMinutes': 60},
    'sprint': {'name': 'Sprint', 'defaultDurationMinutes': 1},
}

VENUES = {
    'v1': {'name': 'Main Field', 'supportedSports': ['Football']},
    'v2': {'name': 'North Field', 'supportedSports': ['Football']},
    'v3': {'name': 'Library Hall', 'supportedSports': ['Chess', 'Sprint']},
}


def team_doc(team_id, department=None, status='approved', preferred=None):
    return {
        'teamId': team_id,
        'teamName': f'Team {team_id}',
        'department': department or f'Dept {team_id}',
        'status': status,
        'sportType': 'Football',
        'preferredVenues': preferred or [],
    }


def event_doc(event_id, team_ids, fmt='knockout', sport='Football', start_date='2026-03-02',
              duration_days=2, **settings):
    return {
        'eventId': event_id,
        'name': f'{sport} Cup',
        'sportType': sport,
        'startDate': start_date,
        'durationDays': duration_days,
        'settings': {'format': fmt, 'restMinutes': 0, **settings},
        'status': 'upcoming',
        'teams': [team_doc(t) for t in team_ids],
        'matches': [],
    }


def match_doc(match_id, round_number, team_a, team_b, venue='', start='', end='', status='unscheduled',
              sport='Football'):
    return {
        'matchId': match_id, 'round': round_number, 'teamAId': team_a, 'teamBId': team_b,
        'sportType': sport, 'venueId': venue, 'startTime': start, 'endTime': end, 'status': status,
    }


def seed_semis(store, with_bracket=True):
    """A four-team knockout with both semifinals scheduled on the first day."""
    doc = event_doc('semis', ['A', 'B', 'C', 'D'])
    doc['status'] = 'ongoing'
    doc['matches'] = [
        match_doc('r1-m1', 1, 'A', 'B', 'v1', '2026-03-02T08:00:00', '2026-03-02T09:30:00', 'scheduled'),
        match_doc('r1-m2', 1, 'C', 'D', 'v2', '2026-03-02T08:00:00', '2026-03-02T09:30:00', 'scheduled'),
        match_doc('r2-m1', 2, 'winner_r1-m1', 'winner_r1-m2'),
    ]
    asyncio.run(store.set('events', 'semis', doc))
    if with_bracket:
        asyncio.run(store.set('brackets', 'semis', {'id': 'semis', 'rounds': [
            {'roundIndex': 1, 'roundName': 'Semifinals', 'matches': ['r1-m1', 'r1-m2']},
            {'roundIndex': 2, 'roundName': 'Final', 'matches': ['r2-m1']},
        ]}))


class RecordingOracle:
    """Oracle transport that records payloads and answers with a canned or greedy response."""

    def __init__(self, response=None):
        self.response = response
        self.payloads = []
        self._greedy = GreedyOracle()

    async def __call__(self, payload):
        self.payloads.append(payload)
        if self.response is not None:
            return self.response
        return self._greedy.allocate(payload)


@pytest.fixture
def data_dir(tmp_path):
    """Temporary data directory seeded with venues, sports and two events."""
    events = {
        'cup': event_doc('cup', ['A', 'B', 'C', 'D']),
        'league': event_doc('league', ['A', 'B', 'C', 'D', 'E'], fmt='round-robin', duration_days=3),
    }
    (tmp_path / 'venues.yaml').write_text(yaml.dump(VENUES, default_flow_style=False))
    (tmp_path / 'sports.yaml').write_text(yaml.dump(SPORTS, default_flow_style=False))
    (tmp_path / 'events.yaml').write_text(yaml.dump(events, default_flow_style=False))
    return tmp_path


@pytest.fixture
def store(data_dir):
    return YamlDocumentStore(str(data_dir))


@pytest.fixture
def oracle():
    return RecordingOracle()


@pytest.fixture
def scheduler(store, oracle):
    return EventScheduler(store, OracleClient(oracle), rng=random.Random(7))
