"""
Document models for events, teams, venues, sports, matches and brackets.

Documents are stored with camelCase keys; these classes convert to and from
that wire shape with ``from_dict``/``to_dict``.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

TBD = 'TBD'
BYE = 'BYE'
WINNER_PREFIX = 'winner_'

MATCH_UNSCHEDULED = 'unscheduled'
MATCH_SCHEDULED = 'scheduled'
MATCH_COMPLETED = 'completed'

TEAM_APPROVED = 'approved'

FORMAT_KNOCKOUT = 'knockout'
FORMAT_ROUND_ROBIN = 'round-robin'


class Resolved:
    """A team slot holding a known team."""

    def __init__(self, team_id):
        self.team_id = team_id

    def __eq__(self, other):
        return isinstance(other, Resolved) and other.team_id == self.team_id

    def __hash__(self):
        return hash(('resolved', self.team_id))

    def __repr__(self):
        return f"Resolved(team_id={self.team_id})"


class PendingWinnerOf:
    """A team slot waiting for the winner of another match."""

    def __init__(self, match_id):
        self.match_id = match_id

    def __eq__(self, other):
        return isinstance(other, PendingWinnerOf) and other.match_id == self.match_id

    def __hash__(self):
        return hash(('pending', self.match_id))

    def __repr__(self):
        return f"PendingWinnerOf(match_id={self.match_id})"


class Unassigned:
    """A team slot with nothing in it yet (``TBD``)."""

    def __eq__(self, other):
        return isinstance(other, Unassigned)

    def __hash__(self):
        return hash('unassigned')

    def __repr__(self):
        return "Unassigned()"


def parse_slot(value) -> object:
    """Turn a stored team-slot string into a slot variant."""
    if value is None or value == '' or value == TBD:
        return Unassigned()
    if isinstance(value, str) and value.startswith(WINNER_PREFIX):
        return PendingWinnerOf(value[len(WINNER_PREFIX):])
    return Resolved(value)


def format_slot(slot) -> str:
    """Turn a slot variant back into its stored string."""
    if isinstance(slot, Resolved):
        return slot.team_id
    if isinstance(slot, PendingWinnerOf):
        return f"{WINNER_PREFIX}{slot.match_id}"
    return TBD


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO timestamp (or pass a datetime through). Empty means None."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        # Operating hours are local, so aware timestamps are shifted to local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def format_datetime(value: Optional[datetime]) -> str:
    return value.isoformat(timespec='seconds') if value else ''


class Team:
    def __init__(self, team_id, name=None, department='', status=TEAM_APPROVED,
                 sport_type='', preferred_venues=None):
        self.team_id = team_id
        self.name = name or team_id
        self.department = department
        self.status = status
        self.sport_type = sport_type
        self.preferred_venues = list(preferred_venues) if preferred_venues else []

    @classmethod
    def from_dict(cls, data: Dict) -> 'Team':
        return cls(
            team_id=data['teamId'],
            name=data.get('teamName'),
            department=data.get('department', ''),
            status=data.get('status', TEAM_APPROVED),
            sport_type=data.get('sportType', ''),
            preferred_venues=data.get('preferredVenues'),
        )

    def to_dict(self) -> Dict:
        return {
            'teamId': self.team_id,
            'teamName': self.name,
            'department': self.department,
            'status': self.status,
            'sportType': self.sport_type,
            'preferredVenues': list(self.preferred_venues),
        }

    @property
    def is_approved(self) -> bool:
        return self.status == TEAM_APPROVED

    def __repr__(self):
        return f"Team(team_id={self.team_id}, name={self.name}, status={self.status})"


class Venue:
    def __init__(self, venue_id, name=None, supported_sports=None):
        self.venue_id = venue_id
        self.name = name or venue_id
        self.supported_sports = list(supported_sports) if supported_sports else []

    @classmethod
    def from_dict(cls, data: Dict, doc_id: Optional[str] = None) -> 'Venue':
        return cls(
            venue_id=data.get('id') or data.get('venueId') or doc_id,
            name=data.get('name'),
            supported_sports=data.get('supportedSports'),
        )

    def supports(self, sport_type: str) -> bool:
        return sport_type in self.supported_sports

    def __repr__(self):
        return f"Venue(venue_id={self.venue_id}, supported_sports={self.supported_sports})"


class Sport:
    def __init__(self, name, default_duration_minutes):
        self.name = name
        self.default_duration_minutes = default_duration_minutes

    @classmethod
    def from_dict(cls, data: Dict) -> 'Sport':
        # Older sport documents use ``sportName``
        return cls(
            name=data.get('name') or data.get('sportName'),
            default_duration_minutes=int(data['defaultDurationMinutes']),
        )

    def __repr__(self):
        return f"Sport(name={self.name}, default_duration_minutes={self.default_duration_minutes})"


class Match:
    def __init__(self, match_id, round_number, team_a=None, team_b=None, sport_type='',
                 venue_id='', start_time=None, end_time=None, status=MATCH_UNSCHEDULED,
                 winner_team_id=None, team_a_score=None, team_b_score=None):
        self.match_id = match_id
        self.round = round_number
        self.team_a = team_a if team_a is not None else Unassigned()
        self.team_b = team_b if team_b is not None else Unassigned()
        self.sport_type = sport_type
        self.venue_id = venue_id
        self.start_time = start_time
        self.end_time = end_time
        self.status = status
        self.winner_team_id = winner_team_id
        self.team_a_score = team_a_score
        self.team_b_score = team_b_score

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(
            match_id=data['matchId'],
            round_number=int(data.get('round', 1)),
            team_a=parse_slot(data.get('teamAId')),
            team_b=parse_slot(data.get('teamBId')),
            sport_type=data.get('sportType', ''),
            venue_id=data.get('venueId') or '',
            start_time=parse_datetime(data.get('startTime')),
            end_time=parse_datetime(data.get('endTime')),
            status=data.get('status') or MATCH_UNSCHEDULED,
            winner_team_id=data.get('winnerTeamId'),
            team_a_score=data.get('teamAScore'),
            team_b_score=data.get('teamBScore'),
        )

    def to_dict(self) -> Dict:
        data = {
            'matchId': self.match_id,
            'round': self.round,
            'teamAId': format_slot(self.team_a),
            'teamBId': format_slot(self.team_b),
            'sportType': self.sport_type,
            'venueId': self.venue_id,
            'startTime': format_datetime(self.start_time),
            'endTime': format_datetime(self.end_time),
            'status': self.status,
        }
        if self.winner_team_id is not None:
            data['winnerTeamId'] = self.winner_team_id
        if self.team_a_score is not None:
            data['teamAScore'] = self.team_a_score
        if self.team_b_score is not None:
            data['teamBScore'] = self.team_b_score
        return data

    @property
    def team_a_id(self) -> str:
        return format_slot(self.team_a)

    @property
    def team_b_id(self) -> str:
        return format_slot(self.team_b)

    @property
    def is_completed(self) -> bool:
        return self.status == MATCH_COMPLETED

    @property
    def teams_resolved(self) -> bool:
        return isinstance(self.team_a, Resolved) and isinstance(self.team_b, Resolved)

    def __repr__(self):
        return (f"Match(match_id={self.match_id}, round={self.round}, "
                f"teams=({self.team_a_id}, {self.team_b_id}), status={self.status})")


class Event:
    def __init__(self, event_id, name='', sport_type='', start_date=None, duration_days=1,
                 settings=None, status='upcoming', teams=None, matches=None):
        self.event_id = event_id
        self.name = name
        self.sport_type = sport_type
        self.start_date = start_date
        self.duration_days = duration_days
        self.settings = settings if settings else {}
        self.status = status
        self.teams = teams if teams else []
        self.matches = matches if matches else []

    @classmethod
    def from_dict(cls, data: Dict, event_id: Optional[str] = None) -> 'Event':
        return cls(
            event_id=data.get('eventId') or event_id,
            name=data.get('name', ''),
            sport_type=data.get('sportType', ''),
            start_date=parse_date(data.get('startDate')),
            duration_days=int(data.get('durationDays') or 1),
            settings=dict(data.get('settings') or {}),
            status=data.get('status', 'upcoming'),
            teams=[Team.from_dict(t) for t in data.get('teams') or []],
            matches=[Match.from_dict(m) for m in data.get('matches') or []],
        )

    @property
    def format(self) -> str:
        return self.settings.get('format', FORMAT_ROUND_ROBIN)

    @property
    def is_knockout(self) -> bool:
        return self.format == FORMAT_KNOCKOUT

    @property
    def rest_minutes(self) -> int:
        return int(self.settings.get('restMinutes') or 0)

    def approved_teams(self) -> List[Team]:
        return [team for team in self.teams if team.is_approved]

    def find_match(self, match_id: str) -> Optional[Match]:
        for match in self.matches:
            if match.match_id == match_id:
                return match
        return None

    def matches_in_round(self, round_number: int) -> List[Match]:
        return [m for m in self.matches if m.round == round_number]

    def __repr__(self):
        return f"Event(event_id={self.event_id}, format={self.format}, teams={len(self.teams)})"


class Round:
    def __init__(self, round_index, round_name, match_ids=None):
        self.round_index = round_index
        self.round_name = round_name
        self.match_ids = list(match_ids) if match_ids else []

    def to_dict(self) -> Dict:
        return {
            'roundIndex': self.round_index,
            'roundName': self.round_name,
            'matches': list(self.match_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Round':
        return cls(data['roundIndex'], data['roundName'], data.get('matches'))

    def __repr__(self):
        return f"Round(round_index={self.round_index}, round_name={self.round_name}, matches={self.match_ids})"


class Bracket:
    """Knockout topology: ordered rounds of match ids. Winners live on the matches."""

    def __init__(self, event_id, rounds=None):
        self.event_id = event_id
        self.rounds = rounds if rounds else []

    def to_dict(self) -> Dict:
        return {'id': self.event_id, 'rounds': [r.to_dict() for r in self.rounds]}

    @classmethod
    def from_dict(cls, data: Dict, event_id: Optional[str] = None) -> 'Bracket':
        rounds = sorted((Round.from_dict(r) for r in data.get('rounds') or []),
                        key=lambda r: r.round_index)
        return cls(data.get('id') or event_id, rounds)

    def locate(self, match_id: str):
        """Return (position of round in ``rounds``, index within round) or None."""
        for position, bracket_round in enumerate(self.rounds):
            if match_id in bracket_round.match_ids:
                return position, bracket_round.match_ids.index(match_id)
        return None

    @property
    def final(self) -> Optional[Round]:
        return self.rounds[-1] if self.rounds else None

    def __repr__(self):
        return f"Bracket(event_id={self.event_id}, rounds={len(self.rounds)})"
