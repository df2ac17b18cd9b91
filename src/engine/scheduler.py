"""
Event scheduling operations.

Every operation reads the event document, transforms its match list in
memory and writes the whole list back in a single update. Nothing is written
when an operation fails. Two operations racing on the same event are
last-writer-wins: the later write replaces the earlier one's match list.
"""
import datetime
import logging
import random
from typing import Dict, List, Optional

from .allocation import DAY_END, DAY_START, find_venue_conflict, within_operating_hours
from .elimination import build_bracket, declare_winner, get_bracket_display, get_champion, make_match_id
from .errors import ConfigurationError, ConflictError, EventNotFoundError, IllegalTransitionError, MatchNotFoundError
from .models import (
    MATCH_COMPLETED, MATCH_SCHEDULED, Bracket, Event, Match, Resolved, Sport, Venue, parse_date, parse_datetime,
)
from .pairing import generate_round_robin_rounds
from .schedule_request import DEFAULT_MATCH_DURATION_MINUTES, build_schedule_request, validate_roster
from .standings import calculate_standings
from .store import BRACKETS, EVENTS, SPORTS, VENUES

logger = logging.getLogger(__name__)

EVENT_ONGOING = 'ongoing'
EVENT_COMPLETED = 'completed'


def build_round_robin_matches(team_ids: List[str], sport_type: str) -> List[Match]:
    """Match shells for every round of a round-robin, all unscheduled."""
    matches = []
    for round_data in generate_round_robin_rounds(team_ids):
        for i, (team_a, team_b) in enumerate(round_data['pairs']):
            matches.append(Match(make_match_id(round_data['round'], i + 1), round_data['round'],
                                 Resolved(team_a), Resolved(team_b), sport_type))
    return matches


def apply_optimized_matches(matches: List[Match], optimized) -> List[Match]:
    """
    Copy oracle assignments onto the matching placeholders by id and mark
    them scheduled. Applying the same result twice leaves the list unchanged.
    """
    by_id = {m.match_id: m for m in matches}
    for item in optimized:
        match = by_id.get(item.matchId)
        if match is None:
            logger.warning(f"Oracle returned match {item.matchId}, which was not requested; ignoring it")
            continue
        if match.is_completed:
            logger.warning(f"Oracle returned completed match {item.matchId}; keeping its result")
            continue
        match.venue_id = item.venueId
        match.start_time = parse_datetime(item.startTime)
        match.end_time = parse_datetime(item.endTime)
        match.status = MATCH_SCHEDULED
    return matches


def _parse_time_of_day(value) -> datetime.time:
    if isinstance(value, datetime.time):
        return value
    try:
        return datetime.datetime.strptime(str(value).strip(), '%H:%M').time()
    except ValueError:
        raise ConfigurationError(f"'{value}' is not a valid time of day (HH:MM).")


class EventScheduler:
    def __init__(self, store, oracle, rng: Optional[random.Random] = None,
                 default_duration_minutes: int = DEFAULT_MATCH_DURATION_MINUTES):
        self.store = store
        self.oracle = oracle
        self.rng = rng or random.Random()
        self.default_duration_minutes = default_duration_minutes

    async def _load_event(self, event_id: str) -> Event:
        data = await self.store.get(EVENTS, event_id)
        if data is None:
            raise EventNotFoundError(f"Event {event_id} not found.")
        return Event.from_dict(data, event_id)

    async def _load_bracket(self, event_id: str) -> Optional[Bracket]:
        data = await self.store.get(BRACKETS, event_id)
        return Bracket.from_dict(data, event_id) if data else None

    async def _load_venues(self) -> List[Venue]:
        return [Venue.from_dict(doc) for doc in await self.store.list(VENUES)]

    async def _load_sports(self) -> List[Sport]:
        return [Sport.from_dict(doc) for doc in await self.store.list(SPORTS)]

    async def _write_matches(self, event: Event, status: Optional[str] = None):
        fields = {'matches': [m.to_dict() for m in event.matches]}
        if status:
            fields['status'] = status
        await self.store.update(EVENTS, event.event_id, fields)

    async def _run_oracle(self, event: Event, round_number: int, venues, sports):
        request = build_schedule_request(event, round_number, venues, sports, self.default_duration_minutes)
        response = await self.oracle.optimize(request)
        # Only the matches sent in this request may be moved
        requested = {m.matchId for m in request.matches}
        apply_optimized_matches([m for m in event.matches if m.match_id in requested], response.optimizedMatches)
        return response

    def _duration_for(self, sports: List[Sport], sport_type: str) -> int:
        for sport in sports:
            if sport.name == sport_type:
                return sport.default_duration_minutes
        logger.warning(f"No duration configured for {sport_type}; using {self.default_duration_minutes} minutes")
        return self.default_duration_minutes

    async def generate_schedule(self, event_id: str, regenerate: bool = False) -> Dict:
        """
        First schedule generation for an event.

        Pairs the approved teams (the full bracket for knockout, every round for
        round-robin), has the oracle place round 1, then writes the match list
        and, for knockout, the bracket topology.
        """
        event = await self._load_event(event_id)
        if event.matches and not regenerate:
            raise ConfigurationError(
                f"Event {event_id} already has a schedule; schedule a later round or regenerate."
            )
        validate_roster(event)
        venues = await self._load_venues()
        sports = await self._load_sports()

        team_ids = [team.team_id for team in event.approved_teams()]
        bracket = None
        if event.is_knockout:
            bracket, event.matches = build_bracket(event.event_id, team_ids, event.sport_type, self.rng)
        else:
            event.matches = build_round_robin_matches(team_ids, event.sport_type)

        response = await self._run_oracle(event, 1, venues, sports)

        await self._write_matches(event, EVENT_ONGOING)
        if bracket is not None:
            await self.store.set(BRACKETS, event_id, bracket.to_dict(), merge=True)
        logger.info(f"Generated schedule for {event_id}: {len(event.matches)} matches, "
                    f"{len(response.optimizedMatches)} placed in round 1")
        return {
            'round': 1,
            'matches': [m.to_dict() for m in event.matches],
            'reasoning': response.reasoning,
        }

    async def schedule_round(self, event_id: str, round_number: int) -> Dict:
        """Have the oracle place the unscheduled matches of a later round."""
        event = await self._load_event(event_id)
        if not event.matches:
            raise ConfigurationError(f"Event {event_id} has no schedule yet; generate it first.")
        if event.is_knockout and await self._load_bracket(event_id) is None:
            raise ConfigurationError(f"No bracket exists for knockout event {event_id}.")
        if round_number < 1 or round_number > max(m.round for m in event.matches):
            raise ConfigurationError(f"Event {event_id} has no round {round_number}.")

        venues = await self._load_venues()
        sports = await self._load_sports()
        response = await self._run_oracle(event, round_number, venues, sports)

        await self._write_matches(event)
        logger.info(f"Scheduled round {round_number} of {event_id}: {len(response.optimizedMatches)} matches")
        return {
            'round': round_number,
            'matches': [m.to_dict() for m in event.matches_in_round(round_number)],
            'reasoning': response.reasoning,
        }

    async def reschedule_match(self, event_id: str, match_id: str, venue_id: str, start_time,
                               on_date=None) -> Dict:
        """
        Move one match to a venue and time of day.

        The end time follows from the sport's default duration. Rejected when
        the interval leaves 08:00-18:00 or overlaps another match at the same
        venue in this event.
        """
        event = await self._load_event(event_id)
        match = event.find_match(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found in event {event_id}.")
        if match.is_completed:
            raise IllegalTransitionError(f"Match {match_id} is completed and cannot be rescheduled.")

        venues = {venue.venue_id: venue for venue in await self._load_venues()}
        if venue_id not in venues:
            raise ConfigurationError(f"Venue {venue_id} not found.")
        sport_type = match.sport_type or event.sport_type
        if not venues[venue_id].supports(sport_type):
            raise ConfigurationError(f"Venue {venue_id} does not support {sport_type}.")

        try:
            requested_day = parse_date(on_date)
        except ValueError:
            raise ConfigurationError(f"'{on_date}' is not a valid date (YYYY-MM-DD).")
        day = requested_day or (match.start_time.date() if match.start_time else event.start_date)
        if day is None:
            raise ConfigurationError(f"No date given for match {match_id} and the event has no start date.")
        start = datetime.datetime.combine(day, _parse_time_of_day(start_time))
        end = start + datetime.timedelta(minutes=self._duration_for(await self._load_sports(), sport_type))

        if not within_operating_hours(start, end):
            raise ConflictError(
                f"{start:%H:%M}-{end:%H:%M} is outside operating hours "
                f"({DAY_START:%H:%M}-{DAY_END:%H:%M})."
            )
        clash = find_venue_conflict(event.matches, venue_id, start, end, exclude_match_id=match_id)
        if clash is not None:
            raise ConflictError(
                f"Venue {venue_id} is booked for match {clash.match_id} from "
                f"{clash.start_time:%H:%M} to {clash.end_time:%H:%M}."
            )

        match.venue_id = venue_id
        match.start_time = start
        match.end_time = end
        match.status = MATCH_SCHEDULED
        await self._write_matches(event)
        logger.info(f"Rescheduled {match_id} of {event_id} to {venue_id} at {start:%Y-%m-%d %H:%M}")
        return match.to_dict()

    async def declare_winner(self, event_id: str, match_id: str, winner_team_id: str,
                             team_a_score=None, team_b_score=None) -> Dict:
        """Record a result; knockout winners fill their slot in the next round."""
        event = await self._load_event(event_id)
        bracket = None
        if event.is_knockout:
            bracket = await self._load_bracket(event_id)
            if bracket is None:
                raise ConfigurationError(f"No bracket exists for knockout event {event_id}.")

        match = declare_winner(event.matches, bracket, match_id, winner_team_id, team_a_score, team_b_score)

        status = None
        if event.is_knockout and get_champion(bracket, event.matches):
            status = EVENT_COMPLETED
        elif not event.is_knockout and all(m.status == MATCH_COMPLETED for m in event.matches):
            status = EVENT_COMPLETED
        await self._write_matches(event, status)
        logger.info(f"{winner_team_id} won {match_id} in {event_id}")
        return match.to_dict()

    async def get_standings(self, event_id: str) -> List[Dict]:
        event = await self._load_event(event_id)
        return calculate_standings(event.approved_teams(), event.matches)

    async def get_bracket(self, event_id: str) -> Dict:
        event = await self._load_event(event_id)
        if not event.is_knockout:
            raise ConfigurationError(f"Event {event_id} is round-robin and has no bracket.")
        bracket = await self._load_bracket(event_id)
        return get_bracket_display(bracket, event.matches)
