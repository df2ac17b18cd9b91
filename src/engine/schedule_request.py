"""
Assembles the oracle request for one round of an event.

Round 1 may start at 08:00 on the event's start date; round k starts at 08:00
the day after round k-1's last match ends. Each qualifying venue gets one
08:00-18:00 window per day for ``durationDays`` days from that boundary.
"""
import datetime
import logging
from typing import Dict, List

from .allocation import DAY_END, DAY_START
from .elimination import is_power_of_two
from .errors import ConfigurationError
from .models import MATCH_UNSCHEDULED, Event, Match, Sport, Venue, format_datetime
from .oracle import OracleRequest

logger = logging.getLogger(__name__)

DEFAULT_MATCH_DURATION_MINUTES = 60


def validate_roster(event: Event):
    """Checks that must pass before a first round is paired."""
    approved = event.approved_teams()
    if len(approved) < 2:
        raise ConfigurationError(
            f"At least 2 approved teams are needed to generate a schedule; {event.event_id} has {len(approved)}."
        )
    if event.is_knockout and not is_power_of_two(len(approved)):
        raise ConfigurationError(
            f"Knockout events need a power-of-two number of approved teams (2, 4, 8, ...); "
            f"{event.event_id} has {len(approved)}."
        )
    if event.settings.get('allowSameDeptMatches') is False:
        departments = {team.department.lower().strip() for team in approved}
        if len(departments) < 2:
            raise ConfigurationError('Scheduling requires teams from at least two different departments.')


def supporting_venues(venues: List[Venue], sport_type: str) -> List[Venue]:
    return [venue for venue in venues if venue.supports(sport_type)]


def earliest_start(event: Event, round_number: int) -> datetime.datetime:
    if round_number <= 1:
        if event.start_date is None:
            raise ConfigurationError(f"Event {event.event_id} has no start date.")
        return datetime.datetime.combine(event.start_date, DAY_START)

    previous = event.matches_in_round(round_number - 1)
    if not previous:
        raise ConfigurationError(f"Round {round_number - 1} has no matches, so round {round_number} cannot be scheduled.")
    unscheduled = [m.match_id for m in previous if m.end_time is None]
    if unscheduled:
        raise ConfigurationError(
            f"Round {round_number - 1} is not fully scheduled yet (missing times for {', '.join(unscheduled)})."
        )
    last_end = max(m.end_time for m in previous)
    return datetime.datetime.combine(last_end.date() + datetime.timedelta(days=1), DAY_START)


def latest_end(earliest: datetime.datetime, duration_days: int) -> datetime.datetime:
    # Closing time of the last availability window
    last_day = earliest.date() + datetime.timedelta(days=max(duration_days, 1) - 1)
    return datetime.datetime.combine(last_day, DAY_END)


def availability_windows(earliest: datetime.datetime, duration_days: int) -> List[Dict]:
    windows = []
    for offset in range(max(duration_days, 1)):
        day = earliest.date() + datetime.timedelta(days=offset)
        windows.append({
            'startTime': format_datetime(datetime.datetime.combine(day, DAY_START)),
            'endTime': format_datetime(datetime.datetime.combine(day, DAY_END)),
        })
    return windows


def sport_durations(sports: List[Sport], sport_type: str, default_minutes: int = DEFAULT_MATCH_DURATION_MINUTES) -> Dict:
    durations = {sport.name: {'defaultDurationMinutes': sport.default_duration_minutes} for sport in sports}
    if sport_type not in durations:
        logger.warning(f"No duration configured for {sport_type}; using {default_minutes} minutes")
        durations[sport_type] = {'defaultDurationMinutes': default_minutes}
    return durations


def existing_bookings(event: Event, to_schedule: List[Match]) -> List[Dict]:
    """Venue and time already held by the event's other matches."""
    pending = {m.match_id for m in to_schedule}
    return [{
        'matchId': m.match_id,
        'venueId': m.venue_id,
        'startTime': format_datetime(m.start_time),
        'endTime': format_datetime(m.end_time),
        'teamAId': m.team_a_id,
        'teamBId': m.team_b_id,
    } for m in event.matches
        if m.match_id not in pending and m.venue_id and m.start_time and m.end_time]


def build_schedule_request(event: Event, round_number: int, venues: List[Venue], sports: List[Sport],
                           default_duration_minutes: int = DEFAULT_MATCH_DURATION_MINUTES) -> OracleRequest:
    """
    Build the oracle request for the unscheduled matches of ``round_number``.

    Raises ConfigurationError, without contacting the oracle, when the roster
    is invalid (round 1), no venue supports the sport, or the round has
    nothing to schedule.
    """
    if round_number == 1:
        validate_roster(event)

    qualifying = supporting_venues(venues, event.sport_type)
    if not qualifying:
        raise ConfigurationError(f"No venue supports {event.sport_type}.")

    to_schedule = [m for m in event.matches_in_round(round_number) if m.status == MATCH_UNSCHEDULED]
    if not to_schedule:
        raise ConfigurationError(f"Round {round_number} has no unscheduled matches.")

    earliest = earliest_start(event, round_number)
    windows = availability_windows(earliest, event.duration_days)
    approved = event.approved_teams()

    request = OracleRequest(
        eventId=event.event_id,
        eventFormat=event.format,
        venueAvailability={
            venue.venue_id: {'availability': windows, 'supportedSports': venue.supported_sports}
            for venue in qualifying
        },
        teamPreferences={team.team_id: team.preferred_venues for team in approved},
        timeConstraints={
            'earliestStartTime': format_datetime(earliest),
            'latestEndTime': format_datetime(latest_end(earliest, event.duration_days)),
            'restMinutes': event.rest_minutes,
        },
        matches=[{
            'matchId': m.match_id,
            'teamAId': m.team_a_id,
            'teamBId': m.team_b_id,
            'sportType': m.sport_type or event.sport_type,
            'round': m.round,
        } for m in to_schedule],
        sports=sport_durations(sports, event.sport_type, default_duration_minutes),
        teams=[team.team_id for team in approved],
        existingBookings=existing_bookings(event, to_schedule),
    )
    logger.info(f"Built request for {event.event_id} round {round_number}: {len(to_schedule)} matches, "
                f"{len(qualifying)} venues, window {request.timeConstraints.earliestStartTime} to "
                f"{request.timeConstraints.latestEndTime}")
    return request
