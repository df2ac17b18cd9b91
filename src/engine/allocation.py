import datetime
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from .models import TBD, WINNER_PREFIX, Match, format_datetime, parse_datetime

logger = logging.getLogger(__name__)

DAY_START = datetime.time(8, 0)
DAY_END = datetime.time(18, 0)


def intervals_overlap(start1, end1, start2, end2) -> bool:
    """Half-open [start, end) overlap; touching intervals do not overlap."""
    return start1 < end2 and start2 < end1


def within_operating_hours(start: datetime.datetime, end: datetime.datetime) -> bool:
    """True when [start, end) sits inside 08:00-18:00 of a single day."""
    if end <= start or start.date() != end.date():
        return False
    return start.time() >= DAY_START and end.time() <= DAY_END


def day_bounds(day: datetime.date):
    return (datetime.datetime.combine(day, DAY_START),
            datetime.datetime.combine(day, DAY_END))


def find_venue_conflict(matches: List[Match], venue_id: str, start: datetime.datetime,
                        end: datetime.datetime, exclude_match_id: Optional[str] = None) -> Optional[Match]:
    """First match at ``venue_id`` whose interval overlaps [start, end), if any."""
    for match in matches:
        if match.match_id == exclude_match_id or match.venue_id != venue_id:
            continue
        if match.start_time is None or match.end_time is None:
            continue
        if intervals_overlap(start, end, match.start_time, match.end_time):
            return match
    return None


def _is_placeholder(team_id: str) -> bool:
    return not team_id or team_id == TBD or team_id.startswith(WINNER_PREFIX)


class GreedyOracle:
    """
    Local scheduling oracle: walks time slots from the earliest bound and puts
    each match on the least loaded venue that is open, free and acceptable to
    both teams. Answers with an empty list and a reason when a match does not fit.
    """

    def __init__(self, slot_increment_minutes: int = 15):
        self.slot_increment = datetime.timedelta(minutes=slot_increment_minutes)

    async def __call__(self, payload: Dict) -> Dict:
        return self.allocate(payload)

    def allocate(self, payload: Dict) -> Dict:
        constraints = payload['timeConstraints']
        earliest = parse_datetime(constraints['earliestStartTime'])
        latest = parse_datetime(constraints['latestEndTime'])
        rest = datetime.timedelta(minutes=constraints.get('restMinutes') or 0)
        one_per_day = payload.get('eventFormat') == 'round-robin'
        preferences = payload.get('teamPreferences') or {}

        windows = {}
        supported = {}
        for venue_id, venue in payload['venueAvailability'].items():
            windows[venue_id] = [(parse_datetime(w['startTime']), parse_datetime(w['endTime']))
                                 for w in venue.get('availability', [])]
            supported[venue_id] = venue.get('supportedSports') or []

        schedule = {venue_id: [] for venue_id in windows}  # venue_id: [(start, end, match_id)]
        team_bookings = defaultdict(list)  # team_id: [(start, end)]
        for booking in payload.get('existingBookings') or []:
            start = parse_datetime(booking['startTime'])
            end = parse_datetime(booking['endTime'])
            if booking['venueId'] in schedule:
                schedule[booking['venueId']].append((start, end, booking['matchId']))
            for team_id in (booking.get('teamAId'), booking.get('teamBId')):
                if not _is_placeholder(team_id):
                    team_bookings[team_id].append((start, end))
        assigned = []

        for match in payload['matches']:
            sport = payload.get('sports', {}).get(match['sportType'])
            if not sport:
                return {
                    'optimizedMatches': [],
                    'reasoning': f"No default duration is known for sport '{match['sportType']}'.",
                }
            duration = datetime.timedelta(minutes=sport['defaultDurationMinutes'])
            teams = [t for t in (match['teamAId'], match['teamBId']) if not _is_placeholder(t)]
            preferred = set()
            for team_id in teams:
                preferred.update(preferences.get(team_id) or [])

            slot = self._find_slot(match, duration, earliest, latest, windows, supported, schedule,
                                   teams, team_bookings, rest, one_per_day, preferred)
            if slot is None:
                return {
                    'optimizedMatches': [],
                    'reasoning': (
                        f"Could not place match {match['matchId']} ({match['teamAId']} vs {match['teamBId']}) "
                        f"between {earliest:%Y-%m-%d %H:%M} and {latest:%Y-%m-%d %H:%M}: no venue window is free "
                        f"for {int(duration.total_seconds() // 60)} minutes without breaking venue, rest or "
                        f"daily limits."
                    ),
                }

            venue_id, start, end = slot
            schedule[venue_id].append((start, end, match['matchId']))
            schedule[venue_id].sort(key=lambda x: x[0])
            for team_id in teams:
                team_bookings[team_id].append((start, end))
            assigned.append({
                'matchId': match['matchId'],
                'venueId': venue_id,
                'startTime': format_datetime(start),
                'endTime': format_datetime(end),
            })
            logger.debug(f"Placed {match['matchId']} on {venue_id} at {start:%Y-%m-%d %H:%M}-{end:%H:%M}")

        used = len({item['venueId'] for item in assigned})
        return {
            'optimizedMatches': assigned,
            'reasoning': (
                f"Placed {len(assigned)} matches on {used} venue(s) starting from "
                f"{earliest:%Y-%m-%d %H:%M}, earliest free slot first."
            ),
        }

    def _find_slot(self, match, duration, earliest, latest, windows, supported, schedule,
                   teams, team_bookings, rest, one_per_day, preferred):
        current = earliest
        while current + duration <= latest:
            start = current
            end = start + duration
            current += self.slot_increment
            if not within_operating_hours(start, end):
                continue
            if not self._teams_free(teams, team_bookings, start, end, rest, one_per_day):
                continue
            # Preferred venues first, then venues with fewer matches
            venue_order = sorted(schedule, key=lambda v: (v not in preferred, len(schedule[v])))
            for venue_id in venue_order:
                if supported[venue_id] and match['sportType'] not in supported[venue_id]:
                    continue
                if not any(w_start <= start and end <= w_end for w_start, w_end in windows[venue_id]):
                    continue
                if any(intervals_overlap(start, end, s, e) for s, e, _ in schedule[venue_id]):
                    continue
                return venue_id, start, end
        return None

    def _teams_free(self, teams, team_bookings, start, end, rest, one_per_day) -> bool:
        for team_id in teams:
            for existing_start, existing_end in team_bookings[team_id]:
                if one_per_day and existing_start.date() == start.date():
                    return False
                if intervals_overlap(start - rest, end + rest, existing_start, existing_end):
                    return False
        return True
