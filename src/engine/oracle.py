"""
Client for the scheduling oracle.

The oracle receives one round of unscheduled matches together with venue
windows and time constraints, and answers with venue/time assignments plus a
free-text reasoning. Any ``async callable(payload: dict) -> dict`` can serve
as transport: ``GeminiOracle`` asks a generative model, ``GreedyOracle``
(see allocation.py) searches slots locally.
"""
import json
import logging
import re
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from .allocation import GreedyOracle, intervals_overlap, within_operating_hours
from .errors import InvalidOracleResultError, OracleInfeasibleError
from .models import parse_datetime

logger = logging.getLogger(__name__)


class TimeWindow(BaseModel):
    startTime: str
    endTime: str


class VenueAvailability(BaseModel):
    availability: List[TimeWindow]
    supportedSports: List[str] = Field(default_factory=list)


class TimeConstraints(BaseModel):
    earliestStartTime: str
    latestEndTime: str
    restMinutes: int = 0


class MatchToSchedule(BaseModel):
    matchId: str
    teamAId: str
    teamBId: str
    sportType: str
    round: int


class SportDuration(BaseModel):
    defaultDurationMinutes: int


class ExistingBooking(BaseModel):
    """A match of the same event that already holds a venue and time."""
    matchId: str
    venueId: str
    startTime: str
    endTime: str
    teamAId: str = ''
    teamBId: str = ''


class OracleRequest(BaseModel):
    eventId: str
    eventFormat: Literal['knockout', 'round-robin']
    venueAvailability: Dict[str, VenueAvailability]
    teamPreferences: Dict[str, List[str]] = Field(default_factory=dict)
    timeConstraints: TimeConstraints
    matches: List[MatchToSchedule]
    sports: Dict[str, SportDuration]
    teams: List[str] = Field(default_factory=list)
    existingBookings: List[ExistingBooking] = Field(default_factory=list)


class OptimizedMatch(BaseModel):
    matchId: str
    venueId: str
    startTime: str
    endTime: str


class OracleResponse(BaseModel):
    optimizedMatches: Optional[List[OptimizedMatch]] = None
    reasoning: str = ''


class OracleClient:
    def __init__(self, transport, revalidate: bool = False):
        self.transport = transport
        self.revalidate = revalidate

    async def optimize(self, request: OracleRequest) -> OracleResponse:
        """Send one round to the oracle. Raises OracleInfeasibleError on an empty answer."""
        logger.info(f"Asking oracle to schedule {len(request.matches)} matches for event "
                    f"{request.eventId} across {len(request.venueAvailability)} venues")
        raw = await self.transport(request.model_dump())
        try:
            response = OracleResponse.model_validate(raw or {})
        except ValidationError as e:
            raise InvalidOracleResultError(f"Oracle answered with an unexpected shape: {e}") from e

        if not response.optimizedMatches:
            logger.warning(f"Oracle found no schedule for event {request.eventId}: {response.reasoning}")
            raise OracleInfeasibleError(response.reasoning)

        returned = {item.matchId for item in response.optimizedMatches}
        missing = [m.matchId for m in request.matches if m.matchId not in returned]
        if missing:
            logger.warning(f"Oracle skipped {', '.join(missing)} for event {request.eventId}")
            raise InvalidOracleResultError(
                f"Oracle left {', '.join(missing)} unscheduled"
                + (f": {response.reasoning}" if response.reasoning else ".")
            )

        if self.revalidate:
            validate_optimized_matches(request, response.optimizedMatches)
        return response


def validate_optimized_matches(request: OracleRequest, optimized: List[OptimizedMatch]):
    """
    Re-check an oracle answer against the request: only requested matches,
    each once, inside operating hours and venue windows, with the sport's
    duration, and no same-venue overlap with each other or with the event's
    existing bookings.
    """
    requested = {m.matchId: m for m in request.matches}
    by_venue = defaultdict(list)
    for booking in request.existingBookings:
        by_venue[booking.venueId].append(
            (booking.matchId, parse_datetime(booking.startTime), parse_datetime(booking.endTime))
        )
    seen = set()

    for item in optimized:
        match = requested.get(item.matchId)
        if match is None:
            raise InvalidOracleResultError(f"Oracle placed match {item.matchId}, which was not requested.")
        if item.matchId in seen:
            raise InvalidOracleResultError(f"Oracle placed match {item.matchId} more than once.")
        seen.add(item.matchId)

        start = parse_datetime(item.startTime)
        end = parse_datetime(item.endTime)
        if end <= start:
            raise InvalidOracleResultError(f"Match {item.matchId} ends before it starts.")
        if not within_operating_hours(start, end):
            raise InvalidOracleResultError(
                f"Match {item.matchId} at {start:%Y-%m-%d %H:%M}-{end:%H:%M} is outside operating hours."
            )

        venue = request.venueAvailability.get(item.venueId)
        if venue is None:
            raise InvalidOracleResultError(f"Match {item.matchId} was placed at unknown venue {item.venueId}.")
        windows = [(parse_datetime(w.startTime), parse_datetime(w.endTime)) for w in venue.availability]
        if not any(w_start <= start and end <= w_end for w_start, w_end in windows):
            raise InvalidOracleResultError(
                f"Match {item.matchId} is outside the availability of venue {item.venueId}."
            )

        sport = request.sports.get(match.sportType)
        if sport is not None and end - start != timedelta(minutes=sport.defaultDurationMinutes):
            raise InvalidOracleResultError(
                f"Match {item.matchId} lasts {int((end - start).total_seconds() // 60)} minutes; "
                f"{match.sportType} matches last {sport.defaultDurationMinutes}."
            )

        for other_id, other_start, other_end in by_venue[item.venueId]:
            if intervals_overlap(start, end, other_start, other_end):
                raise InvalidOracleResultError(
                    f"Matches {other_id} and {item.matchId} overlap at venue {item.venueId}."
                )
        by_venue[item.venueId].append((item.matchId, start, end))


SYSTEM_PROMPT = """You schedule one round of a university sports tournament.
Assign every listed match a venue, a startTime and an endTime (ISO 8601, local time).

Rules:
1. Only use the availability windows given for each venue, and only venues that support the match's sport.
2. Never place two matches at the same venue at overlapping times. existingBookings are fixed: their venue
   intervals are taken and their teams are busy then.
3. Every match starts at or after 08:00 and ends at or before 18:00, inside the overall earliest/latest bounds.
4. endTime = startTime + the sport's defaultDurationMinutes.
5. Teams named TBD or winner_<matchId> are placeholders; schedule those matches anyway.
6. Keep at least restMinutes between two matches of the same team.
7. knockout: the round must start after the previous round is over (the earliest bound already accounts for this).
8. round-robin: a team plays at most one match per calendar day.
9. Prefer each team's preferred venues when it costs nothing.

If any rule cannot be met, return an empty optimizedMatches list and say which rule failed in reasoning.

Answer with JSON only:
{"optimizedMatches": [{"matchId": "...", "venueId": "...", "startTime": "...", "endTime": "..."}], "reasoning": "..."}
"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_oracle_text(text: str) -> Dict:
    """Parse a model's JSON answer, tolerating a surrounding code fence."""
    cleaned = _FENCE.sub('', (text or '').strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidOracleResultError(f"Oracle answer is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidOracleResultError("Oracle answer is not a JSON object.")
    return data


class GeminiOracle:
    """Oracle transport backed by a Gemini model."""

    def __init__(self, model_name: str = 'gemini-1.5-flash', api_key: Optional[str] = None):
        self.model_name = model_name
        self.api_key = api_key

    def build_prompt(self, payload: Dict) -> str:
        return (
            f"Event format: {payload['eventFormat']}\n\n"
            f"Scheduling request:\n{json.dumps(payload, indent=2, sort_keys=True)}"
        )

    async def __call__(self, payload: Dict) -> Dict:
        import google.generativeai as genai

        if self.api_key:
            genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(self.model_name, system_instruction=SYSTEM_PROMPT)
        response = await model.generate_content_async(
            self.build_prompt(payload),
            generation_config={'response_mime_type': 'application/json'},
        )
        return parse_oracle_text(response.text)


def build_oracle_client(settings: Dict) -> OracleClient:
    """Create the oracle client selected by ``settings['oracle']['backend']``."""
    oracle_settings = settings.get('oracle', {})
    backend = oracle_settings.get('backend', 'greedy')
    if backend == 'gemini':
        transport = GeminiOracle(oracle_settings.get('model', 'gemini-1.5-flash'), oracle_settings.get('api_key'))
    elif backend == 'greedy':
        transport = GreedyOracle(settings.get('slot_increment_minutes', 15))
    else:
        raise ValueError(f"Unknown oracle backend: {backend}")
    logger.info(f"Using {backend} scheduling oracle")
    return OracleClient(transport, revalidate=bool(oracle_settings.get('revalidate', False)))
