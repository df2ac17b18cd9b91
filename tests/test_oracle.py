"""
Tests for the oracle client, response validation and backend selection.
"""
import pytest
import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from engine.allocation import GreedyOracle
from engine.errors import InvalidOracleResultError, OracleInfeasibleError
from engine.oracle import (
    GeminiOracle, OptimizedMatch, OracleClient, OracleRequest, build_oracle_client, parse_oracle_text,
    validate_optimized_matches,
)
from engine.settings import get_default_settings


def _request(**overrides):
    data = {
        'eventId': 'cup',
        'eventFormat': 'knockout',
        'venueAvailability': {
            'v1': {'availability': [{'startTime': '2026-03-02T08:00:00', 'endTime': '2026-03-02T18:00:00'}],
                   'supportedSports': ['Football']},
        },
        'timeConstraints': {'earliestStartTime': '2026-03-02T08:00:00', 'latestEndTime': '2026-03-02T18:00:00'},
        'matches': [
            {'matchId': 'r1-m1', 'teamAId': 'A', 'teamBId': 'B', 'sportType': 'Football', 'round': 1},
            {'matchId': 'r1-m2', 'teamAId': 'C', 'teamBId': 'D', 'sportType': 'Football', 'round': 1},
        ],
        'sports': {'Football': {'defaultDurationMinutes': 90}},
    }
    data.update(overrides)
    return OracleRequest.model_validate(data)


def _placed(match_id, start, end, venue='v1'):
    return {'matchId': match_id, 'venueId': venue,
            'startTime': f'2026-03-02T{start}:00', 'endTime': f'2026-03-02T{end}:00'}


class CannedTransport:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def __call__(self, payload):
        self.calls.append(payload)
        return self.response


class TestOracleClient:
    """Tests for sending a request and reading the answer."""

    def test_parses_assignments(self):
        transport = CannedTransport({
            'optimizedMatches': [_placed('r1-m1', '08:00', '09:30'), _placed('r1-m2', '09:30', '11:00')],
            'reasoning': 'Back to back on v1.',
        })
        response = asyncio.run(OracleClient(transport).optimize(_request()))
        assert [m.matchId for m in response.optimizedMatches] == ['r1-m1', 'r1-m2']
        assert response.reasoning == 'Back to back on v1.'
        assert transport.calls[0]['eventId'] == 'cup'
        assert transport.calls[0]['timeConstraints']['restMinutes'] == 0

    def test_empty_result_carries_reasoning(self):
        transport = CannedTransport({'optimizedMatches': [], 'reasoning': 'No venue is free on Sunday.'})
        with pytest.raises(OracleInfeasibleError) as exc_info:
            asyncio.run(OracleClient(transport).optimize(_request()))
        assert exc_info.value.reasoning == 'No venue is free on Sunday.'
        assert str(exc_info.value) == 'Schedule generation failed: No venue is free on Sunday.'
        assert exc_info.value.status_code == 422

    def test_missing_result_is_infeasible(self):
        transport = CannedTransport({'reasoning': 'Nothing fits.'})
        with pytest.raises(OracleInfeasibleError):
            asyncio.run(OracleClient(transport).optimize(_request()))

    def test_none_answer_is_infeasible(self):
        with pytest.raises(OracleInfeasibleError) as exc_info:
            asyncio.run(OracleClient(CannedTransport(None)).optimize(_request()))
        assert exc_info.value.reasoning == ''

    def test_malformed_answer(self):
        transport = CannedTransport({'optimizedMatches': [{'matchId': 'r1-m1'}]})
        with pytest.raises(InvalidOracleResultError):
            asyncio.run(OracleClient(transport).optimize(_request()))

    def test_result_trusted_without_revalidation(self):
        transport = CannedTransport({'optimizedMatches': [_placed('r1-m1', '17:00', '18:30'),
                                                          _placed('r1-m2', '08:00', '09:30')]})
        response = asyncio.run(OracleClient(transport).optimize(_request()))
        assert response.optimizedMatches[0].endTime == '2026-03-02T18:30:00'

    def test_revalidation_rejects_bad_result(self):
        transport = CannedTransport({'optimizedMatches': [_placed('r1-m1', '17:00', '18:30'),
                                                          _placed('r1-m2', '08:00', '09:30')]})
        with pytest.raises(InvalidOracleResultError, match='operating hours'):
            asyncio.run(OracleClient(transport, revalidate=True).optimize(_request()))

    @pytest.mark.parametrize('revalidate', [False, True])
    def test_skipped_match_rejected(self, revalidate):
        transport = CannedTransport({'optimizedMatches': [_placed('r1-m1', '08:00', '09:30')],
                                     'reasoning': 'v1 closes early.'})
        with pytest.raises(InvalidOracleResultError, match='r1-m2 unscheduled: v1 closes early'):
            asyncio.run(OracleClient(transport, revalidate=revalidate).optimize(_request()))

    def test_unrequested_match_rejected_when_revalidating(self):
        transport = CannedTransport({'optimizedMatches': [
            _placed('r1-m1', '08:00', '09:30'), _placed('r1-m2', '09:30', '11:00'), _placed('r9-m9', '11:00', '12:30'),
        ]})
        with pytest.raises(InvalidOracleResultError, match='r9-m9, which was not requested'):
            asyncio.run(OracleClient(transport, revalidate=True).optimize(_request()))

    def test_existing_bookings_sent(self):
        transport = CannedTransport({'optimizedMatches': [_placed('r1-m1', '08:00', '09:30'),
                                                          _placed('r1-m2', '09:30', '11:00')]})
        booking = _placed('r0-m1', '12:00', '13:30')
        asyncio.run(OracleClient(transport).optimize(_request(existingBookings=[booking])))
        assert transport.calls[0]['existingBookings'][0]['matchId'] == 'r0-m1'
        assert transport.calls[0]['existingBookings'][0]['teamAId'] == ''

    def test_greedy_transport(self):
        response = asyncio.run(OracleClient(GreedyOracle(), revalidate=True).optimize(_request()))
        assert len(response.optimizedMatches) == 2


class TestValidateOptimizedMatches:
    """Tests for re-checking an oracle answer."""

    def _check(self, *placed, bookings=()):
        validate_optimized_matches(_request(existingBookings=list(bookings)),
                                   [OptimizedMatch.model_validate(p) for p in placed])

    def test_overlap_with_existing_booking(self):
        booking = _placed('r0-m1', '08:00', '09:30')
        with pytest.raises(InvalidOracleResultError, match='r0-m1 and r1-m1 overlap'):
            self._check(_placed('r1-m1', '08:30', '10:00'), bookings=[booking])

    def test_existing_booking_elsewhere(self):
        self._check(_placed('r1-m1', '08:00', '09:30'), bookings=[_placed('r0-m1', '08:00', '09:30', venue='v2')])

    def test_duplicate_match(self):
        with pytest.raises(InvalidOracleResultError, match='more than once'):
            self._check(_placed('r1-m1', '08:00', '09:30'), _placed('r1-m1', '10:00', '11:30'))

    def test_unrequested_match(self):
        with pytest.raises(InvalidOracleResultError, match='not requested'):
            self._check(_placed('r7-m1', '08:00', '09:30'))

    def test_valid(self):
        self._check(_placed('r1-m1', '08:00', '09:30'), _placed('r1-m2', '09:30', '11:00'))

    def test_overlap_at_venue(self):
        with pytest.raises(InvalidOracleResultError, match='overlap'):
            self._check(_placed('r1-m1', '08:00', '09:30'), _placed('r1-m2', '09:00', '10:30'))

    def test_before_opening(self):
        with pytest.raises(InvalidOracleResultError, match='operating hours'):
            self._check(_placed('r1-m1', '07:30', '09:00'))

    def test_unknown_venue(self):
        with pytest.raises(InvalidOracleResultError, match='unknown venue'):
            self._check(_placed('r1-m1', '08:00', '09:30', venue='v9'))

    def test_wrong_duration(self):
        with pytest.raises(InvalidOracleResultError, match='lasts 60 minutes'):
            self._check(_placed('r1-m1', '08:00', '09:00'))


class TestGeminiOracle:
    """Tests for the Gemini transport that do not call the model."""

    def test_parse_plain_json(self):
        assert parse_oracle_text('{"optimizedMatches": [], "reasoning": "x"}') == {
            'optimizedMatches': [], 'reasoning': 'x'}

    def test_parse_fenced_json(self):
        text = '```json\n{"optimizedMatches": [], "reasoning": "fenced"}\n```'
        assert parse_oracle_text(text)['reasoning'] == 'fenced'

    def test_parse_garbage(self):
        with pytest.raises(InvalidOracleResultError):
            parse_oracle_text('I could not schedule this.')

    def test_parse_non_object(self):
        with pytest.raises(InvalidOracleResultError):
            parse_oracle_text('[1, 2]')

    def test_prompt_contains_request(self):
        payload = _request().model_dump()
        prompt = GeminiOracle().build_prompt(payload)
        assert prompt.startswith('Event format: knockout')
        assert json.dumps(payload, indent=2, sort_keys=True) in prompt


class TestBuildOracleClient:
    """Tests for choosing a backend from settings."""

    def test_default_is_greedy(self):
        client = build_oracle_client(get_default_settings())
        assert isinstance(client.transport, GreedyOracle)
        assert client.revalidate is False

    def test_gemini(self):
        settings = get_default_settings()
        settings['oracle'].update({'backend': 'gemini', 'model': 'gemini-test', 'revalidate': True})
        client = build_oracle_client(settings)
        assert isinstance(client.transport, GeminiOracle)
        assert client.transport.model_name == 'gemini-test'
        assert client.revalidate is True

    def test_unknown_backend(self):
        settings = get_default_settings()
        settings['oracle']['backend'] = 'crystal-ball'
        with pytest.raises(ValueError):
            build_oracle_client(settings)
