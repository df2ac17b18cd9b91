"""
Flask web application for the sports event scheduler.
"""
import os
from flask import Flask, request, jsonify
from engine.errors import OracleInfeasibleError, SchedulingError
from engine.oracle import build_oracle_client
from engine.scheduler import EventScheduler
from engine.settings import configure_logging, load_settings
from engine.store import YamlDocumentStore

app = Flask(__name__)

SETTINGS = load_settings()
DATA_DIR = SETTINGS['data_dir']
configure_logging(SETTINGS['log_level'])


def get_scheduler() -> EventScheduler:
    """Build a scheduler over the data directory with the configured oracle."""
    store = YamlDocumentStore(DATA_DIR)
    oracle = build_oracle_client(SETTINGS)
    return EventScheduler(store, oracle, default_duration_minutes=SETTINGS['default_match_duration_minutes'])


@app.errorhandler(SchedulingError)
def handle_scheduling_error(e):
    body = {'error': str(e)}
    if isinstance(e, OracleInfeasibleError):
        body['reasoning'] = e.reasoning
    app.logger.warning(f'{request.method} {request.path} failed: {e}')
    return jsonify(body), e.status_code


@app.route('/api/events/<event_id>/schedule', methods=['POST'])
async def api_generate_schedule(event_id):
    """Generate round 1 (and the bracket) or schedule a later round."""
    data = request.get_json(silent=True) or {}
    round_number = data.get('round')
    scheduler = get_scheduler()

    if round_number is None:
        result = await scheduler.generate_schedule(event_id, regenerate=bool(data.get('regenerate')))
    else:
        try:
            round_number = int(round_number)
        except (TypeError, ValueError):
            return jsonify({'error': 'round must be a whole number'}), 400
        result = await scheduler.schedule_round(event_id, round_number)

    app.logger.info(f'Scheduled round {result["round"]} of {event_id}')
    return jsonify({'success': True, **result})


@app.route('/api/events/<event_id>/matches/<match_id>/reschedule', methods=['POST'])
async def api_reschedule_match(event_id, match_id):
    data = request.get_json(silent=True) or {}
    venue_id = data.get('venueId')
    start_time = data.get('startTime')
    if not venue_id or not start_time:
        return jsonify({'error': 'Missing venueId or startTime'}), 400

    match = await get_scheduler().reschedule_match(event_id, match_id, venue_id, start_time, data.get('date'))
    return jsonify({'success': True, 'match': match})


@app.route('/api/events/<event_id>/matches/<match_id>/winner', methods=['POST'])
async def api_declare_winner(event_id, match_id):
    data = request.get_json(silent=True) or {}
    winner = data.get('winnerTeamId')
    if not winner:
        return jsonify({'error': 'Missing winnerTeamId'}), 400

    score_a = data.get('teamAScore')
    score_b = data.get('teamBScore')
    if (score_a is None) != (score_b is None):
        return jsonify({'error': 'Both scores must be filled or both must be empty'}), 400

    match = await get_scheduler().declare_winner(event_id, match_id, winner, score_a, score_b)
    return jsonify({'success': True, 'match': match})


@app.route('/api/events/<event_id>/standings')
async def api_standings(event_id):
    standings = await get_scheduler().get_standings(event_id)
    return jsonify({'standings': standings})


@app.route('/api/events/<event_id>/bracket')
async def api_bracket(event_id):
    bracket = await get_scheduler().get_bracket(event_id)
    return jsonify(bracket)


if __name__ == '__main__':
    app.run(debug=True, port=int(os.environ.get('PORT', 5000)))
