from flask import Blueprint, request, jsonify
from routes.auth import admin_required, current_user_id
from database import db
from exceptions import ClubStatsError, NotFoundError, ValidationError

match_bp = Blueprint('match', __name__)

MATCH_TYPES = ('internal', 'external')
MATCH_STATUSES = ('scheduled', 'in_progress', 'completed')
EVENT_TYPES = ('goal', 'own_goal', 'card', 'substitution', 'save', 'clean_sheet')
CARD_TYPES = ('yellow', 'red')
STAT_COUNTERS = ('goals', 'assists', 'yellow_cards', 'red_cards', 'own_goals',
                 'minutes_played', 'saves', 'clean_sheets')

def get_match_or_404(match_id):
    match = db.get_match_by_id(match_id)
    if not match:
        raise NotFoundError('Match', match_id)
    return match

def _non_negative_int(value, field):
    try:
        number = int(value)
    except (ValueError, TypeError):
        raise ValidationError(f'{field} must be a whole number')
    if number < 0:
        raise ValidationError(f'{field} cannot be negative')
    return number

@match_bp.route('')
def list_matches():
    """List matches, newest first"""
    limit = request.args.get('limit', type=int)
    return jsonify({'matches': db.get_matches(limit)})

@match_bp.route('/<match_id>')
def view(match_id):
    """Match details with roster, stats and events"""
    match = get_match_or_404(match_id)
    roster = db.fetch_participation_records(match_ids=[match_id])
    events = db.get_match_events(match_id)

    players = [{
        'match_player_id': record['id'],
        'player_id': record['player_id'],
        'team_id': record['team_id'],
        'position': record['position'],
        'name': (record['player'] or {}).get('name'),
        'photo_url': (record['player'] or {}).get('photo_url'),
        'stats': record['stats'],
    } for record in roster]

    return jsonify({'match': match, 'players': players, 'events': events})

@match_bp.route('', methods=['POST'])
@admin_required
def create():
    """Create a match with its two teams and roster"""
    data = request.get_json(silent=True) or {}

    match_type = data.get('type', 'internal')
    if match_type not in MATCH_TYPES:
        raise ValidationError(f"Match type must be one of: {', '.join(MATCH_TYPES)}")
    if not data.get('date'):
        raise ValidationError('Match date is required')

    team_names = {
        'A': (data.get('teamA_name') or 'Team A').strip(),
        'B': (data.get('teamB_name') or ('Opponent' if match_type == 'external' else 'Team B')).strip(),
    }

    match_data = {
        'type': match_type,
        'date': data['date'],
        'opponent': data.get('opponent'),
        'location': data.get('location'),
        'status': 'scheduled',
        'score_teama': 0,
        'score_teamb': 0,
        'teamA_name': team_names['A'],
        'teamB_name': team_names['B'],
        'tournament_id': data.get('tournament_id'),
        'created_by': current_user_id()
    }

    result = db.create_match(match_data)
    if not result['success']:
        raise ClubStatsError(f"Failed to create match: {result.get('error')}")
    match = result['match']

    teams_result = db.create_teams([
        {'match_id': match['id'], 'name': team_names['A'], 'color': data.get('teamA_color', '#3B82F6')},
        {'match_id': match['id'], 'name': team_names['B'], 'color': data.get('teamB_color', '#EF4444')},
    ])
    if not teams_result['success']:
        raise ClubStatsError(f"Failed to create teams: {teams_result.get('error')}")
    team_ids = {side: team['id'] for side, team in zip(('A', 'B'), teams_result['teams'])}

    roster = []
    seen_players = set()
    for entry in data.get('players', []):
        player_id = entry.get('player_id')
        # One participation record per player per match
        if not player_id or player_id in seen_players:
            continue
        seen_players.add(player_id)
        roster.append({
            'match_id': match['id'],
            'player_id': player_id,
            'team_id': team_ids.get(entry.get('team', 'A')),
            'position': entry.get('position')
        })

    if roster:
        roster_result = db.add_match_players(roster)
        if not roster_result['success']:
            raise ClubStatsError(f"Failed to add players: {roster_result.get('error')}")
        roster = roster_result['match_players']

    return jsonify({'success': True, 'match': match, 'teams': teams_result['teams'], 'players': roster}), 201

@match_bp.route('/<match_id>/score', methods=['POST'])
@admin_required
def update_score(match_id):
    """Update match score and status"""
    get_match_or_404(match_id)
    data = request.get_json(silent=True) or {}

    update_data = {
        'score_teama': _non_negative_int(data.get('score_teama', 0), 'score_teama'),
        'score_teamb': _non_negative_int(data.get('score_teamb', 0), 'score_teamb'),
    }
    status = data.get('status')
    if status:
        if status not in MATCH_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(MATCH_STATUSES)}")
        update_data['status'] = status

    result = db.update_match(match_id, update_data)
    if not result['success']:
        raise ClubStatsError(f"Failed to update score: {result.get('error')}")
    return jsonify({'success': True, 'match': result['match']})

@match_bp.route('/<match_id>/events', methods=['POST'])
@admin_required
def add_event(match_id):
    """Record a match event (goal, own goal, card, substitution, save, clean sheet)"""
    get_match_or_404(match_id)
    data = request.get_json(silent=True) or {}

    event_type = data.get('event_type')
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Event type must be one of: {', '.join(EVENT_TYPES)}")

    event_data = {
        'match_id': match_id,
        'event_type': event_type,
        'minute': _non_negative_int(data.get('minute', 0), 'minute'),
        'player': data.get('player'),
        'player_id': data.get('player_id'),
        'description': (data.get('description') or '').strip()
    }

    if event_type == 'goal':
        if not data.get('scorer') and not data.get('player_id'):
            raise ValidationError('Goal events need a scorer')
        event_data['scorer'] = data.get('scorer')
        event_data['assist'] = data.get('assist')
    elif event_type == 'card':
        if data.get('card_type') not in CARD_TYPES:
            raise ValidationError('Card type must be yellow or red')
        event_data['card_type'] = data['card_type']
    elif not data.get('player') and not data.get('player_id'):
        raise ValidationError('Player is required')

    result = db.create_match_event(event_data)
    if not result['success']:
        raise ClubStatsError(f"Failed to record event: {result.get('error')}")
    return jsonify({'success': True, 'event': result['event']}), 201

@match_bp.route('/<match_id>/stats', methods=['POST'])
@admin_required
def update_stats(match_id):
    """Insert or update stat rows for players on this match's roster"""
    get_match_or_404(match_id)
    data = request.get_json(silent=True) or {}

    roster_ids = {record['id'] for record in db.fetch_participation_records(match_ids=[match_id])}

    rows = []
    for entry in data.get('stats', []):
        match_player_id = entry.get('match_player_id')
        if match_player_id not in roster_ids:
            raise ValidationError(f'Player {match_player_id} is not on this match roster')

        row = {'match_player_id': match_player_id}
        for counter in STAT_COUNTERS:
            if counter in entry:
                row[counter] = _non_negative_int(entry[counter], counter)

        if 'rating' in entry:
            rating = entry['rating']
            if rating is not None:
                try:
                    rating = float(rating)
                except (ValueError, TypeError):
                    raise ValidationError('rating must be a number')
                if not 0 <= rating <= 10:
                    raise ValidationError('rating must be between 0 and 10')
            row['rating'] = rating
        rows.append(row)

    if not rows:
        raise ValidationError('No stats provided')

    result = db.upsert_stats(rows)
    if not result['success']:
        raise ClubStatsError(f"Failed to update stats: {result.get('error')}")
    return jsonify({'success': True, 'stats': result['stats']})
