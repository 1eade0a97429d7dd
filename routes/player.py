from flask import Blueprint, request, jsonify
from email_validator import validate_email, EmailNotValidError
from routes.auth import admin_required, login_required
from database import db
from exceptions import ClubStatsError, NotFoundError, ValidationError

player_bp = Blueprint('player', __name__)

PLAYER_POSITIONS = ('goalkeeper', 'defender', 'midfielder', 'forward')

def _clean_position(value):
    position = (value or '').strip().lower() or None
    if position and position not in PLAYER_POSITIONS:
        raise ValidationError(f"Position must be one of: {', '.join(PLAYER_POSITIONS)}")
    return position

def _clean_jersey_number(value):
    if value in (None, ''):
        return None
    try:
        number = int(value)
    except (ValueError, TypeError):
        raise ValidationError('Jersey number must be a whole number')
    if not 1 <= number <= 99:
        raise ValidationError('Jersey number must be between 1 and 99')
    return number

@player_bp.route('')
@login_required
def list_players():
    """List all players"""
    return jsonify({'players': db.get_players()})

@player_bp.route('/<player_id>')
@login_required
def view(player_id):
    player = db.get_player_by_id(player_id)
    if not player:
        raise NotFoundError('Player', player_id)
    return jsonify({'player': player})

@player_bp.route('', methods=['POST'])
@admin_required
def create():
    """Create a player with a profile"""
    data = request.get_json(silent=True) or {}

    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Player name is required')

    try:
        email = validate_email(data.get('email') or '', check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f'Invalid email address: {e}')

    profile_data = {
        'name': name,
        'email': email,
        'position': _clean_position(data.get('position')),
        'photo_url': data.get('photo_url'),
    }
    player_data = {
        'jersey_number': _clean_jersey_number(data.get('jersey_number')),
    }

    result = db.create_player(profile_data, player_data)
    if not result['success']:
        raise ClubStatsError(result.get('error'), user_message=result.get('error'), status_code=400)
    return jsonify({'success': True, 'player': result['player']}), 201

@player_bp.route('/<player_id>', methods=['POST'])
@admin_required
def update(player_id):
    """Update a player's profile fields"""
    if not db.get_player_by_id(player_id):
        raise NotFoundError('Player', player_id)

    data = request.get_json(silent=True) or {}
    profile_data = {}
    player_data = {}

    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('Player name cannot be empty')
        profile_data['name'] = name
    if 'position' in data:
        profile_data['position'] = _clean_position(data.get('position'))
    if 'photo_url' in data:
        profile_data['photo_url'] = data.get('photo_url')
    if 'jersey_number' in data:
        player_data['jersey_number'] = _clean_jersey_number(data.get('jersey_number'))

    if not profile_data and not player_data:
        raise ValidationError('No changes provided')

    result = db.update_player(player_id, profile_data, player_data)
    if not result['success']:
        raise ClubStatsError(f"Failed to update player: {result.get('error')}")
    return jsonify({'success': True, 'player': result['player']})
