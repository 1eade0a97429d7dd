from flask import Blueprint, request, jsonify, current_app
from routes.auth import admin_required
from database import db
from exceptions import ValidationError
from stats_service import StatsService

stats_bp = Blueprint('stats', __name__)

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0',
    'Pragma': 'no-cache',
    'Expires': '0',
    'Surrogate-Control': 'no-store',
}

def no_cache(response):
    """Mark a stats response as never cacheable"""
    response.headers.update(NO_CACHE_HEADERS)
    return response

def stats_service():
    return StatsService(db, current_app.config)

@stats_bp.route('/leaderboards')
def leaderboards():
    """All leaderboard views computed from one snapshot"""
    data = stats_service().leaderboards()
    return no_cache(jsonify({'success': True, 'data': data}))

@stats_bp.route('/dashboard')
def dashboard():
    """Dashboard summary cards"""
    data = stats_service().dashboard()
    return no_cache(jsonify({'success': True, 'data': data}))

@stats_bp.route('/players-stats')
def players_stats():
    """Per-player totals for every named player"""
    players = stats_service().players_overview()
    return no_cache(jsonify({'success': True, 'players': players}))

@stats_bp.route('/player-stats')
def player_stats():
    """Totals and recent matches for one player"""
    player_id = request.args.get('playerId')
    if not player_id:
        raise ValidationError('Player ID is required')

    stats = stats_service().player_summary(player_id)
    return no_cache(jsonify({'success': True, 'stats': stats}))

@stats_bp.route('/player-stats', methods=['POST'])
@admin_required
def assign_player_stats():
    """Derive stat rows for a match from its goal and card events"""
    data = request.get_json(silent=True) or {}
    match_id = data.get('matchId')
    if not match_id:
        raise ValidationError('Match ID is required')

    rows = stats_service().assign_stats_from_events(match_id)
    return jsonify({
        'success': True,
        'message': f'Stats assigned for {len(rows)} players',
        'statsUpdated': len(rows)
    })

@stats_bp.route('/tournaments/<tournament_id>/player-stats')
def tournament_player_stats(tournament_id):
    """Player stats for a tournament's completed matches"""
    player_stats = stats_service().tournament_player_stats(tournament_id)
    return no_cache(jsonify({'playerStats': player_stats}))
