from flask import Blueprint, request, jsonify
from routes.auth import admin_required, current_user_id
from database import db
from exceptions import ClubStatsError, FixtureConflictError, NotFoundError, ValidationError
from logger import setup_logger
from tournament_generator import (
    FixtureGenerator, StandingsCalculator, GROUP_STAGE, FINAL, build_final, match_teams
)

logger = setup_logger(__name__)

tournament_bp = Blueprint('tournament', __name__)

TOURNAMENT_TYPES = ('round_robin', 'double_round_robin')

def get_tournament_or_404(tournament_id):
    tournament = db.get_tournament_by_id(tournament_id)
    if not tournament:
        raise NotFoundError('Tournament', tournament_id)
    return tournament

@tournament_bp.route('')
def list_tournaments():
    """List all tournaments"""
    return jsonify({'tournaments': db.get_tournaments()})

@tournament_bp.route('/<tournament_id>')
def view(tournament_id):
    """Tournament details with its teams"""
    tournament = get_tournament_or_404(tournament_id)
    teams = db.get_tournament_teams(tournament_id)
    return jsonify({'tournament': tournament, 'teams': teams})

@tournament_bp.route('', methods=['POST'])
@admin_required
def create():
    """Create a tournament"""
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    tournament_type = data.get('type', 'round_robin')

    if not name:
        raise ValidationError('Tournament name is required')
    if tournament_type not in TOURNAMENT_TYPES:
        raise ValidationError(f"Tournament type must be one of: {', '.join(TOURNAMENT_TYPES)}")

    tournament_data = {
        'name': name,
        'type': tournament_type,
        'description': (data.get('description') or '').strip(),
        'start_date': data.get('start_date'),
        'end_date': data.get('end_date'),
        'status': 'upcoming',
        'points_per_win': data.get('points_per_win', 3),
        'points_per_draw': data.get('points_per_draw', 1),
        'points_per_loss': data.get('points_per_loss', 0),
        'created_by': current_user_id()
    }

    result = db.create_tournament(tournament_data)
    if not result['success']:
        raise ClubStatsError(f"Failed to create tournament: {result.get('error')}")
    return jsonify({'success': True, 'tournament': result['tournament']}), 201

@tournament_bp.route('/<tournament_id>/fixtures', methods=['POST'])
@admin_required
def generate_fixtures(tournament_id):
    """Generate round robin fixtures, once per tournament"""
    tournament = get_tournament_or_404(tournament_id)

    teams = db.get_tournament_teams(tournament_id)
    if len(teams) < 2:
        raise ValidationError('At least 2 teams are required to generate fixtures')

    if db.fixtures_exist(tournament_id):
        raise FixtureConflictError(tournament_id)

    generator = FixtureGenerator(tournament, teams, created_by=current_user_id())
    fixtures = generator.generate_matches()

    created_matches = []
    for match_data in fixtures:
        result = db.create_match(match_data)
        if not result['success']:
            logger.error(f"Error creating fixture {match_data['fixture_order']}: {result.get('error')}")
            continue

        match = result['match']
        teams_result = db.create_teams(match_teams(match))
        if teams_result['success']:
            created_matches.append(match)

    return jsonify({
        'success': True,
        'fixtures_generated': len(fixtures),
        'matches_created': len(created_matches),
        'matches': created_matches
    })

@tournament_bp.route('/<tournament_id>/standings')
def standings(tournament_id):
    """Stored standings with positions"""
    standings_data = db.get_standings(tournament_id)
    for i, standing in enumerate(standings_data):
        standing['position'] = i + 1
    return jsonify({'standings': standings_data})

@tournament_bp.route('/<tournament_id>/standings', methods=['POST'])
@admin_required
def recalculate_standings(tournament_id):
    """Recalculate standings after a match completes and schedule the final when due"""
    tournament = get_tournament_or_404(tournament_id)

    matches = [m for m in db.get_tournament_fixtures(tournament_id) if m.get('status') == 'completed']
    if not matches:
        logger.info(f"No completed matches found for tournament {tournament_id}")
        return jsonify({'success': True, 'message': 'No completed matches to calculate standings from'})

    teams = db.get_tournament_teams(tournament_id)
    if not teams:
        raise ValidationError('No teams found in tournament')

    calculator = StandingsCalculator(tournament, teams)
    standings_data = calculator.calculate(matches)

    for standing in standings_data:
        record = {key: value for key, value in standing.items() if key not in ('team_id', 'name', 'position')}
        result = db.save_standing(tournament_id, standing['team_id'], record)
        if not result['success']:
            logger.error(f"Error saving standings for team {standing['team_id']}: {result.get('error')}")

    final_created = False
    if tournament.get('type') in TOURNAMENT_TYPES and not db.get_tournament_fixtures(tournament_id, FINAL):
        group_matches = db.get_tournament_fixtures(tournament_id, GROUP_STAGE)
        final = build_final(tournament, standings_data, group_matches,
                            created_by=next((m.get('created_by') for m in group_matches), None))
        if final:
            result = db.create_match(final)
            if result['success']:
                db.create_teams(match_teams(result['match']))
                final_created = True

    return jsonify({
        'success': True,
        'message': 'Standings recalculated',
        'standings': standings_data,
        'final_created': final_created
    })
