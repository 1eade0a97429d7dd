import copy
import uuid

import pytest

from config import Config
from exceptions import StorageError

ADMIN_TOKEN = 'admin-token'
PLAYER_TOKEN = 'player-token'
PENDING_TOKEN = 'pending-token'


def make_record(match_id, player_id, name='Player', stats=None, record_id=None,
                match=None, photo_url=None):
    """A participation record in the normalized shape database.py produces"""
    return {
        'id': record_id or f'mp-{match_id}-{player_id}',
        'match_id': match_id,
        'player_id': player_id,
        'team_id': None,
        'position': None,
        'stats': stats,
        'player': {
            'id': player_id,
            'name': name,
            'photo_url': photo_url,
            'position': None,
            'created_at': '2024-01-01T00:00:00',
        },
        'match': match or {'id': match_id, 'status': 'completed', 'date': None},
    }


def make_event(match_id, event_type, player=None, player_id=None, **extra):
    event = {
        'id': str(uuid.uuid4()),
        'match_id': match_id,
        'event_type': event_type,
        'player': player,
        'player_id': player_id,
        'minute': extra.pop('minute', 10),
    }
    event.update(extra)
    return event


class FakeDatabase:
    """In-memory stand-in for DatabaseManager"""

    def __init__(self):
        self.records = []
        self.events = []
        self.matches = []
        self.teams = []
        self.players = {}
        self.tournaments = {}
        self.tournament_teams = {}
        self.standings = {}
        self.upserted_stats = []
        self.fail_on = set()
        self.calls = []
        self.users = {
            ADMIN_TOKEN: {'id': 'user-admin', 'email': 'admin@club.test'},
            PLAYER_TOKEN: {'id': 'user-player', 'email': 'player@club.test'},
            PENDING_TOKEN: {'id': 'user-pending', 'email': 'pending@club.test'},
        }
        self.profiles = {
            'user-admin': {'id': 'user-admin', 'role': 'admin', 'status': 'approved'},
            'user-player': {'id': 'user-player', 'role': 'player', 'status': 'approved'},
            'user-pending': {'id': 'user-pending', 'role': 'player', 'status': 'pending'},
        }

    def _read(self, operation):
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StorageError(operation, 'connection reset')

    # Statistics reads
    def fetch_participation_records(self, match_ids=None, player_id=None):
        self._read('match players')
        records = self.records
        if match_ids is not None:
            match_ids = set(match_ids)
            records = [r for r in records if r['match_id'] in match_ids]
        if player_id is not None:
            records = [r for r in records if r['player_id'] == player_id]
        return copy.deepcopy(records)

    def fetch_events(self, event_types, match_ids=None):
        event_types = list(event_types)
        self._read(f"{'/'.join(event_types)} events")
        events = [e for e in self.events if e['event_type'] in event_types]
        if match_ids is not None:
            events = [e for e in events if e['match_id'] in set(match_ids)]
        return copy.deepcopy(events)

    def fetch_tournament_matches(self, tournament_id, status='completed'):
        self._read('tournament matches')
        return [m['id'] for m in self.matches
                if m.get('tournament_id') == tournament_id and m.get('status') == status]

    def get_match_events(self, match_id):
        self._read('match events')
        events = [e for e in self.events if e['match_id'] == match_id]
        return sorted(copy.deepcopy(events), key=lambda e: e.get('minute') or 0)

    def get_matches(self, limit=None):
        self._read('matches')
        matches = sorted(self.matches, key=lambda m: m.get('date') or '', reverse=True)
        return copy.deepcopy(matches[:limit] if limit else matches)

    def count_approved_players(self):
        self._read('players')
        return len(self.players)

    # Users
    def get_user_for_token(self, token):
        return self.users.get(token)

    def get_user_profile(self, user_id):
        return self.profiles.get(user_id)

    # Players
    def get_players(self):
        return list(self.players.values())

    def get_player_by_id(self, player_id):
        return self.players.get(player_id)

    def create_player(self, profile_data, player_data):
        player = {'id': str(uuid.uuid4()), **player_data, 'user_profile': profile_data}
        self.players[player['id']] = player
        return {'success': True, 'player': player}

    def update_player(self, player_id, profile_data, player_data):
        player = self.players[player_id]
        player.update(player_data)
        player.setdefault('user_profile', {}).update(profile_data)
        return {'success': True, 'player': player}

    # Matches
    def get_match_by_id(self, match_id):
        return next((m for m in self.matches if m['id'] == match_id), None)

    def create_match(self, match_data):
        match = {'id': f'match-{len(self.matches) + 1}', **match_data}
        self.matches.append(match)
        return {'success': True, 'match': match}

    def update_match(self, match_id, match_data):
        match = self.get_match_by_id(match_id)
        if not match:
            return {'success': False, 'error': 'Match not found'}
        match.update(match_data)
        return {'success': True, 'match': match}

    def create_teams(self, teams_data):
        teams = [{'id': f'team-{len(self.teams) + i + 1}', **team} for i, team in enumerate(teams_data)]
        self.teams.extend(teams)
        return {'success': True, 'teams': teams}

    def add_match_players(self, rows):
        created = [{'id': f"mp-{row['match_id']}-{row['player_id']}", **row} for row in rows]
        return {'success': True, 'match_players': created}

    def create_match_event(self, event_data):
        event = {'id': str(uuid.uuid4()), **event_data}
        self.events.append(event)
        return {'success': True, 'event': event}

    def upsert_stats(self, rows):
        self.upserted_stats.extend(rows)
        return {'success': True, 'stats': rows}

    # Tournaments
    def get_tournaments(self):
        return list(self.tournaments.values())

    def get_tournament_by_id(self, tournament_id):
        return self.tournaments.get(tournament_id)

    def create_tournament(self, tournament_data):
        tournament = {'id': str(uuid.uuid4()), **tournament_data}
        self.tournaments[tournament['id']] = tournament
        return {'success': True, 'tournament': tournament}

    def get_tournament_teams(self, tournament_id):
        return list(self.tournament_teams.get(tournament_id, []))

    def get_tournament_fixtures(self, tournament_id, round_name=None):
        fixtures = [m for m in self.matches if m.get('tournament_id') == tournament_id]
        if round_name:
            fixtures = [m for m in fixtures if m.get('round') == round_name]
        return sorted(fixtures, key=lambda m: m.get('fixture_order') or 0)

    def fixtures_exist(self, tournament_id):
        return any(m.get('tournament_id') == tournament_id and m.get('is_fixture')
                   and m.get('round') == 'group_stage' for m in self.matches)

    def get_standings(self, tournament_id):
        standings = [dict(s, team_id=team_id) for (t_id, team_id), s in self.standings.items()
                     if t_id == tournament_id]
        return sorted(standings, key=lambda s: (-s['points'], -s['goal_difference'], -s['goals_for']))

    def save_standing(self, tournament_id, team_id, standing):
        self.standings[(tournament_id, team_id)] = dict(standing)
        return {'success': True, 'standing': standing}


class ConfigForTests(Config):
    TESTING = True
    SUPABASE_URL = None
    SUPABASE_SERVICE_ROLE_KEY = None
    LEADERBOARD_SIZE = 10
    DASHBOARD_SIZE = 5
    DEFAULT_MINUTES_PLAYED = 90
    RATE_QUALIFYING_MATCHES = 2
    GOALKEEPER_STATS_SOURCE = 'combined'
    FETCH_WORKERS = 3


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def app(fake_db, monkeypatch):
    monkeypatch.delenv('SUPABASE_URL', raising=False)
    monkeypatch.delenv('SUPABASE_SERVICE_ROLE_KEY', raising=False)
    monkeypatch.delenv('SUPABASE_ANON_KEY', raising=False)

    from app import create_app
    import routes.auth
    import routes.match
    import routes.player
    import routes.stats
    import routes.tournament

    for module in (routes.auth, routes.match, routes.player, routes.stats, routes.tournament):
        monkeypatch.setattr(module, 'db', fake_db)

    return create_app(ConfigForTests)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}


@pytest.fixture
def player_headers():
    return {'Authorization': f'Bearer {PLAYER_TOKEN}'}
