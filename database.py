import os
from supabase import create_client, Client
from typing import Optional, Dict, List, Any, Callable, Iterable
from datetime import datetime
import uuid

from exceptions import StorageError
from logger import setup_logger

logger = setup_logger(__name__)

# Global Supabase client
supabase: Optional[Client] = None

PARTICIPATION_SELECT = '''
    id,
    match_id,
    player_id,
    team_id,
    position,
    stats(*),
    player:players(
        id,
        created_at,
        user_profile:user_profiles(name, photo_url, position)
    ),
    match:matches(id, status, tournament_id, date, opponent, teamA_name, teamB_name)
'''

def init_supabase(url: str = None, key: str = None):
    """Initialize the Supabase client from arguments or environment"""
    global supabase
    url = url or os.environ.get('SUPABASE_URL')
    key = key or os.environ.get('SUPABASE_SERVICE_ROLE_KEY') or os.environ.get('SUPABASE_ANON_KEY')

    if url and key:
        try:
            supabase = create_client(url, key)
            logger.info("Supabase client initialized")
        except Exception as e:
            logger.error(f"Failed to create Supabase client: {e}")
            supabase = None
    else:
        logger.warning("Supabase credentials not found in environment variables")
        supabase = None

    return supabase

def get_supabase_client():
    """Get the Supabase client instance"""
    return supabase

def coerce_single(value: Any) -> Optional[Dict]:
    """Collapse a joined relation into one optional row.

    PostgREST returns an embedded relation as an object, a list (one-to-many
    joins, even when the list holds a single row) or null depending on the
    join path.
    """
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return value
    return None

def normalize_participation(row: Dict) -> Dict:
    """Flatten a match_players row with its joins into the shape the stats engine reads"""
    player = coerce_single(row.get('player'))
    profile = coerce_single(player.get('user_profile')) if player else None
    match = coerce_single(row.get('match'))

    return {
        'id': row.get('id'),
        'match_id': row.get('match_id') or (match or {}).get('id'),
        'player_id': row.get('player_id') or (player or {}).get('id'),
        'team_id': row.get('team_id'),
        'position': row.get('position'),
        'stats': coerce_single(row.get('stats')),
        'player': {
            'id': player.get('id'),
            'name': (profile or {}).get('name'),
            'photo_url': (profile or {}).get('photo_url'),
            'position': (profile or {}).get('position'),
            'created_at': player.get('created_at'),
        } if player else None,
        'match': match,
    }

# PostgREST caps each response at its max-rows setting (1000 on Supabase)
PAGE_SIZE = 1000

class DatabaseManager:
    """Database operations manager for Supabase"""

    def __init__(self, page_size: int = PAGE_SIZE):
        self.page_size = page_size

    @property
    def client(self):
        """Dynamically get the current Supabase client"""
        return get_supabase_client()

    def _fetch(self, operation: str, query) -> List[Dict]:
        """Run a read query, raising StorageError on failure"""
        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error fetching {operation}: {e}")
            raise StorageError(operation, str(e)) from e
        return response.data or []

    def _fetch_all(self, operation: str, build_query: Callable[[], Any]) -> List[Dict]:
        """Read every row of a query, one page at a time.

        `build_query` returns a fresh, deterministically ordered query for
        each page. Reading stops at the first short page; any failed page
        fails the whole read.
        """
        rows = []
        start = 0
        while True:
            page = self._fetch(operation, build_query().range(start, start + self.page_size - 1))
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            start += self.page_size

    # Statistics reads
    def fetch_participation_records(self, match_ids: Optional[Iterable[str]] = None,
                                    player_id: Optional[str] = None) -> List[Dict]:
        """Get match_players rows with their stat row, player and match, normalized"""
        if not self.client:
            return []

        if match_ids is not None:
            match_ids = list(match_ids)
            if not match_ids:
                return []

        def build_query():
            query = self.client.table('match_players').select(PARTICIPATION_SELECT)
            if match_ids is not None:
                query = query.in_('match_id', match_ids)
            if player_id is not None:
                query = query.eq('player_id', player_id)
            return query.order('id')

        rows = self._fetch_all('match players', build_query)
        return [normalize_participation(row) for row in rows]

    def fetch_events(self, event_types: Iterable[str], match_ids: Optional[Iterable[str]] = None) -> List[Dict]:
        """Get match events of the given types, optionally limited to some matches"""
        if not self.client:
            return []

        event_types = list(event_types)
        if match_ids is not None:
            match_ids = list(match_ids)
            if not match_ids:
                return []

        def build_query():
            query = self.client.table('match_events').select('*')
            if len(event_types) == 1:
                query = query.eq('event_type', event_types[0])
            else:
                query = query.in_('event_type', event_types)
            if match_ids is not None:
                query = query.in_('match_id', match_ids)
            return query.order('id')

        return self._fetch_all(f"{'/'.join(event_types)} events", build_query)

    def fetch_tournament_matches(self, tournament_id: str, status: str = 'completed') -> List[str]:
        """Get ids of a tournament's matches with the given status"""
        if not self.client:
            return []

        rows = self._fetch_all('tournament matches', lambda: self.client.table('matches').select('id')
                               .eq('tournament_id', tournament_id).eq('status', status).order('id'))
        return [m['id'] for m in rows if m.get('id')]

    def get_match_events(self, match_id: str) -> List[Dict]:
        """Get all events for a match ordered by minute"""
        if not self.client:
            return []

        return self._fetch_all('match events', lambda: self.client.table('match_events').select('*')
                               .eq('match_id', match_id).order('minute').order('id'))

    def get_matches(self, limit: Optional[int] = None) -> List[Dict]:
        """Get matches, newest first"""
        if not self.client:
            return []

        def build_query():
            return self.client.table('matches').select('*').order('date', desc=True).order('id')

        if limit:
            return self._fetch('matches', build_query().limit(limit))
        return self._fetch_all('matches', build_query)

    def count_approved_players(self) -> int:
        """Count players whose profile has been approved"""
        if not self.client:
            return 0

        try:
            response = self.client.table('players').select(
                'id, user_profile:user_profiles!inner(status)', count='exact'
            ).eq('user_profile.status', 'approved').execute()
        except Exception as e:
            logger.error(f"Error counting players: {e}")
            raise StorageError('players', str(e)) from e
        return response.count or 0

    # User operations
    def get_user_for_token(self, token: str) -> Optional[Dict]:
        """Resolve a bearer token to the Supabase auth user"""
        if not self.client:
            return None

        try:
            response = self.client.auth.get_user(token)
        except Exception as e:
            logger.info(f"Could not get user from token: {e}")
            return None

        user = getattr(response, 'user', None)
        if not user:
            return None
        return {'id': user.id, 'email': getattr(user, 'email', None)}

    def get_user_profile(self, user_id: str) -> Optional[Dict]:
        """Get a user's profile row (role and approval status)"""
        if not self.client:
            return None

        query = self.client.table('user_profiles').select('*').eq('id', user_id).limit(1)
        rows = self._fetch('user profile', query)
        return rows[0] if rows else None

    # Player operations
    def get_players(self) -> List[Dict]:
        """Get all players with their profile"""
        if not self.client:
            return []

        players = self._fetch_all('players', lambda: self.client.table('players')
                                  .select('*, user_profile:user_profiles(*)').order('created_at', desc=True).order('id'))
        for player in players:
            player['user_profile'] = coerce_single(player.get('user_profile'))
        return players

    def get_player_by_id(self, player_id: str) -> Optional[Dict]:
        """Get player by ID"""
        if not self.client:
            return None

        query = self.client.table('players').select('*, user_profile:user_profiles(*)').eq('id', player_id).limit(1)
        rows = self._fetch('player', query)
        if not rows:
            return None
        player = rows[0]
        player['user_profile'] = coerce_single(player.get('user_profile'))
        return player

    def create_player(self, profile_data: Dict, player_data: Dict) -> Dict:
        """Create a user profile and the player attached to it"""
        try:
            now = datetime.now().isoformat()
            profile_data.setdefault('id', str(uuid.uuid4()))
            profile_data.setdefault('role', 'player')
            profile_data.setdefault('status', 'approved')
            profile_data['created_at'] = now
            profile_data['updated_at'] = now
            player_data['user_id'] = profile_data['id']
            player_data['created_at'] = now
            player_data['updated_at'] = now

            if not self.client:
                player_data['id'] = str(uuid.uuid4())
                return {'success': True, 'player': {**player_data, 'user_profile': profile_data}}

            profile = self.client.table('user_profiles').insert(profile_data).execute().data[0]
            player = self.client.table('players').insert(player_data).execute().data[0]
            player['user_profile'] = profile
            return {'success': True, 'player': player}
        except Exception as e:
            error_msg = str(e).lower()
            if 'unique' in error_msg or 'duplicate' in error_msg:
                return {'success': False, 'error': 'A player with this email already exists'}
            return {'success': False, 'error': str(e)}

    def update_player(self, player_id: str, profile_data: Dict, player_data: Dict) -> Dict:
        """Update player and profile fields"""
        try:
            now = datetime.now().isoformat()

            if not self.client:
                return {'success': True, 'player': {'id': player_id, **player_data}}

            player = self.get_player_by_id(player_id)
            if not player:
                return {'success': False, 'error': 'Player not found'}

            if profile_data:
                profile_data['updated_at'] = now
                self.client.table('user_profiles').update(profile_data).eq('id', player['user_id']).execute()
            if player_data:
                player_data['updated_at'] = now
                self.client.table('players').update(player_data).eq('id', player_id).execute()

            return {'success': True, 'player': self.get_player_by_id(player_id)}
        except Exception as e:
            return {'success': False, 'error': str(e)}

    # Match operations
    def get_match_by_id(self, match_id: str) -> Optional[Dict]:
        """Get match by ID with its teams"""
        if not self.client:
            return None

        query = self.client.table('matches').select('*, teams(*)').eq('id', match_id).limit(1)
        rows = self._fetch('match', query)
        return rows[0] if rows else None

    def create_match(self, match_data: Dict) -> Dict:
        """Create a new match"""
        try:
            match_data.setdefault('created_at', datetime.now().isoformat())
            match_data['updated_at'] = datetime.now().isoformat()

            if not self.client:
                match_data.setdefault('id', str(uuid.uuid4()))
                return {'success': True, 'match': match_data}

            response = self.client.table('matches').insert(match_data).execute()
            return {'success': True, 'match': response.data[0]}
        except Exception as e:
            logger.error(f"Error creating match: {e}")
            return {'success': False, 'error': str(e)}

    def update_match(self, match_id: str, match_data: Dict) -> Dict:
        """Update match score, status or details"""
        try:
            match_data['updated_at'] = datetime.now().isoformat()

            if not self.client:
                return {'success': True, 'match': {'id': match_id, **match_data}}

            response = self.client.table('matches').update(match_data).eq('id', match_id).execute()
            if not response.data:
                return {'success': False, 'error': 'Match not found'}
            return {'success': True, 'match': response.data[0]}
        except Exception as e:
            return {'success': False, 'error': str(e)}

    def create_teams(self, teams_data: List[Dict]) -> Dict:
        """Create the per-match team records"""
        try:
            for team in teams_data:
                team.setdefault('created_at', datetime.now().isoformat())

            if not self.client:
                for team in teams_data:
                    team.setdefault('id', str(uuid.uuid4()))
                return {'success': True, 'teams': teams_data}

            response = self.client.table('teams').insert(teams_data).execute()
            return {'success': True, 'teams': response.data}
        except Exception as e:
            return {'success': False, 'error': str(e)}

    def add_match_players(self, rows: List[Dict]) -> Dict:
        """Place players on a match roster"""
        try:
            for row in rows:
                row.setdefault('created_at', datetime.now().isoformat())

            if not self.client:
                for row in rows:
                    row.setdefault('id', str(uuid.uuid4()))
                return {'success': True, 'match_players': rows}

            response = self.client.table('match_players').insert(rows).execute()
            return {'success': True, 'match_players': response.data}
        except Exception as e:
            return {'success': False, 'error': str(e)}

    def create_match_event(self, event_data: Dict) -> Dict:
        """Record a match event (goal, own goal, card, substitution, save, clean sheet)"""
        try:
            event_data.setdefault('created_at', datetime.now().isoformat())

            if not self.client:
                event_data.setdefault('id', str(uuid.uuid4()))
                return {'success': True, 'event': event_data}

            response = self.client.table('match_events').insert(event_data).execute()
            return {'success': True, 'event': response.data[0]}
        except Exception as e:
            return {'success': False, 'error': str(e)}

    def upsert_stats(self, rows: List[Dict]) -> Dict:
        """Insert or update stat rows, one per match player"""
        try:
            now = datetime.now().isoformat()
            for row in rows:
                row['updated_at'] = now

            if not self.client:
                return {'success': True, 'stats': rows}

            response = self.client.table('stats').upsert(
                rows, on_conflict='match_player_id', ignore_duplicates=False
            ).execute()
            return {'success': True, 'stats': response.data}
        except Exception as e:
            logger.error(f"Error updating stats: {e}")
            return {'success': False, 'error': str(e)}

    # Tournament operations
    def get_tournaments(self) -> List[Dict]:
        """Get all tournaments, newest first"""
        if not self.client:
            return []

        return self._fetch_all('tournaments', lambda: self.client.table('tournaments').select('*')
                               .order('created_at', desc=True).order('id'))

    def get_tournament_by_id(self, tournament_id: str) -> Optional[Dict]:
        """Get tournament by ID"""
        if not self.client:
            return None

        query = self.client.table('tournaments').select('*').eq('id', tournament_id).limit(1)
        rows = self._fetch('tournament', query)
        return rows[0] if rows else None

    def create_tournament(self, tournament_data: Dict) -> Dict:
        """Create a new tournament"""
        try:
            tournament_data['id'] = str(uuid.uuid4())
            tournament_data['created_at'] = datetime.now().isoformat()
            tournament_data['updated_at'] = datetime.now().isoformat()

            if not self.client:
                return {'success': True, 'tournament': tournament_data}

            response = self.client.table('tournaments').insert(tournament_data).execute()
            return {'success': True, 'tournament': response.data[0]}
        except Exception as e:
            return {'success': False, 'error': str(e)}

    def get_tournament_teams(self, tournament_id: str) -> List[Dict]:
        """Get the teams registered for a tournament as {team_id, name}"""
        if not self.client:
            return []

        def build_query():
            return self.client.table('tournament_teams').select(
                'team_id, team:persistent_teams(id, name)'
            ).eq('tournament_id', tournament_id).order('team_id')

        teams = []
        for row in self._fetch_all('tournament teams', build_query):
            team = coerce_single(row.get('team'))
            teams.append({'team_id': row.get('team_id'), 'name': team.get('name') if team else None})
        return teams

    def get_tournament_fixtures(self, tournament_id: str, round_name: Optional[str] = None) -> List[Dict]:
        """Get a tournament's fixture matches, optionally for one round"""
        if not self.client:
            return []

        def build_query():
            query = self.client.table('matches').select('*').eq('tournament_id', tournament_id)
            if round_name:
                query = query.eq('round', round_name)
            return query.order('fixture_order').order('id')

        return self._fetch_all('tournament fixtures', build_query)

    def fixtures_exist(self, tournament_id: str) -> bool:
        """Check whether group stage fixtures were already generated"""
        if not self.client:
            return False

        query = self.client.table('matches').select('id').eq('tournament_id', tournament_id) \
            .eq('is_fixture', True).eq('round', 'group_stage').limit(1)
        return bool(self._fetch('existing fixtures', query))

    def get_standings(self, tournament_id: str) -> List[Dict]:
        """Get stored standings ordered by points, goal difference, goals for"""
        if not self.client:
            return []

        def build_query():
            return self.client.table('tournament_standings').select('*, team:persistent_teams(*)') \
                .eq('tournament_id', tournament_id) \
                .order('points', desc=True) \
                .order('goal_difference', desc=True) \
                .order('goals_for', desc=True) \
                .order('id')

        standings = self._fetch_all('standings', build_query)
        for standing in standings:
            standing['team'] = coerce_single(standing.get('team'))
        return standings

    def save_standing(self, tournament_id: str, team_id: str, standing: Dict) -> Dict:
        """Insert or update one team's round robin standing"""
        try:
            record = {**standing, 'updated_at': datetime.now().isoformat()}

            if not self.client:
                return {'success': True, 'standing': record}

            existing = self.client.table('tournament_standings').select('id') \
                .eq('tournament_id', tournament_id).eq('team_id', team_id) \
                .is_('group_name', 'null').limit(1).execute()

            if existing.data:
                response = self.client.table('tournament_standings').update(record) \
                    .eq('id', existing.data[0]['id']).execute()
            else:
                record.update({'tournament_id': tournament_id, 'team_id': team_id, 'group_name': None})
                response = self.client.table('tournament_standings').insert(record).execute()
            return {'success': True, 'standing': response.data[0] if response.data else record}
        except Exception as e:
            logger.error(f"Error saving standings for team {team_id}: {e}")
            return {'success': False, 'error': str(e)}

# Global database manager instance
db = DatabaseManager()
