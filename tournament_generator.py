from datetime import datetime, timedelta
from typing import List, Dict, Optional

GROUP_STAGE = 'group_stage'
FINAL = 'final'
FINAL_FIXTURE_ORDER = 999

TEAM_A_COLOR = '#3B82F6'
TEAM_B_COLOR = '#EF4444'

class FixtureGenerator:
    """Generate round robin fixtures for a tournament's registered teams"""

    def __init__(self, tournament: Dict, teams: List[Dict], created_by: Optional[str] = None):
        self.tournament = tournament
        self.teams = [team for team in teams if team.get('name')]
        self.format = tournament.get('type', 'round_robin')
        self.created_by = created_by

    def generate_pairings(self) -> List[tuple]:
        """Every pair of teams once, or twice with home/away swapped for double round robin"""
        pairings = []

        for i in range(len(self.teams)):
            for j in range(i + 1, len(self.teams)):
                pairings.append((self.teams[i], self.teams[j]))
                if self.format == 'double_round_robin':
                    pairings.append((self.teams[j], self.teams[i]))

        return pairings

    def generate_matches(self) -> List[Dict]:
        """Match records for each pairing, spaced one day apart"""
        matches = []

        for order, (team_a, team_b) in enumerate(self.generate_pairings(), start=1):
            matches.append({
                'type': 'internal',
                'date': self._get_match_date(order).isoformat(),
                'status': 'scheduled',
                'tournament_id': self.tournament['id'],
                'round': GROUP_STAGE,
                'is_fixture': True,
                'fixture_order': order,
                'teamA_name': team_a['name'],
                'teamB_name': team_b['name'],
                'created_by': self.created_by,
            })

        return matches

    def _get_match_date(self, fixture_order: int) -> datetime:
        """Calculate match date from the tournament start date and fixture order"""
        start_date = self.tournament.get('start_date')
        if not start_date:
            start_date = datetime.now()
        elif isinstance(start_date, str):
            start_date = datetime.fromisoformat(start_date.replace('Z', '+00:00'))

        return start_date + timedelta(days=fixture_order - 1)

def match_teams(match: Dict) -> List[Dict]:
    """The two per-match team records for a fixture"""
    return [
        {'match_id': match['id'], 'name': match['teamA_name'], 'color': TEAM_A_COLOR},
        {'match_id': match['id'], 'name': match['teamB_name'], 'color': TEAM_B_COLOR},
    ]

def _safe_int(value, default=0):
    try:
        if value is None:
            return default
        return int(value)
    except (ValueError, TypeError):
        return default

def _normalize_name(name) -> str:
    return str(name or '').strip().lower()

class StandingsCalculator:
    """Calculate round robin standings from completed matches"""

    def __init__(self, tournament: Dict, teams: List[Dict]):
        self.tournament = tournament or {}
        self.teams = teams
        # Missing or zero values fall back to 3 points for a win, 1 for a draw
        self.points_per_win = _safe_int(self.tournament.get('points_per_win')) or 3
        self.points_per_draw = _safe_int(self.tournament.get('points_per_draw')) or 1
        self.points_per_loss = _safe_int(self.tournament.get('points_per_loss'))

    def calculate(self, matches: List[Dict]) -> List[Dict]:
        """Standings for every team, ordered by points, goal difference, goals for"""
        standings = {}
        team_ids_by_name = {}

        for team in self.teams:
            standings[team['team_id']] = {
                'team_id': team['team_id'],
                'name': team.get('name'),
                'matches_played': 0,
                'wins': 0,
                'draws': 0,
                'losses': 0,
                'goals_for': 0,
                'goals_against': 0,
            }
            if team.get('name'):
                team_ids_by_name[_normalize_name(team['name'])] = team['team_id']

        for match in matches:
            if match.get('status') != 'completed':
                continue

            # Matches reference teams by name, not by tournament team id
            team_a_id = team_ids_by_name.get(_normalize_name(match.get('teamA_name')))
            team_b_id = team_ids_by_name.get(_normalize_name(match.get('teamB_name')))
            if not team_a_id or not team_b_id:
                continue

            score_a = _safe_int(match.get('score_teama'))
            score_b = _safe_int(match.get('score_teamb'))

            self._record(standings[team_a_id], score_a, score_b)
            self._record(standings[team_b_id], score_b, score_a)

        for stats in standings.values():
            stats['goal_difference'] = stats['goals_for'] - stats['goals_against']
            stats['points'] = (stats['wins'] * self.points_per_win
                               + stats['draws'] * self.points_per_draw
                               + stats['losses'] * self.points_per_loss)

        sorted_standings = sorted(standings.values(),
                                  key=lambda x: (-x['points'], -x['goal_difference'], -x['goals_for']))

        for i, standing in enumerate(sorted_standings):
            standing['position'] = i + 1

        return sorted_standings

    @staticmethod
    def _record(stats: Dict, scored: int, conceded: int):
        stats['matches_played'] += 1
        stats['goals_for'] += scored
        stats['goals_against'] += conceded

        if scored > conceded:
            stats['wins'] += 1
        elif scored < conceded:
            stats['losses'] += 1
        else:
            stats['draws'] += 1

def build_final(tournament: Dict, standings: List[Dict], group_matches: List[Dict],
                created_by: Optional[str] = None) -> Optional[Dict]:
    """Final between the top two once every group stage match is completed"""
    if not group_matches or len(standings) < 2:
        return None
    if any(m.get('status') != 'completed' for m in group_matches):
        return None

    top_two = standings[:2]
    if not all(s.get('name') for s in top_two):
        return None

    last_date = max((m.get('date') for m in group_matches if m.get('date')), default=None)
    if last_date:
        final_date = datetime.fromisoformat(last_date.replace('Z', '+00:00')) + timedelta(days=1)
    else:
        final_date = datetime.now()

    return {
        'type': 'internal',
        'date': final_date.isoformat(),
        'status': 'scheduled',
        'tournament_id': tournament['id'],
        'round': FINAL,
        'is_fixture': True,
        'fixture_order': FINAL_FIXTURE_ORDER,
        'teamA_name': top_two[0]['name'],
        'teamB_name': top_two[1]['name'],
        'created_by': created_by,
    }
