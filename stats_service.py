"""
Fetches the raw records a statistics request needs and runs them through
the aggregation engine. One StatsService is built per request.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Mapping

import stats_engine
from exceptions import ClubStatsError, NotFoundError
from logger import setup_logger

logger = setup_logger(__name__)

class StatsService:
    """Runs the stats pipeline against a storage collaborator"""

    def __init__(self, database, settings: Mapping = None):
        settings = settings or {}
        self.db = database
        self.leaderboard_size = settings.get('LEADERBOARD_SIZE', stats_engine.LEADERBOARD_SIZE)
        self.dashboard_size = settings.get('DASHBOARD_SIZE', stats_engine.DASHBOARD_SIZE)
        self.default_minutes = settings.get('DEFAULT_MINUTES_PLAYED', stats_engine.DEFAULT_MINUTES_PLAYED)
        self.qualifying_matches = settings.get('RATE_QUALIFYING_MATCHES', stats_engine.RATE_QUALIFYING_MATCHES)
        self.source = settings.get('GOALKEEPER_STATS_SOURCE', stats_engine.SOURCE_COMBINED)
        self.fetch_workers = max(1, settings.get('FETCH_WORKERS', 3))

    def _gather(self, calls: Dict[str, Callable]) -> Dict:
        """Run independent reads in parallel and wait for all of them.

        The first failure is re-raised once every read has finished, so no
        caller ever sees a partial snapshot.
        """
        with ThreadPoolExecutor(max_workers=self.fetch_workers) as executor:
            futures = {name: executor.submit(call) for name, call in calls.items()}
        return {name: future.result() for name, future in futures.items()}

    def _event_calls(self, match_ids=None) -> Dict[str, Callable]:
        if self.source == stats_engine.SOURCE_STATS:
            return {}
        return {
            f'{event_type}_events': (lambda t=event_type: self.db.fetch_events([t], match_ids))
            for event_type in stats_engine.GOALKEEPER_EVENT_TYPES
        }

    def _aggregate(self, fetched: Dict) -> List[stats_engine.PlayerAggregate]:
        events = []
        for event_type in stats_engine.GOALKEEPER_EVENT_TYPES:
            events.extend(fetched.get(f'{event_type}_events', []))
        return stats_engine.aggregate_players(
            fetched['records'], events, source=self.source, default_minutes=self.default_minutes
        )

    def _normalizer(self, records: List[Dict], events: List[Dict]) -> stats_engine.StatNormalizer:
        attribution = stats_engine.EventAttribution(events, stats_engine.MatchRoster(records))
        return stats_engine.StatNormalizer(attribution, source=self.source, default_minutes=self.default_minutes)

    def leaderboards(self) -> Dict[str, List[Dict]]:
        """Every leaderboard view over all matches"""
        fetched = self._gather({'records': self.db.fetch_participation_records, **self._event_calls()})
        aggregates = self._aggregate(fetched)
        logger.info(f"Built leaderboards for {len(aggregates)} players")
        return stats_engine.build_leaderboards(aggregates, self.leaderboard_size, self.qualifying_matches)

    def dashboard(self) -> Dict:
        """Dashboard summary: totals, top five lists and recent/upcoming matches"""
        fetched = self._gather({
            'records': self.db.fetch_participation_records,
            'matches': self.db.get_matches,
            'player_count': self.db.count_approved_players,
            **self._event_calls(),
        })
        aggregates = self._aggregate(fetched)
        matches = fetched['matches']

        summary = stats_engine.summarize_dashboard(aggregates, self.dashboard_size)
        summary.update({
            'totalPlayers': fetched['player_count'],
            'totalMatches': len(matches),
            'recentMatches': [_match_card(m) for m in matches if m.get('status') == 'completed'][:3],
            'upcomingMatches': [
                {**_match_card(m), 'location': m.get('location') or 'TBD'}
                for m in matches if m.get('status') == 'scheduled'
            ][:2],
        })
        return summary

    def players_overview(self) -> List[Dict]:
        """Per-player totals for the players listing"""
        fetched = self._gather({'records': self.db.fetch_participation_records, **self._event_calls()})
        return stats_engine.players_overview(self._aggregate(fetched))

    def player_summary(self, player_id: str) -> Dict:
        """Totals and recent matches for one player"""
        records = self.db.fetch_participation_records(player_id=player_id)
        match_ids = sorted({r['match_id'] for r in records if r.get('match_id')})

        events = []
        if match_ids:
            # Event names resolve against the full roster of each match
            fetched = self._gather({
                'records': lambda: self.db.fetch_participation_records(match_ids=match_ids),
                **self._event_calls(match_ids),
            })
            for event_type in stats_engine.GOALKEEPER_EVENT_TYPES:
                events.extend(fetched.get(f'{event_type}_events', []))
            roster_records = fetched['records']
        else:
            roster_records = records

        normalizer = self._normalizer(roster_records, events)
        return stats_engine.summarize_player(player_id, records, normalizer)

    def tournament_player_stats(self, tournament_id: str) -> List[Dict]:
        """Player list for one tournament's completed matches"""
        match_ids = self.db.fetch_tournament_matches(tournament_id, 'completed')
        if not match_ids:
            return []

        fetched = self._gather({
            'records': lambda: self.db.fetch_participation_records(match_ids=match_ids),
            **self._event_calls(match_ids),
        })
        aggregates = self._aggregate(fetched)
        logger.info(f"Tournament {tournament_id}: {len(match_ids)} completed matches, {len(aggregates)} players")
        return stats_engine.rank_tournament_players(aggregates)

    def assign_stats_from_events(self, match_id: str) -> List[Dict]:
        """Build and store stat rows for a match from its goal and card events"""
        fetched = self._gather({
            'events': lambda: self.db.get_match_events(match_id),
            'records': lambda: self.db.fetch_participation_records(match_ids=[match_id]),
        })
        if not fetched['records']:
            raise NotFoundError('Match players', match_id)

        rows = stats_engine.derive_stat_rows(fetched['events'], fetched['records'], self.default_minutes)
        if rows:
            result = self.db.upsert_stats(rows)
            if not result['success']:
                raise ClubStatsError(f"Failed to update stats: {result.get('error')}")
        return rows

def _match_card(match: Dict) -> Dict:
    return {
        'id': match.get('id'),
        'type': 'Internal' if match.get('type') == 'internal' else 'External',
        'date': match.get('date'),
        'teamA': match.get('teamA_name') or 'Team A',
        'teamB': match.get('teamB_name') or 'Team B',
        'scoreA': match.get('score_teama') or 0,
        'scoreB': match.get('score_teamb') or 0,
    }
