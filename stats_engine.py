"""
Statistics aggregation engine.

Walks participation records (one per player per match, each with an optional
stat row) and match events, folds them into per-player aggregates and projects
those aggregates into ranked leaderboards. Everything here is pure and works
on data already fetched into memory; see stats_service for the fetching side.
"""
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional, Set

from logger import setup_logger

logger = setup_logger(__name__)

UNKNOWN_PLAYER_NAME = 'Unknown'
DEFAULT_MINUTES_PLAYED = 90
RATE_QUALIFYING_MATCHES = 2
LEADERBOARD_SIZE = 10
DASHBOARD_SIZE = 5
RECENT_MATCHES_SIZE = 5

# Unified score weights
GOAL_POINTS = 3
ASSIST_POINTS = 2
SAVE_POINTS = 0.5
CLEAN_SHEET_POINTS = 2
OWN_GOAL_PENALTY = 2

# Where goalkeeper stats (saves, clean sheets) are read from
SOURCE_COMBINED = 'combined'
SOURCE_EVENTS = 'events'
SOURCE_STATS = 'stats'
GOALKEEPER_SOURCES = (SOURCE_COMBINED, SOURCE_EVENTS, SOURCE_STATS)
GOALKEEPER_EVENT_TYPES = ('save', 'clean_sheet')


def _safe_int(value, default=0):
    """Coerce possibly None or non-numeric values to an int.
    Returns `default` (0) if value is None or not castable to int.
    """
    try:
        if value is None:
            return default
        return int(value)
    except (ValueError, TypeError):
        return default


def _safe_float(value) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (ValueError, TypeError):
        return None


def round_half_up(value: float, places: int = 2) -> float:
    """Round to `places` decimals with ties going away from zero."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def per_match(total: float, matches_played: int) -> float:
    if matches_played <= 0:
        return 0
    return round_half_up(total / matches_played)


def display_name(player: Optional[Dict]) -> str:
    """Resolved display name of a normalized player, or the placeholder."""
    name = (player or {}).get('name')
    if isinstance(name, str):
        name = name.strip()
    return name or UNKNOWN_PLAYER_NAME


def _name_key(name) -> Optional[str]:
    if not isinstance(name, str) or not name.strip():
        return None
    return name.strip().lower()


class MatchRoster:
    """Display name to player id lookup, scoped to a single match's roster.

    A name shared by two players on the same roster resolves to nothing.
    """

    def __init__(self, records: Iterable[Dict]):
        self._names: Dict[str, Dict[str, Set[str]]] = {}
        self._records: Dict[tuple, Dict] = {}

        for record in records:
            match_id = record.get('match_id')
            player_id = record.get('player_id')
            if not match_id or not player_id:
                continue
            self._records.setdefault((match_id, player_id), record)
            key = _name_key((record.get('player') or {}).get('name'))
            if key:
                self._names.setdefault(match_id, {}).setdefault(key, set()).add(player_id)

    def resolve(self, match_id: str, name: str = None, player_id: str = None) -> Optional[str]:
        if player_id:
            return player_id
        candidates = self._names.get(match_id, {}).get(_name_key(name), set())
        if len(candidates) != 1:
            return None
        return next(iter(candidates))

    def record_for(self, match_id: str, player_id: str) -> Optional[Dict]:
        return self._records.get((match_id, player_id))


class EventAttribution:
    """Counts save and clean sheet events per match and player id."""

    def __init__(self, events: Iterable[Dict], roster: MatchRoster):
        self._counts = Counter()
        self.roster = roster
        self.dropped = 0

        for event in events:
            event_type = event.get('event_type')
            if event_type not in GOALKEEPER_EVENT_TYPES:
                continue
            match_id = event.get('match_id')
            player_id = roster.resolve(match_id, name=event.get('player'), player_id=event.get('player_id'))
            if not match_id or not player_id:
                self.dropped += 1
                logger.debug(f"Unattributed {event_type} event {event.get('id')} in match {match_id}")
                continue
            self._counts[(match_id, player_id, event_type)] += 1

    def count(self, match_id: str, player_id: str, event_type: str) -> int:
        return self._counts.get((match_id, player_id, event_type), 0)

    def credits(self, record: Dict) -> bool:
        """Whether event counts for the record's match and player belong to this record.

        Events belong to a match, so a player with several participation
        records in one match is credited on the first of them only.
        """
        first = self.roster.record_for(record.get('match_id'), record.get('player_id'))
        return first is None or first.get('id') == record.get('id')


@dataclass
class Contribution:
    """One player's counters for one match."""
    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    own_goals: int = 0
    minutes_played: int = DEFAULT_MINUTES_PLAYED
    saves: int = 0
    clean_sheets: int = 0
    rating: Optional[float] = None


class StatNormalizer:
    """Resolves the effective contribution of one participation record.

    Counters come from the stat row when there is one and default to zero
    otherwise; minutes default to a full match. Saves and clean sheets are
    read from the stat row, from attributed events, or from both added
    together, depending on `source`.
    """

    def __init__(self, attribution: Optional[EventAttribution] = None,
                 source: str = SOURCE_COMBINED,
                 default_minutes: int = DEFAULT_MINUTES_PLAYED):
        if source not in GOALKEEPER_SOURCES:
            raise ValueError(f"Unknown goalkeeper stats source: {source}")
        self.attribution = attribution
        self.source = source
        self.default_minutes = default_minutes

    def normalize(self, record: Dict) -> Contribution:
        stats = record.get('stats') or {}
        contribution = Contribution(
            goals=_safe_int(stats.get('goals')),
            assists=_safe_int(stats.get('assists')),
            yellow_cards=_safe_int(stats.get('yellow_cards')),
            red_cards=_safe_int(stats.get('red_cards')),
            own_goals=_safe_int(stats.get('own_goals')),
            minutes_played=_safe_int(stats.get('minutes_played'), self.default_minutes),
            rating=_safe_float(stats.get('rating')),
        )

        if self.source != SOURCE_EVENTS:
            contribution.saves += _safe_int(stats.get('saves'))
            contribution.clean_sheets += _safe_int(stats.get('clean_sheets'))

        if self.source != SOURCE_STATS and self.attribution and self.attribution.credits(record):
            match_id = record.get('match_id')
            player_id = record.get('player_id')
            contribution.saves += self.attribution.count(match_id, player_id, 'save')
            contribution.clean_sheets += self.attribution.count(match_id, player_id, 'clean_sheet')

        return contribution


@dataclass
class PlayerAggregate:
    """Running totals for one player, rebuilt on every request."""
    id: str
    name: str
    photo_url: Optional[str] = None
    position: Optional[str] = None
    created_at: Optional[str] = None
    goals: int = 0
    assists: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    own_goals: int = 0
    saves: int = 0
    clean_sheets: int = 0
    total_minutes: int = 0
    total_rating: float = 0.0
    rated_matches: int = 0
    match_ids: Set[str] = field(default_factory=set)
    goals_per_match: float = 0
    assists_per_match: float = 0
    unified_score: float = 0
    average_rating: float = 0

    @property
    def matches_played(self) -> int:
        return len(self.match_ids)

    def add(self, match_id: str, contribution: Contribution):
        self.match_ids.add(match_id)
        self.goals += contribution.goals
        self.assists += contribution.assists
        self.yellow_cards += contribution.yellow_cards
        self.red_cards += contribution.red_cards
        self.own_goals += contribution.own_goals
        self.saves += contribution.saves
        self.clean_sheets += contribution.clean_sheets
        self.total_minutes += contribution.minutes_played
        if contribution.rating is not None:
            self.total_rating += contribution.rating
            self.rated_matches += 1

    def finalize(self) -> 'PlayerAggregate':
        """Compute the derived metrics from the accumulated totals."""
        self.goals_per_match = per_match(self.goals, self.matches_played)
        self.assists_per_match = per_match(self.assists, self.matches_played)
        self.unified_score = (
            GOAL_POINTS * self.goals
            + ASSIST_POINTS * self.assists
            + SAVE_POINTS * self.saves
            + CLEAN_SHEET_POINTS * self.clean_sheets
            - OWN_GOAL_PENALTY * self.own_goals
        )
        self.average_rating = self.total_rating / self.rated_matches if self.rated_matches else 0
        return self

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'photo_url': self.photo_url,
            'goals': self.goals,
            'assists': self.assists,
            'yellow_cards': self.yellow_cards,
            'red_cards': self.red_cards,
            'own_goals': self.own_goals,
            'saves': self.saves,
            'clean_sheets': self.clean_sheets,
            'matches_played': self.matches_played,
            'total_minutes': self.total_minutes,
            'goals_per_match': self.goals_per_match,
            'assists_per_match': self.assists_per_match,
            'unified_score': self.unified_score,
        }


class PlayerAggregator:
    """Folds normalized participation records into per-player aggregates."""

    def __init__(self):
        self._aggregates: Dict[str, PlayerAggregate] = {}

    def __len__(self):
        return len(self._aggregates)

    def upsert(self, player_id: str, name: str = UNKNOWN_PLAYER_NAME, photo_url: str = None,
               position: str = None, created_at: str = None) -> PlayerAggregate:
        aggregate = self._aggregates.get(player_id)
        if aggregate is None:
            aggregate = PlayerAggregate(id=player_id, name=name, photo_url=photo_url,
                                        position=position, created_at=created_at)
            self._aggregates[player_id] = aggregate
        return aggregate

    def add(self, record: Dict, contribution: Contribution) -> Optional[PlayerAggregate]:
        player = record.get('player') or {}
        player_id = record.get('player_id') or player.get('id')
        match_id = record.get('match_id')
        if not player_id or not match_id:
            logger.debug(f"Skipping match player {record.get('id')} without player or match")
            return None

        name = display_name(player)
        if name == UNKNOWN_PLAYER_NAME:
            logger.debug(f"Skipping unnamed player {player_id}")
            return None

        aggregate = self.upsert(player_id, name, player.get('photo_url'),
                                player.get('position'), player.get('created_at'))
        aggregate.add(match_id, contribution)
        return aggregate

    def fold(self, records: Iterable[Dict], normalizer: StatNormalizer) -> 'PlayerAggregator':
        for record in records:
            self.add(record, normalizer.normalize(record))
        return self

    def finalize(self) -> List[PlayerAggregate]:
        """Derived metrics for every player, in first-seen order."""
        return [aggregate.finalize() for aggregate in self._aggregates.values()]


def aggregate_players(records: List[Dict], events: Iterable[Dict] = (),
                      source: str = SOURCE_COMBINED,
                      default_minutes: int = DEFAULT_MINUTES_PLAYED) -> List[PlayerAggregate]:
    """Run normalize, fold and derive over one snapshot of records and events."""
    attribution = EventAttribution(events, MatchRoster(records))
    normalizer = StatNormalizer(attribution, source=source, default_minutes=default_minutes)
    return PlayerAggregator().fold(records, normalizer).finalize()


@dataclass(frozen=True)
class LeaderboardView:
    """One filtered, sorted projection of the aggregates."""
    key: str
    include: Callable[[PlayerAggregate], bool]
    sort_key: Callable[[PlayerAggregate], float]

    def rank(self, aggregates: Iterable[PlayerAggregate], limit: int) -> List[PlayerAggregate]:
        # sorted() is stable with reverse=True, so ties keep input order
        ranked = sorted((a for a in aggregates if self.include(a)), key=self.sort_key, reverse=True)
        return ranked[:limit]


def leaderboard_views(qualifying_matches: int = RATE_QUALIFYING_MATCHES) -> List[LeaderboardView]:
    return [
        LeaderboardView('topGoalScorers', lambda a: a.goals > 0, lambda a: a.goals),
        LeaderboardView('topAssistMakers', lambda a: a.assists > 0, lambda a: a.assists),
        LeaderboardView('mostActivePlayers', lambda a: a.matches_played > 0, lambda a: a.matches_played),
        LeaderboardView('goalsPerMatch',
                        lambda a: a.matches_played >= qualifying_matches and a.goals > 0,
                        lambda a: a.goals_per_match),
        LeaderboardView('topPerformers', lambda a: (a.goals + a.assists) > 0, lambda a: a.unified_score),
        LeaderboardView('mostMinutesPlayed', lambda a: a.total_minutes > 0, lambda a: a.total_minutes),
        LeaderboardView('topCleanSheets', lambda a: a.clean_sheets > 0, lambda a: a.clean_sheets),
        LeaderboardView('topSaves', lambda a: a.saves > 0, lambda a: a.saves),
    ]


def build_leaderboards(aggregates: List[PlayerAggregate], limit: int = LEADERBOARD_SIZE,
                       qualifying_matches: int = RATE_QUALIFYING_MATCHES) -> Dict[str, List[Dict]]:
    """All leaderboard views from one aggregate snapshot."""
    return {
        view.key: [a.to_dict() for a in view.rank(aggregates, limit)]
        for view in leaderboard_views(qualifying_matches)
    }


def summarize_dashboard(aggregates: List[PlayerAggregate], limit: int = DASHBOARD_SIZE) -> Dict:
    """Top scorers and assisters for the dashboard cards."""
    scorers = LeaderboardView('topScorers', lambda a: a.goals > 0, lambda a: a.goals).rank(aggregates, limit)
    assisters = LeaderboardView('topAssisters', lambda a: a.assists > 0, lambda a: a.assists).rank(aggregates, limit)

    return {
        'totalGoals': sum(a.goals for a in aggregates),
        'topScorer': {'name': scorers[0].name, 'goals': scorers[0].goals} if scorers else {'name': 'No data', 'goals': 0},
        'topScorers': [{'id': a.id, 'name': a.name, 'goals': a.goals, 'assists': a.assists} for a in scorers],
        'topAssisters': [{'id': a.id, 'name': a.name, 'assists': a.assists, 'goals': a.goals} for a in assisters],
    }


def rank_tournament_players(aggregates: List[PlayerAggregate]) -> List[Dict]:
    """Tournament player list ordered by goals, then assists, then average rating."""
    ordered = sorted(aggregates, key=lambda a: (a.goals, a.assists, a.average_rating), reverse=True)
    return [
        {
            'player_id': a.id,
            'player_name': a.name,
            'photo_url': a.photo_url,
            'matches_played': a.matches_played,
            'goals': a.goals,
            'assists': a.assists,
            'own_goals': a.own_goals,
            'clean_sheets': a.clean_sheets,
            'saves': a.saves,
            'yellow_cards': a.yellow_cards,
            'red_cards': a.red_cards,
            'total_rating': a.total_rating,
            'rated_matches': a.rated_matches,
            'average_rating': a.average_rating,
            'unified_score': a.unified_score,
        }
        for a in ordered
    ]


def players_overview(aggregates: List[PlayerAggregate]) -> List[Dict]:
    return [
        {
            'player_id': a.id,
            'player_name': a.name,
            'total_goals': a.goals,
            'total_assists': a.assists,
            'total_saves': a.saves,
            'total_clean_sheets': a.clean_sheets,
            'matches_played': a.matches_played,
            'created_at': a.created_at or '',
        }
        for a in aggregates
    ]


def summarize_player(player_id: str, records: List[Dict], normalizer: StatNormalizer,
                     recent_limit: int = RECENT_MATCHES_SIZE) -> Dict:
    """Career totals and most recent matches for one player."""
    aggregate = PlayerAggregate(id=player_id, name=UNKNOWN_PLAYER_NAME)
    recent_matches = []

    for record in records:
        match_id = record.get('match_id')
        if not match_id or record.get('player_id') != player_id:
            continue
        contribution = normalizer.normalize(record)
        aggregate.add(match_id, contribution)

        match = record.get('match') or {}
        recent_matches.append({
            'match_id': match_id,
            'date': match.get('date'),
            'opponent': match.get('opponent'),
            'teamA_name': match.get('teamA_name'),
            'teamB_name': match.get('teamB_name'),
            'goals': contribution.goals,
            'assists': contribution.assists,
            'own_goals': contribution.own_goals,
            'yellow_cards': contribution.yellow_cards,
            'red_cards': contribution.red_cards,
            'saves': contribution.saves,
            'clean_sheets': contribution.clean_sheets,
            'minutes_played': contribution.minutes_played,
            'rating': contribution.rating,
        })

    aggregate.finalize()
    recent_matches.sort(key=lambda m: m['date'] or '', reverse=True)

    return {
        'total_goals': aggregate.goals,
        'total_assists': aggregate.assists,
        'total_own_goals': aggregate.own_goals,
        'total_yellow_cards': aggregate.yellow_cards,
        'total_red_cards': aggregate.red_cards,
        'total_saves': aggregate.saves,
        'total_clean_sheets': aggregate.clean_sheets,
        'total_minutes': aggregate.total_minutes,
        'matches_played': aggregate.matches_played,
        'goals_per_match': aggregate.goals_per_match,
        'assists_per_match': aggregate.assists_per_match,
        'average_rating': aggregate.average_rating,
        'unified_score': aggregate.unified_score,
        'recent_matches': recent_matches[:recent_limit],
    }


def derive_stat_rows(events: Iterable[Dict], records: List[Dict],
                     default_minutes: int = DEFAULT_MINUTES_PLAYED) -> List[Dict]:
    """Stat rows for one match built from its goal, own goal and card events.

    Names on events are resolved against the match roster only; events that
    cannot be attributed are dropped. Only players with at least one event
    get a row. Recorded minutes are kept, otherwise the default applies.
    """
    roster = MatchRoster(records)
    rows: Dict[str, Dict] = {}

    def credit(match_id, name, counter, player_id=None):
        resolved = roster.resolve(match_id, name=name, player_id=player_id)
        record = roster.record_for(match_id, resolved) if resolved else None
        if not record or not record.get('id'):
            if name or player_id:
                logger.debug(f"Could not attribute {counter} to '{name or player_id}' in match {match_id}")
            return
        stats = record.get('stats') or {}
        row = rows.setdefault(record['id'], {
            'match_player_id': record['id'],
            'goals': 0,
            'assists': 0,
            'own_goals': 0,
            'yellow_cards': 0,
            'red_cards': 0,
            'minutes_played': _safe_int(stats.get('minutes_played'), default_minutes),
        })
        row[counter] += 1

    for event in events:
        match_id = event.get('match_id')
        event_type = event.get('event_type')

        if event_type == 'goal':
            credit(match_id, event.get('scorer'), 'goals', event.get('player_id'))
            if event.get('assist'):
                credit(match_id, event.get('assist'), 'assists')
        elif event_type == 'own_goal':
            credit(match_id, event.get('player'), 'own_goals', event.get('player_id'))
        elif event_type == 'card':
            card_type = (event.get('card_type') or '').lower()
            if card_type in ('yellow', 'red'):
                credit(match_id, event.get('player'), f'{card_type}_cards', event.get('player_id'))

    return list(rows.values())
