import pytest

from exceptions import NotFoundError, StorageError
from stats_service import StatsService
from conftest import make_event, make_record


@pytest.fixture
def service(fake_db):
    return StatsService(fake_db, {})


def test_leaderboards_fold_saves_from_events(fake_db, service):
    fake_db.records = [make_record('m1', 'p1', 'Keeper', stats={'saves': 1})]
    fake_db.events = [make_event('m1', 'save', player='Keeper'), make_event('m1', 'goal', scorer='Keeper')]

    leaderboards = service.leaderboards()

    assert leaderboards['topSaves'][0]['saves'] == 2
    assert set(fake_db.calls) == {'match players', 'save events', 'clean_sheet events'}


def test_stats_source_skips_event_reads(fake_db):
    fake_db.records = [make_record('m1', 'p1', 'Keeper', stats={'saves': 1})]
    fake_db.events = [make_event('m1', 'save', player='Keeper')]

    service = StatsService(fake_db, {'GOALKEEPER_STATS_SOURCE': 'stats'})

    assert service.leaderboards()['topSaves'][0]['saves'] == 1
    assert fake_db.calls == ['match players']


def test_failed_fetch_aborts_the_request(fake_db, service):
    fake_db.records = [make_record('m1', 'p1', 'Alex', stats={'goals': 1})]
    fake_db.fail_on = {'clean_sheet events'}

    with pytest.raises(StorageError) as exc_info:
        service.leaderboards()
    assert exc_info.value.user_message == 'Failed to fetch clean_sheet events'


def test_settings_control_leaderboard_size(fake_db):
    fake_db.records = [make_record(f'm{i}', f'p{i}', f'Player {i}', stats={'goals': 1}) for i in range(6)]
    service = StatsService(fake_db, {'LEADERBOARD_SIZE': 3})
    assert len(service.leaderboards()['topGoalScorers']) == 3


def test_dashboard(fake_db, service):
    fake_db.records = [make_record('m1', 'p1', 'Alex', stats={'goals': 2})]
    fake_db.players = {'p1': {'id': 'p1'}}
    fake_db.matches = [
        {'id': f'done-{i}', 'type': 'internal', 'status': 'completed', 'date': f'2024-04-0{i}'}
        for i in range(1, 5)
    ] + [
        {'id': f'next-{i}', 'type': 'external', 'status': 'scheduled', 'date': f'2024-06-0{i}',
         'location': None if i == 1 else 'Home Ground'}
        for i in range(1, 4)
    ]

    dashboard = service.dashboard()

    assert dashboard['totalPlayers'] == 1
    assert dashboard['totalMatches'] == 7
    assert dashboard['totalGoals'] == 2
    assert dashboard['topScorer'] == {'name': 'Alex', 'goals': 2}
    assert [m['id'] for m in dashboard['recentMatches']] == ['done-4', 'done-3', 'done-2']
    assert [m['location'] for m in dashboard['upcomingMatches']] == ['Home Ground', 'Home Ground']
    assert dashboard['upcomingMatches'][0]['type'] == 'External'


def test_players_overview(fake_db, service):
    fake_db.records = [
        make_record('m1', 'p1', 'Alex', stats={'goals': 1}),
        make_record('m2', 'p1', 'Alex', stats={'assists': 2}),
        make_record('m2', 'p2', None),
    ]
    players = service.players_overview()

    assert len(players) == 1
    assert players[0]['total_goals'] == 1
    assert players[0]['total_assists'] == 2
    assert players[0]['matches_played'] == 2


def test_player_summary_resolves_names_against_full_roster(fake_db, service):
    fake_db.records = [
        make_record('m1', 'p1', 'Sam'),
        make_record('m1', 'p2', 'Sam'),
        make_record('m2', 'p1', 'Sam'),
    ]
    fake_db.events = [make_event('m1', 'save', player='Sam'), make_event('m2', 'save', player='Sam')]

    summary = service.player_summary('p1')

    # The m1 save is ambiguous once the whole m1 roster is known
    assert summary['total_saves'] == 1
    assert summary['matches_played'] == 2


def test_player_summary_for_player_without_matches(fake_db, service):
    summary = service.player_summary('nobody')
    assert summary['matches_played'] == 0
    assert summary['recent_matches'] == []


def test_tournament_player_stats_only_counts_completed_matches(fake_db, service):
    fake_db.matches = [
        {'id': 'm1', 'tournament_id': 'tour-1', 'status': 'completed'},
        {'id': 'm2', 'tournament_id': 'tour-1', 'status': 'scheduled'},
        {'id': 'm3', 'tournament_id': 'tour-2', 'status': 'completed'},
    ]
    fake_db.records = [
        make_record('m1', 'p1', 'Alex', stats={'goals': 1}),
        make_record('m2', 'p1', 'Alex', stats={'goals': 4}),
        make_record('m3', 'p2', 'Ben', stats={'goals': 9}),
    ]

    stats = service.tournament_player_stats('tour-1')

    assert [(p['player_id'], p['goals'], p['matches_played']) for p in stats] == [('p1', 1, 1)]


def test_tournament_without_completed_matches(fake_db, service):
    fake_db.matches = [{'id': 'm1', 'tournament_id': 'tour-1', 'status': 'scheduled'}]
    assert service.tournament_player_stats('tour-1') == []
    assert 'match players' not in fake_db.calls


def test_assign_stats_from_events(fake_db, service):
    fake_db.records = [make_record('m1', 'p1', 'Alex'), make_record('m1', 'p2', 'Ben')]
    fake_db.events = [
        make_event('m1', 'goal', scorer='Alex', assist='Ben'),
        make_event('m1', 'card', player='Ben', card_type='red'),
    ]

    rows = service.assign_stats_from_events('m1')

    assert len(rows) == 2
    assert fake_db.upserted_stats == rows
    ben = next(r for r in rows if r['match_player_id'] == 'mp-m1-p2')
    assert (ben['assists'], ben['red_cards']) == (1, 1)


def test_assign_stats_for_match_without_players(fake_db, service):
    with pytest.raises(NotFoundError):
        service.assign_stats_from_events('missing')
