import os

class Config:
    SECRET_KEY = os.environ.get('FLASK_SECRET_KEY') or 'dev-secret-key-change-in-production'
    DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    TESTING = False

    # Supabase Configuration (service role key is needed to read across all players)
    SUPABASE_URL = os.environ.get('SUPABASE_URL')
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY') or os.environ.get('SUPABASE_ANON_KEY')

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    LOG_DIR = os.environ.get('LOG_DIR')  # No file logging when unset

    # Statistics Configuration
    LEADERBOARD_SIZE = int(os.environ.get('LEADERBOARD_SIZE', 10))
    DASHBOARD_SIZE = int(os.environ.get('DASHBOARD_SIZE', 5))
    DEFAULT_MINUTES_PLAYED = int(os.environ.get('DEFAULT_MINUTES_PLAYED', 90))
    RATE_QUALIFYING_MATCHES = int(os.environ.get('RATE_QUALIFYING_MATCHES', 2))
    # One of: combined, events, stats
    GOALKEEPER_STATS_SOURCE = os.environ.get('GOALKEEPER_STATS_SOURCE', 'combined').lower()
    FETCH_WORKERS = int(os.environ.get('FETCH_WORKERS', 3))

    # App Information
    APP_NAME = os.environ.get('APP_NAME', 'ClubStats')
    APP_VERSION = os.environ.get('APP_VERSION', '1.0.0')
